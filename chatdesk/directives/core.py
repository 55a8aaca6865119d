"""
Core Directive

Agent identity, platform topology, tool-usage rules and the HTML output
contract. The front end renders replies as raw HTML, so markdown in a reply
shows up as literal asterisks and brackets.
"""

from __future__ import annotations

from typing import Any, ClassVar

from chatdesk.chat.models import ChatRequest
from chatdesk.tools.search import SiteConfig

from .base import Directive


class CoreDirective(Directive):
    priority: ClassVar[int] = 10

    def __init__(
        self,
        platform_name: str,
        platform_description: str = "",
        sites: list[SiteConfig] | None = None,
        search_tool: str = "search",
    ) -> None:
        self.platform_name = platform_name
        self.platform_description = platform_description
        self.sites = sites or []
        self.search_tool = search_tool
        self._text = self._build()

    @classmethod
    def from_config(cls, platform_conf: dict[str, Any]) -> CoreDirective:
        return cls(
            platform_name=platform_conf.get("name", "the platform"),
            platform_description=platform_conf.get("description", ""),
            sites=[SiteConfig(**site) for site in platform_conf.get("sites", [])],
            search_tool=platform_conf.get("search_tool", "search"),
        )

    def _build(self) -> str:
        lines: list[str] = []
        identity = f"You are an AI assistant for {self.platform_name}"
        if self.platform_description:
            identity += f", {self.platform_description}"
        lines.append(identity + ".")
        lines.append("")

        if self.sites:
            lines.append("PLATFORM ARCHITECTURE:")
            lines.append(f"- Network of {len(self.sites)} interconnected sites")
            for site in self.sites:
                entry = f"- {site.name}: {site.domain}"
                if site.description:
                    entry += f" ({site.description})"
                lines.append(entry)
            lines.append("")

        lines.extend(
            [
                "TOOL USAGE:",
                "CRITICAL: You have function tools available. When users ask you to "
                "find, search, or read content, USE your tools.",
                "Do NOT generate HTML forms, buttons, or links that pretend to be tools.",
                "Do NOT describe what tools you could use - just USE them.",
                f"Your {self.search_tool} tool searches ALL network sites simultaneously "
                "- use it for any content search request.",
                "",
                "RESPONSE FORMAT REQUIREMENTS:",
                "CRITICAL: Always return your responses formatted as clean, semantic HTML.",
                "",
                "Required HTML formatting:",
                "- Use <p> tags for paragraphs (NOT markdown)",
                "- Use <strong> and <em> for emphasis (NOT markdown ** or *)",
                "- Use <ul> and <li> for bulleted lists (NOT markdown -)",
                "- Use <ol> and <li> for numbered lists (NOT markdown 1.)",
                '- Use <a href="URL">text</a> for links (NOT markdown [text](url))',
                "- Use <code> for inline code (NOT markdown backticks)",
                "",
                "CRITICAL: Do NOT use markdown syntax. Use HTML tags only.",
                "",
                "Example correct HTML response:",
                "<p>I found 3 posts about that topic:</p>",
                "<ul>",
                '<li><a href="https://example.com/post">Post Title</a> - Brief description</li>',
                "</ul>",
            ]
        )
        return "\n".join(lines).strip()

    async def render(self, request: ChatRequest) -> str:
        return self._text
