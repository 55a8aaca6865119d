"""
Network Context Directive

Describes the wider site network to the model. The directive only exists in
the pipeline when a SiteContextProvider is configured.
"""

from __future__ import annotations

from typing import ClassVar, Protocol

from chatdesk.chat.models import ChatRequest
from chatdesk.tools.search import SiteConfig

from .base import Directive


class SiteContextProvider(Protocol):
    async def describe(self, request: ChatRequest) -> str | None: ...


class ConfiguredSiteContext:
    """Site context built from the `platform.sites` configuration list."""

    def __init__(self, sites: list[SiteConfig], current_site: str | None = None) -> None:
        self.sites = sites
        self.current_site = current_site

    async def describe(self, request: ChatRequest) -> str | None:
        if not self.sites:
            return None

        lines = ["NETWORK CONTEXT:"]
        current = next((s for s in self.sites if s.key == self.current_site), None)
        if current is not None:
            lines.append(f"- Current site: {current.name} ({current.url})")

        lines.append("- Sites in this network:")
        for site in self.sites:
            entry = f"  - {site.name} [{site.key}]: {site.url}"
            if site.description:
                entry += f" - {site.description}"
            lines.append(entry)
        return "\n".join(lines)


class NetworkContextDirective(Directive):
    priority: ClassVar[int] = 40

    def __init__(self, provider: SiteContextProvider) -> None:
        self.provider = provider

    async def render(self, request: ChatRequest) -> str | None:
        return await self.provider.describe(request)
