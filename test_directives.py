#!/usr/bin/env python3
"""
Tests for directive ordering, content and immutability.
"""

from __future__ import annotations

from typing import ClassVar

from chatdesk.chat.models import ChatRequest, SystemMessage, UserMessage, UserProfile
from chatdesk.directives import (
    ConfiguredSiteContext,
    CoreDirective,
    Directive,
    DirectivePipeline,
    FlagFact,
    NetworkContextDirective,
    ProfileCountFact,
    SystemPromptDirective,
    UserContextDirective,
)
from chatdesk.tools import SiteConfig

SITES = [
    SiteConfig(key="main", name="Main", url="https://main.example.com", description="journalism"),
    SiteConfig(key="chat", name="Chat", url="https://chat.example.com"),
]


def _request(user: UserProfile | None = None) -> ChatRequest:
    return ChatRequest(
        messages=[UserMessage(content="hello")], model="m", provider="openai", user=user
    )


class Tagged(Directive):
    def __init__(self, tag: str, priority: int) -> None:
        self.tag = tag
        self.priority = priority  # type: ignore[misc]

    async def render(self, request):
        return self.tag


async def test_pipeline_runs_in_priority_order_and_appends_at_end():
    pipeline = DirectivePipeline([Tagged("c", 30), Tagged("a", 10), Tagged("b", 20)])

    result = await pipeline.apply(_request())

    assert [m.content for m in result.messages] == ["hello", "a", "b", "c"]
    assert all(isinstance(m, SystemMessage) for m in result.messages[1:])


async def test_pipeline_keeps_given_order_for_equal_priorities():
    pipeline = DirectivePipeline([Tagged("first", 20), Tagged("second", 20)])

    result = await pipeline.apply(_request())

    assert [m.content for m in result.messages[1:]] == ["first", "second"]


async def test_pipeline_does_not_mutate_input_and_is_repeatable(user):
    pipeline = DirectivePipeline(
        [
            CoreDirective("Test Network", sites=SITES),
            SystemPromptDirective(lambda: "Be brief."),
            UserContextDirective(),
        ]
    )
    request = _request(user)

    first = await pipeline.apply(request)
    second = await pipeline.apply(request)

    assert len(request.messages) == 1
    assert [m.content for m in first.messages] == [m.content for m in second.messages]
    assert len(first.messages) == 4


async def test_core_directive_describes_platform_and_html_contract():
    directive = CoreDirective.from_config(
        {
            "name": "Test Network",
            "description": "a music platform",
            "search_tool": "search",
            "sites": [s.model_dump() for s in SITES],
        }
    )

    text = (await directive.inject(_request())).messages[-1].content

    assert text.startswith("You are an AI assistant for Test Network, a music platform.")
    assert "- Main: main.example.com (journalism)" in text
    assert "Your search tool searches ALL network sites" in text
    assert "Use HTML tags only" in text
    assert directive.priority == 10


async def test_system_prompt_is_read_live_and_skipped_when_empty():
    prompt = {"value": ""}
    directive = SystemPromptDirective(lambda: prompt["value"])

    assert len((await directive.inject(_request())).messages) == 1

    prompt["value"] = "Talk like a DJ."
    result = await directive.inject(_request())
    assert result.messages[-1].content == "Talk like a DJ."


async def test_user_context_block(user):
    directive = UserContextDirective(
        [
            FlagFact("Team Member", lambda u: False),
            ProfileCountFact("Artist", lambda u: ["a1", "a2"]),
            FlagFact("Community Member", lambda u: True),
        ]
    )

    text = (await directive.inject(_request(user))).messages[-1].content

    assert text == (
        "USER CONTEXT:\n"
        "- Display Name: Ada Lovelace\n"
        "- Username: @ada\n"
        "- Current Site Role: Subscriber\n"
        "- Team Member: No\n"
        "- Artist: Yes (2 profiles)\n"
        "- Community Member: Yes"
    )


async def test_user_context_omits_unavailable_and_failing_facts(user, caplog):
    async def single_artist(u):
        return ["a1"]

    def broken(u):
        raise RuntimeError("membership service down")

    directive = UserContextDirective(
        [
            FlagFact("Team Member", lambda u: None),
            FlagFact("Community Member", broken),
            ProfileCountFact("Artist", single_artist),
        ]
    )

    text = (await directive.inject(_request(user))).messages[-1].content

    assert "Team Member" not in text
    assert "Community Member" not in text
    assert "- Artist: Yes (1 profile)" in text
    assert "membership service down" in caplog.text


async def test_user_context_without_user_is_noop():
    result = await UserContextDirective().inject(_request())

    assert len(result.messages) == 1


async def test_network_context_directive():
    directive = NetworkContextDirective(ConfiguredSiteContext(SITES, current_site="chat"))

    text = (await directive.inject(_request())).messages[-1].content

    assert directive.priority == 40
    assert "- Current site: Chat (https://chat.example.com)" in text
    assert "  - Main [main]: https://main.example.com - journalism" in text


class _Fixed(Directive):
    priority: ClassVar[int] = 5

    async def render(self, request):
        return None


async def test_empty_render_returns_copy():
    request = _request()

    result = await _Fixed().inject(request)

    assert result is not request
    assert result.messages == request.messages
