#!/usr/bin/env python3
"""
Tests for the chat entry point: auth, sanitising, history and persistence.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import ScriptedModel, text_reply, tool_reply

from chatdesk.chat.chat_orchestrator import ChatOrchestrator, sanitize
from chatdesk.chat.context import get_current_user
from chatdesk.chat.models import AssistantMessage, ToolMessage, UserMessage
from chatdesk.errors import EmptyInput, ToolExecutionFailed, Unauthenticated
from chatdesk.history import InMemoryRepo
from chatdesk.tools import ToolDefinition, ToolRegistry


def _orchestrator(make_config, make_loop, model, registry=None, overrides=None):
    config = make_config(overrides)
    repo = InMemoryRepo()
    orchestrator = ChatOrchestrator(
        ChatOrchestrator.ChatOrchestratorConfig(
            loop=make_loop(model, registry), repo=repo, configuration=config
        )
    )
    return orchestrator, repo


def test_sanitize_strips_tags_and_control_characters():
    assert sanitize("  <b>hi</b>\x00 there\x07\n ") == "hi there"
    assert sanitize("line one\nline two") == "line one\nline two"
    assert sanitize("<script></script>") == ""
    assert sanitize(None) == ""


async def test_send_message_requires_user(make_config, make_loop):
    orchestrator, _ = _orchestrator(make_config, make_loop, ScriptedModel([text_reply("x")]))

    with pytest.raises(Unauthenticated) as exc_info:
        await orchestrator.send_message(None, "hello")

    assert exc_info.value.status == 401
    assert exc_info.value.message == "You must be logged in to use chat."


async def test_send_message_rejects_empty_input(make_config, make_loop, user):
    orchestrator, _ = _orchestrator(make_config, make_loop, ScriptedModel([text_reply("x")]))

    with pytest.raises(EmptyInput) as exc_info:
        await orchestrator.send_message(user, "  <p></p> ")

    assert exc_info.value.status == 400


async def test_send_message_persists_only_new_messages(make_config, make_loop, user):
    model = ScriptedModel(
        [
            text_reply("<p>first</p>"),
            tool_reply(("c1", "search", {"query": "jazz"})),
            text_reply("<p>Found 2 posts</p>"),
        ]
    )
    registry = ToolRegistry(
        {"search": ToolDefinition(id="search", invoke=lambda p: {"results": [1, 2]})}
    )
    orchestrator, repo = _orchestrator(make_config, make_loop, model, registry)

    await orchestrator.send_message(user, "hello")
    reply = await orchestrator.send_message(user, "find posts about jazz")

    assert reply.content == "<p>Found 2 posts</p>"
    assert [tc.tool for tc in reply.tool_calls] == ["search"]

    conversation_id = await repo.get_or_create(user.id)
    stored = await repo.recent(conversation_id, 50)
    assert [type(m) for m in stored] == [
        UserMessage,
        AssistantMessage,
        UserMessage,
        AssistantMessage,
        ToolMessage,
        AssistantMessage,
    ]
    assert stored[-1].content == "<p>Found 2 posts</p>"
    # history from the first turn was sent with the second
    assert [m.content for m in model.requests[1].messages[:2]] == ["hello", "<p>first</p>"]


async def test_history_window_limits_context(make_config, make_loop, user):
    model = ScriptedModel([text_reply("ok")])
    orchestrator, repo = _orchestrator(
        make_config, make_loop, model, overrides={"chat": {"service": {"history_window": 3}}}
    )
    conversation_id = await repo.get_or_create(user.id)
    await repo.append(conversation_id, [UserMessage(content=f"m{i}") for i in range(10)])

    await orchestrator.send_message(user, "latest")

    assert [m.content for m in model.requests[0].messages] == ["m7", "m8", "m9", "latest"]


async def test_failed_turn_stores_nothing(make_config, make_loop, user):
    def broken(parameters):
        raise RuntimeError("down")

    model = ScriptedModel([tool_reply(("c1", "broken", {}))])
    registry = ToolRegistry({"broken": ToolDefinition(id="broken", invoke=broken)})
    orchestrator, repo = _orchestrator(make_config, make_loop, model, registry)

    with pytest.raises(ToolExecutionFailed):
        await orchestrator.send_message(user, "try it")

    conversation_id = await repo.get_or_create(user.id)
    assert await repo.recent(conversation_id, 20) == []


async def test_tools_see_current_user(make_config, make_loop, user):
    seen = []
    registry = ToolRegistry(
        {"whoami": ToolDefinition(id="whoami", invoke=lambda p: seen.append(get_current_user()))}
    )
    model = ScriptedModel([tool_reply(("c1", "whoami", {})), text_reply("done")])
    orchestrator, _ = _orchestrator(make_config, make_loop, model, registry)

    await orchestrator.send_message(user, "who am I?")

    assert seen == [user]
    assert get_current_user() is None


async def test_turns_for_one_user_are_serialised(make_config, make_loop, user):
    release = asyncio.Event()
    order = []

    async def slow(parameters):
        order.append(("start", parameters["n"]))
        await release.wait()
        order.append(("end", parameters["n"]))
        return "ok"

    registry = ToolRegistry({"slow": ToolDefinition(id="slow", invoke=slow)})
    model = ScriptedModel(
        [
            tool_reply(("c1", "slow", {"n": 1})),
            text_reply("one"),
            tool_reply(("c2", "slow", {"n": 2})),
            text_reply("two"),
        ]
    )
    orchestrator, _ = _orchestrator(make_config, make_loop, model, registry)

    first = asyncio.create_task(orchestrator.send_message(user, "first"))
    second = asyncio.create_task(orchestrator.send_message(user, "second"))
    await asyncio.sleep(0.05)
    release.set()
    await asyncio.gather(first, second)

    assert order == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]


async def test_clear_and_history(make_config, make_loop, user):
    model = ScriptedModel(
        [tool_reply(("c1", "noop", {})), text_reply("<p>done</p>")]
    )
    registry = ToolRegistry({"noop": ToolDefinition(id="noop", invoke=lambda p: None)})
    orchestrator, _ = _orchestrator(make_config, make_loop, model, registry)

    await orchestrator.send_message(user, "do it")
    visible = await orchestrator.history(user)
    assert [(m.role, m.content) for m in visible] == [
        ("user", "do it"),
        ("assistant", "<p>done</p>"),
    ]

    await orchestrator.clear_history(user)
    assert await orchestrator.history(user) == []

    with pytest.raises(Unauthenticated, match="clear chat history"):
        await orchestrator.clear_history(None)
