#!/usr/bin/env python3
"""
Tests for tool discovery, capability projection and tool invocation.
"""

from __future__ import annotations

import logging

import pytest

from chatdesk.errors import ToolExecutionFailed, ToolInvalid, ToolNotFound
from chatdesk.tools import ToolDefinition, ToolRegistry


def _echo(parameters):
    return {"echo": parameters}


async def _async_echo(parameters):
    return {"async_echo": parameters}


def _source_a():
    return {
        "echo": {
            "id": "echo",
            "description": "Echo parameters back",
            "parameters": {"type": "object", "properties": {"x": {"type": "integer"}}},
            "invoke": _echo,
        },
        "shared": {"id": "shared", "description": "first", "invoke": _echo},
    }


class SourceB:
    def tools(self):
        return {
            "shared": ToolDefinition(
                id="shared",
                function={"name": "shared", "description": "second"},
                invoke=_async_echo,
            ),
            "broken": {"id": "broken", "description": "no target"},
        }


def test_discover_merges_sources_last_write_wins(caplog):
    with caplog.at_level(logging.WARNING):
        registry = ToolRegistry.discover([_source_a, SourceB()])

    assert registry.ids() == ["echo", "shared", "broken"]
    assert registry.get("shared").function.description == "second"
    assert "Tool id conflict" in caplog.text


def test_discover_drops_disabled_ids():
    registry = ToolRegistry.discover([_source_a, SourceB()], disabled=["echo"])

    assert not registry.has("echo")
    assert registry.has("shared")
    assert len(registry) == 2


def test_registry_mapping_is_read_only():
    registry = ToolRegistry.discover([_source_a])

    with pytest.raises(TypeError):
        registry._tools["new"] = registry.get("echo")  # type: ignore[index]


def test_for_model_builds_descriptors_from_metadata():
    registry = ToolRegistry.discover([_source_a])

    descriptors = registry.for_model()

    assert descriptors[0] == {
        "name": "echo",
        "description": "Echo parameters back",
        "parameters": {"type": "object", "properties": {"x": {"type": "integer"}}},
    }
    assert descriptors[1]["parameters"] == {"type": "object", "properties": {}}
    assert all("invoke" not in d for d in descriptors)


async def test_call_returns_raw_result_for_sync_and_async_tools():
    registry = ToolRegistry.discover([_source_a, SourceB()])

    assert await registry.call("echo", {"x": 1}) == {"echo": {"x": 1}}
    assert await registry.call("shared", {}) == {"async_echo": {}}


async def test_call_unknown_tool_raises_not_found():
    registry = ToolRegistry()

    with pytest.raises(ToolNotFound) as exc_info:
        await registry.call("missing", {})

    assert exc_info.value.tool_id == "missing"
    assert exc_info.value.message == 'Tool "missing" not found'


async def test_call_without_callable_target_raises_invalid():
    registry = ToolRegistry.discover([SourceB()])

    with pytest.raises(ToolInvalid):
        await registry.call("broken", {})


async def test_call_wraps_tool_exceptions():
    def explode(parameters):
        raise RuntimeError("backend down")

    registry = ToolRegistry({"boom": ToolDefinition(id="boom", invoke=explode)})

    with pytest.raises(ToolExecutionFailed) as exc_info:
        await registry.call("boom", {})

    assert isinstance(exc_info.value.cause, RuntimeError)
    assert "backend down" in exc_info.value.message
