"""Tool Registry for the chat orchestrator

This module provides a lightweight registry that:
- Discovers tool definitions from an explicit, ordered list of sources
- Emits capability descriptors for the model's function-calling schema
- Calls tools with raw parameters (tools validate their own input)

Design goals:
- Built once at startup, read-only afterwards (safe to share across requests)
- Last source wins on tool id collision
- No retries or rollbacks: a tool failure surfaces as a typed error
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, model_validator

from chatdesk.chat.logging_utils import log_tool_arguments, log_tool_results
from chatdesk.chat.models import ToolFunction
from chatdesk.errors import ToolExecutionFailed, ToolInvalid, ToolNotFound

logger = logging.getLogger(__name__)


class ToolDefinition(BaseModel):
    """A registered tool: descriptor plus invocation target."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str
    function: ToolFunction
    invoke: Any = None

    @model_validator(mode="before")
    @classmethod
    def build_function_from_metadata(cls, data: Any) -> Any:
        """Definitions without a `function` block are described from their metadata."""
        if isinstance(data, dict) and "function" not in data:
            data = dict(data)
            data["function"] = {
                "name": data.get("id", ""),
                "description": data.pop("description", ""),
                "parameters": data.pop("parameters", None)
                or {"type": "object", "properties": {}},
            }
        return data


@runtime_checkable
class ToolProvider(Protocol):
    """Object-style tool source."""

    def tools(self) -> Mapping[str, ToolDefinition | dict[str, Any]]: ...


ToolSource = Union[
    ToolProvider, Callable[[], Mapping[str, Union[ToolDefinition, dict[str, Any]]]]
]


class ToolRegistry:
    """
    Immutable mapping of tool id to ToolDefinition.

    Key characteristics:
    - Explicit discovery: sources are passed in, nothing is looked up globally
    - Last-write-wins merge on id collision (logged)
    - Capability projection omits the invoke target
    """

    def __init__(self, tools: Mapping[str, ToolDefinition] | None = None) -> None:
        self._tools: Mapping[str, ToolDefinition] = MappingProxyType(dict(tools or {}))

    @classmethod
    def discover(
        cls, sources: Iterable[ToolSource], disabled: Iterable[str] = ()
    ) -> ToolRegistry:
        """Collect tools from every source in order and freeze the result."""
        merged: dict[str, ToolDefinition] = {}

        for source in sources:
            contributed = source.tools() if isinstance(source, ToolProvider) else source()
            source_name = getattr(source, "__name__", type(source).__name__)

            for tool_id, definition in contributed.items():
                if tool_id in merged:
                    logger.warning(
                        "Tool id conflict: '%s' redefined by source '%s'",
                        tool_id,
                        source_name,
                    )
                merged[tool_id] = cls._coerce(tool_id, definition)

            logger.info(
                "Registered %d tools from source '%s'", len(contributed), source_name
            )

        for tool_id in disabled:
            if merged.pop(tool_id, None) is not None:
                logger.info("Excluded disabled tool '%s'", tool_id)

        logger.info("Initialized tool registry with %d tools", len(merged))
        return cls(merged)

    @staticmethod
    def _coerce(
        tool_id: str, definition: ToolDefinition | dict[str, Any]
    ) -> ToolDefinition:
        if isinstance(definition, ToolDefinition):
            if definition.id == tool_id:
                return definition
            return definition.model_copy(update={"id": tool_id})
        return ToolDefinition.model_validate({**definition, "id": tool_id})

    def has(self, tool_id: str) -> bool:
        return tool_id in self._tools

    def get(self, tool_id: str) -> ToolDefinition | None:
        return self._tools.get(tool_id)

    def ids(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    async def call(self, tool_id: str, parameters: dict[str, Any]) -> Any:
        """
        Execute a tool with raw parameters and return its result unchanged.

        Raises:
            ToolNotFound: The id is not registered
            ToolInvalid: The definition has no callable invoke target
            ToolExecutionFailed: The tool raised while executing
        """
        definition = self._tools.get(tool_id)
        if definition is None:
            raise ToolNotFound(tool_id)

        if definition.invoke is None or not callable(definition.invoke):
            raise ToolInvalid(tool_id)

        log_tool_arguments(tool_id, parameters)
        try:
            result = definition.invoke(parameters)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise ToolExecutionFailed(tool_id, e) from e

        log_tool_results(tool_id, result)
        return result

    def for_model(self) -> list[dict[str, Any]]:
        """Build the model's function-calling descriptors in registration order."""
        return [definition.function.model_dump() for definition in self._tools.values()]
