"""
Chat Logging Utilities

Shared logging helpers for the conversation loop, the tool registry and the
entry point. Verbose features (LLM replies, tool arguments, tool results) are
gated by per-module feature flags set from the `logging.modules` config.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import LoopState, ModelResponse

logger = logging.getLogger(__name__)

_module_features: dict[str, dict[str, bool]] = {}


def set_module_features(module: str, features: dict[str, bool]) -> None:
    """Store feature flags for one logging module (called at startup)."""
    _module_features[module] = dict(features)


def clear_module_features() -> None:
    _module_features.clear()


def should_log_feature(module: str, feature: str) -> bool:
    """Check if a specific logging feature is enabled for a module."""
    return _module_features.get(module, {}).get(feature, False)


def _truncate(text: str, limit: int) -> str:
    if limit and len(text) > limit:
        return text[:limit] + "..."
    return text


def log_llm_reply(
    response: ModelResponse, context: str, chat_conf: dict[str, Any]
) -> None:
    """
    Log a model response when the `chat.llm_replies` feature is enabled.

    Args:
        response: Model-client response
        context: Descriptive context for the log entry
        chat_conf: Chat service configuration containing logging settings
    """
    if not should_log_feature("chat", "llm_replies"):
        return

    truncate_length = chat_conf.get("logging", {}).get("llm_reply", 500)
    log_parts = [f"LLM Reply ({context}):"]

    if not response.success:
        log_parts.append(f"Error: {response.error}")
    elif response.data is not None:
        if response.data.content:
            log_parts.append(
                f"Content: {_truncate(response.data.content, truncate_length)}"
            )
        if response.data.tool_calls:
            log_parts.append(f"Tool calls: {len(response.data.tool_calls)}")
            for i, call in enumerate(response.data.tool_calls):
                log_parts.append(f"  [{i}] {call.name}")
        log_parts.append(f"Model: {response.data.model or 'unknown'}")

    logger.info(" | ".join(log_parts))


def log_loop_state(state: LoopState, iteration: int, detail: str = "") -> None:
    """Log a conversation loop state transition."""
    if detail:
        logger.debug("Loop[%d]: %s (%s)", iteration, state.value, detail)
    else:
        logger.debug("Loop[%d]: %s", iteration, state.value)


def log_tool_execution_start(
    tool_name: str, call_index: int = 0, total_calls: int = 1
) -> None:
    """
    Log the start of tool execution with consistent formatting.

    Args:
        tool_name: Name of the tool being executed
        call_index: Index of current call (0-based)
        total_calls: Total number of calls requested in the same model turn
    """
    if total_calls > 1:
        logger.info(
            "→ Tool[%s]: executing tool call %d/%d",
            tool_name,
            call_index + 1,
            total_calls,
        )
    else:
        logger.info("→ Tool[%s]: executing tool", tool_name)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    logger.info("← Tool[%s]: success, content length: %d", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    logger.error("← Tool[%s]: failed with error: %s", tool_name, error_msg)


def log_tool_arguments(
    tool_name: str, arguments: dict[str, Any], truncate_length: int = 500
) -> None:
    """Log tool arguments when the `tools.tool_arguments` feature is enabled."""
    if not should_log_feature("tools", "tool_arguments"):
        return
    logger.info(
        "→ Tool[%s]: arguments: %s", tool_name, _truncate(str(arguments), truncate_length)
    )


def log_tool_results(tool_name: str, results: Any, truncate_length: int = 200) -> None:
    """Log tool results when the `tools.tool_results` feature is enabled."""
    if not should_log_feature("tools", "tool_results"):
        return
    logger.info(
        "← Tool[%s]: results: %s", tool_name, _truncate(str(results), truncate_length)
    )


@asynccontextmanager
async def log_performance(operation_name: str) -> AsyncIterator[None]:
    """Context manager to log elapsed time for an operation."""
    start_time = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info("⏱ %s completed in %.2fms", operation_name, elapsed_ms)
