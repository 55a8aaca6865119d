"""
Conversation Loop

Bounded multi-turn tool-calling loop for one user turn:
- Apply directives to a fresh copy of the transcript before every model call
- Execute requested tools sequentially, in the order the model listed them
- Stop on the first response without tool calls, or fail at the iteration cap

Any error aborts the turn as-is. There are no retries and no partial
continuation after a failed tool call.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import ValidationError

from chatdesk.errors import (
    InvalidMessages,
    InvalidResponse,
    MaxIterationsReached,
    ModelRequestFailed,
    ToolNotFound,
)

from .logging_utils import (
    log_llm_reply,
    log_loop_state,
    log_tool_execution_error,
    log_tool_execution_start,
    log_tool_execution_success,
)
from .models import (
    AssistantMessage,
    ChatRequest,
    LoopResult,
    LoopState,
    Message,
    MessageAdapter,
    ModelResponse,
    ToolCallRecord,
    ToolMessage,
    UserProfile,
)

if TYPE_CHECKING:
    from chatdesk.directives import DirectivePipeline
    from chatdesk.tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class ModelClient(Protocol):
    async def request(
        self,
        chat_request: ChatRequest,
        provider: str,
        tools: list[dict[str, Any]],
    ) -> ModelResponse: ...


class ConversationLoop:
    """Runs one turn against the model until it answers without tool calls."""

    def __init__(
        self,
        model_client: ModelClient,
        registry: ToolRegistry,
        pipeline: DirectivePipeline,
        model: str | None = None,
        provider: str | None = None,
        chat_conf: dict[str, Any] | None = None,
    ) -> None:
        """
        `model` and `provider` pin the loop to fixed values. Left unset, they are
        read from the model client before every call so runtime config changes
        apply to the next request.
        """
        self.model_client = model_client
        self.registry = registry
        self.pipeline = pipeline
        self.model = model
        self.provider = provider
        self.chat_conf = chat_conf or {}

    @property
    def active_model(self) -> str:
        return self.model or getattr(self.model_client, "model", "")

    @property
    def active_provider(self) -> str:
        return self.provider or getattr(self.model_client, "provider", "")

    @staticmethod
    def _validate(messages: Sequence[Message | dict[str, Any]]) -> list[Message]:
        if not messages:
            raise InvalidMessages("Messages array is required")
        raw = [m.model_dump() if not isinstance(m, dict) else m for m in messages]
        try:
            return MessageAdapter.validate_python(raw)
        except ValidationError as e:
            raise InvalidMessages(f"Invalid messages: {e}", e) from e

    async def _request_model(
        self, transcript: list[Message], user: UserProfile | None
    ) -> ModelResponse:
        provider = self.active_provider
        request = ChatRequest(
            messages=list(transcript),
            model=self.active_model,
            provider=provider,
            user=user,
        )
        outgoing = await self.pipeline.apply(request)

        try:
            response = await self.model_client.request(
                outgoing, provider, self.registry.for_model()
            )
        except ModelRequestFailed:
            raise
        except Exception as e:
            raise ModelRequestFailed(str(e), provider, e) from e

        if not response.success:
            raise ModelRequestFailed(response.error or "AI request failed", provider)
        return response

    async def run(
        self,
        messages: Sequence[Message | dict[str, Any]],
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        user: UserProfile | None = None,
    ) -> LoopResult:
        """
        Drive the model/tool cycle for one turn.

        Args:
            messages: Starting transcript (history plus the new user message)
            max_iterations: Model calls allowed before giving up
            user: Caller identity, visible to directives only

        Returns:
            LoopResult with the final content, every tool call made and the
            transcript ending in the final assistant message

        Raises:
            InvalidMessages, ModelRequestFailed, InvalidResponse, ToolError,
            MaxIterationsReached
        """
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")

        transcript = self._validate(messages)
        tool_calls: list[ToolCallRecord] = []

        for iteration in range(1, max_iterations + 1):
            log_loop_state(LoopState.AWAITING_MODEL, iteration)
            logger.info("→ LLM: requesting response (iteration %d)", iteration)

            try:
                response = await self._request_model(transcript, user)
            except ModelRequestFailed as e:
                log_loop_state(LoopState.FAILED, iteration, e.message)
                raise

            log_llm_reply(response, f"iteration {iteration}", self.chat_conf)
            data = response.data

            if data is None or not data.tool_calls:
                if data is None or data.content is None:
                    log_loop_state(LoopState.FAILED, iteration, "missing content")
                    raise InvalidResponse("AI response missing content")

                transcript.append(AssistantMessage(content=data.content))
                log_loop_state(LoopState.DONE, iteration)
                logger.info(
                    "← LLM: final response after %d iteration(s), %d tool call(s)",
                    iteration,
                    len(tool_calls),
                )
                return LoopResult(
                    content=data.content, tool_calls=tool_calls, messages=transcript
                )

            calls = data.tool_calls
            log_loop_state(
                LoopState.TOOL_CALLS_PENDING, iteration, f"{len(calls)} call(s)"
            )
            transcript.append(AssistantMessage(content=None, tool_calls=calls))

            for i, call in enumerate(calls):
                tool_calls.append(
                    ToolCallRecord(tool=call.name, parameters=call.parameters)
                )
                log_tool_execution_start(call.name, i, len(calls))

                try:
                    if not self.registry.has(call.name):
                        raise ToolNotFound(call.name)
                    result = await self.registry.call(call.name, call.parameters)
                except Exception as e:
                    log_tool_execution_error(call.name, str(e))
                    log_loop_state(LoopState.FAILED, iteration, type(e).__name__)
                    raise

                content = json.dumps(result, default=str)
                log_tool_execution_success(call.name, len(content))
                transcript.append(ToolMessage(tool_call_id=call.id, content=content))

        log_loop_state(LoopState.FAILED, max_iterations, "iteration cap")
        raise MaxIterationsReached(max_iterations)
