"""
Chat Data Models

Typed message, tool-call and request/response structures shared by the
conversation loop, the directive pipeline, the tool registry and the message
store. All strongly typed with Pydantic for validation.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


def _now() -> datetime:
    return datetime.now(UTC)


# ==============================================================================
# TOOL CALLS AND DESCRIPTORS
# ==============================================================================


class ToolCall(BaseModel):
    """One model-requested tool invocation."""

    id: str
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def default_id_to_name(cls, data: Any) -> Any:
        """Models that omit the call id get the tool name in its place."""
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("id") and data.get("name"):
                data["id"] = data["name"]
            if data.get("parameters") is None:
                data["parameters"] = {}
        return data


class ToolCallRecord(BaseModel):
    """Entry in the accumulated tool-call log returned to the caller."""

    tool: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolFunction(BaseModel):
    """Capability descriptor handed to the model's function-calling schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


# ==============================================================================
# MESSAGES
# ==============================================================================


class SystemMessage(BaseModel):
    """System message for setting context."""

    role: Literal["system"] = "system"
    content: str
    timestamp: datetime = Field(default_factory=_now)


class UserMessage(BaseModel):
    """User message."""

    role: Literal["user"] = "user"
    content: str
    timestamp: datetime = Field(default_factory=_now)


class AssistantMessage(BaseModel):
    """Assistant message; content may only be null when tool calls are present."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("tool_calls")
    @classmethod
    def validate_tool_calls(cls, v: list[ToolCall] | None) -> list[ToolCall] | None:
        """Convert empty tool_calls list to None to avoid API errors."""
        if v is not None and len(v) == 0:
            return None
        return v

    @model_validator(mode="after")
    def require_content_or_tool_calls(self) -> AssistantMessage:
        if self.content is None and not self.tool_calls:
            raise ValueError("assistant message needs content or tool_calls")
        return self


class ToolMessage(BaseModel):
    """Tool response message linked to the call that produced it."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str
    timestamp: datetime = Field(default_factory=_now)


Message = Annotated[
    SystemMessage | UserMessage | AssistantMessage | ToolMessage,
    Field(discriminator="role"),
]

MessageAdapter: TypeAdapter[list[Message]] = TypeAdapter(list[Message])


# ==============================================================================
# USERS, REQUESTS AND RESPONSES
# ==============================================================================


class UserProfile(BaseModel):
    """Authenticated caller identity."""

    id: str
    display_name: str
    handle: str
    role: str | None = None


class ChatRequest(BaseModel):
    """Outgoing model request; `user` is metadata read by directives only."""

    messages: list[Message]
    model: str
    provider: str
    user: UserProfile | None = None

    def with_message(self, message: Message) -> ChatRequest:
        """Return a copy with one more message appended."""
        return self.model_copy(update={"messages": [*self.messages, message]})


class ModelResponseData(BaseModel):
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    model: str | None = None


class ModelResponse(BaseModel):
    """Model-client boundary: success flag plus data or provider error text."""

    success: bool
    data: ModelResponseData | None = None
    error: str | None = None


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    DONE = "done"
    FAILED = "failed"


class LoopResult(BaseModel):
    """Final content, the tool-call log and the full transcript of one turn."""

    content: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)


class ChatReply(BaseModel):
    """What the entry point hands back for one user message."""

    content: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)
