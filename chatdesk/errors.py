"""
Chat Error Hierarchy

Every failure the core can raise is a ChatError carrying a machine-readable
code and the HTTP-style status the entry point answers with. Errors travel
unmodified from the loop, the registry and the store up to the HTTP layer.
"""

from __future__ import annotations


class ChatError(Exception):
    """Root of all chat orchestration errors."""

    code = "chat_error"
    status = 500

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    @classmethod
    def wrap(cls, err: Exception) -> ChatError:
        if isinstance(err, ChatError):
            return err
        return cls(str(err), err)


class InvalidMessages(ChatError):
    code = "invalid_messages"


class ModelRequestFailed(ChatError):
    code = "model_request_failed"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.provider = provider


class InvalidResponse(ChatError):
    code = "invalid_response"


class ToolError(ChatError):
    """Base for registry failures; always names the tool involved."""

    code = "tool_error"

    def __init__(
        self, tool_id: str, message: str, cause: Exception | None = None
    ) -> None:
        super().__init__(message, cause)
        self.tool_id = tool_id


class ToolNotFound(ToolError):
    code = "tool_not_found"

    def __init__(self, tool_id: str) -> None:
        super().__init__(tool_id, f'Tool "{tool_id}" not found')


class ToolInvalid(ToolError):
    code = "tool_invalid"

    def __init__(self, tool_id: str) -> None:
        super().__init__(tool_id, f"Tool {tool_id} missing a callable invoke target")


class ToolExecutionFailed(ToolError):
    code = "tool_execution_failed"

    def __init__(self, tool_id: str, cause: Exception) -> None:
        super().__init__(
            tool_id, f"Tool {tool_id} execution failed: {cause}", cause
        )


class MaxIterationsReached(ChatError):
    code = "max_iterations_reached"

    def __init__(self, max_iterations: int) -> None:
        super().__init__(
            f"Conversation loop exceeded maximum iterations ({max_iterations}). "
            "AI may be stuck in tool calling loop."
        )
        self.max_iterations = max_iterations


class HistoryUnavailable(ChatError):
    code = "history_unavailable"


class Unauthenticated(ChatError):
    code = "unauthenticated"
    status = 401


class EmptyInput(ChatError):
    code = "empty_input"
    status = 400
