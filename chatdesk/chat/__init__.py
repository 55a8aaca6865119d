"""Chat core: typed messages and request-scoped context.

The loop and the orchestrator are imported from their modules directly
(`chatdesk.chat.conversation_loop`, `chatdesk.chat.chat_orchestrator`) so
that the history and tools packages can depend on the models here.
"""

from .context import current_user, get_current_user
from .models import (
    AssistantMessage,
    ChatReply,
    ChatRequest,
    LoopResult,
    Message,
    MessageAdapter,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
    UserProfile,
)

__all__ = [
    "AssistantMessage",
    "ChatReply",
    "ChatRequest",
    "LoopResult",
    "Message",
    "MessageAdapter",
    "SystemMessage",
    "ToolCall",
    "ToolMessage",
    "UserMessage",
    "UserProfile",
    "current_user",
    "get_current_user",
]
