"""
Chat Orchestrator

Request entry point for one user message:
1. Authenticates and sanitises the input
2. Loads the recent history window for the user's conversation
3. Runs the conversation loop with the caller bound as the current user
4. Persists the new part of the transcript and returns the reply

Turns for the same conversation are serialised, so concurrent requests from
one user cannot interleave their history.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict

from chatdesk.config import Configuration
from chatdesk.errors import EmptyInput, Unauthenticated
from chatdesk.history.conversation_utils import trim_orphan_tool_messages
from chatdesk.history.repository import ConversationLocks

from .context import current_user
from .conversation_loop import ConversationLoop
from .logging_utils import log_performance
from .models import AssistantMessage, ChatReply, Message, UserMessage, UserProfile

logger = logging.getLogger(__name__)

_TAGS = re.compile(r"<[^>]*>")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize(text: str | None) -> str:
    """Strip HTML tags and control characters; keep line breaks."""
    if not text:
        return ""
    cleaned = _TAGS.sub("", text)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    return cleaned.strip()


class ChatOrchestrator:
    """
    Thin entry point between the HTTP layer and the conversation loop.
    Holds no model or tool logic of its own.
    """

    class ChatOrchestratorConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        loop: ConversationLoop
        repo: Any  # ConversationRepository protocol
        configuration: Configuration

    def __init__(self, service_config: ChatOrchestratorConfig) -> None:
        self.loop = service_config.loop
        self.repo = service_config.repo
        self.configuration = service_config.configuration
        self._turn_locks = ConversationLocks()

    async def _conversation_for(self, user: UserProfile | None, action: str) -> str:
        if user is None:
            raise Unauthenticated(f"You must be logged in to {action}.")
        return await self.repo.get_or_create(user.id, user.display_name)

    async def send_message(self, user: UserProfile | None, text: str | None) -> ChatReply:
        """
        Run one chat turn for `user`.

        Raises:
            Unauthenticated: No user
            EmptyInput: Nothing left after sanitising
            ChatError: Any loop or storage failure, unmodified
        """
        if user is None:
            raise Unauthenticated("You must be logged in to use chat.")

        content = sanitize(text)
        if not content:
            raise EmptyInput("Message cannot be empty.")

        conversation_id = await self._conversation_for(user, "use chat")
        logger.info(
            "→ Orchestrator: message from user %s (conversation %s)",
            user.id,
            conversation_id,
        )

        async with self._turn_locks(conversation_id), log_performance("chat turn"):
            window = self.configuration.get_history_window()
            history = trim_orphan_tool_messages(
                await self.repo.recent(conversation_id, window)
            )
            transcript: list[Message] = [*history, UserMessage(content=content)]

            with current_user(user):
                result = await self.loop.run(
                    transcript,
                    max_iterations=self.configuration.get_max_iterations(),
                    user=user,
                )

            new_messages = result.messages[len(history):]
            await self.repo.append(conversation_id, new_messages)

        logger.info(
            "← Orchestrator: reply ready (%d tool call(s), %d message(s) stored)",
            len(result.tool_calls),
            len(new_messages),
        )
        return ChatReply(content=result.content, tool_calls=result.tool_calls)

    async def clear_history(self, user: UserProfile | None) -> None:
        conversation_id = await self._conversation_for(user, "clear chat history")
        async with self._turn_locks(conversation_id):
            await self.repo.clear(conversation_id)
        logger.info("← Orchestrator: history cleared for conversation %s", conversation_id)

    async def history(
        self, user: UserProfile | None, limit: int | None = None
    ) -> list[Message]:
        """User-visible messages (user turns and final replies), oldest first."""
        conversation_id = await self._conversation_for(user, "view chat history")
        messages = await self.repo.recent(
            conversation_id, limit or self.configuration.get_history_window()
        )
        return [
            m
            for m in messages
            if isinstance(m, UserMessage)
            or (isinstance(m, AssistantMessage) and m.content and not m.tool_calls)
        ]
