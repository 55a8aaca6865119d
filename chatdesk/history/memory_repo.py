#!/usr/bin/env python3
"""
In-Memory Conversation Repository

CONFIG: chat.storage.type = "memory"
PURPOSE: Development/testing - all data lost on restart
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

from chatdesk.chat.models import Message
from chatdesk.errors import HistoryUnavailable

from .models import ConversationRecord, conversation_title
from .repository import ConversationLocks

logger = logging.getLogger(__name__)


class InMemoryRepo:
    """Dict-backed storage. Data lost on restart."""

    def __init__(self) -> None:
        self._conversations: dict[str, ConversationRecord] = {}
        self._messages: dict[str, list[Message]] = {}
        self._by_user: dict[str, list[str]] = {}
        self._create_lock = asyncio.Lock()
        self._locks = ConversationLocks()

    async def get_or_create(
        self, user_id: str, display_name: str | None = None
    ) -> str:
        async with self._create_lock:
            owned = self._by_user.get(user_id)
            if owned:
                return owned[-1]

            record = ConversationRecord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=conversation_title(display_name or user_id),
            )
            self._conversations[record.id] = record
            self._messages[record.id] = []
            self._by_user.setdefault(user_id, []).append(record.id)
            logger.info("Created conversation %s for user %s", record.id, user_id)
            return record.id

    async def recent(self, conversation_id: str, limit: int) -> list[Message]:
        messages = self._messages.get(conversation_id, [])
        if limit <= 0:
            return []
        return list(messages[-limit:])

    async def append(self, conversation_id: str, messages: Sequence[Message]) -> None:
        async with self._locks(conversation_id):
            if conversation_id not in self._conversations:
                raise HistoryUnavailable(f"Unknown conversation {conversation_id}")
            self._messages[conversation_id].extend(messages)
            self._touch(conversation_id)

    async def clear(self, conversation_id: str) -> None:
        async with self._locks(conversation_id):
            if conversation_id not in self._conversations:
                return
            self._messages[conversation_id] = []
            self._touch(conversation_id)

    async def get(self, conversation_id: str) -> ConversationRecord | None:
        return self._conversations.get(conversation_id)

    def _touch(self, conversation_id: str) -> None:
        record = self._conversations[conversation_id]
        self._conversations[conversation_id] = record.model_copy(
            update={"last_updated": datetime.now(UTC)}
        )
