#!/usr/bin/env python3
"""
Conversation Repository Interface

This module defines the storage protocol shared by every history backend.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from chatdesk.chat.models import Message

from .models import ConversationRecord


@runtime_checkable
class ConversationRepository(Protocol):
    """Protocol defining the interface for chat storage backends."""

    async def get_or_create(
        self, user_id: str, display_name: str | None = None
    ) -> str:
        """Return the user's most recent conversation id, creating one if needed."""
        ...

    async def recent(self, conversation_id: str, limit: int) -> list[Message]:
        """Return the last `limit` messages, oldest first."""
        ...

    async def append(self, conversation_id: str, messages: Sequence[Message]) -> None: ...

    async def clear(self, conversation_id: str) -> None: ...

    async def get(self, conversation_id: str) -> ConversationRecord | None: ...


class ConversationLocks:
    """Per-conversation asyncio.Lock, dropped once no task holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def __call__(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if not self._holders[conversation_id]:
                del self._holders[conversation_id]
                del self._locks[conversation_id]
