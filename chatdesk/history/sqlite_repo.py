#!/usr/bin/env python3
"""
SQLite Conversation Repository

CONFIG: chat.storage.type = "sqlite", chat.storage.db_path
PURPOSE: Durable history across restarts
FEATURES: WAL mode, per-conversation append ordering, JSON message payloads
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime

import aiosqlite
from pydantic import ValidationError

from chatdesk.chat.models import Message
from chatdesk.errors import HistoryUnavailable

from .models import ConversationRecord, StoredMessage, conversation_title
from .repository import ConversationLocks

logger = logging.getLogger(__name__)


class SQLiteRepo:
    """aiosqlite storage; every aiosqlite.Error surfaces as HistoryUnavailable."""

    def __init__(self, db_path: str = "chat_history.db") -> None:
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._create_lock = asyncio.Lock()
        self._locks = ConversationLocks()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Initialize database schema if not already done."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS conversations (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        last_updated TEXT NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS messages (
                        conversation_id TEXT NOT NULL
                            REFERENCES conversations(id) ON DELETE CASCADE,
                        seq INTEGER NOT NULL,
                        role TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        PRIMARY KEY (conversation_id, seq)
                    )
                """)
                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_conversations_user
                    ON conversations(user_id, created_at)
                """)
                await db.commit()

            self._initialized = True
            logger.info("SQLite history initialized at %s", self.db_path)

    @contextlib.asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as e:
            logger.error("SQLite history error: %s", e)
            raise HistoryUnavailable(f"Chat history storage error: {e}", e) from e

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> ConversationRecord:
        return ConversationRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            last_updated=datetime.fromisoformat(row["last_updated"]),
        )

    async def get_or_create(
        self, user_id: str, display_name: str | None = None
    ) -> str:
        async with self._create_lock, self._connect() as db:
            cursor = await db.execute(
                """
                SELECT id FROM conversations
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = await cursor.fetchone()
            if row is not None:
                return row["id"]

            now = datetime.now(UTC)
            conversation_id = str(uuid.uuid4())
            await db.execute(
                """
                INSERT INTO conversations (id, user_id, title, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    user_id,
                    conversation_title(display_name or user_id, now),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            await db.commit()
            logger.info("Created conversation %s for user %s", conversation_id, user_id)
            return conversation_id

    async def recent(self, conversation_id: str, limit: int) -> list[Message]:
        if limit <= 0:
            return []
        async with self._connect() as db:
            cursor = await db.execute(
                """
                SELECT payload FROM messages
                WHERE conversation_id = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            )
            rows = await cursor.fetchall()

        try:
            return [StoredMessage.validate_json(row["payload"]) for row in reversed(rows)]
        except ValidationError as e:
            raise HistoryUnavailable(
                f"Corrupt message in conversation {conversation_id}", e
            ) from e

    async def append(self, conversation_id: str, messages: Sequence[Message]) -> None:
        async with self._locks(conversation_id), self._connect() as db:
            cursor = await db.execute(
                "SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)
            )
            if await cursor.fetchone() is None:
                raise HistoryUnavailable(f"Unknown conversation {conversation_id}")

            cursor = await db.execute(
                "SELECT COALESCE(MAX(seq), 0) FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            )
            (last_seq,) = await cursor.fetchone()

            await db.executemany(
                """
                INSERT INTO messages (conversation_id, seq, role, payload)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (
                        conversation_id,
                        last_seq + i,
                        msg.role,
                        StoredMessage.dump_json(msg).decode(),
                    )
                    for i, msg in enumerate(messages, start=1)
                ],
            )
            await self._touch(db, conversation_id)
            await db.commit()

    async def clear(self, conversation_id: str) -> None:
        async with self._locks(conversation_id), self._connect() as db:
            await db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            await self._touch(db, conversation_id)
            await db.commit()
        logger.info("Cleared conversation %s", conversation_id)

    async def get(self, conversation_id: str) -> ConversationRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_record(row) if row is not None else None

    @staticmethod
    async def _touch(db: aiosqlite.Connection, conversation_id: str) -> None:
        await db.execute(
            "UPDATE conversations SET last_updated = ? WHERE id = ?",
            (datetime.now(UTC).isoformat(), conversation_id),
        )
