#!/usr/bin/env python3
"""
Repository Factory

Factory function to create appropriate repository based on configuration.
"""

from __future__ import annotations

import logging
from typing import Any

from .memory_repo import InMemoryRepo
from .repository import ConversationRepository
from .sqlite_repo import SQLiteRepo

logger = logging.getLogger(__name__)


def create_repository(config: dict[str, Any]) -> ConversationRepository:
    """Create the conversation repository from `chat.storage`."""
    storage = config.get("chat", {}).get("storage", {})
    storage_type = storage.get("type", "memory")

    if storage_type == "memory":
        logger.info("Using in-memory chat history (lost on restart)")
        return InMemoryRepo()

    if storage_type == "sqlite":
        db_path = storage.get("db_path", "chat_history.db")
        logger.info("Using SQLite chat history at %s", db_path)
        return SQLiteRepo(db_path)

    raise ValueError(
        f"Unknown chat.storage.type '{storage_type}' (expected 'memory' or 'sqlite')"
    )
