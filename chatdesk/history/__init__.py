#!/usr/bin/env python3
"""
Chat History Module

Conversation storage with in-memory and SQLite backends.
"""

from __future__ import annotations

from .conversation_utils import trim_orphan_tool_messages
from .factory import create_repository
from .memory_repo import InMemoryRepo
from .models import ConversationRecord
from .repository import ConversationLocks, ConversationRepository
from .sqlite_repo import SQLiteRepo

__all__ = [
    "ConversationLocks",
    "ConversationRecord",
    "ConversationRepository",
    "InMemoryRepo",
    "SQLiteRepo",
    "create_repository",
    "trim_orphan_tool_messages",
]
