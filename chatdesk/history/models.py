#!/usr/bin/env python3
"""
Chat History Data Models

Pydantic models for stored conversations.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, TypeAdapter

from chatdesk.chat.models import Message


def _now() -> datetime:
    return datetime.now(UTC)


class ConversationRecord(BaseModel):
    """One user's conversation; `last_updated` moves on every append and clear."""

    id: str
    user_id: str
    title: str
    created_at: datetime = Field(default_factory=_now)
    last_updated: datetime = Field(default_factory=_now)


def conversation_title(display_name: str, when: datetime | None = None) -> str:
    when = when or _now()
    return f"Chat - {display_name} - {when.strftime('%Y-%m-%d %H:%M:%S')}"


# Single-message adapter used to (de)serialize stored rows
StoredMessage: TypeAdapter[Message] = TypeAdapter(Message)
