"""
Conversation utilities for history windows.

Loading only the last N messages can cut a tool exchange in half. Providers
reject a tool message without the assistant tool call it answers, and an
assistant tool call without all of its answers, so broken groups are removed
before the window is sent anywhere.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from chatdesk.chat.models import AssistantMessage, Message, ToolMessage

logger = logging.getLogger(__name__)


def trim_orphan_tool_messages(messages: Sequence[Message]) -> list[Message]:
    """
    Drop tool messages and tool-call groups whose pairing is incomplete.

    Args:
        messages: History window, oldest first

    Returns:
        New list containing only complete assistant/tool groups plus all
        other messages, order preserved
    """
    result: list[Message] = []
    dropped = 0
    i = 0

    while i < len(messages):
        msg = messages[i]

        if isinstance(msg, ToolMessage):
            # a tool message outside a group was cut off from its call
            dropped += 1
            i += 1
            continue

        if isinstance(msg, AssistantMessage) and msg.tool_calls:
            group: list[Message] = [msg]
            j = i + 1
            while j < len(messages) and isinstance(messages[j], ToolMessage):
                group.append(messages[j])
                j += 1

            expected = {call.id for call in msg.tool_calls}
            answered = {m.tool_call_id for m in group[1:] if isinstance(m, ToolMessage)}
            if expected == answered:
                result.extend(group)
            else:
                dropped += len(group)
            i = j
            continue

        result.append(msg)
        i += 1

    if dropped:
        logger.debug("Trimmed %d orphaned tool message(s) from history window", dropped)
    return result
