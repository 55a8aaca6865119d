"""
User Context Directive

Tells the model who it is talking to: display name, handle, site role and a
configurable set of membership facts. Fact providers are optional lookups;
one that is unavailable (returns None) or broken (raises) is left out of the
block instead of failing the request.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Sized
from typing import Any, ClassVar

from chatdesk.chat.models import ChatRequest, UserProfile

from .base import Directive

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class UserFact(ABC):
    """One optional `- Label: value` line in the user context block."""

    def __init__(self, label: str) -> None:
        self.label = label

    @abstractmethod
    async def resolve(self, user: UserProfile) -> str | None: ...


class FlagFact(UserFact):
    """Yes/No fact; a lookup returning None means the fact is unavailable."""

    def __init__(
        self,
        label: str,
        lookup: Callable[[UserProfile], bool | None | Awaitable[bool | None]],
    ) -> None:
        super().__init__(label)
        self.lookup = lookup

    async def resolve(self, user: UserProfile) -> str | None:
        flag = await _resolve(self.lookup(user))
        if flag is None:
            return None
        return "Yes" if flag else "No"


class ProfileCountFact(UserFact):
    """`No` or `Yes (n profile[s])` from a lookup returning ids or a count."""

    def __init__(
        self,
        label: str,
        lookup: Callable[[UserProfile], Any],
        noun: str = "profile",
    ) -> None:
        super().__init__(label)
        self.lookup = lookup
        self.noun = noun

    async def resolve(self, user: UserProfile) -> str | None:
        found = await _resolve(self.lookup(user))
        if found is None:
            return None
        count = len(found) if isinstance(found, Sized) else int(found)
        if count == 0:
            return "No"
        return f"Yes ({count} {self.noun if count == 1 else self.noun + 's'})"


class UserContextDirective(Directive):
    priority: ClassVar[int] = 30

    def __init__(self, facts: Iterable[UserFact] = ()) -> None:
        self.facts = list(facts)

    async def render(self, request: ChatRequest) -> str | None:
        user = request.user
        if user is None:
            return None

        lines = [
            "USER CONTEXT:",
            f"- Display Name: {user.display_name}",
            f"- Username: @{user.handle}",
        ]
        if user.role:
            lines.append(f"- Current Site Role: {user.role[:1].upper()}{user.role[1:]}")

        for fact in self.facts:
            try:
                value = await fact.resolve(user)
            except Exception as e:
                logger.warning(
                    "User fact '%s' failed for user %s, omitting: %s",
                    fact.label,
                    user.id,
                    e,
                )
                continue
            if value is not None:
                lines.append(f"- {fact.label}: {value}")

        return "\n".join(lines)
