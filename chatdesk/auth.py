"""
User Directory

Resolves bearer tokens to users and answers the membership lookups used by
the user context directive. Backed by the `users` configuration section and
re-read on every lookup, so runtime config edits apply immediately.
"""

from __future__ import annotations

import hmac
import logging
import os
from typing import TYPE_CHECKING, Any

from chatdesk.chat.models import UserProfile
from chatdesk.directives import FlagFact, ProfileCountFact, UserFact

if TYPE_CHECKING:
    from chatdesk.config import Configuration

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration

    def _entries(self) -> dict[str, dict[str, Any]]:
        return {
            str(user_id): entry or {}
            for user_id, entry in self.configuration.get_users_config().items()
        }

    def _entry(self, user_id: str) -> dict[str, Any] | None:
        return self._entries().get(user_id)

    @staticmethod
    def _token_for(entry: dict[str, Any]) -> str | None:
        if entry.get("token_env"):
            return os.getenv(entry["token_env"])
        return entry.get("token")

    def authenticate(self, token: str | None) -> UserProfile | None:
        """Return the user owning `token`, or None."""
        if not token:
            return None

        for user_id, entry in self._entries().items():
            expected = self._token_for(entry)
            if expected and hmac.compare_digest(expected, token):
                return UserProfile(
                    id=user_id,
                    display_name=entry.get("display_name", user_id),
                    handle=entry.get("handle", user_id),
                    role=entry.get("role"),
                )

        logger.info("Rejected unknown bearer token")
        return None

    def is_team_member(self, user: UserProfile) -> bool | None:
        entry = self._entry(user.id)
        if entry is None or "team_member" not in entry:
            return None
        return bool(entry["team_member"])

    def is_community_member(self, user: UserProfile) -> bool | None:
        entry = self._entry(user.id)
        if entry is None or "community_member" not in entry:
            return None
        return bool(entry["community_member"])

    def artist_ids(self, user: UserProfile) -> list[str] | None:
        entry = self._entry(user.id)
        if entry is None or "artist_ids" not in entry:
            return None
        return [str(a) for a in entry["artist_ids"] or []]

    def facts(self) -> list[UserFact]:
        """User context lines backed by this directory."""
        return [
            FlagFact("Team Member", self.is_team_member),
            ProfileCountFact("Artist", self.artist_ids),
            FlagFact("Community Member", self.is_community_member),
        ]
