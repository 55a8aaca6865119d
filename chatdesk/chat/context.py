"""Request-scoped state visible to tools without widening their call signature."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from .models import UserProfile

_current_user: ContextVar[UserProfile | None] = ContextVar(
    "chatdesk_current_user", default=None
)


def get_current_user() -> UserProfile | None:
    return _current_user.get()


@contextmanager
def current_user(user: UserProfile | None) -> Iterator[UserProfile | None]:
    """Bind `user` as the caller for the duration of one turn."""
    token = _current_user.set(user)
    try:
        yield user
    finally:
        _current_user.reset(token)
