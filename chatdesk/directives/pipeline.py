"""Ordered application of request directives."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from chatdesk.chat.models import ChatRequest

from .base import Directive

logger = logging.getLogger(__name__)


class DirectivePipeline:
    """
    Fixed, priority-ordered chain of directives.

    Directives are sorted once at construction; equal priorities keep the
    order they were given in. `apply` is safe to call concurrently since the
    pipeline holds no per-request state.
    """

    def __init__(self, directives: Iterable[Directive] = ()) -> None:
        self._directives: tuple[Directive, ...] = tuple(
            sorted(directives, key=lambda d: d.priority)
        )
        logger.info(
            "Directive pipeline: %s",
            ", ".join(f"{d.name}({d.priority})" for d in self._directives) or "empty",
        )

    @property
    def directives(self) -> tuple[Directive, ...]:
        return self._directives

    def __len__(self) -> int:
        return len(self._directives)

    async def apply(self, request: ChatRequest) -> ChatRequest:
        current = request
        for directive in self._directives:
            current = await directive.inject(current)
        logger.debug(
            "→ Directives: %d applied, %d messages outgoing",
            len(self._directives),
            len(current.messages),
        )
        return current
