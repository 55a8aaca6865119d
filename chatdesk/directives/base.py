"""
Directive Base

A directive contributes one system message to every outgoing model request.
Directives never edit the request they are given; they hand back a copy with
their message appended at the end of the transcript.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from chatdesk.chat.models import ChatRequest, SystemMessage


class Directive(ABC):
    """Base class for request directives ordered by `priority` (lower runs first)."""

    priority: ClassVar[int] = 50

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def render(self, request: ChatRequest) -> str | None:
        """Return the directive text, or None/empty to leave the request as is."""

    async def inject(self, request: ChatRequest) -> ChatRequest:
        text = await self.render(request)
        if not text:
            return request.model_copy()
        return request.with_message(SystemMessage(content=text))
