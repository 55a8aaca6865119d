"""Operator-supplied custom prompt, read live on every model call."""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from chatdesk.chat.models import ChatRequest

from .base import Directive


class SystemPromptDirective(Directive):
    priority: ClassVar[int] = 20

    def __init__(self, prompt_source: Callable[[], str | None]) -> None:
        self.prompt_source = prompt_source

    async def render(self, request: ChatRequest) -> str | None:
        prompt = self.prompt_source()
        return prompt.strip() if prompt else None
