"""
Pytest Configuration and Fixtures
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any

import pytest
import yaml

from chatdesk.chat.conversation_loop import ConversationLoop
from chatdesk.chat.logging_utils import clear_module_features
from chatdesk.chat.models import (
    ChatRequest,
    ModelResponse,
    ModelResponseData,
    ToolCall,
    UserProfile,
)
from chatdesk.config import Configuration
from chatdesk.directives import DirectivePipeline
from chatdesk.tools import ToolRegistry

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "chatdesk", "config.yaml")


class ScriptedModel:
    """Model client double that replays responses and records every request."""

    def __init__(self, responses: list[ModelResponse | Exception]) -> None:
        self.responses = list(responses)
        self.requests: list[ChatRequest] = []
        self.tools: list[list[dict[str, Any]]] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def request(
        self, chat_request: ChatRequest, provider: str, tools: list[dict[str, Any]]
    ) -> ModelResponse:
        self.requests.append(chat_request)
        self.tools.append(tools)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def text_reply(content: str) -> ModelResponse:
    return ModelResponse(success=True, data=ModelResponseData(content=content))


def tool_reply(*calls: tuple[str, str, dict[str, Any]]) -> ModelResponse:
    """Build a response requesting `(id, name, parameters)` tool calls."""
    return ModelResponse(
        success=True,
        data=ModelResponseData(
            tool_calls=[ToolCall(id=i, name=n, parameters=p) for i, n, p in calls]
        ),
    )


@pytest.fixture(autouse=True)
def _reset_logging_features():
    yield
    clear_module_features()


@pytest.fixture
def user() -> UserProfile:
    return UserProfile(id="42", display_name="Ada Lovelace", handle="ada", role="subscriber")


@pytest.fixture
def make_config(tmp_path) -> Callable[..., Configuration]:
    """Build a Configuration over a temp copy of the defaults plus overrides."""

    def _make(overrides: dict[str, Any] | None = None) -> Configuration:
        with open(DEFAULT_CONFIG_PATH) as f:
            defaults = yaml.safe_load(f)
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.safe_dump(defaults))
        runtime_path = tmp_path / "runtime_config.yaml"
        if overrides is not None:
            runtime_path.write_text(yaml.safe_dump(overrides))
        return Configuration(
            config_path=str(config_path), runtime_config_path=str(runtime_path)
        )

    return _make


@pytest.fixture
def make_loop() -> Callable[..., ConversationLoop]:
    def _make(
        model: ScriptedModel,
        registry: ToolRegistry | None = None,
        pipeline: DirectivePipeline | None = None,
    ) -> ConversationLoop:
        return ConversationLoop(
            model,
            registry or ToolRegistry(),
            pipeline or DirectivePipeline(),
            model="test-model",
            provider="openai",
        )

    return _make
