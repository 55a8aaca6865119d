#!/usr/bin/env python3
"""
Tests for the HTTP layer: auth, envelope shape and client-facing errors.
"""

from __future__ import annotations

import logging

import pytest
from conftest import ScriptedModel, text_reply, tool_reply
from fastapi.testclient import TestClient

from chatdesk.auth import UserDirectory
from chatdesk.chat.chat_orchestrator import ChatOrchestrator
from chatdesk.errors import HistoryUnavailable
from chatdesk.history import InMemoryRepo
from chatdesk.http_server import CLEAR_ERROR, HISTORY_ERROR, PROCESSING_ERROR, HttpServer
from chatdesk.tools import ToolDefinition, ToolRegistry

AUTH = {"Authorization": "Bearer secret-token"}


@pytest.fixture
def build_client(make_config, make_loop):
    def _build(model, registry=None, repo=None):
        config = make_config(
            {
                "users": {
                    "7": {
                        "token": "secret-token",
                        "display_name": "Grace Hopper",
                        "handle": "grace",
                        "role": "editor",
                    }
                }
            }
        )
        orchestrator = ChatOrchestrator(
            ChatOrchestrator.ChatOrchestratorConfig(
                loop=make_loop(model, registry),
                repo=repo or InMemoryRepo(),
                configuration=config,
            )
        )
        server = HttpServer(orchestrator, UserDirectory(config), config)
        return TestClient(server.app)

    return _build


def test_health(build_client):
    client = build_client(ScriptedModel([text_reply("x")]))

    assert client.get("/health").json() == {"status": "healthy"}


def test_message_round_trip(build_client):
    registry = ToolRegistry(
        {"search": ToolDefinition(id="search", invoke=lambda p: {"results": []})}
    )
    model = ScriptedModel(
        [tool_reply(("c1", "search", {"query": "jazz"})), text_reply("<p>Nothing yet</p>")]
    )
    client = build_client(model, registry)

    response = client.post("/chat/message", json={"message": "find jazz"}, headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["message"] == "<p>Nothing yet</p>"
    assert body["data"]["tool_calls"] == [
        {"tool": "search", "parameters": {"query": "jazz"}}
    ]
    assert "timestamp" in body["data"]
    assert model.requests[0].user.handle == "grace"


@pytest.mark.parametrize(
    "headers",
    [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "secret-token"}],
)
def test_message_requires_authentication(build_client, headers):
    client = build_client(ScriptedModel([text_reply("x")]))

    response = client.post("/chat/message", json={"message": "hi"}, headers=headers)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "data": {"message": "You must be logged in to use chat."},
    }


def test_empty_message_is_rejected(build_client):
    client = build_client(ScriptedModel([text_reply("x")]))

    response = client.post("/chat/message", json={"message": "<br>"}, headers=AUTH)

    assert response.status_code == 400
    assert response.json()["data"]["message"] == "Message cannot be empty."


def test_iteration_cap_returns_generic_message_and_logs_warning(build_client, caplog):
    registry = ToolRegistry({"noop": ToolDefinition(id="noop", invoke=lambda p: 1)})
    client = build_client(ScriptedModel([tool_reply(("c", "noop", {}))]), registry)

    with caplog.at_level(logging.WARNING, logger="chatdesk.http_server"):
        response = client.post("/chat/message", json={"message": "loop"}, headers=AUTH)

    assert response.json() == {"success": False, "data": {"message": PROCESSING_ERROR}}
    assert "iteration cap" in caplog.text


def test_model_failure_detail_is_not_leaked(build_client):
    client = build_client(ScriptedModel([ConnectionError("upstream 10.0.0.3 refused")]))

    response = client.post("/chat/message", json={"message": "hi"}, headers=AUTH)

    assert response.status_code >= 500
    assert response.json()["data"]["message"] == PROCESSING_ERROR
    assert "10.0.0.3" not in response.text


class BrokenRepo(InMemoryRepo):
    async def recent(self, conversation_id, limit):
        raise HistoryUnavailable("disk full")

    async def clear(self, conversation_id):
        raise HistoryUnavailable("disk full")


def test_history_failures_use_history_messages(build_client):
    client = build_client(ScriptedModel([text_reply("x")]), repo=BrokenRepo())

    message = client.post("/chat/message", json={"message": "hi"}, headers=AUTH)
    history = client.get("/chat/history", headers=AUTH)
    cleared = client.post("/chat/clear", headers=AUTH)

    assert message.json()["data"]["message"] == HISTORY_ERROR
    assert history.json()["data"]["message"] == HISTORY_ERROR
    assert cleared.json()["data"]["message"] == CLEAR_ERROR


def test_history_and_clear(build_client):
    client = build_client(ScriptedModel([text_reply("<p>Hi Grace</p>")]))
    client.post("/chat/message", json={"message": "hello"}, headers=AUTH)

    history = client.get("/chat/history", headers=AUTH).json()
    assert [(m["role"], m["content"]) for m in history["data"]["messages"]] == [
        ("user", "hello"),
        ("assistant", "<p>Hi Grace</p>"),
    ]

    cleared = client.post("/chat/clear", headers=AUTH).json()
    assert cleared == {
        "success": True,
        "data": {"message": "Chat history cleared successfully."},
    }
    assert client.get("/chat/history", headers=AUTH).json()["data"]["messages"] == []


def test_clear_requires_authentication(build_client):
    client = build_client(ScriptedModel([text_reply("x")]))

    response = client.post("/chat/clear")

    assert response.status_code == 401
    assert "clear chat history" in response.json()["data"]["message"]


class CrashingRepo(InMemoryRepo):
    async def get_or_create(self, user_id, display_name=None):
        raise RuntimeError("unexpected")


def test_unexpected_errors_still_use_envelope(build_client):
    client = build_client(ScriptedModel([text_reply("x")]), repo=CrashingRepo())

    response = client.post("/chat/message", json={"message": "hi"}, headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"success": False, "data": {"message": PROCESSING_ERROR}}
