"""
HTTP Server for chatdesk

Thin communication layer between the front end and the chat orchestrator.
Handles authentication, request parsing and the response envelope only;
every chat decision is delegated to ChatOrchestrator.

Responses always use the envelope `{"success": bool, "data": {...}}`. Failure
details stay in the server log; clients get a generic message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from chatdesk.chat.models import UserProfile
from chatdesk.errors import (
    ChatError,
    EmptyInput,
    HistoryUnavailable,
    MaxIterationsReached,
    Unauthenticated,
)

if TYPE_CHECKING:
    from chatdesk.auth import UserDirectory
    from chatdesk.chat.chat_orchestrator import ChatOrchestrator
    from chatdesk.config import Configuration

logger = logging.getLogger(__name__)

PROCESSING_ERROR = "Sorry, I encountered an error processing your message. Please try again."
HISTORY_ERROR = "Sorry, I encountered an error with chat history. Please try again."
CLEAR_ERROR = "Sorry, I encountered an error clearing chat history."


class MessagePayload(BaseModel):
    message: str = ""


def _envelope(success: bool, data: dict[str, Any], status: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": success, "data": data})


def _error_response(err: ChatError, fallback: str, history_message: str) -> JSONResponse:
    """Map a ChatError to the client-facing envelope and log the real cause."""
    if isinstance(err, (Unauthenticated, EmptyInput)):
        return _envelope(False, {"message": err.message}, err.status)

    if isinstance(err, MaxIterationsReached):
        logger.warning("Chat turn hit the iteration cap: %s", err.message)
        message = fallback
    elif isinstance(err, HistoryUnavailable):
        logger.error("Chat history error: %s", err.message)
        message = history_message
    else:
        logger.error("Chat error [%s]: %s", err.code, err.message)
        message = fallback

    return _envelope(False, {"message": message}, err.status)


class HttpServer:
    """FastAPI application wrapper with a uvicorn runner."""

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        directory: UserDirectory,
        configuration: Configuration,
    ) -> None:
        self.orchestrator = orchestrator
        self.directory = directory
        self.configuration = configuration
        self.app = self._create_app()

    def _authenticate(self, authorization: str | None) -> UserProfile | None:
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer":
            return None
        return self.directory.authenticate(token.strip())

    def _create_app(self) -> FastAPI:
        app = FastAPI(title="chatdesk")

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.configuration.get_server_config().get("cors_origins", ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.get("/health")
        async def health():  # type: ignore
            return {"status": "healthy"}

        @app.post("/chat/message")
        async def chat_message(  # type: ignore
            payload: MessagePayload,
            authorization: str | None = Header(default=None),
        ):
            user = self._authenticate(authorization)
            try:
                reply = await self.orchestrator.send_message(user, payload.message)
            except Exception as e:
                return _error_response(
                    ChatError.wrap(e), PROCESSING_ERROR, HISTORY_ERROR
                )

            return _envelope(
                True,
                {
                    "message": reply.content,
                    "tool_calls": [tc.model_dump() for tc in reply.tool_calls],
                    "timestamp": reply.timestamp.isoformat(),
                },
            )

        @app.post("/chat/clear")
        async def chat_clear(  # type: ignore
            authorization: str | None = Header(default=None),
        ):
            user = self._authenticate(authorization)
            try:
                await self.orchestrator.clear_history(user)
            except Exception as e:
                return _error_response(ChatError.wrap(e), CLEAR_ERROR, CLEAR_ERROR)

            return _envelope(True, {"message": "Chat history cleared successfully."})

        @app.get("/chat/history")
        async def chat_history(  # type: ignore
            authorization: str | None = Header(default=None),
        ):
            user = self._authenticate(authorization)
            try:
                messages = await self.orchestrator.history(user)
            except Exception as e:
                return _error_response(ChatError.wrap(e), HISTORY_ERROR, HISTORY_ERROR)

            return _envelope(
                True, {"messages": [m.model_dump(mode="json") for m in messages]}
            )

        return app

    async def start_server(self) -> None:
        server_conf = self.configuration.get_server_config()
        host = server_conf.get("host", "127.0.0.1")
        port = server_conf.get("port", 8000)

        logger.info("Starting HTTP server on %s:%s", host, port)
        server = uvicorn.Server(
            uvicorn.Config(self.app, host=host, port=port, log_level="info")
        )

        try:
            await server.serve()
        except Exception as e:
            logger.error(f"HTTP server error: {e}")
            raise
        finally:
            logger.info("HTTP server stopped")


async def run_http_server(
    orchestrator: ChatOrchestrator,
    directory: UserDirectory,
    configuration: Configuration,
) -> None:
    server = HttpServer(orchestrator, directory, configuration)
    await server.start_server()
