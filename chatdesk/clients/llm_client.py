"""
Event-driven LLM HTTP client for OpenAI-compatible chat completion APIs.

Subscribes to configuration changes and swaps its HTTP client when the
connection settings (base URL, API key, timeout) change. Provider failures
are reported in the returned ModelResponse rather than raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from chatdesk.chat.models import (
    AssistantMessage,
    ChatRequest,
    ModelResponse,
    ModelResponseData,
    ToolCall,
    ToolMessage,
)

if TYPE_CHECKING:
    from chatdesk.config import Configuration

logger = logging.getLogger(__name__)

# Provider config keys that describe the connection, not the request payload
_CONNECTION_KEYS = {"base_url", "timeout", "api_key_env"}


class LLMClient:
    """OpenAI wire-format client; one active provider at a time."""

    def __init__(
        self,
        configuration: Configuration,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.configuration = configuration
        self._transport = transport
        self._current_config: dict[str, Any] = {}
        self._current_api_key = ""
        self._current_provider = ""
        self.client: httpx.AsyncClient | None = None
        self._config_lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self._apply_config(
            configuration.get_active_provider(),
            configuration.get_llm_config(),
            configuration.llm_api_key,
        )
        self.configuration.subscribe_to_changes(self._on_config_change)

    def _build_http_client(
        self, provider_config: dict[str, Any], api_key: str
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=provider_config["base_url"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=provider_config.get("timeout", 60.0),
            http2=self._transport is None,
            transport=self._transport,
            trust_env=False,
        )

    def _apply_config(
        self, provider: str, provider_config: dict[str, Any], api_key: str
    ) -> httpx.AsyncClient | None:
        """Install new settings; returns the replaced client (if any) for closing."""
        old_client = None
        if (
            self.client is None
            or api_key != self._current_api_key
            or any(
                provider_config.get(k) != self._current_config.get(k)
                for k in ("base_url", "timeout")
            )
        ):
            old_client = self.client
            self.client = self._build_http_client(provider_config, api_key)
            logger.info(
                "LLM client ready: provider=%s model=%s",
                provider,
                provider_config.get("model", "unknown"),
            )

        self._current_config = provider_config
        self._current_api_key = api_key
        self._current_provider = provider
        return old_client

    def _on_config_change(self, new_config: dict[str, Any]) -> None:
        task = asyncio.create_task(self._handle_config_change())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _handle_config_change(self) -> None:
        async with self._config_lock:
            try:
                provider = self.configuration.get_active_provider()
                provider_config = self.configuration.get_llm_config()
                api_key = self.configuration.llm_api_key
            except ValueError as e:
                logger.error("Ignoring invalid LLM configuration change: %s", e)
                return

            if (
                provider_config == self._current_config
                and api_key == self._current_api_key
                and provider == self._current_provider
            ):
                return

            logger.info("🔄 LLM configuration change detected (provider=%s)", provider)
            old_client = self._apply_config(provider, provider_config, api_key)
            if old_client is not None:
                await old_client.aclose()

    @property
    def config(self) -> dict[str, Any]:
        return self._current_config

    @property
    def provider(self) -> str:
        return self._current_provider

    @property
    def model(self) -> str:
        return self._current_config.get("model", "")

    @staticmethod
    def _wire_messages(chat_request: ChatRequest) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = []
        for msg in chat_request.messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
            if isinstance(msg, AssistantMessage) and msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.parameters),
                        },
                    }
                    for call in msg.tool_calls
                ]
            elif isinstance(msg, ToolMessage):
                entry["tool_call_id"] = msg.tool_call_id
            wire.append(entry)
        return wire

    def _build_payload(
        self, chat_request: ChatRequest, tools: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Pass every non-connection provider setting through to the payload."""
        payload: dict[str, Any] = {
            key: value
            for key, value in self._current_config.items()
            if key not in _CONNECTION_KEYS and value is not None
        }
        payload["model"] = chat_request.model or self.model
        payload["messages"] = self._wire_messages(chat_request)
        if tools:
            payload["tools"] = [{"type": "function", "function": t} for t in tools]
        return payload

    @staticmethod
    def _parse_tool_calls(raw_calls: list[dict[str, Any]]) -> list[ToolCall]:
        calls: list[ToolCall] = []
        for raw in raw_calls:
            function = raw.get("function") or {}
            arguments = function.get("arguments") or "{}"
            parameters = json.loads(arguments) if isinstance(arguments, str) else arguments
            calls.append(
                ToolCall(
                    id=raw.get("id") or "",
                    name=function.get("name", ""),
                    parameters=parameters,
                )
            )
        return calls

    async def request(
        self,
        chat_request: ChatRequest,
        provider: str,
        tools: list[dict[str, Any]],
    ) -> ModelResponse:
        """POST one chat completion; every failure comes back as success=False."""
        if provider != self._current_provider:
            return ModelResponse(
                success=False,
                error=f"Provider '{provider}' is not the active provider ({self._current_provider})",
            )
        if self.client is None:
            return ModelResponse(success=False, error="LLM client not initialized")

        payload = self._build_payload(chat_request, tools)
        start_time = time.monotonic()
        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:500]
            logger.error("← LLM: HTTP %d from %s: %s", e.response.status_code, provider, body)
            return ModelResponse(
                success=False, error=f"HTTP {e.response.status_code}: {body}"
            )
        except httpx.HTTPError as e:
            logger.error("← LLM: transport error from %s: %s", provider, e)
            return ModelResponse(success=False, error=f"HTTP error: {e!s}")
        except ValueError as e:
            return ModelResponse(success=False, error=f"Invalid JSON from provider: {e}")

        logger.debug(
            "← LLM: %s responded in %.2fms", provider, (time.monotonic() - start_time) * 1000
        )

        choices = result.get("choices") or []
        if not choices:
            return ModelResponse(success=False, error="No choices in API response")

        message = choices[0].get("message") or {}
        try:
            tool_calls = self._parse_tool_calls(message.get("tool_calls") or [])
        except (json.JSONDecodeError, TypeError) as e:
            return ModelResponse(success=False, error=f"Invalid tool call arguments: {e}")

        return ModelResponse(
            success=True,
            data=ModelResponseData(
                content=message.get("content"),
                tool_calls=tool_calls,
                model=result.get("model", self.model),
            ),
        )

    async def close(self) -> None:
        """Close the HTTP client and unsubscribe from config changes."""
        self.configuration.unsubscribe_from_changes(self._on_config_change)
        if self.client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
