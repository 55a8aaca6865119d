"""
Main application entry point - HTTP interface with graceful shutdown handling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

import httpx

from chatdesk.auth import UserDirectory
from chatdesk.chat.chat_orchestrator import ChatOrchestrator
from chatdesk.chat.conversation_loop import ConversationLoop
from chatdesk.chat.logging_utils import clear_module_features, set_module_features
from chatdesk.clients import LLMClient
from chatdesk.config import Configuration
from chatdesk.directives import (
    ConfiguredSiteContext,
    CoreDirective,
    Directive,
    DirectivePipeline,
    NetworkContextDirective,
    SiteContextProvider,
    SystemPromptDirective,
    UserContextDirective,
)
from chatdesk.history import create_repository
from chatdesk.http_server import run_http_server
from chatdesk.tools import (
    LinkPageService,
    LinkPageToolSource,
    SearchToolSource,
    SiteConfig,
    ToolRegistry,
    WordPressSearchBackend,
)

# Module-to-logger mapping for `logging.modules`
MODULE_LOGGER_MAP: dict[str, dict[str, Any]] = {
    "chat": {
        "loggers": ["chatdesk.chat", "chatdesk.directives"],
        "default_level": "INFO",
        "features": ["llm_replies"],
    },
    "tools": {
        "loggers": ["chatdesk.tools"],
        "default_level": "INFO",
        "features": ["tool_arguments", "tool_results"],
    },
    "history": {
        "loggers": ["chatdesk.history"],
        "default_level": "INFO",
        "features": [],
    },
    "llm": {
        "loggers": ["chatdesk.clients", "httpx"],
        "default_level": "WARNING",
        "features": [],
    },
    "http": {
        "loggers": ["chatdesk.http_server", "uvicorn"],
        "default_level": "INFO",
        "features": [],
    },
}

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _configure_advanced_logging(logging_config: dict[str, Any]) -> None:
    """
    Hierarchical logger levels plus per-module feature flags.

    Levels are set on parent loggers so every module below inherits them.
    Feature flags gate the verbose helpers in chatdesk.chat.logging_utils.
    """
    global_level = logging_config.get("level", "WARNING")
    logging.getLogger().setLevel(_LEVEL_MAP.get(global_level, logging.WARNING))

    clear_module_features()
    for module_name, module_config in logging_config.get("modules", {}).items():
        if not isinstance(module_config, dict):
            continue

        known = MODULE_LOGGER_MAP.get(module_name, {})
        module_level = module_config.get(
            "level", known.get("default_level", global_level)
        )
        level_value = _LEVEL_MAP.get(module_level, logging.WARNING)
        for logger_name in known.get("loggers", []):
            logging.getLogger(logger_name).setLevel(level_value)

        set_module_features(module_name, module_config.get("enable_features") or {})


def _on_logging_config_change(new_config: dict[str, Any]) -> None:
    """Reapply logging settings whenever the runtime config file changes."""
    logging_config = new_config.get("logging", {})
    if logging_config:
        _configure_advanced_logging(logging_config)
        logging.info("🔄 Logging configuration updated in real-time")


def _platform_sites(config: Configuration) -> list[SiteConfig]:
    return [SiteConfig(**site) for site in config.get_platform_config().get("sites", [])]


def _search_timeout(config: Configuration) -> float:
    return config.get_tools_config().get("search", {}).get("timeout", 10.0)


def build_registry(
    config: Configuration,
    link_page_service: LinkPageService | None = None,
    search_client: httpx.AsyncClient | None = None,
) -> ToolRegistry:
    """
    Discover every built-in tool source, minus `tools.disabled`.

    Without `search_client` the search backend opens a client per call.
    """
    platform = config.get_platform_config()
    tools_conf = config.get_tools_config()
    sites = _platform_sites(config)

    backend = (
        WordPressSearchBackend(
            sites, client=search_client, timeout=_search_timeout(config)
        )
        if sites
        else None
    )

    return ToolRegistry.discover(
        [
            SearchToolSource(backend, tool_id=platform.get("search_tool", "search")),
            LinkPageToolSource(link_page_service),
        ],
        disabled=tools_conf.get("disabled") or (),
    )


def build_pipeline(
    config: Configuration,
    directory: UserDirectory,
    site_context: SiteContextProvider | None = None,
) -> DirectivePipeline:
    """Assemble the directive chain; the network directive needs a site context."""
    directives: list[Directive] = [
        CoreDirective.from_config(config.get_platform_config()),
        SystemPromptDirective(config.get_custom_system_prompt),
        UserContextDirective(directory.facts()),
    ]
    if site_context is not None:
        directives.append(NetworkContextDirective(site_context))
    return DirectivePipeline(directives)


def default_site_context(config: Configuration) -> SiteContextProvider | None:
    platform = config.get_platform_config()
    sites = _platform_sites(config)
    if not platform.get("network_context", False) or not sites:
        return None
    return ConfiguredSiteContext(sites, current_site=platform.get("current_site"))


def build_orchestrator(
    config: Configuration,
    llm_client: LLMClient,
    directory: UserDirectory,
    link_page_service: LinkPageService | None = None,
    search_client: httpx.AsyncClient | None = None,
) -> ChatOrchestrator:
    registry = build_registry(config, link_page_service, search_client)
    pipeline = build_pipeline(config, directory, default_site_context(config))
    loop = ConversationLoop(
        llm_client,
        registry,
        pipeline,
        chat_conf=config.get_chat_service_config(),
    )
    repo = create_repository(config.get_config_dict())
    return ChatOrchestrator(
        ChatOrchestrator.ChatOrchestratorConfig(
            loop=loop, repo=repo, configuration=config
        )
    )


async def main() -> None:
    """Main entry point - HTTP interface with graceful shutdown handling."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
    )
    config = Configuration()

    logging_config = config.get_logging_config()
    if "format" in logging_config:
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    _configure_advanced_logging(logging_config)
    config.subscribe_to_changes(_on_logging_config_change)

    directory = UserDirectory(config)

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logging.info("Received shutdown signal, initiating graceful shutdown...")
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    async with (
        LLMClient(config) as llm_client,
        httpx.AsyncClient(timeout=_search_timeout(config)) as search_client,
    ):
        orchestrator = build_orchestrator(
            config, llm_client, directory, search_client=search_client
        )
        try:
            await config.start_watching()

            server_task = asyncio.create_task(
                run_http_server(orchestrator, directory, config)
            )

            done, pending = await asyncio.wait(
                [server_task, asyncio.create_task(shutdown_event.wait())],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            for task in done:
                if task == server_task:
                    exception = task.exception()
                    if exception is not None:
                        raise exception

        except KeyboardInterrupt:
            logging.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logging.error(f"Application error: {e}")
            raise
        finally:
            await config.stop_watching()
            logging.info("Application shutdown complete")


def cli_main() -> None:
    """Synchronous CLI entrypoint that runs the async main."""
    asyncio.run(main())


if __name__ == "__main__":
    cli_main()
