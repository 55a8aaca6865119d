"""Configuration management for the chat orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
import time
from collections.abc import Callable
from typing import Any, cast

import yaml
from dotenv import load_dotenv

_PACKAGE_DIR = os.path.dirname(__file__)

PROVIDER_KEY_MAP = {
    "openai": "OPENAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


class Configuration:
    """Event-driven configuration manager with observer pattern.

    `config.yaml` holds the shipped defaults and is never written. The
    effective configuration is those defaults deep-merged with
    `runtime_config.yaml`, which operators edit while the service runs.
    """

    def __init__(
        self,
        config_path: str | None = None,
        runtime_config_path: str | None = None,
    ) -> None:
        self.load_env()
        self._config_path = config_path or os.path.join(_PACKAGE_DIR, "config.yaml")
        self._default_config = self._load_yaml_config()
        self._runtime_config_path = (
            runtime_config_path
            or os.getenv("CHATDESK_RUNTIME_CONFIG")
            or os.path.join(_PACKAGE_DIR, "runtime_config.yaml")
        )
        self._runtime_config_mtime: float | None = None
        self._current_config: dict[str, Any] = {}

        self._config_change_callbacks: list[Callable[[dict[str, Any]], None]] = []
        self._watch_task: asyncio.Task[None] | None = None

        self._initialize_runtime_config()
        self._reload_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    def _initialize_runtime_config(self) -> None:
        """Create runtime_config.yaml from defaults on first run."""
        if os.path.exists(self._runtime_config_path):
            return

        initial_config = self._default_config.copy()
        initial_config["_runtime_config"] = {
            "last_modified": time.time(),
            "version": 1,
            "is_runtime_config": True,
            "default_config_path": os.path.basename(self._config_path),
            "created_from_defaults": True,
        }
        with open(self._runtime_config_path, "w") as file:
            yaml.safe_dump(initial_config, file, default_flow_style=False, indent=2)

    def _load_runtime_config(self) -> dict[str, Any]:
        try:
            with open(self._runtime_config_path) as file:
                config = yaml.safe_load(file)
        except (yaml.YAMLError, OSError) as e:
            logging.warning("Runtime configuration unreadable, using defaults: %s", e)
            return {}

        if not isinstance(config, dict):
            logging.warning("Runtime configuration is not a mapping, using defaults")
            return {}
        return cast(dict[str, Any], config)

    def _deep_merge(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(
                    cast(dict[str, Any], result[key]), cast(dict[str, Any], value)
                )
            else:
                result[key] = value

        return result

    def _reload_config(self) -> bool:
        """Reload configuration if the runtime file changed.

        Returns:
            True if config was actually reloaded, False if no changes.
        """
        current_mtime = None
        if os.path.exists(self._runtime_config_path):
            current_mtime = os.path.getmtime(self._runtime_config_path)

        if current_mtime == self._runtime_config_mtime and self._current_config:
            return False

        old_config = self._current_config
        self._runtime_config_mtime = current_mtime
        runtime_config = {
            k: v
            for k, v in self._load_runtime_config().items()
            if not k.startswith("_runtime_config")
        }
        self._current_config = self._deep_merge(self._default_config, runtime_config)

        if old_config and self._current_config != old_config:
            self._notify_config_change()
        return True

    def _get_current_config(self) -> dict[str, Any]:
        return self._current_config

    def _notify_config_change(self) -> None:
        for callback in self._config_change_callbacks:
            try:
                callback(self._current_config.copy())
            except Exception as e:
                logging.error(f"Error in config change callback: {e}")

    def subscribe_to_changes(self, callback: Callable[[dict[str, Any]], None]) -> None:
        """Subscribe to configuration change events.

        Args:
            callback: Function to call when config changes. Receives new
                config as argument.
        """
        if callback not in self._config_change_callbacks:
            self._config_change_callbacks.append(callback)

    def unsubscribe_from_changes(
        self, callback: Callable[[dict[str, Any]], None]
    ) -> None:
        if callback in self._config_change_callbacks:
            self._config_change_callbacks.remove(callback)

    async def start_watching(self, interval: float = 1.0) -> None:
        """Start the async file watching task for automatic config updates."""
        if self._watch_task is not None:
            return

        self._watch_task = asyncio.create_task(self._watch_config_file(interval))
        logging.info("Started watching runtime configuration file for changes")

    async def stop_watching(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None
            logging.info("Stopped watching runtime configuration file")

    async def _watch_config_file(self, interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                if self._reload_config():
                    logging.info("Runtime configuration file changed - config reloaded")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logging.error(f"Error watching config file: {e}")
                await asyncio.sleep(interval * 5)

    def reload_runtime_config(self) -> bool:
        """Manually reload runtime configuration."""
        return self._reload_config()

    def save_runtime_config(self, config: dict[str, Any]) -> None:
        """Save configuration to the runtime config file and reload it."""
        current_version = self.get_runtime_metadata().get("version", 0)

        runtime_config = config.copy()
        runtime_config["_runtime_config"] = {
            "last_modified": time.time(),
            "version": current_version + 1,
            "is_runtime_config": True,
            "default_config_path": os.path.basename(self._config_path),
        }

        with open(self._runtime_config_path, "w") as file:
            yaml.safe_dump(runtime_config, file, default_flow_style=False, indent=2)

        # mtime resolution can hide quick successive writes
        self._runtime_config_mtime = None
        self._reload_config()

    def get_runtime_metadata(self) -> dict[str, Any]:
        if os.path.exists(self._runtime_config_path):
            try:
                with open(self._runtime_config_path) as f:
                    loaded_config = yaml.safe_load(f)
                    if isinstance(loaded_config, dict):
                        return loaded_config.get("_runtime_config", {})
            except (yaml.YAMLError, OSError):
                pass
        return {}

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        active_provider = self.get_active_provider()

        env_key = self.get_llm_config().get("api_key_env") or PROVIDER_KEY_MAP.get(
            active_provider
        )
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        return self._get_current_config()

    def get_active_provider(self) -> str:
        return self._get_current_config().get("llm", {}).get("active", "openai")

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration.

        Returns:
            Active LLM provider configuration dictionary.
        """
        active_provider = self.get_active_provider()
        providers = self._get_current_config().get("llm", {}).get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        return providers[active_provider]

    def get_chat_service_config(self) -> dict[str, Any]:
        return self._get_current_config().get("chat", {}).get("service", {})

    def get_storage_config(self) -> dict[str, Any]:
        return self._get_current_config().get("chat", {}).get("storage", {})

    def get_max_iterations(self) -> int:
        """Get the model-call cap for one conversation turn.

        Returns:
            Maximum number of loop iterations (default: 10).
        """
        value = self.get_chat_service_config().get("max_iterations", 10)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError("max_iterations must be a positive integer")
        return value

    def get_history_window(self) -> int:
        """Number of stored messages loaded as context (default: 20)."""
        value = self.get_chat_service_config().get("history_window", 20)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError("history_window must be a positive integer")
        return value

    def get_custom_system_prompt(self) -> str:
        return (self.get_chat_service_config().get("system_prompt") or "").strip()

    def get_platform_config(self) -> dict[str, Any]:
        return self._get_current_config().get("platform", {})

    def get_tools_config(self) -> dict[str, Any]:
        return self._get_current_config().get("tools", {})

    def get_server_config(self) -> dict[str, Any]:
        return self._get_current_config().get("server", {})

    def get_logging_config(self) -> dict[str, Any]:
        return self._get_current_config().get("logging", {})

    def get_users_config(self) -> dict[str, Any]:
        return self._get_current_config().get("users", {})

    def reset_to_defaults(self) -> None:
        """Reset runtime_config.yaml to the defaults from config.yaml."""
        self.save_runtime_config(self._default_config.copy())


def reset_runtime_config_cli() -> None:
    """Console script that resets runtime_config.yaml to defaults."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    try:
        cfg = Configuration()
        cfg.reset_to_defaults()
        logging.info("✓ runtime_config.yaml reset to defaults from config.yaml")
    except Exception as e:
        logging.error(f"Error resetting runtime configuration: {e}")
        sys.exit(1)
