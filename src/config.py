"""Configuration management for the chat client."""

from __future__ import annotations

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from src.chat_client.models import ClientSettings

BASE_URL_ENV = "CHAT_API_URL"
TOKEN_ENV = "CHAT_API_TOKEN"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for base URL and token overrides
        self._config = self._load_yaml_config(config_path)

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Configuration:
        """Build a configuration without touching the filesystem."""
        if not isinstance(config, dict):
            raise ValueError(f"Config must be a dict, got {type(config)}")
        instance = cls.__new__(cls)
        instance._config = config
        return instance

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self, config_path: str | None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if config_path is None:
            config_path = os.path.join(os.path.dirname(__file__), "config.yaml")
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_api_config(self) -> dict[str, Any]:
        """Get backend API location.

        Returns:
            Dictionary with base_url and api_prefix.

        Raises:
            ValueError: If base_url is missing or not an http(s) URL.
        """
        api_config = self._config.get("api", {})
        base_url = os.getenv(BASE_URL_ENV) or api_config.get("base_url")

        if not base_url:
            raise ValueError(
                "api.base_url must be configured in config.yaml "
                f"or via the {BASE_URL_ENV} environment variable"
            )
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"api.base_url must be an http(s) URL, got '{base_url}'")

        api_prefix = api_config.get("api_prefix", "/api/v1")
        if api_prefix and not api_prefix.startswith("/"):
            raise ValueError("api.api_prefix must start with '/'")

        return {"base_url": base_url, "api_prefix": api_prefix}

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration.

        Returns:
            Dictionary with flush_interval and the stream endpoint paths.

        Raises:
            ValueError: If flush_interval is not a positive number.
        """
        streaming_config = self._config.get("chat", {}).get("streaming", {})

        flush_interval = streaming_config.get("flush_interval", 0.03)
        if not isinstance(flush_interval, int | float) or flush_interval <= 0:
            raise ValueError("chat.streaming.flush_interval must be positive")

        return {
            "flush_interval": float(flush_interval),
            "stream_path": streaming_config.get("stream_path", "/chat/stream"),
            "public_stream_path": streaming_config.get(
                "public_stream_path", "/chat/stream/public"
            ),
        }

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If HTTP client parameters are invalid.
        """
        http_config = {
            "max_connections": 10,
            "max_keepalive": 5,
            "connect_timeout": 10.0,
            "read_timeout": 60.0,
            "write_timeout": 10.0,
            "pool_timeout": 10.0,
            **self._config.get("http_client", {}),
        }

        if http_config["max_connections"] < 1:
            raise ValueError("http_client.max_connections must be at least 1")
        if http_config["max_keepalive"] > http_config["max_connections"]:
            raise ValueError("http_client.max_keepalive must be <= max_connections")
        for key in ("connect_timeout", "read_timeout", "write_timeout", "pool_timeout"):
            if http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return http_config

    def get_credentials_config(self) -> dict[str, Any]:
        """Get credential storage configuration.

        Returns:
            Dictionary with token_file (None keeps tokens in memory only).
        """
        credentials_config = self._config.get("credentials", {})
        return {"token_file": credentials_config.get("token_file")}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Raises:
            ValueError: If the level is not a standard logging level.
        """
        logging_config = self._config.get("logging", {})
        level = str(logging_config.get("level", "INFO")).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {', '.join(VALID_LOG_LEVELS)}"
            )
        return {**logging_config, "level": level}

    @property
    def api_token(self) -> str | None:
        """Bearer token supplied through the environment, if any."""
        return os.getenv(TOKEN_ENV) or None

    def get_client_settings(self) -> ClientSettings:
        """Assemble validated settings for the API and stream clients."""
        api = self.get_api_config()
        streaming = self.get_streaming_config()
        http = self.get_http_client_config()
        return ClientSettings(
            base_url=api["base_url"],
            api_prefix=api["api_prefix"],
            stream_path=streaming["stream_path"],
            public_stream_path=streaming["public_stream_path"],
            flush_interval=streaming["flush_interval"],
            max_connections=http["max_connections"],
            max_keepalive=http["max_keepalive"],
            connect_timeout=http["connect_timeout"],
            read_timeout=http["read_timeout"],
            write_timeout=http["write_timeout"],
            pool_timeout=http["pool_timeout"],
        )
