"""Configuration management for the streamchat widget."""

import os
from typing import Any
from urllib.parse import parse_qs

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

DEFAULT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-3.5-turbo"
TOKEN_ENV_VAR = "STREAMCHAT_TOKEN"
LOG_RENDERERS = ("console", "json")


class WidgetSettings(BaseModel):
    """Endpoint settings handed to the controller unchanged."""
    url: str = DEFAULT_URL
    model: str = DEFAULT_MODEL
    bearer_token: str | None = None

    def with_query_string(self, query_string: str) -> "WidgetSettings":
        """Override settings from ``?url=..&model=..&token=..``.

        Parameters that are absent or empty keep their current value.
        """
        params = parse_qs(query_string.lstrip("?"))
        overrides: dict[str, str] = {}
        for param, field in (("url", "url"), ("model", "model"), ("token", "bearer_token")):
            values = params.get(param)
            if values and values[0]:
                overrides[field] = values[0]
        return self.model_copy(update=overrides)

    def with_overrides(self, **values: str | None) -> "WidgetSettings":
        """Apply explicitly given values, skipping ``None``."""
        return self.model_copy(
            update={k: v for k, v in values.items() if v is not None}
        )


class Configuration:
    """Manages configuration and environment variables for streamchat."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for the bearer token
        self._config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self._config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_endpoint_config(self) -> dict[str, Any]:
        """Get the completion endpoint configuration.

        Returns:
            Dictionary with ``url`` and ``model``.

        Raises:
            ValueError: If url or model is configured but empty.
        """
        endpoint = self._config.get("endpoint", {})
        url = endpoint.get("url", DEFAULT_URL)
        model = endpoint.get("model", DEFAULT_MODEL)

        if not isinstance(url, str) or not url:
            raise ValueError("endpoint.url must be a non-empty string")
        if not isinstance(model, str) or not model:
            raise ValueError("endpoint.model must be a non-empty string")

        return {"url": url, "model": model}

    @property
    def bearer_token(self) -> str | None:
        """Bearer token from the environment, falling back to YAML.

        The token is passed through verbatim; ``None`` means no
        Authorization header is sent.
        """
        token = os.getenv(TOKEN_ENV_VAR)
        if token:
            return token
        return self._config.get("endpoint", {}).get("token") or None

    def get_widget_settings(self) -> WidgetSettings:
        """Build widget settings from YAML and environment."""
        endpoint = self.get_endpoint_config()
        return WidgetSettings(
            url=endpoint["url"],
            model=endpoint["model"],
            bearer_token=self.bearer_token,
        )

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("http_client", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )
            value = http_config[key]
            if not isinstance(value, int | float) or value <= 0:
                raise ValueError(f"http_client.{key} must be a positive number")

        return http_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML.

        Returns:
            Streaming configuration dictionary with defaults applied.
        """
        streaming_config = self._config.get("streaming", {})
        config = {
            "abort_superseded": streaming_config.get("abort_superseded", True),
            "require_event_stream": streaming_config.get(
                "require_event_stream", False
            ),
        }
        for key, value in config.items():
            if not isinstance(value, bool):
                raise ValueError(f"streaming.{key} must be a boolean")
        return config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        logging_config = self._config.get("logging", {})
        renderer = logging_config.get("renderer", "console")
        if renderer not in LOG_RENDERERS:
            raise ValueError(
                f"logging.renderer must be one of {LOG_RENDERERS}, got {renderer!r}"
            )
        return {
            "level": logging_config.get("level", "WARNING"),
            "renderer": renderer,
        }
