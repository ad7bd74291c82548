"""Client configuration with config file and environment variable support.

Settings are read, in order of precedence, from environment variables (or a
``.env`` file), then from a YAML or TOML config file, then defaults.
Environment variable names are the upper-cased field names, for example
``LOCAL_HOST`` and ``CLOUD_WEBSOCKET``.

Example config.yaml:

    local:
      host: http://localhost:8080
      id: my-server
    cloud:
      websocket: wss://broker.example.com/ws
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from bridger.core.exceptions import ConfigError

DEFAULT_CONFIG_FILE = "config.yaml"

LogLevel = Literal["debug", "info", "warning", "error"]


def _parse_yaml(content: str) -> Any:
    return yaml.safe_load(content) or {}


_PARSERS = {
    ".yaml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".yml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".toml": (tomllib.loads, tomllib.TOMLDecodeError, "TOML"),
}


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Read the nested ``local``/``cloud`` sections of a bridger config file.

    The format is picked from the suffix: ``.yaml``/``.yml`` or ``.toml``.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file can't be parsed or isn't a mapping
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        parse, parse_error, kind = _PARSERS[path.suffix.lower()]
    except KeyError:
        raise ValueError(f"Unsupported config format: {path.suffix or path.name}") from None

    try:
        loaded = parse(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise ValueError(f"{path} is not valid UTF-8: {e}") from e
    except parse_error as e:
        raise ValueError(f"Invalid {kind} in {path}: {e}") from e

    if not isinstance(loaded, dict):
        raise ValueError(f"{path}: expected a mapping of settings, got {type(loaded).__name__}")
    return loaded


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Map nested sections onto field names: ``local.host`` becomes ``local_host``."""
    flat: dict[str, Any] = {}
    for key, value in config.items():
        name = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_config(value, name))
        else:
            flat[name] = value
    return flat


class ClientConfig(BaseSettings):
    """Tunnel client configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    local_host: str = Field(
        default="",
        description="Base URL of the local HTTP server, e.g. http://localhost:8080.",
    )
    cloud_websocket: str = Field(
        default="",
        description="WebSocket URL of the cloud broker.",
    )
    local_id: str = Field(
        default="",
        description="Identity registered with the broker. Generated when empty.",
    )
    reconnect_delay: float = Field(
        default=5.0,
        ge=0.0,
        description="Fixed delay between tunnel reconnect attempts (seconds).",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for dialing the broker (seconds).",
    )
    request_timeout: float | None = Field(
        default=None,
        description="Timeout for calls to the local server (seconds). None for no timeout.",
    )
    log_level: LogLevel = Field(
        default="info",
        description="Log level: debug, info, warning or error.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _lowercase_level(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File values arrive as init kwargs; the environment overrides them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def to_display_dict(self) -> dict[str, Any]:
        """Export the configuration as a flat dictionary for display."""
        return {
            "local_host": self.local_host,
            "cloud_websocket": self.cloud_websocket,
            "local_id": self.local_id,
            "reconnect_delay": self.reconnect_delay,
            "connect_timeout": self.connect_timeout,
            "request_timeout": self.request_timeout,
            "log_level": self.log_level,
        }


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Build the client configuration.

    Args:
        path: Config file to read. When omitted, ``config.yaml`` in the working
            directory is used if it exists.

    Raises:
        FileNotFoundError: If an explicit ``path`` doesn't exist
        ValueError: If the config file can't be parsed
    """
    file_values: dict[str, Any] = {}
    if path is not None:
        file_values = flatten_config(load_config_from_file(path))
    elif Path(DEFAULT_CONFIG_FILE).exists():
        file_values = flatten_config(load_config_from_file(DEFAULT_CONFIG_FILE))
    return ClientConfig(**file_values)


def validate_config(config: ClientConfig) -> None:
    """Check the settings the client cannot run without.

    Raises:
        ConfigError: If the local server or broker address is missing
    """
    if not config.local_host.strip():
        raise ConfigError("local.host (LOCAL_HOST environment variable) is required")
    if not config.cloud_websocket.strip():
        raise ConfigError("cloud.websocket (CLOUD_WEBSOCKET environment variable) is required")


def apply_overrides(config: ClientConfig, overrides: dict[str, Any]) -> ClientConfig:
    """Set command line values on a loaded configuration, skipping ``None``.

    Each value is validated like any other source.

    Raises:
        pydantic.ValidationError: If a value is out of range
    """
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config
