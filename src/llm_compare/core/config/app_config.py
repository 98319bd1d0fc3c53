from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ConfigDict, Field, field_validator

from llm_compare.core.common.exceptions import ConfigurationError
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.base import DomainModel

logger = logging.getLogger(__name__)


def _env_to_bool(name: str, default: bool, env: Mapping[str, str]) -> bool:
    """Return an environment variable parsed as a boolean flag."""
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_to_int(name: str, default: int, env: Mapping[str, str]) -> int:
    """Return an environment variable parsed as an integer."""
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer value for %s: %r", name, value)
        return default


def _env_to_float(name: str, default: float, env: Mapping[str, str]) -> float:
    """Return an environment variable parsed as a float."""
    value = env.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric value for %s: %r", name, value)
        return default


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(DomainModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    request_logging: bool = False
    response_logging: bool = False
    log_file: str | None = None


class BackendConfig(DomainModel):
    """Configuration for one backend.

    `api_url` and `model` override the connector defaults when set.
    """

    api_key: str | None = None
    api_url: str | None = None
    model: str | None = None


class DefaultCredentials(DomainModel):
    """Read-only snapshot of process-wide credentials, taken once at startup."""

    model_config = ConfigDict(frozen=True)

    keys: dict[BackendType, str] = Field(default_factory=dict)

    def get(self, backend: BackendType) -> str | None:
        return self.keys.get(backend)


class AppConfig(DomainModel):
    """Complete application configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    # Per-read timeout for backend streams; there is no total-duration bound
    proxy_timeout: float = 120.0
    connect_timeout: float = 10.0
    max_buffered_events: int = Field(default=256, ge=1)

    # Sent to OpenRouter as HTTP-Referer / X-Title
    app_site_url: str = "http://localhost:8000"
    app_x_title: str = "LLM Comparison App"

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    backends: dict[BackendType, BackendConfig] = Field(
        default_factory=dict, validate_default=True
    )

    @field_validator("backends", mode="before")
    @classmethod
    def _fill_backends(cls, value: Any) -> dict[str, Any]:
        if value is None:
            value = {}
        if not isinstance(value, Mapping):
            raise ValueError("backends must be a mapping of backend name to settings")
        result: dict[str, Any] = {
            str(getattr(k, "value", k)): v for k, v in value.items()
        }
        unknown = set(result) - set(BackendType.values())
        if unknown:
            raise ValueError(f"Unknown backends in configuration: {sorted(unknown)}")
        for name in BackendType.values():
            result.setdefault(name, BackendConfig())
        return result

    def backend(self, backend: BackendType) -> BackendConfig:
        return self.backends.get(backend) or BackendConfig()

    def default_credentials(self) -> DefaultCredentials:
        """Capture the configured credentials as an immutable snapshot."""
        return DefaultCredentials(
            keys={
                backend: cfg.api_key
                for backend, cfg in self.backends.items()
                if cfg.api_key is not None
            }
        )

    @classmethod
    def from_env(cls, *, environ: Mapping[str, str] | None = None) -> AppConfig:
        """Create AppConfig from environment variables.

        Returns:
            AppConfig instance
        """
        env: Mapping[str, str] = environ if environ is not None else os.environ
        return cls(**_env_overrides(cls(), env))

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def _env_overrides(base: AppConfig, env: Mapping[str, str]) -> dict[str, Any]:
    """Return `base` as a dict with environment values applied on top."""
    data = base.model_dump()
    data["host"] = env.get("APP_HOST", base.host)
    data["port"] = _env_to_int("APP_PORT", base.port, env)
    data["proxy_timeout"] = _env_to_float("PROXY_TIMEOUT", base.proxy_timeout, env)
    data["connect_timeout"] = _env_to_float(
        "CONNECT_TIMEOUT", base.connect_timeout, env
    )
    data["max_buffered_events"] = _env_to_int(
        "MAX_BUFFERED_EVENTS", base.max_buffered_events, env
    )
    data["app_site_url"] = env.get("APP_SITE_URL", base.app_site_url)
    data["app_x_title"] = env.get("APP_X_TITLE", base.app_x_title)

    log_data = data["logging"]
    if "LOG_LEVEL" in env:
        level = env["LOG_LEVEL"].strip().upper()
        if level in LogLevel.__members__:
            log_data["level"] = level
        else:
            logger.warning("Ignoring unknown LOG_LEVEL %r", env["LOG_LEVEL"])
    log_data["log_file"] = env.get("LOG_FILE", base.logging.log_file)
    log_data["request_logging"] = _env_to_bool(
        "REQUEST_LOGGING", base.logging.request_logging, env
    )
    log_data["response_logging"] = _env_to_bool(
        "RESPONSE_LOGGING", base.logging.response_logging, env
    )

    backends: dict[str, Any] = {}
    for backend in BackendType:
        current = base.backend(backend)
        prefix = backend.value.upper()
        backends[backend.value] = {
            "api_key": env.get(backend.api_key_env_var, current.api_key),
            "api_url": env.get(f"{prefix}_API_URL", current.api_url),
            "model": env.get(f"{prefix}_MODEL", current.model),
        }
    data["backends"] = backends
    return data


def load_config(
    path: str | Path | None = None, *, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Load configuration from an optional YAML file, then apply the environment.

    Environment variables take precedence over file values.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed.
    """
    env: Mapping[str, str] = environ if environ is not None else os.environ
    if path is None:
        return AppConfig.from_env(environ=env)

    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(
            message=f"Configuration file not found: {config_path}",
            details={"path": str(config_path)},
        )

    try:
        with config_path.open("r", encoding="utf-8") as f:
            file_config: Any = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            message=f"Could not read configuration file {config_path}: {e}",
            details={"path": str(config_path)},
        ) from e

    if not isinstance(file_config, dict):
        raise ConfigurationError(
            message="Configuration file must contain a mapping at the top level",
            details={"path": str(config_path)},
        )

    try:
        base = AppConfig(**file_config)
    except ValueError as e:
        raise ConfigurationError(
            message=f"Invalid configuration in {config_path}: {e}",
            details={"path": str(config_path)},
        ) from e

    if any(cfg.api_key for cfg in base.backends.values()):
        logger.warning(
            "API keys found in %s; prefer environment variables for credentials",
            config_path,
        )

    return AppConfig(**_env_overrides(base, env))
