"""
Logging setup for the comparison service.

Root handlers get a formatter that tags every line with the environment
(``test`` under pytest, ``prod`` otherwise), and a filter that masks backend
credentials before a record reaches any handler.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from llm_compare.core.config.app_config import AppConfig

DEFAULT_LOG_FORMAT = (
    "%(asctime)s [%(levelname)-8s] [%(env_tag)s] %(name)s:%(lineno)d %(message)s"
)

# Key shapes worth masking even when the exact value is not known
KEY_SHAPED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bsk-(?:ant-|or-)?[A-Za-z0-9_-]{20,}"),
    re.compile(r"\bAIza[0-9A-Za-z_-]{30,}\b"),
)
BEARER_TOKEN_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/-]+=*")

_CREDENTIAL_ENV_NAME = re.compile(r".*API_KEY(?:_\d+)?$", re.IGNORECASE)
_MIN_CREDENTIAL_LENGTH = 8


def environment_tag() -> str:
    """Return ``test`` when running under pytest, ``prod`` otherwise."""
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return "test"
    return "prod"


class EnvironmentTaggingFormatter(logging.Formatter):
    """Formatter that provides ``%(env_tag)s`` to its format string."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(fmt or DEFAULT_LOG_FORMAT, datefmt)
        self._env_tag = environment_tag()

    def format(self, record: logging.LogRecord) -> str:
        record.env_tag = self._env_tag
        return super().format(record)


class CredentialRedactionFilter(logging.Filter):
    """Masks credentials in a record's message and arguments."""

    def __init__(self, credentials: Iterable[str] = (), mask: str = "***") -> None:
        super().__init__()
        self.mask = mask
        known = sorted({c for c in credentials if c}, key=len, reverse=True)
        self._patterns: list[re.Pattern[str]] = []
        if known:
            self._patterns.append(re.compile("|".join(re.escape(c) for c in known)))
        self._patterns.extend(KEY_SHAPED_PATTERNS)

    def mask_text(self, text: str) -> str:
        for pattern in self._patterns:
            text = pattern.sub(self.mask, text)
        return BEARER_TOKEN_PATTERN.sub(rf"\g<1>{self.mask}", text)

    def _mask_value(self, value: object) -> object:
        if isinstance(value, str):
            return self.mask_text(value)
        if isinstance(value, Mapping):
            return {k: self._mask_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self._mask_value(v) for v in value)
        return value

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self.mask_text(record.msg)
        if isinstance(record.args, Mapping):
            record.args = self._mask_value(record.args)  # type: ignore[assignment]
        elif isinstance(record.args, tuple):
            record.args = tuple(self._mask_value(a) for a in record.args)
        if isinstance(record.exc_text, str):
            record.exc_text = self.mask_text(record.exc_text)
        return True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)  # type: ignore


def configure_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Install environment-tagged root handlers and route structlog through them.

    Args:
        level: Root logging level
        log_file: Optional file that receives the same lines as the console
    """
    formatter = EnvironmentTaggingFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(
                key_order=["event", "level", "timestamp"]
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def install_redaction_filter(
    credentials: Iterable[str], mask: str = "***"
) -> CredentialRedactionFilter:
    """Attach a redaction filter to the root logger and each of its handlers.

    Records from child loggers skip root logger filters, so the handlers need
    their own copy.
    """
    redaction = CredentialRedactionFilter(credentials, mask=mask)
    root = logging.getLogger()
    root.addFilter(redaction)
    for handler in root.handlers:
        handler.addFilter(redaction)
    return redaction


def discover_credentials(
    config: AppConfig | None = None, environ: Mapping[str, str] | None = None
) -> list[str]:
    """Collect credential values that must never reach a log line.

    Covers the configured backend keys and any environment variable whose
    name ends in ``API_KEY``.
    """
    found: set[str] = set()
    if config is not None:
        found.update(
            cfg.api_key.strip() for cfg in config.backends.values() if cfg.api_key
        )

    env = environ if environ is not None else os.environ
    for name, value in env.items():
        value = value.strip() if isinstance(value, str) else ""
        if _CREDENTIAL_ENV_NAME.match(name) and len(value) >= _MIN_CREDENTIAL_LENGTH:
            found.add(value)

    return sorted(k for k in found if k)
