"""
Domain models for a comparison run.

A client submits one `CompareRequest`; the service answers with a sequence of
`StreamEvent` objects, one or more per requested backend, ending in exactly
one terminal event per backend.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.base import DomainModel

UNKNOWN_ERROR_MESSAGE = "Unknown error"


class CompareRequest(DomainModel):
    """A validated, immutable comparison request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    prompt: str
    providers: list[BackendType] = Field(min_length=1)
    api_keys: dict[BackendType, str] = Field(default_factory=dict, alias="apiKeys")

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("prompt must not be empty")
        return value

    @field_validator("providers")
    @classmethod
    def _dedupe_providers(cls, value: list[BackendType]) -> list[BackendType]:
        # dict preserves first-seen order
        return list(dict.fromkeys(value))

    @field_validator("api_keys", mode="before")
    @classmethod
    def _known_overrides_only(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValueError("apiKeys must be an object mapping backend to key")
        known = set(BackendType.values())
        return {
            str(name): key
            for name, key in value.items()
            if str(name) in known and isinstance(key, str)
        }


class StreamEvent(DomainModel):
    """One unit of progress for one backend.

    `done` marks the terminal event for the backend; `error` is only allowed
    on a terminal event.
    """

    model_config = ConfigDict(frozen=True)

    provider: BackendType
    chunk: str = ""
    done: bool = False
    error: str | None = None

    @model_validator(mode="after")
    def _error_implies_done(self) -> StreamEvent:
        if self.error is not None and not self.done:
            raise ValueError("an event carrying an error must be terminal")
        return self

    @classmethod
    def fragment(cls, provider: BackendType, text: str) -> StreamEvent:
        return cls(provider=provider, chunk=text)

    @classmethod
    def completed(cls, provider: BackendType) -> StreamEvent:
        return cls(provider=provider, done=True)

    @classmethod
    def failed(cls, provider: BackendType, message: str | None) -> StreamEvent:
        return cls(provider=provider, done=True, error=message or UNKNOWN_ERROR_MESSAGE)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready payload, omitting `error` when absent."""
        return self.model_dump(mode="json", exclude_none=True)


class BackendState(str, Enum):
    """Lifecycle of one backend within a multiplex session."""

    PENDING = "pending"
    STREAMING = "streaming"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {BackendState.REJECTED, BackendState.COMPLETED, BackendState.FAILED}
)


class CredentialResolution(DomainModel):
    """Outcome of resolving credentials for a set of requested backends."""

    model_config = ConfigDict(frozen=True)

    usable: dict[BackendType, str] = Field(default_factory=dict)
    rejected: dict[BackendType, str] = Field(default_factory=dict)

    @property
    def backends(self) -> list[BackendType]:
        return [*self.rejected, *self.usable]


class BackendDescriptor(DomainModel):
    """Public description of a backend, as listed by the providers endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    name: BackendType
    display_name: str = Field(alias="displayName")
    model: str
    enabled: bool
