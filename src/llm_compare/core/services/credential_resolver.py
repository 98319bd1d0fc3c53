"""
Credential gating for a comparison run.

Decides, per requested backend, which credential (if any) a producer will be
started with. Caller-supplied overrides win over the process-wide defaults,
but only when they are usable.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from llm_compare.core.config.app_config import DefaultCredentials
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import CredentialResolution

logger = logging.getLogger(__name__)

CREDENTIAL_NOT_CONFIGURED = "credential not configured"

# Template values shipped in example env files, e.g. "your_openai_key_here"
PLACEHOLDER_MARKER = "your_"
PLACEHOLDER_SUFFIX = "_here"


def is_usable_credential(value: str | None) -> bool:
    """Return True if `value` looks like a real credential."""
    if not value or not value.strip():
        return False
    if PLACEHOLDER_MARKER in value:
        return False
    return not value.endswith(PLACEHOLDER_SUFFIX)


class CredentialResolver:
    """Resolves a credential per backend from overrides and configured defaults."""

    def __init__(self, defaults: DefaultCredentials) -> None:
        self._defaults = defaults

    def resolve(
        self,
        requested_backends: Iterable[BackendType],
        overrides: Mapping[BackendType, str] | None = None,
    ) -> CredentialResolution:
        overrides = overrides or {}
        usable: dict[BackendType, str] = {}
        rejected: dict[BackendType, str] = {}

        for backend in requested_backends:
            override = overrides.get(backend)
            if is_usable_credential(override):
                usable[backend] = override  # type: ignore[assignment]
                continue

            default = self._defaults.get(backend)
            if is_usable_credential(default):
                usable[backend] = default  # type: ignore[assignment]
                continue

            rejected[backend] = CREDENTIAL_NOT_CONFIGURED

        if rejected and logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Rejected backends without usable credentials: %s",
                ", ".join(b.value for b in rejected),
            )
        return CredentialResolution(usable=usable, rejected=rejected)

    def configured(self) -> dict[BackendType, bool]:
        """Report, per backend, whether a usable default credential exists."""
        return {
            backend: is_usable_credential(self._defaults.get(backend))
            for backend in BackendType
        }
