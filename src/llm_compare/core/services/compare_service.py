from __future__ import annotations

import logging

from llm_compare.core.common.exceptions import InvalidRequestError
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import BackendDescriptor, CompareRequest
from llm_compare.core.services.backend_factory import BackendFactory
from llm_compare.core.services.credential_resolver import CredentialResolver
from llm_compare.core.services.stream_multiplexer import (
    MultiplexSession,
    StreamMultiplexer,
)

logger = logging.getLogger(__name__)


class CompareService:
    """Entry point for comparison requests.

    Gates the requested backends through the credential resolver and hands
    the result to the multiplexer. Holds no per-request state.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        backend_factory: BackendFactory,
        *,
        max_buffered_events: int,
    ) -> None:
        self._resolver = resolver
        self._backend_factory = backend_factory
        self._multiplexer = StreamMultiplexer(
            backend_factory.create_backend, max_buffered_events=max_buffered_events
        )

    def open_session(self, request: CompareRequest) -> MultiplexSession:
        """Resolve credentials and open a multiplex session for `request`.

        Raises:
            InvalidRequestError: If a requested backend has no registered connector
        """
        unavailable = [
            b for b in request.providers if not self._backend_factory.is_available(b)
        ]
        if unavailable:
            raise InvalidRequestError(
                message=f"Backends not available: {', '.join(b.value for b in unavailable)}",
                details={"providers": [b.value for b in unavailable]},
            )
        resolution = self._resolver.resolve(request.providers, request.api_keys)
        return self._multiplexer.open_session(resolution, request.prompt)

    def configured_backends(self) -> dict[BackendType, bool]:
        return self._resolver.configured()

    def describe_backends(self) -> list[BackendDescriptor]:
        return self._backend_factory.describe_backends(self._resolver.configured())
