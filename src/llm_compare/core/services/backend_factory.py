from __future__ import annotations

import logging

import httpx

# Importing the package registers every connector module
import llm_compare.connectors  # noqa: F401
from llm_compare.connectors.base import LLMBackend
from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.compare import BackendDescriptor
from llm_compare.core.services.backend_registry import BackendRegistry

logger = logging.getLogger(__name__)


class BackendFactory:
    """Factory for creating LLM backends.

    Connectors are cheap to build: they only hold the shared HTTP client and
    their resolved model/base URL, so one is created per producer.
    """

    def __init__(
        self,
        httpx_client: httpx.AsyncClient,
        backend_registry: BackendRegistry,
        config: AppConfig,
    ) -> None:
        """Initialize the backend factory.

        Args:
            httpx_client: HTTP client shared by every connector
            backend_registry: The registry for discovering backends
            config: The application configuration
        """
        self._client = httpx_client
        self._backend_registry = backend_registry
        self._config = config

    def create_backend(self, backend_type: BackendType) -> LLMBackend:
        """Create a backend instance of the specified type.

        Raises:
            ValueError: If the backend type is not registered
        """
        backend_factory = self._backend_registry.get_backend_factory(backend_type)
        return backend_factory(self._client, self._config)

    def is_available(self, backend_type: BackendType) -> bool:
        """Return True if a connector is registered for `backend_type`."""
        return backend_type in self._backend_registry.get_registered_backends()

    def describe_backends(
        self, configured: dict[BackendType, bool]
    ) -> list[BackendDescriptor]:
        """Describe every registered backend in declaration order."""
        registered = set(self._backend_registry.get_registered_backends())
        descriptors: list[BackendDescriptor] = []
        for backend_type in BackendType:
            if backend_type not in registered:
                continue
            backend = self.create_backend(backend_type)
            descriptors.append(
                BackendDescriptor(
                    name=backend_type,
                    display_name=backend_type.display_name,
                    model=backend.model,
                    enabled=configured.get(backend_type, False),
                )
            )
        return descriptors
