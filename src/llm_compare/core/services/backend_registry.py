from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from llm_compare.core.domain.backend_type import BackendType

if TYPE_CHECKING:
    from llm_compare.connectors.base import LLMBackend


class BackendRegistry:
    """A registry for dynamically discovering and managing LLM backend factories."""

    def __init__(self) -> None:
        self._factories: dict[BackendType, Callable[..., LLMBackend]] = {}

    def register_backend(
        self, name: BackendType | str, factory: Callable[..., LLMBackend]
    ) -> None:
        """Registers a backend factory with the given name.

        Args:
            name: The backend identifier (e.g., "openai", "gemini").
            factory: A callable that can create an instance of LLMBackend.
        """
        try:
            backend = BackendType(name)
        except ValueError:
            raise ValueError(f"Unknown backend name: {name!r}") from None
        if not callable(factory):
            raise TypeError("Backend factory must be a callable.")
        if backend in self._factories:
            logging.warning(
                f"Backend '{backend.value}' is already registered. Skipping registration."
            )
            return
        self._factories[backend] = factory

    def get_backend_factory(self, name: BackendType | str) -> Callable[..., LLMBackend]:
        """Retrieves the factory for a registered backend.

        Raises:
            ValueError: If the backend name is not registered.
        """
        factory = self._factories.get(BackendType(name))
        if not factory:
            raise ValueError(f"Backend '{BackendType(name).value}' is not registered.")
        return factory

    def get_registered_backends(self) -> list[BackendType]:
        """Returns the identifiers of all registered backends."""
        return list(self._factories.keys())


# Global instance of the registry
backend_registry = BackendRegistry()
