from __future__ import annotations

import abc
from collections.abc import AsyncIterator

import httpx

from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.domain.backend_type import BackendType


class LLMBackend(abc.ABC):
    """
    Abstract base class for text-generation backends.

    A backend turns one (prompt, credential) pair into a lazy, finite sequence
    of text fragments, or fails exactly once. Callers never see the backend's
    wire format.
    """

    backend_type: BackendType
    default_model: str
    default_api_url: str

    def __init__(self, client: httpx.AsyncClient, config: AppConfig) -> None:
        self.client = client
        self.config = config
        backend_config = config.backend(self.backend_type)
        self.model: str = backend_config.model or self.default_model
        self.api_base_url: str = (backend_config.api_url or self.default_api_url).rstrip(
            "/"
        )

    @property
    def name(self) -> str:
        return self.backend_type.display_name

    @abc.abstractmethod
    def stream_text(self, prompt: str, api_key: str) -> AsyncIterator[str]:
        """
        Stream the backend's answer to `prompt`.

        Args:
            prompt: The user prompt, sent as a single user message.
            api_key: A credential already checked for usability.

        Returns:
            An async iterator of non-empty text fragments in generation order.
            The iterator is not restartable.

        Raises:
            ServiceUnavailableError: The backend could not be reached.
            AuthenticationError: The backend rejected the credential.
            BackendError: Non-success status or an in-band error record.
            ParsingError: The stream could not be decoded.
        """
