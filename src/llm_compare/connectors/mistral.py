from __future__ import annotations

from llm_compare.connectors.openai import OpenAICompatibleBackend
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.services.backend_registry import backend_registry


class MistralBackend(OpenAICompatibleBackend):
    """Mistral's chat endpoint, which streams OpenAI-style chunks."""

    backend_type = BackendType.MISTRAL
    default_model = "mistral-large-latest"
    default_api_url = "https://api.mistral.ai/v1"


backend_registry.register_backend(BackendType.MISTRAL, MistralBackend)
