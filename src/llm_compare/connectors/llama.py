"""
LLaMa backend served through OpenRouter's OpenAI-compatible API.
"""

from __future__ import annotations

from llm_compare.connectors.openai import OpenAICompatibleBackend
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.services.backend_registry import backend_registry


class LlamaBackend(OpenAICompatibleBackend):
    """Meta LLaMa models via OpenRouter."""

    backend_type = BackendType.LLAMA
    default_model = "meta-llama/llama-3.3-70b-instruct"
    default_api_url = "https://openrouter.ai/api/v1"

    def get_headers(self, api_key: str) -> dict[str, str]:
        headers = super().get_headers(api_key)
        # OpenRouter attributes traffic to the calling app through these
        headers["HTTP-Referer"] = self.config.app_site_url
        headers["X-Title"] = self.config.app_x_title
        return headers


backend_registry.register_backend(BackendType.LLAMA, LlamaBackend)
