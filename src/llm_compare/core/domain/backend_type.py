"""
Backend identifiers supported by the comparison service.
"""

from __future__ import annotations

from enum import Enum


class BackendType(str, Enum):
    """Closed set of text-generation backends a comparison can fan out to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MISTRAL = "mistral"
    LLAMA = "llama"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def api_key_env_var(self) -> str:
        """Environment variable holding the process-wide default credential."""
        return _API_KEY_ENV_VARS[self]

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


_DISPLAY_NAMES: dict[BackendType, str] = {
    BackendType.OPENAI: "OpenAI",
    BackendType.ANTHROPIC: "Anthropic Claude",
    BackendType.GEMINI: "Google Gemini",
    BackendType.MISTRAL: "Mistral AI",
    BackendType.LLAMA: "Meta LLaMa",
}

_API_KEY_ENV_VARS: dict[BackendType, str] = {
    BackendType.OPENAI: "OPENAI_API_KEY",
    BackendType.ANTHROPIC: "ANTHROPIC_API_KEY",
    BackendType.GEMINI: "GOOGLE_API_KEY",
    BackendType.MISTRAL: "MISTRAL_API_KEY",
    BackendType.LLAMA: "LLAMA_API_KEY",
}
