from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Any

from llm_compare.connectors.base import LLMBackend
from llm_compare.connectors.streaming_utils import (
    parse_json_record,
    raise_for_inband_error,
    stream_sse_records,
)
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.services.backend_registry import backend_registry

logger = logging.getLogger(__name__)

GEMINI_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiBackend(LLMBackend):
    """Google Gemini via `streamGenerateContent` in SSE mode (`alt=sse`)."""

    backend_type = BackendType.GEMINI
    default_model = "gemini-2.0-flash-exp"
    default_api_url = GEMINI_DEFAULT_BASE_URL

    def get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    def _prepare_payload(self, prompt: str) -> dict[str, Any]:
        return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

    def _stream_url(self) -> str:
        model = self.model
        if not model.startswith("models/"):
            model = f"models/{model}"
        return f"{self.api_base_url}/{model}:streamGenerateContent?alt=sse"

    @staticmethod
    def _extract_text(record: Any) -> str:
        if not isinstance(record, dict):
            return ""
        candidates = record.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        # Thought parts are reasoning traces, not answer text
        return "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict)
            and isinstance(part.get("text"), str)
            and not part.get("thought")
        )

    async def stream_text(  # type: ignore[override]
        self, prompt: str, api_key: str
    ) -> AsyncGenerator[str, None]:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Streaming from Gemini with model %s", self.model)
        records = stream_sse_records(
            self.client,
            self._stream_url(),
            payload=self._prepare_payload(prompt),
            headers=self.get_headers(api_key),
            backend=self.backend_type,
        )
        async with contextlib.aclosing(records):
            async for record in records:
                if not record.data.strip():
                    continue
                parsed = parse_json_record(record.data, self.backend_type)
                raise_for_inband_error(parsed, self.backend_type)
                text = self._extract_text(parsed)
                if text:
                    yield text


backend_registry.register_backend(BackendType.GEMINI, GeminiBackend)
