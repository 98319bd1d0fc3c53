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

DONE_MARKER = "[DONE]"


class OpenAICompatibleBackend(LLMBackend):
    """Streams from a `/chat/completions` endpoint speaking the OpenAI SSE dialect.

    Each record is a `chat.completion.chunk`; text lives in
    `choices[0].delta.content` and the stream ends with a literal `[DONE]`.
    """

    def get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def _prepare_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
        }

    @staticmethod
    def _extract_text(record: Any) -> str:
        if not isinstance(record, dict):
            return ""
        choices = record.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content if isinstance(content, str) else ""

    async def stream_text(  # type: ignore[override]
        self, prompt: str, api_key: str
    ) -> AsyncGenerator[str, None]:
        url = f"{self.api_base_url}/chat/completions"
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Streaming from %s with model %s", url, self.model)
        records = stream_sse_records(
            self.client,
            url,
            payload=self._prepare_payload(prompt),
            headers=self.get_headers(api_key),
            backend=self.backend_type,
        )
        async with contextlib.aclosing(records):
            async for record in records:
                data = record.data.strip()
                if data == DONE_MARKER:
                    return
                if not data:
                    continue
                parsed = parse_json_record(data, self.backend_type)
                raise_for_inband_error(parsed, self.backend_type)
                text = self._extract_text(parsed)
                if text:
                    yield text


class OpenAIConnector(OpenAICompatibleBackend):
    """OpenAI Chat Completions API."""

    backend_type = BackendType.OPENAI
    default_model = "gpt-5-nano-2025-08-07"
    default_api_url = "https://api.openai.com/v1"


backend_registry.register_backend(BackendType.OPENAI, OpenAIConnector)
