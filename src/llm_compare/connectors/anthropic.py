"""
Anthropic backend connector - streams text from the Anthropic Messages API.
"""

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
from llm_compare.core.common.exceptions import BackendError
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.services.backend_registry import backend_registry

logger = logging.getLogger(__name__)


ANTHROPIC_VERSION_HEADER = "2023-06-01"
ANTHROPIC_DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_MAX_TOKENS = 4096


class AnthropicBackend(LLMBackend):
    """LLMBackend implementation for Anthropic's Messages API."""

    backend_type = BackendType.ANTHROPIC
    default_model = "claude-3-5-sonnet-20241022"
    default_api_url = ANTHROPIC_DEFAULT_BASE_URL

    def get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION_HEADER,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    def _prepare_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
        }

    async def stream_text(  # type: ignore[override]
        self, prompt: str, api_key: str
    ) -> AsyncGenerator[str, None]:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Streaming from Anthropic with model %s", self.model)
        records = stream_sse_records(
            self.client,
            f"{self.api_base_url}/messages",
            payload=self._prepare_payload(prompt),
            headers=self.get_headers(api_key),
            backend=self.backend_type,
        )
        async with contextlib.aclosing(records):
            async for record in records:
                if not record.data.strip():
                    continue
                parsed = parse_json_record(record.data, self.backend_type)
                # The event name is repeated as "type" inside the payload
                event_type = record.event or (
                    parsed.get("type") if isinstance(parsed, dict) else None
                )

                if event_type == "error":
                    raise_for_inband_error(parsed, self.backend_type)
                    raise BackendError(
                        message=f"{self.name} API error: {record.data[:200]}",
                        backend_name=self.backend_type.value,
                    )
                if event_type == "message_stop":
                    return
                if event_type != "content_block_delta":
                    # message_start, ping, content_block_start/stop, message_delta
                    continue

                delta = parsed.get("delta") if isinstance(parsed, dict) else None
                if isinstance(delta, dict) and delta.get("type") == "text_delta":
                    text = delta.get("text")
                    if isinstance(text, str) and text:
                        yield text


backend_registry.register_backend(BackendType.ANTHROPIC, AnthropicBackend)
