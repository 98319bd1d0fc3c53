"""
Client-side helpers for the comparison API.

`CompareClient` talks to a running server over HTTP and yields decoded
`StreamEvent` objects. `ResponseAccumulator` folds those events into one
`BackendResponse` per backend, which is what a UI renders.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncGenerator, Iterable, Mapping
from typing import Any

import httpx
from pydantic import ConfigDict, Field

from llm_compare.core.common.exceptions import (
    InvalidRequestError,
    LLMCompareError,
    ServiceUnavailableError,
)
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.domain.base import DomainModel
from llm_compare.core.domain.compare import BackendDescriptor, StreamEvent
from llm_compare.core.transport.sse import decode_event, iter_sse_events

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8000"


class BackendResponse(DomainModel):
    """What has been received so far from one backend."""

    model_config = ConfigDict(populate_by_name=True)

    provider: BackendType
    content: str = ""
    error: str | None = None
    is_streaming: bool = Field(default=True, alias="isStreaming")

    @property
    def failed(self) -> bool:
        return self.error is not None


class ResponseAccumulator:
    """Folds a session's events into per-backend responses.

    Events arriving after a backend's terminal event are ignored.
    """

    def __init__(self, providers: Iterable[BackendType] = ()) -> None:
        self._responses: dict[BackendType, BackendResponse] = {
            provider: BackendResponse(provider=provider) for provider in providers
        }

    def apply(self, event: StreamEvent) -> BackendResponse:
        response = self._responses.get(event.provider)
        if response is None:
            response = BackendResponse(provider=event.provider)
            self._responses[event.provider] = response
        if not response.is_streaming:
            return response

        response.content += event.chunk
        if event.done:
            response.is_streaming = False
            response.error = event.error
        return response

    @property
    def responses(self) -> dict[BackendType, BackendResponse]:
        return dict(self._responses)

    @property
    def finished(self) -> bool:
        return all(not r.is_streaming for r in self._responses.values())


def _error_from_response(status_code: int, body: bytes) -> LLMCompareError:
    message = f"Server returned HTTP {status_code}"
    details: dict[str, Any] = {"status_code": status_code}
    try:
        parsed = json.loads(body)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        error = parsed["error"]
        message = str(error.get("message") or message)
        if error.get("details") is not None:
            details["details"] = error["details"]
    if status_code == 400:
        return InvalidRequestError(message=message, details=details)
    return LLMCompareError(message, details, status_code=status_code)


class CompareClient:
    """Async HTTP client for a comparison server."""

    def __init__(
        self,
        base_url: str = DEFAULT_SERVER_URL,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 120.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> CompareClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def stream(
        self,
        prompt: str,
        providers: Iterable[BackendType | str],
        api_keys: Mapping[BackendType | str, str] | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Submit a comparison and yield its events as they arrive.

        Raises:
            InvalidRequestError: The server rejected the request.
            ServiceUnavailableError: The server could not be reached.
        """
        payload: dict[str, Any] = {
            "prompt": prompt,
            "providers": [BackendType(p).value for p in providers],
        }
        if api_keys:
            payload["apiKeys"] = {BackendType(k).value: v for k, v in api_keys.items()}

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Submitting comparison to %s for %s",
                self.base_url,
                ", ".join(payload["providers"]),
            )
        request = self._client.build_request(
            "POST", f"{self.base_url}/api/compare", json=payload
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as exc:
            raise ServiceUnavailableError(
                message=f"Could not connect to {self.base_url} ({exc})"
            ) from exc

        try:
            if response.status_code >= 400:
                raise _error_from_response(response.status_code, await response.aread())
            records = iter_sse_events(response.aiter_text())
            async with contextlib.aclosing(records):
                async for record in records:
                    if record.data.strip():
                        yield decode_event(record.data)
        finally:
            await response.aclose()

    async def settings(self) -> dict[BackendType, bool]:
        data = await self._get_json("/api/settings")
        return {
            BackendType(name): bool(value)
            for name, value in data.get("configured", {}).items()
            if name in BackendType.values()
        }

    async def providers(self) -> list[BackendDescriptor]:
        data = await self._get_json("/api/providers")
        return [BackendDescriptor.model_validate(p) for p in data.get("providers", [])]

    async def _get_json(self, path: str) -> dict[str, Any]:
        try:
            response = await self._client.get(f"{self.base_url}{path}")
        except httpx.RequestError as exc:
            raise ServiceUnavailableError(
                message=f"Could not connect to {self.base_url} ({exc})"
            ) from exc
        if response.status_code >= 400:
            raise _error_from_response(response.status_code, response.content)
        data = response.json()
        return data if isinstance(data, dict) else {}
