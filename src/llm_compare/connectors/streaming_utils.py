"""
Utilities for reading streaming responses from backends.

Every connector speaks SSE over a streaming POST; this module owns opening
that request, mapping transport and status failures to domain exceptions,
and closing the response whatever happens to the consumer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from llm_compare.core.common.exceptions import (
    AuthenticationError,
    BackendError,
    ParsingError,
    ServiceUnavailableError,
)
from llm_compare.core.domain.backend_type import BackendType
from llm_compare.core.transport.sse import ServerSentEvent, iter_sse_events

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 500


def _error_message_from_body(body: str) -> str:
    """Pull a human-readable message out of a backend error body."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body[:MAX_ERROR_BODY_CHARS]

    if isinstance(parsed, list) and parsed:
        # Gemini wraps errors in a one-element list
        parsed = parsed[0]
    if isinstance(parsed, dict):
        error = parsed.get("error", parsed)
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if isinstance(parsed.get("message"), str):
            return str(parsed["message"])
    return body[:MAX_ERROR_BODY_CHARS]


async def _raise_for_status(response: httpx.Response, backend: BackendType) -> None:
    status_code = int(response.status_code)
    if status_code < 400:
        return

    try:
        body = (await response.aread()).decode("utf-8", errors="replace")
    except httpx.HTTPError:
        body = ""

    message = f"{backend.display_name} API error ({status_code}): {_error_message_from_body(body)}"
    if logger.isEnabledFor(logging.WARNING):
        logger.warning(
            "HTTP error from %s stream: %s - %s", backend.value, status_code, body
        )

    if status_code in (401, 403):
        raise AuthenticationError(
            message=message, details={"status_code": status_code}, backend=backend.value
        )
    raise BackendError(
        message=message,
        backend_name=backend.value,
        details={"status_code": status_code},
        status_code=status_code,
    )


async def stream_sse_records(
    client: httpx.AsyncClient,
    url: str,
    *,
    payload: dict[str, Any],
    headers: dict[str, str],
    backend: BackendType,
) -> AsyncGenerator[ServerSentEvent, None]:
    """POST `payload` to `url` and yield the SSE records of the reply.

    The response is closed when the generator finishes, fails or is closed
    early by its consumer.
    """
    request = client.build_request("POST", url, json=payload, headers=headers)
    try:
        response = await client.send(request, stream=True)
    except httpx.RequestError as exc:
        if logger.isEnabledFor(logging.WARNING):
            logger.warning("Could not connect to %s: %s", backend.value, exc)
        raise ServiceUnavailableError(
            message=f"Could not connect to {backend.display_name} ({exc})",
            backend=backend.value,
        ) from exc

    try:
        await _raise_for_status(response, backend)
        try:
            async for record in iter_sse_events(response.aiter_text()):
                yield record
        except httpx.HTTPError as exc:
            raise BackendError(
                message=f"{backend.display_name} stream interrupted ({exc})",
                backend_name=backend.value,
            ) from exc
    finally:
        await response.aclose()


def parse_json_record(data: str, backend: BackendType) -> Any:
    """Decode the JSON payload of one SSE record."""
    try:
        return json.loads(data)
    except ValueError as exc:
        raise ParsingError(
            message=f"Malformed {backend.display_name} stream record: {data[:200]!r}",
            details={"backend": backend.value},
        ) from exc


def raise_for_inband_error(record: Any, backend: BackendType) -> None:
    """Raise if a decoded stream record is an error report rather than data."""
    if not isinstance(record, dict) or "error" not in record:
        return
    error = record["error"]
    if isinstance(error, dict):
        message = str(error.get("message") or error.get("type") or error)
    else:
        message = str(error)
    raise BackendError(
        message=f"{backend.display_name} API error: {message}",
        backend_name=backend.value,
    )
