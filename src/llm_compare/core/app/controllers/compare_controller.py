"""
Compare Controller

Handles the comparison stream and the read-only settings endpoints.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from llm_compare.core.domain.compare import CompareRequest
from llm_compare.core.services.compare_service import CompareService
from llm_compare.core.transport.sse import SSE_HEADERS, SSE_MEDIA_TYPE, encode_stream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["compare"])


class EventStreamResponse(StreamingResponse):
    """Streaming response that closes its body iterator on every exit.

    Under ASGI spec 2.4 a client disconnect surfaces as an error from `send`
    instead of an ``http.disconnect`` message, and the base class then leaves
    the iterator suspended.
    """

    media_type = SSE_MEDIA_TYPE

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            close = getattr(self.body_iterator, "aclose", None)
            if callable(close):
                await close()


class CompareController:
    """Controller for comparison endpoints."""

    def __init__(self, compare_service: CompareService) -> None:
        self.compare_service = compare_service

    def compare(self, request: CompareRequest) -> EventStreamResponse:
        """Start a comparison and stream its events as server-sent events.

        The request has already been validated; from here on every failure is
        reported per backend inside the stream.
        """
        session = self.compare_service.open_session(request)
        return EventStreamResponse(
            encode_stream(session.events()), headers=dict(SSE_HEADERS)
        )

    def settings(self) -> dict[str, Any]:
        configured = self.compare_service.configured_backends()
        return {"configured": {backend.value: ok for backend, ok in configured.items()}}

    def providers(self) -> dict[str, Any]:
        descriptors = self.compare_service.describe_backends()
        return {
            "providers": [
                d.model_dump(mode="json", by_alias=True) for d in descriptors
            ]
        }


def get_compare_controller(request: Request) -> CompareController:
    """Build the controller around the service stored on the application."""
    return CompareController(request.app.state.compare_service)


@router.post("/api/compare")
async def compare(
    compare_request: CompareRequest,
    controller: CompareController = Depends(get_compare_controller),
) -> EventStreamResponse:
    if logger.isEnabledFor(logging.INFO):
        logger.info(
            "Compare request for providers: %s",
            ", ".join(p.value for p in compare_request.providers),
        )
    return controller.compare(compare_request)


@router.get("/api/settings")
async def settings(
    controller: CompareController = Depends(get_compare_controller),
) -> dict[str, Any]:
    return controller.settings()


@router.get("/api/providers")
async def providers(
    controller: CompareController = Depends(get_compare_controller),
) -> dict[str, Any]:
    return controller.providers()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
