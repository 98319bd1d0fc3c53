from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

logger = logging.getLogger(__name__)


class AppLifecycle:
    """Handles application lifecycle events.

    The only long-lived resource is the shared httpx client; every comparison
    session is scoped to its request and cleans up after itself.
    """

    def __init__(self, app: FastAPI, httpx_client: httpx.AsyncClient):
        self.app = app
        self.httpx_client = httpx_client

    async def startup(self) -> None:
        logger.info("Starting application lifecycle...")

    async def shutdown(self) -> None:
        logger.info("Shutting down application lifecycle...")
        await self._close_connections()

    async def _close_connections(self) -> None:
        if not self.httpx_client.is_closed:
            await self.httpx_client.aclose()


def lifespan_for(httpx_client: httpx.AsyncClient):  # type: ignore[no-untyped-def]
    """Build a FastAPI lifespan handler that owns `httpx_client`."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        lifecycle = AppLifecycle(app, httpx_client)
        await lifecycle.startup()
        try:
            yield
        finally:
            await lifecycle.shutdown()

    return lifespan
