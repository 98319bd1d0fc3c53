"""
Application factory for creating the FastAPI application.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from llm_compare.core.app.controllers.compare_controller import router as compare_router
from llm_compare.core.app.exception_handlers import (
    llm_compare_error_handler,
    request_validation_error_handler,
)
from llm_compare.core.app.lifecycle import lifespan_for
from llm_compare.core.common.exceptions import LLMCompareError
from llm_compare.core.common.logging import LoggingMiddleware
from llm_compare.core.config.app_config import AppConfig
from llm_compare.core.services.backend_factory import BackendFactory
from llm_compare.core.services.backend_registry import (
    BackendRegistry,
    backend_registry as default_backend_registry,
)
from llm_compare.core.services.compare_service import CompareService
from llm_compare.core.services.credential_resolver import CredentialResolver

logger = logging.getLogger(__name__)


def build_httpx_client(config: AppConfig) -> httpx.AsyncClient:
    """Create the client shared by all backend connectors.

    The read timeout bounds the gap between two network reads, not the total
    length of a stream.
    """
    timeout = httpx.Timeout(config.proxy_timeout, connect=config.connect_timeout)
    return httpx.AsyncClient(timeout=timeout)


def build_app(
    config: AppConfig | dict[str, Any] | None = None,
    *,
    httpx_client: httpx.AsyncClient | None = None,
    backend_registry: BackendRegistry | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: The application configuration (AppConfig object or dict);
            loaded from the environment when omitted
        httpx_client: Optional shared client; one is created from `config`
            otherwise
        backend_registry: Registry of connectors; the global one by default

    Returns:
        The FastAPI ASGI application instance.
    """
    if config is None:
        config = AppConfig.from_env()
    elif isinstance(config, dict):
        config = AppConfig(**config)

    client = httpx_client if httpx_client is not None else build_httpx_client(config)
    registry = backend_registry if backend_registry is not None else default_backend_registry

    # Credentials are captured once; later environment changes are not seen
    resolver = CredentialResolver(config.default_credentials())
    backend_factory = BackendFactory(client, registry, config)
    compare_service = CompareService(
        resolver, backend_factory, max_buffered_events=config.max_buffered_events
    )

    app = FastAPI(title="LLM Compare", lifespan=lifespan_for(client))
    app.state.config = config
    app.state.httpx_client = client
    app.state.backend_factory = backend_factory
    app.state.compare_service = compare_service

    app.include_router(compare_router)

    app.add_exception_handler(LLMCompareError, llm_compare_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    if config.logging.request_logging or config.logging.response_logging:
        app.middleware("http")(
            LoggingMiddleware(
                request_logging=config.logging.request_logging,
                response_logging=config.logging.response_logging,
            )
        )

    logger.info(
        "Application built with backends: %s",
        ", ".join(b.value for b in registry.get_registered_backends()),
    )
    return app
