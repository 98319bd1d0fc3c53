"""
Structured request logging.

This module provides the HTTP middleware that logs requests and responses
through structlog.
"""

from datetime import datetime
from typing import Any

from llm_compare.core.common.logging_utils import get_logger


class LoggingMiddleware:
    """Middleware for logging requests and responses."""

    def __init__(self, request_logging: bool = True, response_logging: bool = False):
        """Initialize the middleware.

        Args:
            request_logging: Whether to log requests
            response_logging: Whether to log responses
        """
        self.request_logging = request_logging
        self.response_logging = response_logging
        self.logger = get_logger("api")

    async def __call__(self, request: Any, call_next: Any) -> Any:
        """Process the request.

        Args:
            request: The request to process
            call_next: The next middleware to call

        Returns:
            The response
        """
        start_time = datetime.now()

        if self.request_logging:
            url = str(request.url)
            method = request.method
            client = request.client.host if request.client else "unknown"

            self.logger.info("Request received", method=method, url=url, client=client)

        try:
            response = await call_next(request)

            # For event streams this is time-to-first-byte, not stream duration
            if self.response_logging:
                duration = datetime.now() - start_time
                self.logger.info(
                    "Response started",
                    status_code=response.status_code,
                    media_type=response.headers.get("content-type"),
                    duration_ms=duration.total_seconds() * 1000,
                )

            return response

        except Exception as e:
            duration = datetime.now() - start_time

            self.logger.error(
                "Request failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=duration.total_seconds() * 1000,
                exc_info=True,
            )
            raise
