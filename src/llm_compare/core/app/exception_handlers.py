from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.responses import JSONResponse

from llm_compare.core.common.exceptions import LLMCompareError

logger = logging.getLogger(__name__)


async def llm_compare_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render domain errors with their own status code."""
    if not isinstance(exc, LLMCompareError):
        raise exc
    logger.warning("Request failed: %s", exc.message)
    return JSONResponse(jsonable_encoder(exc.to_dict()), status_code=exc.status_code)


async def request_validation_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Reject invalid comparison requests as 400 Bad Request.

    Nothing has been started when this runs, so no events are ever sent.
    """
    details = exc.errors() if isinstance(exc, RequestValidationError) else None
    logger.warning("Rejected invalid request to %s: %s", request.url.path, details)
    return JSONResponse(
        {
            "error": {
                "message": "Invalid request",
                "type": "ValidationError",
                "details": jsonable_encoder(details),
            }
        },
        status_code=400,
    )
