"""
Error type and exception handlers shared by every router.

All failures reach the client as ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog_backend.config import get_settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error with an HTTP status code and a client-facing message."""

    def __init__(self, status_code: int, message: str = "Something went wrong"):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def api_response(status_code: int, message: str, data: Any = None) -> dict:
    """Success envelope used by every endpoint."""
    return {
        "statusCode": status_code,
        "success": status_code < 400,
        "message": message,
        "data": data,
    }


def _error_payload(message: str, exc: Exception | None = None) -> dict:
    payload = {"success": False, "message": message}
    if exc is not None and not get_settings().is_production:
        payload["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return payload


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "ApiError %s in %s %s: %s",
            exc.status_code,
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code, content=_error_payload(exc.message, exc)
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(
        status_code=400, content={"success": False, "message": message}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception in %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500, content=_error_payload("Internal Server Error", exc)
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers on ``app``."""
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
