"""
Application Middleware and Error Rendering for the Video Platform API.

This module handles the cross-cutting concerns every request goes through and
renders every failure into the common envelope
`{"success": false, "message": ..., "statusCode": ..., "error": ...}`.

Key Components:
- `CorrelationMiddleware`: Assigns a correlation ID to each request (reusing
  `X-Correlation-ID` / `X-Request-ID` when the caller sends one), exposes it on
  `request.state` and the response headers, and sets it for log records.
- `PerformanceMiddleware`: Logs request start and completion, adds an
  `X-Process-Time` header and warns about slow requests.
- `ErrorHandlingMiddleware`: Last line of defence; anything that escaped the
  exception handlers becomes a 500 envelope.
- `register_exception_handlers`: Installs handlers that render domain
  exceptions (`VideoAPIException`), FastAPI `HTTPException`s and request
  validation errors (as 400) into the envelope.

Middleware order matters: `CorrelationMiddleware` must be outermost so the ID
is available to everything below it.
"""

import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging_config import set_correlation_id, get_logger
from .exceptions import VideoAPIException
from .responses import error_body

logger = get_logger("core.middleware")

SLOW_REQUEST_SECONDS = 1.0


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn unexpected exceptions into a 500 envelope"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content=error_body(
                    "An unexpected error occurred",
                    500,
                    "INTERNAL_ERROR",
                    getattr(request.state, "correlation_id", None),
                ),
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for request timing and logging"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            },
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            },
        )

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": round(process_time * 1000, 2),
                    "threshold_exceeded": True,
                },
            )

        return response


async def handle_api_exception(request: Request, exc: VideoAPIException) -> JSONResponse:
    level_log = logger.error if exc.status_code >= 500 else logger.warning
    level_log(
        f"Application error: {exc.message}",
        extra={
            "error_type": type(exc).__name__,
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            exc.message,
            exc.status_code,
            exc.error_code,
            getattr(request.state, "correlation_id", None),
        ),
    )


async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    logger.warning(
        f"HTTP exception: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            str(exc.detail),
            exc.status_code,
            f"HTTP_{exc.status_code}",
            getattr(request.state, "correlation_id", None),
        ),
        headers=getattr(exc, "headers", None),
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"Invalid value for '{location}': {first.get('msg')}" if location else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_body(
            message,
            400,
            "VALIDATION_ERROR",
            getattr(request.state, "correlation_id", None),
        ),
    )


def register_exception_handlers(app: FastAPI):
    """Render every handled failure into the common envelope"""
    app.add_exception_handler(VideoAPIException, handle_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
