"""
Custom Exception Classes for the Video Platform API.

This module defines the exception hierarchy used by the service layer. Every
operation reports failure by raising one of these exceptions; the HTTP layer
maps them to the failure envelope (`{"success": false, "message": ...,
"statusCode": ...}`) in a single place.

Key Components:
- `VideoAPIException`: The base exception class. It carries a message, an
  error code, optional details and the HTTP status code it maps to.
- Specific Exception Classes: `ValidationError` (400), `AuthenticationError`
  (401), `NotFoundError` (404), `ConflictError` (409) and `InternalError`
  (500). Services never raise bare `HTTPException`s.
- `to_http_exception`: Maps any exception to FastAPI's `HTTPException`, so
  callers outside the exception handlers (tests, scripts) get the same status
  code mapping.

Architectural Design:
- Hierarchy of Exceptions: Handlers can catch `VideoAPIException` to deal with
  every domain error at once, or a subclass to react to one condition.
- Status on the Class: The HTTP status lives on each class (`status_code`), so
  the mapping cannot drift away from the exception definitions.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class VideoAPIException(Exception):
    """Base exception class for the Video Platform API"""

    status_code = 500
    default_error_code = "VIDEO_API_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(VideoAPIException):
    """Raised when input is missing or malformed"""

    status_code = 400
    default_error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class AuthenticationError(VideoAPIException):
    """Raised for bad credentials and invalid, expired or reused tokens"""

    status_code = 401
    default_error_code = "AUTHENTICATION_ERROR"


class NotFoundError(VideoAPIException):
    """Raised when a referenced record does not exist"""

    status_code = 404
    default_error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        super().__init__(
            message,
            details={"resource": resource, "identifier": identifier}
            if identifier
            else {"resource": resource},
        )


class ConflictError(VideoAPIException):
    """Raised when a uniqueness rule would be violated"""

    status_code = 409
    default_error_code = "CONFLICT"


class InternalError(VideoAPIException):
    """Raised when a collaborator (database, token signer, storage) fails"""

    status_code = 500
    default_error_code = "INTERNAL_ERROR"


def to_http_exception(exc: Exception) -> HTTPException:
    """Convert any exception to a FastAPI HTTPException"""
    if isinstance(exc, VideoAPIException):
        return HTTPException(
            status_code=exc.status_code,
            detail={
                "error": exc.error_code,
                "message": exc.message,
                "status_code": exc.status_code,
            },
        )

    return HTTPException(
        status_code=500,
        detail={
            "error": "INTERNAL_SERVER_ERROR",
            "message": str(exc),
            "status_code": 500,
        },
    )
