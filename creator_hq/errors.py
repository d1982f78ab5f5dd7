"""
Error taxonomy shared by every route.

All errors render as {"error": <message>} so callers can tell a validation
failure (400) from an admission failure (429) from an upstream failure (5xx)
by status code alone.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CreatorHQError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_content(self) -> dict:
        return {"error": self.message}


class ValidationError(CreatorHQError):
    """Malformed or out-of-policy input; user-correctable"""

    status_code = 400

    def __init__(self, message: str = "Invalid data", fields: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}

    def to_content(self) -> dict:
        content = super().to_content()
        if self.fields:
            content["fields"] = self.fields
        return content


class AuthError(CreatorHQError):
    status_code = 401


class ForbiddenError(CreatorHQError):
    status_code = 403


class NotFoundError(CreatorHQError):
    status_code = 404


class SlotUnavailableError(CreatorHQError):
    status_code = 409


class ConflictError(CreatorHQError):
    """Request clashes with an earlier one, e.g. a reused idempotency key"""

    status_code = 409


class AdmissionError(CreatorHQError):
    """Rate limit exceeded; retry after a delay"""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int = 0):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamError(CreatorHQError):
    """Store or provider failure. The message is always safe to show."""

    status_code = 500


async def creator_hq_error_handler(request: Request, exc: CreatorHQError) -> JSONResponse:
    headers = None
    if isinstance(exc, AdmissionError):
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, ValidationError):
        logger.info(f"Validation failed for {request.url.path}: {sorted(exc.fields)}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_content(), headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render framework-level validation failures in the same 400 shape"""
    fields: dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        fields.setdefault(".".join(loc) or "body", message)
    return await creator_hq_error_handler(request, ValidationError("Invalid data", fields=fields))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CreatorHQError, creator_hq_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
