"""
Custom exception hierarchy for the Watchguard Feed API.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class WatchguardException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class MalformedWatchEventError(WatchguardException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "MALFORMED_WATCH_EVENT"

    def __init__(self, reason: str, video_id: str | None = None):
        super().__init__(
            message=f"Malformed watch event: {reason}",
            details={"video_id": video_id} if video_id else {},
        )


class OutOfOrderEventError(WatchguardException):
    http_status = status.HTTP_409_CONFLICT
    code = "OUT_OF_ORDER_EVENT"

    def __init__(self, user_id: str, occurred_at: datetime, watermark: datetime):
        super().__init__(
            message=(
                f"Event for user {user_id} at {occurred_at.isoformat()} is older "
                f"than the last accepted event ({watermark.isoformat()})."
            ),
            details={
                "user_id": user_id,
                "occurred_at": occurred_at.isoformat(),
                "last_event_at": watermark.isoformat(),
            },
        )


class InvalidParentalConfigError(WatchguardException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_PARENTAL_CONFIG"

    def __init__(self, reason: str, short: float, medium: float, long: float):
        super().__init__(
            message=f"Invalid parental break configuration: {reason}",
            details={"short": short, "medium": medium, "long": long},
        )


class BatchTooLargeError(WatchguardException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "BATCH_TOO_LARGE"

    def __init__(self, max_items: int, received: int):
        super().__init__(
            message=f"Batch exceeds maximum size of {max_items} items. Received {received}.",
            details={"max_items": max_items, "received": received},
        )


class CollaboratorUnavailableError(WatchguardException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "COLLABORATOR_UNAVAILABLE"

    def __init__(self, collaborator: str, reason: str | None = None):
        super().__init__(
            message=f"{collaborator} collaborator is unavailable.",
            details={"collaborator": collaborator, "reason": reason} if reason else {"collaborator": collaborator},
        )


class EventIngestionError(WatchguardException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INGESTION_ERROR"

    def __init__(self, message: str, video_id: str | None = None):
        super().__init__(
            message=message,
            details={"video_id": video_id} if video_id else {},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def watchguard_exception_handler(
    request: Request, exc: WatchguardException
) -> JSONResponse:
    logger.warning("[api] %s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    logger.warning(
        "[api] rejected %s %s errors=%s",
        request.method,
        request.url.path,
        [e["field"] for e in field_errors],
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[api] unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
