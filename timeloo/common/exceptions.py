"""Application errors rendered as RFC 7807 ``application/problem+json``.

Balance and overlap outcomes are result objects, not exceptions; the
classes here cover request-level failures only.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://timeloo.app/errors"
PROBLEM_JSON = "application/problem+json"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — no row with that id."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            404,
            "not-found",
            f"{entity_type} Not Found",
            f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — the leave application is in the wrong status for this transition."""

    def __init__(self, detail: str, *, field: Optional[str] = None) -> None:
        super().__init__(
            409,
            "conflict",
            "Conflict",
            detail,
            errors={field: [detail]} if field else None,
        )


class ForbiddenException(AppException):
    """403 — authenticated, but not the owner or not an admin."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(403, "forbidden", "Forbidden", detail)


class ValidationException(AppException):
    """422 — a submission failed the overlap, balance or leave-type rules.

    *errors* maps a field (or ``dates`` / ``balance``) to user-facing messages.
    """

    def __init__(
        self,
        errors: dict[str, list[str]],
        detail: str = "One or more fields failed validation.",
    ) -> None:
        super().__init__(422, "validation-error", "Validation Error", detail, errors=errors)


class UpstreamServiceError(AppException):
    """502 — Slack or Resend answered with an error we cannot recover from."""

    def __init__(self, error_type: str, title: str, detail: str) -> None:
        super().__init__(502, error_type, title, detail)


# ── RFC 7807 body ───────────────────────────────────────────────────

def problem_response(
    request: Request,
    *,
    status: int,
    error_type: str,
    title: str,
    detail: str,
    errors: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{error_type}",
        "title": title,
        "status": status,
        "detail": detail,
        "instance": request.url.path,
    }
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_JSON)


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    logger.info(
        "%s %s → %d %s", request.method, request.url.path, exc.status_code, exc.error_type,
    )
    return problem_response(
        request,
        status=exc.status_code,
        error_type=exc.error_type,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
    )


def _field_name(loc: tuple) -> str:
    # ("body", "start_date") → "start_date"; ("query", "month") → "month"
    if len(loc) > 1:
        return ".".join(str(part) for part in loc[1:])
    return str(loc[0]) if loc else "unknown"


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field_errors.setdefault(_field_name(tuple(err.get("loc", ()))), []).append(
            err.get("msg", "Invalid value")
        )
    return problem_response(
        request,
        status=422,
        error_type="validation-error",
        title="Validation Error",
        detail="Request validation failed.",
        errors=field_errors,
    )


async def _handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    return problem_response(
        request,
        status=429,
        error_type="rate-limited",
        title="Too Many Requests",
        detail=f"Rate limit exceeded: {exc.detail}",
    )


async def _handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return problem_response(
        request,
        status=503,
        error_type="database-unavailable",
        title="Service Unavailable",
        detail="The leave database could not be reached. Please try again.",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)              # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _handle_rate_limit)            # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _handle_database_error)          # type: ignore[arg-type]
