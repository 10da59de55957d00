"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://staffops.local/errors"


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
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class InvalidParameterException(AppException):
    """422 — a report parameter is missing or malformed."""

    def __init__(
        self,
        field: str,
        reason: str,
        report_type: Optional[str] = None,
    ) -> None:
        self.field = field
        self.report_type = report_type
        prefix = f"{report_type} report: " if report_type else ""
        super().__init__(
            status_code=422,
            error_type="invalid-parameter",
            title="Invalid Parameter",
            detail=f"{prefix}{field} {reason}",
            errors={field: [reason]},
        )


class AccessDeniedException(AppException):
    """403 — the caller's scope excludes the requested target."""

    def __init__(
        self,
        detail: str = "You do not have permission to view this report.",
        report_type: Optional[str] = None,
    ) -> None:
        self.report_type = report_type
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class UpstreamFetchError(AppException):
    """502 — the record store failed or timed out; no partial report."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        super().__init__(
            status_code=502,
            error_type="upstream-fetch-failure",
            title="Upstream Fetch Failure",
            detail=f"Fetching '{source}' failed: {reason}",
        )


class RenderFailure(AppException):
    """500 — a well-formed report could not be formatted."""

    def __init__(self, report_type: str, fmt: str, reason: str) -> None:
        self.report_type = report_type
        self.fmt = fmt
        super().__init__(
            status_code=500,
            error_type="render-failure",
            title="Render Failure",
            detail=f"Could not render {report_type} report as {fmt}: {reason}",
            errors={"format": [fmt]},
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/invalid-parameter",
            "title": "Invalid Parameter",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
