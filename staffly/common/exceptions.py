"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://staffly.app/errors"


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


class ForbiddenException(AppException):
    """403 — role or ownership check failed."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class StateConflictException(AppException):
    """409 — transition attempted from a state that does not permit it."""

    def __init__(self, entity_type: str, current: Any, action: str) -> None:
        current_value = getattr(current, "value", current)
        super().__init__(
            status_code=409,
            error_type="state-conflict",
            title="State Conflict",
            detail=f"Cannot {action} a {entity_type} in '{current_value}' state.",
            errors={"status": [str(current_value)]},
        )
        self.current = current_value


# ── Leave ledger ────────────────────────────────────────────────────

class UnknownLeaveTypeException(AppException):
    """422 — the employee has no balance row for the leave type."""

    def __init__(self, leave_type: Any) -> None:
        value = getattr(leave_type, "value", leave_type)
        super().__init__(
            status_code=422,
            error_type="unknown-leave-type",
            title="Unknown Leave Type",
            detail=f"No leave balance is configured for leave type '{value}'.",
            errors={"leave_type": [f"'{value}' is not in the employee's balance table."]},
        )


class InsufficientBalanceException(AppException):
    """409 — the change would drive ``used`` or ``available`` negative."""

    def __init__(
        self,
        leave_type: Any,
        *,
        requested: int,
        available: Optional[int] = None,
    ) -> None:
        value = getattr(leave_type, "value", leave_type)
        if available is None:
            detail = f"Adjusting '{value}' leave by {requested} day(s) is not possible."
        else:
            detail = (
                f"Insufficient '{value}' leave balance: "
                f"{available} day(s) available, {requested} requested."
            )
        super().__init__(
            status_code=409,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=detail,
            errors={"leave_type": [detail]},
        )
        self.requested = requested
        self.available = available


# ── Attendance sessions ─────────────────────────────────────────────

class AlreadyCheckedInException(AppException):
    """409 — today's record already has an open session."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="already-checked-in",
            title="Already Checked In",
            detail="You are already checked in. Check out before checking in again.",
        )


class NoOpenSessionException(AppException):
    """409 — check-out without a matching open session."""

    def __init__(self) -> None:
        super().__init__(
            status_code=409,
            error_type="no-open-session",
            title="No Open Session",
            detail="There is no open check-in session for today.",
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
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
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
