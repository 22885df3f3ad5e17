"""Leave router — apply, balances, approve/reject, cancel, comments.

All endpoints require authentication. HR/admin endpoints enforce role checks.
"""


import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.dependencies import get_current_actor, require_privileged
from staffly.auth.schemas import Actor
from staffly.common.constants import LeaveStatus, LeaveType
from staffly.common.pagination import PaginatedResponse, PaginationParams
from staffly.database import get_db
from staffly.leave.ledger import LeaveLedger
from staffly.leave.schemas import (
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveBalanceOut,
    LeaveBalanceSummary,
    LeaveCancelResponse,
    LeaveCommentCreate,
    LeaveRejectRequest,
)
from staffly.leave.service import LeaveService
from staffly.reports.service import ReportService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveApplicationOut, status_code=201)
async def apply_leave(
    body: LeaveApplicationCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Blocked when the balance cannot cover the days."""
    return await LeaveService.apply(
        db,
        actor,
        leave_type=body.leave_type,
        from_date=body.from_date,
        to_date=body.to_date,
        reason=body.reason,
    )


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=list[LeaveApplicationOut])
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=2100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """The caller's applications, newest first."""
    return await LeaveService.list_my_applications(db, actor, status=status, year=year)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveBalanceSummary)
async def my_balance(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """The caller's balances plus approved days per leave type this year."""
    balances = await LeaveLedger.list_balances(db, actor.id)
    used = await ReportService.used_this_year(db, actor.id)
    return LeaveBalanceSummary(
        balances=[LeaveBalanceOut.model_validate(b) for b in balances],
        used_this_year=used,
    )


# ── GET /all (HR) ───────────────────────────────────────────────────

@router.get("/all", response_model=PaginatedResponse[LeaveApplicationOut])
async def all_leaves(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_applications(
        db,
        actor,
        pagination,
        status=status,
        leave_type=leave_type,
        department_id=department_id,
        employee_id=employee_id,
    )


# ── GET /pending (HR) ───────────────────────────────────────────────

@router.get("/pending", response_model=PaginatedResponse[LeaveApplicationOut])
async def pending_leaves(
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Pending applications, oldest first."""
    return await LeaveService.list_applications(
        db, actor, pagination, status=LeaveStatus.pending, oldest_first=True,
    )


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{application_id}", response_model=LeaveApplicationOut)
async def get_leave(
    application_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_application(db, application_id, actor)


# ── PUT /{id}/approve (HR) ──────────────────────────────────────────

@router.put("/{application_id}/approve", response_model=LeaveApplicationOut)
async def approve_leave(
    application_id: uuid.UUID,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.approve(db, application_id, actor)


# ── PUT /{id}/reject (HR) ───────────────────────────────────────────

@router.put("/{application_id}/reject", response_model=LeaveApplicationOut)
async def reject_leave(
    application_id: uuid.UUID,
    body: LeaveRejectRequest,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.reject(db, application_id, actor, body.reason)


# ── DELETE /{id}/cancel ─────────────────────────────────────────────

@router.delete(
    "/{application_id}/cancel",
    response_model=Union[LeaveApplicationOut, LeaveCancelResponse],
)
async def cancel_leave(
    application_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Delete a pending application, or cancel an approved one and restore its days."""
    application = await LeaveService.cancel(db, application_id, actor)
    if application is None:
        return LeaveCancelResponse(deleted=True, id=application_id)
    return LeaveApplicationOut.model_validate(application)


# ── POST /{id}/comment ──────────────────────────────────────────────

@router.post("/{application_id}/comment", response_model=LeaveApplicationOut)
async def comment_on_leave(
    application_id: uuid.UUID,
    body: LeaveCommentCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.add_comment(db, application_id, actor, body.text)
