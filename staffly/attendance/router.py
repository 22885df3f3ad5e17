"""Attendance router — check in/out, daily records, HR status overrides.

All endpoints require authentication. HR/admin endpoints enforce role checks.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordOut,
    AttendanceStatusUpdate,
    CheckOutResponse,
)
from staffly.attendance.service import AttendanceService
from staffly.auth.dependencies import get_current_actor, require_privileged
from staffly.auth.schemas import Actor
from staffly.common.constants import AttendanceStatus
from staffly.common.pagination import PaginatedResponse, PaginationParams
from staffly.common.rate_limit import limiter
from staffly.config import settings
from staffly.database import get_db

router = APIRouter(prefix="", tags=["attendance"])


# ── POST /check-in ──────────────────────────────────────────────────

@router.post("/check-in", response_model=AttendanceRecordOut)
@limiter.limit(settings.ATTENDANCE_RATE_LIMIT)
async def check_in(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Open a work session for the current user."""
    return await AttendanceService.check_in(db, actor)


# ── POST /check-out ─────────────────────────────────────────────────

@router.post("/check-out", response_model=CheckOutResponse)
@limiter.limit(settings.ATTENDANCE_RATE_LIMIT)
async def check_out(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Close the current user's open session and recompute the day."""
    return await AttendanceService.check_out(db, actor)


# ── GET /my-attendance ──────────────────────────────────────────────

@router.get("/my-attendance", response_model=AttendanceListResponse)
async def my_attendance(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=2100),
    from_date: Optional[date] = Query(None, description="Start date (inclusive)"),
    to_date: Optional[date] = Query(None, description="End date (inclusive)"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """The caller's records for a month (default current) or a date range."""
    return await AttendanceService.get_records(
        db,
        actor,
        from_date=from_date,
        to_date=to_date,
        month=month,
        year=year,
    )


# ── GET /today ──────────────────────────────────────────────────────

@router.get("/today", response_model=Optional[AttendanceRecordOut])
async def today_attendance(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_today(db, actor)


# ── GET /all (HR) ───────────────────────────────────────────────────

@router.get("/all", response_model=PaginatedResponse[AttendanceRecordOut])
async def all_attendance(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=2100),
    status: Optional[AttendanceStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.list_all(
        db, actor, pagination, month=month, year=year, status=status,
    )


# ── GET /employee/{id} (HR) ─────────────────────────────────────────

@router.get("/employee/{employee_id}", response_model=AttendanceListResponse)
async def employee_attendance(
    employee_id: uuid.UUID,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=2100),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_records(
        db, actor, employee_id, month=month, year=year,
    )


# ── PUT /{record_id}/status (HR) ────────────────────────────────────

@router.put("/{record_id}/status", response_model=AttendanceRecordOut)
async def override_status(
    record_id: uuid.UUID,
    body: AttendanceStatusUpdate,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Override a day's status, e.g. work_from_home or absent."""
    return await AttendanceService.set_status(
        db, record_id, actor, body.status, body.notes,
    )
