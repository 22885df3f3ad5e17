"""Reports router — read-only attendance and leave rollups for HR.

All endpoints require the HR or admin role.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.dependencies import require_privileged
from staffly.auth.schemas import Actor
from staffly.database import get_db
from staffly.reports.schemas import (
    LeaveStatisticsResponse,
    MonthlyReportResponse,
    TodaySummaryResponse,
)
from staffly.reports.service import ReportService

router = APIRouter()


# ── GET /attendance/today-summary ───────────────────────────────────

@router.get("/attendance/today-summary", response_model=TodaySummaryResponse)
async def today_summary(
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Checked in, still working, on leave and absent counts for today."""
    return await ReportService.today_summary(db, actor)


# ── GET /attendance/monthly-report ──────────────────────────────────

@router.get("/attendance/monthly-report", response_model=MonthlyReportResponse)
async def monthly_report(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=1970, le=2100),
    department_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await ReportService.monthly_report(
        db, actor, month=month, year=year, department_id=department_id,
    )


# ── GET /leaves/statistics ──────────────────────────────────────────

@router.get("/leaves/statistics", response_model=LeaveStatisticsResponse)
async def leave_statistics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Application counts by status and approved days per leave type."""
    return await ReportService.leave_statistics(
        db, actor, start_date=start_date, end_date=end_date, department_id=department_id,
    )
