"""Reports Pydantic v2 schemas — response models for read-only rollups."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


# ═════════════════════════════════════════════════════════════════════
# GET /attendance/today-summary
# ═════════════════════════════════════════════════════════════════════


class TodaySummaryResponse(BaseModel):
    """Organisation-wide attendance snapshot for one day."""

    date: date
    total_employees: int = Field(..., description="Active employees count")
    checked_in: int = Field(..., description="Employees with a record today")
    currently_working: int = Field(..., description="Employees with an open session")
    checked_out: int = Field(..., description="Employees with a record and no open session")
    half_day: int = 0
    on_leave: int = Field(0, description="Employees on approved leave today")
    absent: int = Field(0, description="Active, no record, not on leave; 0 on a weekend day")


# ═════════════════════════════════════════════════════════════════════
# GET /attendance/monthly-report
# ═════════════════════════════════════════════════════════════════════


class MonthlyReportRow(BaseModel):
    employee_id: uuid.UUID
    employee_code: str
    employee_name: str
    department_id: Optional[uuid.UUID] = None
    working_days: int
    present_days: int
    half_days: int
    wfh_days: int
    leave_days: int = 0
    absent_days: int
    total_hours: float
    average_hours: float


class MonthlyReportResponse(BaseModel):
    month: int
    year: int
    working_days: int
    rows: list[MonthlyReportRow]


# ═════════════════════════════════════════════════════════════════════
# GET /leaves/statistics
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeStat(BaseModel):
    leave_type: str
    count: int = 0
    days: int = 0


class LeaveStatisticsResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_applications: int = 0
    by_status: dict[str, int]
    approved_by_type: list[LeaveTypeStat]
