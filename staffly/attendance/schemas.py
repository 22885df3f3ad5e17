"""Attendance Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Request            → request bodies (write)
  - *Out / *Response    → response bodies (read)
  - *Stats              → derived, never persisted aggregates
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from staffly.common.constants import AttendanceStatus


# ═════════════════════════════════════════════════════════════════════
# Records and sessions
# ═════════════════════════════════════════════════════════════════════


class AttendanceSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    check_in: datetime
    check_out: Optional[datetime] = None
    duration_minutes: Optional[int] = None


class AttendanceRecordOut(BaseModel):
    """One employee-day with its sessions."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    total_work_minutes: int
    status: AttendanceStatus
    notes: Optional[str] = None
    sessions: list[AttendanceSessionOut] = []


class CheckOutResponse(BaseModel):
    """Response after closing a session."""

    record: AttendanceRecordOut
    total_work_hours: float
    sessions: list[AttendanceSessionOut]


# ═════════════════════════════════════════════════════════════════════
# Period views
# ═════════════════════════════════════════════════════════════════════


class AttendanceStats(BaseModel):
    """Aggregates over the returned records only."""

    total_days: int = 0
    total_hours: float = 0.0
    present_days: int = 0
    absent_days: int = 0
    half_days: int = 0
    wfh_days: int = 0
    average_hours: float = 0.0


class AttendanceListResponse(BaseModel):
    records: list[AttendanceRecordOut]
    stats: AttendanceStats


# ═════════════════════════════════════════════════════════════════════
# HR override
# ═════════════════════════════════════════════════════════════════════


class AttendanceStatusUpdate(BaseModel):
    status: AttendanceStatus
    notes: Optional[str] = Field(None, max_length=1000)
