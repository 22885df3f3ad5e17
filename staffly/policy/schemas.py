"""Policy Pydantic v2 schemas — request / response validation."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from staffly.common.constants import WEEKDAY_NAMES, LeaveType, PolicyCategory


# ═════════════════════════════════════════════════════════════════════
# Leave-type quota rows
# ═════════════════════════════════════════════════════════════════════


class PolicyLeaveTypeIn(BaseModel):
    """One quota row; also the body of PUT /policies/{id}/leave-type."""

    leave_type: LeaveType
    annual_quota: int = Field(..., ge=0, le=366)
    carry_forward: bool = False
    max_carry_forward: int = Field(0, ge=0, le=366)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("leave_type", mode="before")
    @classmethod
    def _lower_leave_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class PolicyLeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type: LeaveType
    annual_quota: int
    carry_forward: bool
    max_carry_forward: int
    description: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Policy
# ═════════════════════════════════════════════════════════════════════


class PolicyCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: PolicyCategory
    working_hours_per_day: Decimal = Field(Decimal("8"), gt=0, le=24)
    working_days_per_week: int = Field(5, ge=1, le=7)
    weekend_days: list[str] = Field(default_factory=lambda: ["Saturday", "Sunday"])
    grace_time_minutes: int = Field(15, ge=0, le=240)
    half_day_threshold_hours: Decimal = Field(Decimal("4"), ge=0, le=24)
    effective_from: date
    effective_to: Optional[date] = None
    is_active: bool = True
    leave_types: list[PolicyLeaveTypeIn] = []

    @field_validator("weekend_days")
    @classmethod
    def _known_weekdays(cls, value: list[str]) -> list[str]:
        normalised = [day.strip().capitalize() for day in value]
        unknown = [day for day in normalised if day not in WEEKDAY_NAMES]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return normalised

    @field_validator("leave_types")
    @classmethod
    def _unique_leave_types(cls, value: list[PolicyLeaveTypeIn]) -> list[PolicyLeaveTypeIn]:
        seen = [row.leave_type for row in value]
        if len(seen) != len(set(seen)):
            raise ValueError("Each leave type may appear only once.")
        return value


class PolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: Optional[str] = None
    category: PolicyCategory
    working_hours_per_day: Decimal
    working_days_per_week: int
    weekend_days: list[str]
    grace_time_minutes: int
    half_day_threshold_hours: Decimal
    effective_from: date
    effective_to: Optional[date] = None
    is_active: bool
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    leave_types: list[PolicyLeaveTypeOut] = []


class AttendanceParameters(BaseModel):
    """Attendance knobs resolved from the active policy (or settings defaults)."""

    working_hours_per_day: float
    half_day_threshold_hours: float
    grace_time_minutes: int
    weekend_days: list[str]


# ═════════════════════════════════════════════════════════════════════
# Batch application
# ═════════════════════════════════════════════════════════════════════


class EmployeeInitError(BaseModel):
    employee_id: uuid.UUID
    error: str


class PolicyApplyResult(BaseModel):
    """Per-employee tally of a batch balance initialisation."""

    policy_id: uuid.UUID
    success_count: int = 0
    error_count: int = 0
    errors: list[EmployeeInitError] = []
