"""Enums and constants for Staffly — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Employee / Core HR ──────────────────────────────────────────────

class EmploymentStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    on_leave = "on_leave"
    terminated = "terminated"


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr = "hr"
    admin = "admin"


# Roles allowed to approve/reject leave, override balances and attendance,
# and run policy batch operations.
PRIVILEGED_ROLES: frozenset[UserRole] = frozenset({UserRole.hr, UserRole.admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    sick = "sick"
    casual = "casual"
    annual = "annual"
    maternity = "maternity"
    paternity = "paternity"
    unpaid = "unpaid"
    compensatory = "compensatory"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    half_day = "half_day"
    work_from_home = "work_from_home"


# ── Policy ──────────────────────────────────────────────────────────

class PolicyCategory(str, enum.Enum):
    leave = "leave"
    attendance = "attendance"
    general = "general"
    hr = "hr"
    it = "it"
    security = "security"


WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


# ── Misc ────────────────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
MAX_ATTENDANCE_RANGE_DAYS = 366
