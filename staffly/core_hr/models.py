"""Core HR ORM models: Department, Employee.

Only the employee fields the leave and attendance engine relies on are
mapped here; the full employee profile is owned by the employee
directory service.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staffly.common.constants import EmploymentStatus, UserRole
from staffly.database import Base

if TYPE_CHECKING:
    from staffly.leave.models import LeaveApplication, LeaveBalance


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class Department(Base):
    """Organisational department."""

    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), unique=True, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(sa.String(20), unique=True)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────
    employees: Mapped[list[Employee]] = relationship(back_populates="department")

    def __repr__(self) -> str:
        return f"<Department {self.name!r} ({self.code})>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record — owner of a leave balance set and attendance days."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Name ────────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)

    # ── Org ─────────────────────────────────────────────────────────
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("departments.id"),
    )
    designation: Mapped[Optional[str]] = mapped_column(sa.String(150))
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        default=UserRole.employee,
        nullable=False,
    )

    # ── Employment lifecycle ────────────────────────────────────────
    status: Mapped[EmploymentStatus] = mapped_column(
        sa.Enum(EmploymentStatus, name="employment_status"),
        default=EmploymentStatus.active,
        nullable=False,
    )
    joining_date: Mapped[date] = mapped_column(sa.Date, nullable=False)

    # ── Timestamps ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # ── Relationships ───────────────────────────────────────────────
    department: Mapped[Optional[Department]] = relationship(
        back_populates="employees",
    )
    leave_balances: Mapped[list["LeaveBalance"]] = relationship(
        back_populates="employee",
        order_by="LeaveBalance.leave_type",
        cascade="all, delete-orphan",
    )
    leave_applications: Mapped[list["LeaveApplication"]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveApplication.employee_id",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status in (EmploymentStatus.active, EmploymentStatus.on_leave)

    def __repr__(self) -> str:
        return (
            f"<Employee {self.employee_code} "
            f"{self.first_name} {self.last_name}>"
        )
