"""Leave ORM models: LeaveBalance, LeaveApplication, LeaveComment."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staffly.common.constants import LeaveStatus, LeaveType
from staffly.database import Base

if TYPE_CHECKING:
    from staffly.core_hr.models import Employee


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveBalance(Base):
    """One row per (employee, leave type).

    ``available`` is derived from the three stored counters on every read,
    in Python and in SQL alike; it has no column of its own.
    """

    __tablename__ = "leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "leave_type", name="uq_leave_balance"),
        sa.CheckConstraint("total >= 0", name="ck_leave_balance_total"),
        sa.CheckConstraint("used >= 0", name="ck_leave_balance_used"),
        sa.CheckConstraint(
            "carried_forward >= 0", name="ck_leave_balance_carried_forward",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False,
    )
    total: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    used: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    carried_forward: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(
        back_populates="leave_balances"
    )

    @hybrid_property
    def available(self) -> int:
        return self.total + self.carried_forward - self.used

    def __repr__(self) -> str:
        return (
            f"<LeaveBalance {self.leave_type.value} total={self.total} "
            f"used={self.used} cf={self.carried_forward}>"
        )


class LeaveApplication(Base):
    __tablename__ = "leave_applications"
    __table_args__ = (
        sa.CheckConstraint("to_date >= from_date", name="ck_leave_dates"),
        sa.CheckConstraint("number_of_days >= 1", name="ck_leave_days"),
        sa.Index("ix_leave_applications_employee", "employee_id", "from_date"),
        sa.Index("ix_leave_applications_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False,
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    number_of_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        default=LeaveStatus.pending,
        nullable=False,
    )
    applied_on: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False,
    )
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    approved_on: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(
        back_populates="leave_applications", foreign_keys=[employee_id]
    )
    approver: Mapped[Optional["Employee"]] = relationship(
        foreign_keys=[approved_by]
    )
    comments: Mapped[list[LeaveComment]] = relationship(
        back_populates="application",
        order_by="LeaveComment.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class LeaveComment(Base):
    __tablename__ = "leave_comments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    text: Mapped[str] = mapped_column(sa.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False,
    )

    # Relationships
    application: Mapped[LeaveApplication] = relationship(back_populates="comments")
