"""Attendance ORM models: AttendanceRecord, AttendanceSession."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staffly.common.constants import AttendanceStatus
from staffly.database import Base

if TYPE_CHECKING:
    from staffly.core_hr.models import Employee


class AttendanceRecord(Base):
    """One row per (employee, calendar day), created by the first check-in."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
        sa.CheckConstraint(
            "total_work_minutes >= 0", name="ck_attendance_total_minutes",
        ),
        sa.Index("ix_attendance_records_date", "date"),
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
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_work_minutes: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0
    )
    status: Mapped[AttendanceStatus] = mapped_column(
        sa.Enum(AttendanceStatus, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.present,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship()
    sessions: Mapped[list[AttendanceSession]] = relationship(
        back_populates="record",
        order_by="AttendanceSession.check_in",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AttendanceSession(Base):
    """A check-in/check-out pair; ``check_out`` is NULL while the session is open."""

    __tablename__ = "attendance_sessions"
    __table_args__ = (
        # At most one open session per record.
        sa.Index(
            "uq_attendance_session_open",
            "record_id",
            unique=True,
            postgresql_where=sa.text("check_out IS NULL"),
            sqlite_where=sa.text("check_out IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    record_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("attendance_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    check_in: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    check_out: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    duration_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)

    # Relationships
    record: Mapped[AttendanceRecord] = relationship(back_populates="sessions")

    @property
    def is_open(self) -> bool:
        return self.check_out is None
