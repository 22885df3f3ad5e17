"""Policy ORM models: Policy, PolicyLeaveType."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staffly.common.constants import LeaveType, PolicyCategory
from staffly.database import Base


class Policy(Base):
    """Versioned organisational policy; one active policy per category."""

    __tablename__ = "policies"
    __table_args__ = (
        sa.Index("ix_policies_category_active", "category", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    category: Mapped[PolicyCategory] = mapped_column(
        sa.Enum(PolicyCategory, name="policy_category"), nullable=False
    )

    # Attendance parameters
    working_hours_per_day: Mapped[Decimal] = mapped_column(
        sa.Numeric(4, 2), default=Decimal("8")
    )
    working_days_per_week: Mapped[int] = mapped_column(sa.Integer, default=5)
    weekend_days: Mapped[list] = mapped_column(
        JSONB, default=lambda: ["Saturday", "Sunday"]
    )
    grace_time_minutes: Mapped[int] = mapped_column(sa.Integer, default=15)
    half_day_threshold_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(4, 2), default=Decimal("4")
    )

    effective_from: Mapped[date] = mapped_column(sa.Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    leave_types: Mapped[list[PolicyLeaveType]] = relationship(
        back_populates="policy",
        order_by="PolicyLeaveType.leave_type",
        cascade="all, delete-orphan",
    )


class PolicyLeaveType(Base):
    """Quota row of a leave policy."""

    __tablename__ = "policy_leave_types"
    __table_args__ = (
        sa.UniqueConstraint("policy_id", "leave_type", name="uq_policy_leave_type"),
        sa.CheckConstraint("annual_quota >= 0", name="ck_policy_quota"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("policies.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    annual_quota: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    carry_forward: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    max_carry_forward: Mapped[int] = mapped_column(sa.Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Relationships
    policy: Mapped[Policy] = relationship(back_populates="leave_types")
