"""Attendance service layer — check-in/out sessions, day records, HR overrides.

Business logic:
  - One AttendanceRecord per (employee, UTC calendar day), created by the
    first check-in of the day
  - Any number of check-in/check-out sessions per day, at most one open
  - Check-out closes the open session, then recomputes total_work_minutes
    from the closed sessions and derives present / half_day against the
    policy's half-day threshold
  - Absence is never written here; reporting derives it from missing days

Find-or-create of the day record and opening a session are both
INSERT ... ON CONFLICT DO NOTHING against unique indexes (one record per
employee-day, one open session per record), so concurrent check-ins for the
same employee and day cannot open two sessions.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from staffly.attendance.models import AttendanceRecord, AttendanceSession
from staffly.attendance.schemas import (
    AttendanceListResponse,
    AttendanceRecordOut,
    AttendanceSessionOut,
    AttendanceStats,
    CheckOutResponse,
)
from staffly.auth.schemas import Actor
from staffly.common.audit import create_audit_entry
from staffly.common.constants import MAX_ATTENDANCE_RANGE_DAYS, AttendanceStatus
from staffly.common.exceptions import (
    AlreadyCheckedInException,
    ForbiddenException,
    NoOpenSessionException,
    NotFoundException,
    ValidationException,
)
from staffly.common.pagination import PaginatedResponse, PaginationParams, paginate
from staffly.core_hr.models import Employee
from staffly.database import dialect_name
from staffly.policy.service import PolicyService

logger = logging.getLogger(__name__)


# ── Helpers ─────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by some drivers) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of *month*."""
    if not 1 <= month <= 12:
        raise ValidationException({"month": ["Month must be between 1 and 12."]})
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def session_minutes(check_in: datetime, check_out: datetime) -> int:
    """Whole minutes between two instants, never negative."""
    seconds = (as_utc(check_out) - as_utc(check_in)).total_seconds()
    return max(0, round(seconds / 60))


# Statuses only the HR override sets; check-out never replaces them
OVERRIDE_ONLY_STATUSES = (AttendanceStatus.absent, AttendanceStatus.work_from_home)


def _insert(db: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT DO NOTHING."""
    if dialect_name(db) == "sqlite":
        return sqlite_insert
    return pg_insert


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async attendance operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _load_record(
        db: AsyncSession,
        record_id: uuid.UUID,
    ) -> AttendanceRecord:
        result = await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.id == record_id)
            .options(selectinload(AttendanceRecord.sessions))
            .execution_options(populate_existing=True)
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundException("Attendance record", record_id)
        return record

    @staticmethod
    async def _find_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == day,
            )
            .options(selectinload(AttendanceRecord.sessions))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    def _build_summary(records: Sequence[AttendanceRecord]) -> AttendanceStats:
        """Aggregate attendance statistics over the given records."""

        present = absent = half_day = wfh = 0
        total_minutes = 0

        for r in records:
            if r.status == AttendanceStatus.present:
                present += 1
            elif r.status == AttendanceStatus.absent:
                absent += 1
            elif r.status == AttendanceStatus.half_day:
                half_day += 1
            elif r.status == AttendanceStatus.work_from_home:
                wfh += 1
            total_minutes += r.total_work_minutes or 0

        total_hours = total_minutes / 60
        avg_hours = round(total_hours / len(records), 2) if records else 0.0

        return AttendanceStats(
            total_days=len(records),
            total_hours=round(total_hours, 2),
            present_days=present,
            absent_days=absent,
            half_days=half_day,
            wfh_days=wfh,
            average_hours=avg_hours,
        )

    @staticmethod
    def _resolve_range(
        *,
        from_date: Optional[date],
        to_date: Optional[date],
        month: Optional[int],
        year: Optional[int],
    ) -> tuple[date, date]:
        """Explicit range wins; otherwise a month (defaulting to the current one)."""
        if from_date is not None or to_date is not None:
            if from_date is None or to_date is None:
                raise ValidationException(
                    {"date_range": ["Both from_date and to_date are required."]}
                )
            if from_date > to_date:
                raise ValidationException(
                    {"date_range": ["from_date must be before or equal to to_date."]}
                )
            if (to_date - from_date).days > MAX_ATTENDANCE_RANGE_DAYS:
                raise ValidationException(
                    {"date_range": [f"Date range cannot exceed {MAX_ATTENDANCE_RANGE_DAYS} days."]}
                )
            return from_date, to_date

        today = _utcnow().date()
        return month_bounds(year or today.year, month or today.month)

    # ── Check in ────────────────────────────────────────────────────

    @staticmethod
    async def check_in(
        db: AsyncSession,
        actor: Actor,
        *,
        now: Optional[datetime] = None,
    ) -> AttendanceRecordOut:
        """Open a session on today's record, creating the record if needed."""

        now = as_utc(now) if now is not None else _utcnow()
        today = now.date()

        if await db.get(Employee, actor.id) is None:
            raise NotFoundException("Employee", actor.id)

        insert = _insert(db)

        # Find-or-create the day record
        await db.execute(
            insert(AttendanceRecord.__table__)
            .values(
                id=uuid.uuid4(),
                employee_id=actor.id,
                date=today,
                total_work_minutes=0,
                status=AttendanceStatus.present,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["employee_id", "date"])
        )
        record_id = (
            await db.execute(
                select(AttendanceRecord.id).where(
                    AttendanceRecord.employee_id == actor.id,
                    AttendanceRecord.date == today,
                )
            )
        ).scalar_one()

        # Open a session unless one is already open
        sessions = AttendanceSession.__table__
        result = await db.execute(
            insert(sessions)
            .values(id=uuid.uuid4(), record_id=record_id, check_in=now)
            .on_conflict_do_nothing(
                index_elements=["record_id"],
                index_where=sessions.c.check_out.is_(None),
            )
        )
        if result.rowcount == 0:
            raise AlreadyCheckedInException()

        await create_audit_entry(
            db,
            action="check_in",
            entity_type="attendance_record",
            entity_id=record_id,
            actor_id=actor.id,
            new_values={"timestamp": now.isoformat()},
        )
        logger.info("Employee %s checked in at %s", actor.id, now.isoformat())

        record = await AttendanceService._load_record(db, record_id)
        return AttendanceRecordOut.model_validate(record)

    # ── Check out ───────────────────────────────────────────────────

    @staticmethod
    async def check_out(
        db: AsyncSession,
        actor: Actor,
        *,
        now: Optional[datetime] = None,
    ) -> CheckOutResponse:
        """Close today's open session and recompute the day's totals and status."""

        now = as_utc(now) if now is not None else _utcnow()
        today = now.date()

        record = await AttendanceService._find_record(db, actor.id, today)
        if record is None:
            raise NoOpenSessionException()

        open_session = (
            await db.execute(
                select(AttendanceSession)
                .where(
                    AttendanceSession.record_id == record.id,
                    AttendanceSession.check_out.is_(None),
                )
                .order_by(AttendanceSession.check_in.desc())
                .limit(1)
            )
        ).scalars().first()
        if open_session is None:
            raise NoOpenSessionException()

        minutes = session_minutes(open_session.check_in, now)
        result = await db.execute(
            update(AttendanceSession)
            .where(
                AttendanceSession.id == open_session.id,
                AttendanceSession.check_out.is_(None),
            )
            .values(check_out=now, duration_minutes=minutes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NoOpenSessionException()

        total_minutes = (
            await db.execute(
                select(func.coalesce(func.sum(AttendanceSession.duration_minutes), 0))
                .where(
                    AttendanceSession.record_id == record.id,
                    AttendanceSession.check_out.is_not(None),
                )
            )
        ).scalar_one()

        parameters = await PolicyService.get_attendance_parameters(db)
        threshold_minutes = parameters.half_day_threshold_hours * 60
        derived = (
            AttendanceStatus.half_day
            if total_minutes < threshold_minutes
            else AttendanceStatus.present
        )

        await db.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == record.id)
            .values(total_work_minutes=total_minutes, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        # An HR override outlives later check-outs on the same day
        await db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.id == record.id,
                AttendanceRecord.status.not_in(OVERRIDE_ONLY_STATUSES),
            )
            .values(status=derived)
            .execution_options(synchronize_session=False)
        )
        record = await AttendanceService._load_record(db, record.id)
        status = record.status

        await create_audit_entry(
            db,
            action="check_out",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=actor.id,
            new_values={
                "timestamp": now.isoformat(),
                "session_minutes": minutes,
                "total_work_minutes": total_minutes,
                "status": status.value,
            },
        )
        logger.info(
            "Employee %s checked out at %s (%d min session, %d min today, %s)",
            actor.id, now.isoformat(), minutes, total_minutes, status.value,
        )

        record_out = AttendanceRecordOut.model_validate(record)
        return CheckOutResponse(
            record=record_out,
            total_work_hours=round(total_minutes / 60, 2),
            sessions=record_out.sessions,
        )

    # ── Records ─────────────────────────────────────────────────────

    @staticmethod
    async def get_records(
        db: AsyncSession,
        actor: Actor,
        employee_id: Optional[uuid.UUID] = None,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> AttendanceListResponse:
        """Records in a period, newest first, with view-only stats."""

        target = employee_id or actor.id
        if not actor.can_act_for(target):
            raise ForbiddenException("You can only view your own attendance.")

        start, end = AttendanceService._resolve_range(
            from_date=from_date, to_date=to_date, month=month, year=year,
        )

        result = await db.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == target,
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end,
            )
            .options(selectinload(AttendanceRecord.sessions))
            .order_by(AttendanceRecord.date.desc())
        )
        records = list(result.scalars().all())

        return AttendanceListResponse(
            records=[AttendanceRecordOut.model_validate(r) for r in records],
            stats=AttendanceService._build_summary(records),
        )

    @staticmethod
    async def get_today(
        db: AsyncSession,
        actor: Actor,
    ) -> Optional[AttendanceRecordOut]:
        record = await AttendanceService._find_record(db, actor.id, _utcnow().date())
        if record is None:
            return None
        return AttendanceRecordOut.model_validate(record)

    @staticmethod
    async def list_all(
        db: AsyncSession,
        actor: Actor,
        params: PaginationParams,
        *,
        month: Optional[int] = None,
        year: Optional[int] = None,
        status: Optional[AttendanceStatus] = None,
    ) -> PaginatedResponse:
        """Organisation-wide records for a month (HR/admin)."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can list all attendance.")

        start, end = AttendanceService._resolve_range(
            from_date=None, to_date=None, month=month, year=year,
        )
        query = (
            select(AttendanceRecord)
            .where(AttendanceRecord.date >= start, AttendanceRecord.date <= end)
            .options(selectinload(AttendanceRecord.sessions))
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.employee_id)
        )
        if status is not None:
            query = query.where(AttendanceRecord.status == status)

        return await paginate(
            db, query, params, transform=AttendanceRecordOut.model_validate,
        )

    # ── HR override ─────────────────────────────────────────────────

    @staticmethod
    async def set_status(
        db: AsyncSession,
        record_id: uuid.UUID,
        actor: Actor,
        status: AttendanceStatus,
        notes: Optional[str] = None,
    ) -> AttendanceRecordOut:
        """Override a day's status (e.g. work_from_home, absent)."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can override attendance status.")

        record = await AttendanceService._load_record(db, record_id)
        old_values = {"status": record.status.value, "notes": record.notes}

        values: dict = {"status": status, "updated_at": _utcnow()}
        if notes is not None:
            values["notes"] = notes
        await db.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == record_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        await create_audit_entry(
            db,
            action="override",
            entity_type="attendance_record",
            entity_id=record_id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={"status": status.value, "notes": notes},
        )
        logger.info(
            "Attendance %s status overridden to %s by %s",
            record_id, status.value, actor.id,
        )

        record = await AttendanceService._load_record(db, record_id)
        return AttendanceRecordOut.model_validate(record)
