"""Reports service — read-only rollups over the ledger, leave and attendance data.

All methods are static async and never write. Absence is derived here:
an active employee with no attended record on a working day is absent.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.attendance.models import AttendanceRecord, AttendanceSession
from staffly.attendance.service import month_bounds
from staffly.auth.schemas import Actor
from staffly.common.constants import (
    WEEKDAY_NAMES,
    AttendanceStatus,
    EmploymentStatus,
    LeaveStatus,
    LeaveType,
)
from staffly.common.exceptions import ForbiddenException, ValidationException
from staffly.core_hr.models import Employee
from staffly.leave.models import LeaveApplication
from staffly.policy.service import PolicyService
from staffly.reports.schemas import (
    LeaveStatisticsResponse,
    LeaveTypeStat,
    MonthlyReportResponse,
    MonthlyReportRow,
    TodaySummaryResponse,
)


def _today() -> date:
    """Current UTC date; attendance days are keyed on UTC."""
    return datetime.now(timezone.utc).date()


def _require_privileged(actor: Actor) -> None:
    if not actor.is_privileged:
        raise ForbiddenException("Only HR or admin can view reports.")


def working_days_between(start: date, end: date, weekend_days: list[str]) -> list[date]:
    """Calendar days in [start, end] whose weekday is not a weekend day."""
    weekend = {WEEKDAY_NAMES.index(day) for day in weekend_days if day in WEEKDAY_NAMES}
    days: list[date] = []
    current = start
    while current <= end:
        if current.weekday() not in weekend:
            days.append(current)
        current += timedelta(days=1)
    return days


class ReportService:
    """Async reporting aggregation queries."""

    # ═════════════════════════════════════════════════════════════════
    # Leave usage
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def used_this_year(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> dict[str, int]:
        """Approved days per leave type for applications starting in *year*."""
        year = year or _today().year
        result = await db.execute(
            select(
                LeaveApplication.leave_type,
                func.coalesce(func.sum(LeaveApplication.number_of_days), 0),
            )
            .where(
                LeaveApplication.employee_id == employee_id,
                LeaveApplication.status == LeaveStatus.approved,
                LeaveApplication.from_date >= date(year, 1, 1),
                LeaveApplication.from_date <= date(year, 12, 31),
            )
            .group_by(LeaveApplication.leave_type)
        )
        used = {leave_type.value: 0 for leave_type in LeaveType}
        for leave_type, days in result.all():
            used[leave_type.value] = int(days)
        return used

    @staticmethod
    async def leave_statistics(
        db: AsyncSession,
        actor: Actor,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        department_id: Optional[uuid.UUID] = None,
    ) -> LeaveStatisticsResponse:
        """Application counts by status and approved days by leave type."""
        _require_privileged(actor)
        if start_date and end_date and end_date < start_date:
            raise ValidationException(
                {"date_range": ["start_date must be before or equal to end_date."]}
            )

        def _scoped(query):
            if start_date is not None:
                query = query.where(LeaveApplication.from_date >= start_date)
            if end_date is not None:
                query = query.where(LeaveApplication.from_date <= end_date)
            if department_id is not None:
                query = query.join(
                    Employee, Employee.id == LeaveApplication.employee_id
                ).where(Employee.department_id == department_id)
            return query

        status_rows = (
            await db.execute(
                _scoped(
                    select(LeaveApplication.status, func.count(LeaveApplication.id))
                ).group_by(LeaveApplication.status)
            )
        ).all()
        by_status = {status.value: 0 for status in LeaveStatus}
        for status, count in status_rows:
            by_status[status.value] = count

        type_rows = (
            await db.execute(
                _scoped(
                    select(
                        LeaveApplication.leave_type,
                        func.count(LeaveApplication.id),
                        func.coalesce(func.sum(LeaveApplication.number_of_days), 0),
                    ).where(LeaveApplication.status == LeaveStatus.approved)
                ).group_by(LeaveApplication.leave_type)
            )
        ).all()

        return LeaveStatisticsResponse(
            start_date=start_date,
            end_date=end_date,
            total_applications=sum(by_status.values()),
            by_status=by_status,
            approved_by_type=[
                LeaveTypeStat(leave_type=leave_type.value, count=count, days=int(days))
                for leave_type, count, days in sorted(type_rows, key=lambda r: r[0].value)
            ],
        )

    # ═════════════════════════════════════════════════════════════════
    # Attendance: today
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def today_summary(
        db: AsyncSession,
        actor: Actor,
        *,
        today: Optional[date] = None,
    ) -> TodaySummaryResponse:
        _require_privileged(actor)
        today = today or _today()
        parameters = await PolicyService.get_attendance_parameters(db)
        is_working_day = bool(working_days_between(today, today, parameters.weekend_days))

        active_ids = set(
            (
                await db.execute(
                    select(Employee.id).where(Employee.status == EmploymentStatus.active)
                )
            ).scalars().all()
        )

        records = (
            await db.execute(
                select(AttendanceRecord.employee_id, AttendanceRecord.status)
                .where(AttendanceRecord.date == today)
            )
        ).all()
        recorded = {employee_id for employee_id, _ in records if employee_id in active_ids}
        half_day = sum(
            1 for employee_id, status in records
            if employee_id in recorded and status == AttendanceStatus.half_day
        )

        working_now = set(
            (
                await db.execute(
                    select(AttendanceRecord.employee_id)
                    .join(AttendanceSession, AttendanceSession.record_id == AttendanceRecord.id)
                    .where(
                        AttendanceRecord.date == today,
                        AttendanceSession.check_out.is_(None),
                    )
                    .distinct()
                )
            ).scalars().all()
        ) & recorded

        on_leave = set(
            (
                await db.execute(
                    select(LeaveApplication.employee_id)
                    .where(
                        LeaveApplication.status == LeaveStatus.approved,
                        LeaveApplication.from_date <= today,
                        LeaveApplication.to_date >= today,
                    )
                    .distinct()
                )
            ).scalars().all()
        ) & active_ids

        return TodaySummaryResponse(
            date=today,
            total_employees=len(active_ids),
            checked_in=len(recorded),
            currently_working=len(working_now),
            checked_out=len(recorded - working_now),
            half_day=half_day,
            on_leave=len(on_leave),
            absent=len(active_ids - recorded - on_leave) if is_working_day else 0,
        )

    # ═════════════════════════════════════════════════════════════════
    # Attendance: month
    # ═════════════════════════════════════════════════════════════════

    @staticmethod
    async def monthly_report(
        db: AsyncSession,
        actor: Actor,
        *,
        month: int,
        year: int,
        department_id: Optional[uuid.UUID] = None,
        today: Optional[date] = None,
    ) -> MonthlyReportResponse:
        """Per-employee month rollup.

        A working day is absent when it has no attended record and no
        approved leave covers it.
        """
        _require_privileged(actor)
        today = today or _today()
        month_start, month_end = month_bounds(year, month)
        parameters = await PolicyService.get_attendance_parameters(db)

        employee_query = (
            select(Employee)
            .where(Employee.status == EmploymentStatus.active)
            .order_by(Employee.employee_code)
        )
        if department_id is not None:
            employee_query = employee_query.where(Employee.department_id == department_id)
        employees = list((await db.execute(employee_query)).scalars().all())

        records_by_employee: dict[uuid.UUID, list[AttendanceRecord]] = {}
        leave_dates_by_employee: dict[uuid.UUID, set[date]] = {}
        if employees:
            records = (
                await db.execute(
                    select(AttendanceRecord).where(
                        AttendanceRecord.employee_id.in_([e.id for e in employees]),
                        AttendanceRecord.date >= month_start,
                        AttendanceRecord.date <= month_end,
                    )
                )
            ).scalars().all()
            for record in records:
                records_by_employee.setdefault(record.employee_id, []).append(record)

            leaves = (
                await db.execute(
                    select(
                        LeaveApplication.employee_id,
                        LeaveApplication.from_date,
                        LeaveApplication.to_date,
                    ).where(
                        LeaveApplication.employee_id.in_([e.id for e in employees]),
                        LeaveApplication.status == LeaveStatus.approved,
                        LeaveApplication.from_date <= month_end,
                        LeaveApplication.to_date >= month_start,
                    )
                )
            ).all()
            for employee_id, from_date, to_date in leaves:
                days = leave_dates_by_employee.setdefault(employee_id, set())
                current = max(from_date, month_start)
                while current <= min(to_date, month_end):
                    days.add(current)
                    current += timedelta(days=1)

        rows: list[MonthlyReportRow] = []
        for employee in employees:
            records = records_by_employee.get(employee.id, [])
            start = max(month_start, employee.joining_date)
            end = min(month_end, today)
            working = (
                working_days_between(start, end, parameters.weekend_days)
                if start <= end else []
            )

            attended = [r for r in records if r.status != AttendanceStatus.absent]
            attended_dates = {r.date for r in attended}
            on_leave = leave_dates_by_employee.get(employee.id, set())
            leave_days = [day for day in working if day in on_leave and day not in attended_dates]
            total_minutes = sum(r.total_work_minutes or 0 for r in records)
            total_hours = total_minutes / 60

            rows.append(
                MonthlyReportRow(
                    employee_id=employee.id,
                    employee_code=employee.employee_code,
                    employee_name=employee.full_name,
                    department_id=employee.department_id,
                    working_days=len(working),
                    present_days=sum(1 for r in records if r.status == AttendanceStatus.present),
                    half_days=sum(1 for r in records if r.status == AttendanceStatus.half_day),
                    wfh_days=sum(1 for r in records if r.status == AttendanceStatus.work_from_home),
                    leave_days=len(leave_days),
                    absent_days=sum(
                        1 for day in working
                        if day not in attended_dates and day not in on_leave
                    ),
                    total_hours=round(total_hours, 2),
                    average_hours=round(total_hours / len(attended), 2) if attended else 0.0,
                )
            )

        return MonthlyReportResponse(
            month=month,
            year=year,
            working_days=len(
                working_days_between(month_start, month_end, parameters.weekend_days)
            ),
            rows=rows,
        )
