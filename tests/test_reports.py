"""Reporting tests — today summary, monthly attendance report with derived
absence, leave statistics and yearly usage.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from staffly.attendance.service import AttendanceService
from staffly.auth.schemas import Actor
from staffly.common.constants import (
    AttendanceStatus,
    EmploymentStatus,
    LeaveStatus,
    LeaveType,
    PolicyCategory,
)
from staffly.common.exceptions import ForbiddenException, ValidationException
from staffly.core_hr.models import Department
from staffly.leave.models import LeaveApplication
from staffly.policy.schemas import PolicyCreate
from staffly.policy.service import PolicyService
from staffly.reports.service import ReportService, working_days_between
from tests.conftest import _make_department, add_employee

DAY = date(2025, 3, 10)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


async def _work(db, employee_id, day: date, start: int, end: int | None) -> None:
    actor = Actor(id=employee_id)
    await AttendanceService.check_in(db, actor, now=_at(day, start))
    if end is not None:
        await AttendanceService.check_out(db, actor, now=_at(day, end))


async def _leave(
    db,
    employee_id,
    *,
    status: LeaveStatus,
    leave_type: LeaveType = LeaveType.casual,
    start: date = DAY,
    end: date = DAY,
) -> LeaveApplication:
    application = LeaveApplication(
        employee_id=employee_id,
        leave_type=leave_type,
        from_date=start,
        to_date=end,
        number_of_days=(end - start).days + 1,
        reason="Report fixture",
        status=status,
        applied_on=datetime.now(timezone.utc),
    )
    db.add(application)
    await db.flush()
    return application


# ═════════════════════════════════════════════════════════════════════
# 1. Working-day calendar
# ═════════════════════════════════════════════════════════════════════


class TestWorkingDays:
    def test_march_2025_has_21_weekdays(self):
        days = working_days_between(date(2025, 3, 1), date(2025, 3, 31), ["Saturday", "Sunday"])
        assert len(days) == 21

    def test_custom_weekend(self):
        # Fri 2025-03-14 → Sun 2025-03-16 with only Friday off
        days = working_days_between(date(2025, 3, 14), date(2025, 3, 16), ["Friday"])
        assert days == [date(2025, 3, 15), date(2025, 3, 16)]

    def test_empty_when_start_after_end(self):
        assert working_days_between(date(2025, 3, 2), date(2025, 3, 1), []) == []


# ═════════════════════════════════════════════════════════════════════
# 2. Today summary
# ═════════════════════════════════════════════════════════════════════


async def test_today_summary_counts(db, test_employee, hr_employee, hr_actor):
    on_leave = await add_employee(db)
    await add_employee(db)  # no record, not on leave
    await add_employee(db, status=EmploymentStatus.terminated)

    await _work(db, test_employee["id"], DAY, 9, 17)
    await _work(db, hr_employee["id"], DAY, 9, None)
    await _leave(db, on_leave["id"], status=LeaveStatus.approved, start=date(2025, 3, 7), end=DAY)

    summary = await ReportService.today_summary(db, hr_actor, today=DAY)

    assert summary.date == DAY
    assert summary.total_employees == 4
    assert summary.checked_in == 2
    assert summary.currently_working == 1
    assert summary.checked_out == 1
    assert summary.on_leave == 1
    assert summary.absent == 1


async def test_today_summary_ignores_pending_leave(db, test_employee, hr_actor):
    await _leave(db, test_employee["id"], status=LeaveStatus.pending)
    summary = await ReportService.today_summary(db, hr_actor, today=DAY)
    assert summary.on_leave == 0
    assert summary.absent == 2


async def test_today_summary_weekend_has_no_absence(db, test_employee, hr_employee, hr_actor):
    sunday = date(2025, 3, 9)
    summary = await ReportService.today_summary(db, hr_actor, today=sunday)

    assert summary.total_employees == 2
    assert summary.checked_in == 0
    assert summary.absent == 0


async def test_today_summary_weekend_follows_attendance_policy(db, test_employee, hr_actor):
    await PolicyService.create_policy(
        db,
        hr_actor,
        PolicyCreate(
            title="Friday weekend",
            category=PolicyCategory.attendance,
            weekend_days=["Friday"],
            effective_from=date(2020, 1, 1),
        ),
    )

    sunday = await ReportService.today_summary(db, hr_actor, today=date(2025, 3, 9))
    friday = await ReportService.today_summary(db, hr_actor, today=date(2025, 3, 14))

    assert sunday.absent == 2
    assert friday.absent == 0


async def test_reports_require_privileged(db, employee_actor):
    with pytest.raises(ForbiddenException):
        await ReportService.today_summary(db, employee_actor, today=DAY)
    with pytest.raises(ForbiddenException):
        await ReportService.monthly_report(db, employee_actor, month=3, year=2025)
    with pytest.raises(ForbiddenException):
        await ReportService.leave_statistics(db, employee_actor)


# ═════════════════════════════════════════════════════════════════════
# 3. Monthly report
# ═════════════════════════════════════════════════════════════════════


async def test_monthly_report_derives_absence(db, test_employee, hr_actor):
    await _work(db, test_employee["id"], date(2025, 3, 3), 9, 17)
    await _work(db, test_employee["id"], date(2025, 3, 4), 9, 11)
    await _work(db, test_employee["id"], date(2025, 3, 8), 9, 13)  # Saturday
    joiner = await add_employee(db, joining_date=date(2025, 3, 24))

    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, today=date(2025, 4, 15),
    )

    assert report.working_days == 21
    rows = {row.employee_id: row for row in report.rows}

    row = rows[test_employee["id"]]
    assert row.working_days == 21
    assert (row.present_days, row.half_days, row.wfh_days) == (2, 1, 0)
    assert row.absent_days == 19
    assert row.total_hours == 14.0
    assert row.average_hours == pytest.approx(4.67)

    joiner_row = rows[joiner["id"]]
    assert joiner_row.working_days == 6
    assert joiner_row.absent_days == 6


async def test_monthly_report_approved_leave_is_not_absence(db, test_employee, hr_actor):
    for day in (3, 4, 5):
        await _work(db, test_employee["id"], date(2025, 3, day), 9, 17)
    await _leave(
        db, test_employee["id"], status=LeaveStatus.approved,
        start=date(2025, 3, 6), end=date(2025, 3, 7),
    )
    # Pending leave still counts as absence
    await _leave(
        db, test_employee["id"], status=LeaveStatus.pending,
        start=date(2025, 3, 10), end=date(2025, 3, 10),
    )

    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, today=date(2025, 3, 10),
    )

    row = next(r for r in report.rows if r.employee_id == test_employee["id"])
    assert row.working_days == 6
    assert row.present_days == 3
    assert row.leave_days == 2
    assert row.absent_days == 1


async def test_monthly_report_clips_leave_spanning_months(db, test_employee, hr_actor):
    await _leave(
        db, test_employee["id"], status=LeaveStatus.approved,
        start=date(2025, 2, 27), end=date(2025, 3, 4),
    )

    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, today=date(2025, 3, 5),
    )

    row = next(r for r in report.rows if r.employee_id == test_employee["id"])
    assert row.working_days == 3
    assert row.leave_days == 2
    assert row.absent_days == 1


async def test_monthly_report_absent_override_counts_as_absent(db, test_employee, hr_actor):
    await _work(db, test_employee["id"], date(2025, 3, 3), 9, 17)
    records = await AttendanceService.get_records(db, hr_actor, test_employee["id"], month=3, year=2025)
    await AttendanceService.set_status(
        db, records.records[0].id, hr_actor, AttendanceStatus.absent,
    )

    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, today=date(2025, 3, 31),
    )
    row = next(r for r in report.rows if r.employee_id == test_employee["id"])
    assert row.absent_days == 21
    assert row.present_days == 0


async def test_monthly_report_stops_at_today(db, test_employee, hr_actor):
    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, today=date(2025, 3, 10),
    )
    row = next(r for r in report.rows if r.employee_id == test_employee["id"])
    # Mon 3rd → Mon 10th
    assert row.working_days == 6


async def test_monthly_report_future_month_has_no_elapsed_days(db, test_employee, hr_actor):
    report = await ReportService.monthly_report(
        db, hr_actor, month=4, year=2025, today=date(2025, 3, 31),
    )
    assert report.working_days == 22
    assert all(row.working_days == 0 and row.absent_days == 0 for row in report.rows)


async def test_monthly_report_department_filter(db, test_employee, test_department, hr_actor):
    other = _make_department(name="Finance", code="FIN")
    db.add(Department(**other))
    await db.flush()
    await add_employee(db, department_id=other["id"])

    report = await ReportService.monthly_report(
        db, hr_actor, month=3, year=2025, department_id=other["id"], today=date(2025, 3, 31),
    )
    assert len(report.rows) == 1
    assert report.rows[0].department_id == other["id"]


async def test_monthly_report_rejects_bad_month(db, hr_actor):
    with pytest.raises(ValidationException):
        await ReportService.monthly_report(db, hr_actor, month=0, year=2025)


# ═════════════════════════════════════════════════════════════════════
# 4. Leave statistics and usage
# ═════════════════════════════════════════════════════════════════════


async def test_leave_statistics(db, test_employee, hr_actor):
    await _leave(db, test_employee["id"], status=LeaveStatus.approved, start=date(2025, 3, 3), end=date(2025, 3, 5))
    await _leave(db, test_employee["id"], status=LeaveStatus.approved, leave_type=LeaveType.sick)
    await _leave(db, test_employee["id"], status=LeaveStatus.pending)
    await _leave(db, test_employee["id"], status=LeaveStatus.rejected, start=date(2024, 12, 2), end=date(2024, 12, 2))

    stats = await ReportService.leave_statistics(
        db, hr_actor, start_date=date(2025, 1, 1), end_date=date(2025, 12, 31),
    )

    assert stats.total_applications == 3
    assert stats.by_status == {"pending": 1, "approved": 2, "rejected": 0, "cancelled": 0}
    assert [(s.leave_type, s.count, s.days) for s in stats.approved_by_type] == [
        ("casual", 1, 3),
        ("sick", 1, 1),
    ]


async def test_leave_statistics_rejects_inverted_range(db, hr_actor):
    with pytest.raises(ValidationException):
        await ReportService.leave_statistics(
            db, hr_actor, start_date=date(2025, 2, 1), end_date=date(2025, 1, 1),
        )


async def test_used_this_year_counts_only_approved(db, test_employee):
    await _leave(db, test_employee["id"], status=LeaveStatus.approved, start=date(2025, 3, 3), end=date(2025, 3, 5))
    await _leave(db, test_employee["id"], status=LeaveStatus.cancelled)
    await _leave(db, test_employee["id"], status=LeaveStatus.approved, start=date(2024, 6, 3), end=date(2024, 6, 3))

    used = await ReportService.used_this_year(db, test_employee["id"], 2025)

    assert used["casual"] == 3
    assert set(used) == {t.value for t in LeaveType}


# ═════════════════════════════════════════════════════════════════════
# 5. API
# ═════════════════════════════════════════════════════════════════════


async def test_api_today_summary(client, db, test_employee, auth_headers, hr_headers):
    await db.commit()
    assert (
        await client.get("/api/v1/reports/attendance/today-summary", headers=auth_headers)
    ).status_code == 403

    resp = await client.get("/api/v1/reports/attendance/today-summary", headers=hr_headers)
    assert resp.status_code == 200
    assert resp.json()["total_employees"] == 2


async def test_api_monthly_report_validates_month(client, db, hr_headers):
    await db.commit()
    resp = await client.get(
        "/api/v1/reports/attendance/monthly-report?month=13&year=2025", headers=hr_headers,
    )
    assert resp.status_code == 422


async def test_api_leave_statistics(client, db, hr_headers):
    await db.commit()
    resp = await client.get("/api/v1/reports/leaves/statistics", headers=hr_headers)
    assert resp.status_code == 200
    assert resp.json()["total_applications"] == 0
