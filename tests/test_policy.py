"""Policy tests — active policy resolution, quota table management, batch and
single-employee balance initialisation, and the policy / employee endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from staffly.common.audit import AuditTrail
from staffly.common.constants import EmploymentStatus, LeaveType, PolicyCategory
from staffly.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from staffly.leave.ledger import LeaveLedger
from staffly.policy.schemas import PolicyCreate, PolicyLeaveTypeIn
from staffly.policy.service import PolicyService
from tests.conftest import add_balance, add_employee

DEFAULT_QUOTAS = [
    {"leave_type": "casual", "annual_quota": 12, "carry_forward": True, "max_carry_forward": 5},
    {"leave_type": "sick", "annual_quota": 10},
    {"leave_type": "annual", "annual_quota": 20, "carry_forward": True, "max_carry_forward": 10},
]


def _leave_policy(**overrides) -> PolicyCreate:
    fields = dict(
        title="Leave Policy 2025",
        category=PolicyCategory.leave,
        effective_from=date(2020, 1, 1),
        leave_types=DEFAULT_QUOTAS,
    )
    fields.update(overrides)
    return PolicyCreate(**fields)


# ═════════════════════════════════════════════════════════════════════
# 1. Schemas
# ═════════════════════════════════════════════════════════════════════


class TestPolicySchemas:
    def test_weekend_days_are_normalised(self):
        policy = _leave_policy(weekend_days=["friday", " SATURDAY "])
        assert policy.weekend_days == ["Friday", "Saturday"]

    def test_unknown_weekday_rejected(self):
        with pytest.raises(ValidationError):
            _leave_policy(weekend_days=["Caturday"])

    def test_duplicate_leave_types_rejected(self):
        with pytest.raises(ValidationError):
            _leave_policy(
                leave_types=[
                    {"leave_type": "sick", "annual_quota": 10},
                    {"leave_type": "SICK", "annual_quota": 12},
                ]
            )

    def test_unknown_leave_type_rejected(self):
        with pytest.raises(ValidationError):
            PolicyLeaveTypeIn(leave_type="sabbatical", annual_quota=5)


# ═════════════════════════════════════════════════════════════════════
# 2. Active policy resolution
# ═════════════════════════════════════════════════════════════════════


async def test_no_active_policy(db):
    assert await PolicyService.get_active_policy(db, PolicyCategory.leave) is None


async def test_create_policy_retires_previous_active_one(db, hr_actor):
    old = await PolicyService.create_policy(db, hr_actor, _leave_policy(title="2024"))
    new = await PolicyService.create_policy(db, hr_actor, _leave_policy(title="2025"))

    active = await PolicyService.get_active_policy(db, PolicyCategory.leave)
    assert active.id == new.id
    refreshed = await PolicyService.get_policy(db, old.id, hr_actor)
    assert refreshed.is_active is False


async def test_create_policy_keeps_other_categories_active(db, hr_actor):
    attendance = await PolicyService.create_policy(
        db, hr_actor,
        PolicyCreate(title="Hours", category=PolicyCategory.attendance, effective_from=date(2020, 1, 1)),
    )
    await PolicyService.create_policy(db, hr_actor, _leave_policy())

    active = await PolicyService.get_active_policy(db, PolicyCategory.attendance)
    assert active.id == attendance.id


async def test_future_policy_not_yet_in_effect(db, hr_actor):
    await PolicyService.create_policy(
        db, hr_actor, _leave_policy(effective_from=date.today() + timedelta(days=30)),
    )
    assert await PolicyService.get_active_policy(db, PolicyCategory.leave) is None


async def test_create_policy_rejects_inverted_effective_range(db, hr_actor):
    with pytest.raises(ValidationException):
        await PolicyService.create_policy(
            db, hr_actor,
            _leave_policy(effective_from=date(2025, 6, 1), effective_to=date(2025, 1, 1)),
        )


async def test_create_policy_requires_privileged(db, employee_actor):
    with pytest.raises(ForbiddenException):
        await PolicyService.create_policy(db, employee_actor, _leave_policy())


async def test_attendance_parameters_fall_back_to_settings(db):
    parameters = await PolicyService.get_attendance_parameters(db)
    assert parameters.half_day_threshold_hours == 4.0
    assert parameters.working_hours_per_day == 8.0
    assert parameters.weekend_days == ["Saturday", "Sunday"]


async def test_attendance_parameters_fall_back_to_leave_policy(db, hr_actor):
    await PolicyService.create_policy(
        db, hr_actor,
        _leave_policy(half_day_threshold_hours=Decimal("4.5"), weekend_days=["Sunday"]),
    )
    parameters = await PolicyService.get_attendance_parameters(db)
    assert parameters.half_day_threshold_hours == 4.5
    assert parameters.weekend_days == ["Sunday"]


# ═════════════════════════════════════════════════════════════════════
# 3. Quota table
# ═════════════════════════════════════════════════════════════════════


async def test_upsert_leave_type_adds_and_replaces(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())

    policy = await PolicyService.upsert_leave_type(
        db, policy.id, hr_actor, PolicyLeaveTypeIn(leave_type="paternity", annual_quota=15),
    )
    policy = await PolicyService.upsert_leave_type(
        db, policy.id, hr_actor, PolicyLeaveTypeIn(leave_type="sick", annual_quota=8),
    )

    quotas = {lt.leave_type: lt.annual_quota for lt in policy.leave_types}
    assert quotas[LeaveType.paternity] == 15
    assert quotas[LeaveType.sick] == 8
    assert len(quotas) == 4


async def test_deactivate(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())
    await PolicyService.deactivate(db, policy.id, hr_actor)
    assert await PolicyService.get_active_policy(db, PolicyCategory.leave) is None


async def test_get_unknown_policy(db, hr_actor):
    with pytest.raises(NotFoundException):
        await PolicyService.get_policy(db, uuid.uuid4(), hr_actor)


# ═════════════════════════════════════════════════════════════════════
# 4. Batch application
# ═════════════════════════════════════════════════════════════════════


async def test_apply_to_all_tolerates_individual_failures(db, hr_actor):
    """50 employees, 2 with corrupted records: 48 succeed, 2 reported."""
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())
    employees = [
        await add_employee(db, employee_code=f"ST-{i:03d}") for i in range(49)
    ]
    broken = {employees[10]["id"], employees[30]["id"]}
    real_initialize = LeaveLedger.initialize

    async def _flaky_initialize(session, employee_id, quota_rows):
        if employee_id in broken:
            raise RuntimeError("corrupted employee record")
        return await real_initialize(session, employee_id, quota_rows)

    with patch("staffly.policy.service.LeaveLedger.initialize", new=_flaky_initialize):
        result = await PolicyService.apply_policy_to_all_employees(db, policy.id, hr_actor)

    # 49 seeded + the HR employee
    assert (result.success_count, result.error_count) == (48, 2)
    assert {e.employee_id for e in result.errors} == broken
    assert all("corrupted" in e.error for e in result.errors)

    healthy = await LeaveLedger.list_balances(db, employees[0]["id"])
    assert {b.leave_type: b.total for b in healthy} == {
        LeaveType.casual: 12, LeaveType.sick: 10, LeaveType.annual: 20,
    }
    assert await LeaveLedger.list_balances(db, employees[10]["id"]) == []


async def test_apply_to_all_skips_inactive_employees(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())
    leaver = await add_employee(db, status=EmploymentStatus.terminated)

    result = await PolicyService.apply_policy_to_all_employees(db, policy.id, hr_actor)

    assert result.success_count == 1
    assert await LeaveLedger.list_balances(db, leaver["id"]) == []


async def test_apply_to_all_rolls_back_partial_work_of_failed_employee(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())
    employee = await add_employee(db)
    await add_balance(db, employee["id"], LeaveType.casual, total=7, used=2)
    real_initialize = LeaveLedger.initialize

    async def _fail_after_write(session, employee_id, quota_rows):
        balances = await real_initialize(session, employee_id, quota_rows)
        if employee_id == employee["id"]:
            raise RuntimeError("write verification failed")
        return balances

    with patch("staffly.policy.service.LeaveLedger.initialize", new=_fail_after_write):
        result = await PolicyService.apply_policy_to_all_employees(db, policy.id, hr_actor)

    assert result.error_count == 1
    balance = await LeaveLedger.get_balance(db, employee["id"], LeaveType.casual)
    assert (balance.total, balance.used) == (7, 2)
    assert await LeaveLedger.get_balance(db, employee["id"], LeaveType.sick) is None


async def test_apply_policy_without_leave_types(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy(leave_types=[]))
    with pytest.raises(ValidationException):
        await PolicyService.apply_policy_to_all_employees(db, policy.id, hr_actor)


async def test_apply_policy_records_audit_tally(db, hr_actor):
    policy = await PolicyService.create_policy(db, hr_actor, _leave_policy())
    await PolicyService.apply_policy_to_all_employees(db, policy.id, hr_actor)

    audit = (
        await db.execute(select(AuditTrail).where(AuditTrail.action == "apply"))
    ).scalars().one()
    assert audit.new_values == {"success_count": 1, "error_count": 0}


# ═════════════════════════════════════════════════════════════════════
# 5. Reinitialize
# ═════════════════════════════════════════════════════════════════════


async def test_reinitialize_discards_used_days(db, test_employee, hr_actor):
    await PolicyService.create_policy(db, hr_actor, _leave_policy())
    await add_balance(
        db, test_employee["id"], LeaveType.casual, total=12, used=8, carried_forward=3,
    )

    balances = await PolicyService.reinitialize(db, test_employee["id"], hr_actor)

    by_type = {b.leave_type: b for b in balances}
    assert (by_type[LeaveType.casual].used, by_type[LeaveType.casual].carried_forward) == (0, 0)
    assert by_type[LeaveType.casual].available == 12
    assert set(by_type) == {LeaveType.casual, LeaveType.sick, LeaveType.annual}


async def test_reinitialize_without_active_leave_policy(db, test_employee, hr_actor):
    with pytest.raises(NotFoundException):
        await PolicyService.reinitialize(db, test_employee["id"], hr_actor)


async def test_reinitialize_unknown_employee(db, hr_actor):
    await PolicyService.create_policy(db, hr_actor, _leave_policy())
    with pytest.raises(NotFoundException):
        await PolicyService.reinitialize(db, uuid.uuid4(), hr_actor)


async def test_reinitialize_requires_privileged(db, test_employee, employee_actor):
    with pytest.raises(ForbiddenException):
        await PolicyService.reinitialize(db, test_employee["id"], employee_actor)


# ═════════════════════════════════════════════════════════════════════
# 6. API
# ═════════════════════════════════════════════════════════════════════


async def test_api_active_leave_policy_404_when_missing(client, db, test_employee, auth_headers):
    await db.commit()
    resp = await client.get("/api/v1/policies/leave/active", headers=auth_headers)
    assert resp.status_code == 404
    assert resp.json()["type"].endswith("/not-found")


async def test_api_create_and_apply_policy(client, db, test_employee, hr_employee, hr_headers):
    await db.commit()

    resp = await client.post(
        "/api/v1/policies/",
        json={
            "title": "Leave Policy 2025",
            "category": "leave",
            "effective_from": "2020-01-01",
            "leave_types": DEFAULT_QUOTAS,
        },
        headers=hr_headers,
    )
    assert resp.status_code == 201
    policy_id = resp.json()["id"]

    resp = await client.post(
        f"/api/v1/policies/{policy_id}/apply-to-employees", headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["success_count"] == 2
    assert resp.json()["error_count"] == 0

    resp = await client.get("/api/v1/policies/leave/active", headers=hr_headers)
    assert resp.status_code == 200
    assert len(resp.json()["leave_types"]) == 3


async def test_api_policy_management_requires_hr(client, db, test_employee, auth_headers):
    await db.commit()
    resp = await client.get("/api/v1/policies/", headers=auth_headers)
    assert resp.status_code == 403


async def test_api_initialize_leaves(client, db, test_employee, hr_actor, hr_headers):
    await PolicyService.create_policy(db, hr_actor, _leave_policy())
    await db.commit()

    resp = await client.post(
        f"/api/v1/employees/{test_employee['id']}/initialize-leaves", headers=hr_headers,
    )

    assert resp.status_code == 200
    assert sorted(b["leave_type"] for b in resp.json()) == ["annual", "casual", "sick"]


async def test_api_manual_balance_override(
    client, db, test_employee, auth_headers, hr_headers,
):
    await db.commit()
    url = f"/api/v1/employees/{test_employee['id']}/leave-balance"

    resp = await client.put(
        url,
        json={"leave_type": "Casual", "total": 14, "used": 2, "carried_forward": 1},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == [
        {"leave_type": "casual", "total": 14, "used": 2, "carried_forward": 1, "available": 13}
    ]

    resp = await client.put(
        url, json={"leave_type": "casual", "total": 30, "used": 0}, headers=auth_headers,
    )
    assert resp.status_code == 403

    resp = await client.put(
        url, json={"leave_type": "casual", "total": 5, "used": -1}, headers=hr_headers,
    )
    assert resp.status_code == 422

    resp = await client.get(url, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()[0]["available"] == 13


async def test_api_employee_cannot_read_colleague_balance(client, db, auth_headers):
    colleague = await add_employee(db)
    await db.commit()
    resp = await client.get(
        f"/api/v1/employees/{colleague['id']}/leave-balance", headers=auth_headers,
    )
    assert resp.status_code == 403
