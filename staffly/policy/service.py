"""Policy service layer — active policy lookup, quota table, balance initialisation.

Business logic:
  - Exactly one active policy per category; activating a new one retires
    the previous active policy of that category
  - The active leave policy's quota table seeds employee balances, either
    for one employee (reinitialize) or for every active employee in a batch
    that records per-employee failures instead of aborting
  - Attendance parameters come from the active attendance policy, falling
    back to the active leave policy and then to settings defaults
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from staffly.auth.schemas import Actor
from staffly.common.audit import create_audit_entry
from staffly.common.constants import EmploymentStatus, PolicyCategory
from staffly.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from staffly.config import settings
from staffly.core_hr.models import Employee
from staffly.leave.ledger import LeaveLedger, Quota
from staffly.leave.models import LeaveBalance
from staffly.policy.models import Policy, PolicyLeaveType
from staffly.policy.schemas import (
    AttendanceParameters,
    EmployeeInitError,
    PolicyApplyResult,
    PolicyCreate,
    PolicyLeaveTypeIn,
)

logger = logging.getLogger(__name__)


def _require_privileged(actor: Actor, action: str) -> None:
    if not actor.is_privileged:
        raise ForbiddenException(f"Only HR or admin can {action}.")


# ═════════════════════════════════════════════════════════════════════
# PolicyService
# ═════════════════════════════════════════════════════════════════════


class PolicyService:
    """Async policy operations."""

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load(db: AsyncSession, policy_id: uuid.UUID) -> Policy:
        result = await db.execute(
            select(Policy)
            .where(Policy.id == policy_id)
            .options(selectinload(Policy.leave_types))
            .execution_options(populate_existing=True)
        )
        policy = result.scalars().first()
        if policy is None:
            raise NotFoundException("Policy", policy_id)
        return policy

    @staticmethod
    async def get_active_policy(
        db: AsyncSession,
        category: PolicyCategory,
        *,
        on: Optional[date] = None,
    ) -> Optional[Policy]:
        """The active policy of *category* in effect on *on* (default today)."""
        day = on or datetime.now(timezone.utc).date()
        result = await db.execute(
            select(Policy)
            .where(
                Policy.category == category,
                Policy.is_active.is_(True),
                Policy.effective_from <= day,
                or_(Policy.effective_to.is_(None), Policy.effective_to >= day),
            )
            .options(selectinload(Policy.leave_types))
            .order_by(Policy.effective_from.desc(), Policy.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def get_attendance_parameters(db: AsyncSession) -> AttendanceParameters:
        policy = await PolicyService.get_active_policy(db, PolicyCategory.attendance)
        if policy is None:
            policy = await PolicyService.get_active_policy(db, PolicyCategory.leave)
        if policy is None:
            return AttendanceParameters(
                working_hours_per_day=settings.DEFAULT_WORKING_HOURS_PER_DAY,
                half_day_threshold_hours=settings.DEFAULT_HALF_DAY_THRESHOLD_HOURS,
                grace_time_minutes=settings.DEFAULT_GRACE_TIME_MINUTES,
                weekend_days=settings.default_weekend_days,
            )
        return AttendanceParameters(
            working_hours_per_day=float(policy.working_hours_per_day),
            half_day_threshold_hours=float(policy.half_day_threshold_hours),
            grace_time_minutes=policy.grace_time_minutes,
            weekend_days=list(policy.weekend_days or []),
        )

    @staticmethod
    async def list_policies(db: AsyncSession, actor: Actor) -> list[Policy]:
        _require_privileged(actor, "list policies")
        result = await db.execute(
            select(Policy)
            .options(selectinload(Policy.leave_types))
            .order_by(Policy.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_policy(
        db: AsyncSession,
        policy_id: uuid.UUID,
        actor: Actor,
    ) -> Policy:
        _require_privileged(actor, "view policies")
        return await PolicyService._load(db, policy_id)

    # ─────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_policy(
        db: AsyncSession,
        actor: Actor,
        body: PolicyCreate,
    ) -> Policy:
        """Create a policy; an active one retires the category's current active policy."""
        _require_privileged(actor, "create policies")
        if body.effective_to is not None and body.effective_to < body.effective_from:
            raise ValidationException(
                {"effective_to": ["effective_to must be on or after effective_from."]}
            )

        if body.is_active:
            await db.execute(
                update(Policy)
                .where(Policy.category == body.category, Policy.is_active.is_(True))
                .values(is_active=False, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )

        policy = Policy(
            title=body.title,
            description=body.description,
            category=body.category,
            working_hours_per_day=body.working_hours_per_day,
            working_days_per_week=body.working_days_per_week,
            weekend_days=body.weekend_days,
            grace_time_minutes=body.grace_time_minutes,
            half_day_threshold_hours=body.half_day_threshold_hours,
            effective_from=body.effective_from,
            effective_to=body.effective_to,
            is_active=body.is_active,
            created_by=actor.id,
            leave_types=[
                PolicyLeaveType(
                    leave_type=row.leave_type,
                    annual_quota=row.annual_quota,
                    carry_forward=row.carry_forward,
                    max_carry_forward=row.max_carry_forward,
                    description=row.description,
                )
                for row in body.leave_types
            ],
        )
        db.add(policy)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="policy",
            entity_id=policy.id,
            actor_id=actor.id,
            new_values={
                "title": body.title,
                "category": body.category,
                "is_active": body.is_active,
                "effective_from": body.effective_from,
                "leave_types": [row.leave_type for row in body.leave_types],
            },
        )
        logger.info("Policy %s (%s) created by %s", policy.id, body.category.value, actor.id)
        return await PolicyService._load(db, policy.id)

    @staticmethod
    async def upsert_leave_type(
        db: AsyncSession,
        policy_id: uuid.UUID,
        actor: Actor,
        row: PolicyLeaveTypeIn,
    ) -> Policy:
        """Add or replace one quota row of a policy."""
        _require_privileged(actor, "change leave quotas")
        policy = await PolicyService._load(db, policy_id)

        existing = next(
            (lt for lt in policy.leave_types if lt.leave_type == row.leave_type),
            None,
        )
        old_values = None
        if existing is None:
            policy.leave_types.append(
                PolicyLeaveType(
                    leave_type=row.leave_type,
                    annual_quota=row.annual_quota,
                    carry_forward=row.carry_forward,
                    max_carry_forward=row.max_carry_forward,
                    description=row.description,
                )
            )
        else:
            old_values = {
                "annual_quota": existing.annual_quota,
                "carry_forward": existing.carry_forward,
                "max_carry_forward": existing.max_carry_forward,
            }
            existing.annual_quota = row.annual_quota
            existing.carry_forward = row.carry_forward
            existing.max_carry_forward = row.max_carry_forward
            if row.description is not None:
                existing.description = row.description
        await db.flush()

        await create_audit_entry(
            db,
            action="update_leave_type",
            entity_type="policy",
            entity_id=policy_id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={
                "leave_type": row.leave_type.value,
                "annual_quota": row.annual_quota,
                "carry_forward": row.carry_forward,
                "max_carry_forward": row.max_carry_forward,
            },
        )
        return await PolicyService._load(db, policy_id)

    @staticmethod
    async def deactivate(
        db: AsyncSession,
        policy_id: uuid.UUID,
        actor: Actor,
    ) -> Policy:
        _require_privileged(actor, "deactivate policies")
        policy = await PolicyService._load(db, policy_id)
        policy.is_active = False
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="policy",
            entity_id=policy_id,
            actor_id=actor.id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        return await PolicyService._load(db, policy_id)

    # ─────────────────────────────────────────────────────────────────
    # Balance initialisation
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_policy_to_all_employees(
        db: AsyncSession,
        policy_id: uuid.UUID,
        actor: Actor,
    ) -> PolicyApplyResult:
        """Re-seed every active employee's balances from *policy_id*.

        Each employee runs in its own SAVEPOINT; a failure rolls back that
        employee only and is reported in the result.
        """
        _require_privileged(actor, "apply policies to employees")
        policy = await PolicyService._load(db, policy_id)
        if not policy.leave_types:
            raise ValidationException(
                {"leave_types": ["Policy defines no leave types to apply."]}
            )
        quota_rows = [Quota(lt.leave_type, lt.annual_quota) for lt in policy.leave_types]

        employee_ids = (
            await db.execute(
                select(Employee.id)
                .where(Employee.status == EmploymentStatus.active)
                .order_by(Employee.employee_code)
            )
        ).scalars().all()

        outcome = PolicyApplyResult(policy_id=policy_id)
        for employee_id in employee_ids:
            try:
                async with db.begin_nested():
                    await LeaveLedger.initialize(db, employee_id, quota_rows)
            except Exception as exc:
                outcome.error_count += 1
                outcome.errors.append(
                    EmployeeInitError(employee_id=employee_id, error=str(exc))
                )
                logger.warning(
                    "Policy %s: balance initialisation failed for employee %s: %s",
                    policy_id, employee_id, exc,
                )
            else:
                outcome.success_count += 1

        await create_audit_entry(
            db,
            action="apply",
            entity_type="policy",
            entity_id=policy_id,
            actor_id=actor.id,
            new_values={
                "success_count": outcome.success_count,
                "error_count": outcome.error_count,
            },
        )
        logger.info(
            "Policy %s applied by %s: %d succeeded, %d failed",
            policy_id, actor.id, outcome.success_count, outcome.error_count,
        )
        return outcome

    @staticmethod
    async def reinitialize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        actor: Actor,
    ) -> list[LeaveBalance]:
        """Reset one employee's balances from the active leave policy.

        Prior ``used`` and ``carried_forward`` values are discarded.
        """
        _require_privileged(actor, "reinitialize leave balances")
        if await db.get(Employee, employee_id) is None:
            raise NotFoundException("Employee", employee_id)

        policy = await PolicyService.get_active_policy(db, PolicyCategory.leave)
        if policy is None:
            raise NotFoundException("Active leave policy", PolicyCategory.leave.value)

        balances = await LeaveLedger.initialize(db, employee_id, policy.leave_types)

        await create_audit_entry(
            db,
            action="reinitialize",
            entity_type="leave_balance",
            entity_id=employee_id,
            actor_id=actor.id,
            new_values={
                "policy_id": str(policy.id),
                "balances": {b.leave_type.value: b.total for b in balances},
            },
        )
        logger.info(
            "Leave balances for employee %s reinitialised from policy %s by %s",
            employee_id, policy.id, actor.id,
        )
        return balances
