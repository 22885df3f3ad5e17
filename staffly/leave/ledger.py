"""Leave balance ledger — the only write path for ``leave_balances``.

Every change to ``used`` is a single conditional UPDATE that increments and
validates in one statement, so two leave transitions racing on the same
employee and leave type can never lose an update or overdraw the balance.
``available`` is never written; it is derived from total, used and
carried_forward on every read.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.schemas import Actor
from staffly.common.audit import create_audit_entry
from staffly.common.constants import LeaveType
from staffly.common.exceptions import (
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    UnknownLeaveTypeException,
    ValidationException,
)
from staffly.core_hr.models import Employee
from staffly.leave.models import LeaveBalance

logger = logging.getLogger(__name__)


class QuotaRow(Protocol):
    """Anything carrying a leave type and its annual quota (e.g. PolicyLeaveType)."""

    leave_type: LeaveType
    annual_quota: int


class Quota(NamedTuple):
    """Detached quota row, safe to reuse across SAVEPOINT rollbacks."""

    leave_type: LeaveType
    annual_quota: int


def coerce_leave_type(value: LeaveType | str) -> LeaveType:
    """Resolve a case-insensitive leave type name, or raise ``UnknownLeaveTypeException``."""
    if isinstance(value, LeaveType):
        return value
    try:
        return LeaveType(str(value).strip().lower())
    except ValueError:
        raise UnknownLeaveTypeException(value)


def _balance_snapshot(balance: LeaveBalance) -> dict[str, int]:
    return {
        "total": balance.total,
        "used": balance.used,
        "carried_forward": balance.carried_forward,
        "available": balance.available,
    }


class LeaveLedger:
    """Per-employee, per-leave-type balance bookkeeping."""

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType | str,
    ) -> Optional[LeaveBalance]:
        """Fresh read of one balance row, or ``None`` when the type is not held."""
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == coerce_leave_type(leave_type),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id)
            .order_by(LeaveBalance.leave_type)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def adjust(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType | str,
        delta_days: int,
    ) -> LeaveBalance:
        """Atomically apply ``used += delta_days``.

        The result must satisfy ``0 <= used <= total + carried_forward`` whatever
        the sign of ``delta_days``. A row overdrawn by a manual override refuses
        restores too until HR brings it back within bounds.

        Raises:
            UnknownLeaveTypeException: the employee holds no such balance.
            InsufficientBalanceException: the result would break the bounds.
        """
        leave_type = coerce_leave_type(leave_type)
        new_used = LeaveBalance.used + delta_days

        conditions = [
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type == leave_type,
            new_used >= 0,
            new_used <= LeaveBalance.total + LeaveBalance.carried_forward,
        ]

        result = await db.execute(
            update(LeaveBalance)
            .where(*conditions)
            .values(used=new_used, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = await LeaveLedger.get_balance(db, employee_id, leave_type)
            if current is None:
                raise UnknownLeaveTypeException(leave_type)
            logger.warning(
                "Ledger rejected %+d %s day(s) for employee %s (used=%d, available=%d)",
                delta_days, leave_type.value, employee_id, current.used, current.available,
            )
            raise InsufficientBalanceException(
                leave_type, requested=delta_days, available=current.available,
            )

        balance = await LeaveLedger.get_balance(db, employee_id, leave_type)
        logger.debug(
            "Ledger %+d %s day(s) for employee %s → used=%d available=%d",
            delta_days, leave_type.value, employee_id, balance.used, balance.available,
        )
        return balance

    @staticmethod
    async def initialize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        quota_rows: Iterable[QuotaRow],
    ) -> list[LeaveBalance]:
        """Replace the employee's whole balance set with one row per quota row.

        Destructive: ``used`` and ``carried_forward`` restart at zero and
        outstanding pending applications are not reconciled.
        """
        await db.execute(
            delete(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
        )
        for row in quota_rows:
            db.add(
                LeaveBalance(
                    employee_id=employee_id,
                    leave_type=coerce_leave_type(row.leave_type),
                    total=row.annual_quota,
                    used=0,
                    carried_forward=0,
                )
            )
        await db.flush()
        return await LeaveLedger.list_balances(db, employee_id)

    @staticmethod
    async def set_manual(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType | str,
        *,
        total: int,
        used: int,
        carried_forward: int,
        actor: Actor,
    ) -> list[LeaveBalance]:
        """HR correction: overwrite (or create) one balance row verbatim."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can override leave balances.")

        errors: dict[str, list[str]] = {}
        for field, value in (
            ("total", total),
            ("used", used),
            ("carried_forward", carried_forward),
        ):
            if value < 0:
                errors[field] = ["Must be greater than or equal to 0."]
        if errors:
            raise ValidationException(errors)

        leave_type = coerce_leave_type(leave_type)
        if await db.get(Employee, employee_id) is None:
            raise NotFoundException("Employee", employee_id)

        balance = await LeaveLedger.get_balance(db, employee_id, leave_type)
        old_values = _balance_snapshot(balance) if balance else None
        if balance is None:
            balance = LeaveBalance(employee_id=employee_id, leave_type=leave_type)
            db.add(balance)

        balance.total = total
        balance.used = used
        balance.carried_forward = carried_forward
        await db.flush()

        await create_audit_entry(
            db,
            action="override",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={"leave_type": leave_type.value, **_balance_snapshot(balance)},
        )
        logger.info(
            "Balance override for employee %s (%s) by %s: total=%d used=%d cf=%d",
            employee_id, leave_type.value, actor.id, total, used, carried_forward,
        )
        return await LeaveLedger.list_balances(db, employee_id)
