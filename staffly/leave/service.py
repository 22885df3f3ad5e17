"""Leave service layer — application lifecycle on top of the balance ledger.

Business logic:
  - Apply: validate the range, count inclusive calendar days, check the
    employee holds the leave type and has enough available days
  - Approve / reject: privileged only, pending → approved | rejected
  - Cancel: owner or privileged; pending applications are deleted outright,
    approved ones become cancelled and their days go back to the ledger
  - Comments: append-only, allowed in every state

Every status transition is a conditional UPDATE guarded on the expected
prior status, so of two concurrent transitions on one application exactly
one wins and the loser gets ``StateConflictException``. When the ledger
step after a winning transition fails, the status is put back before the
error propagates, and the request unit of work rolls back the rest.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from staffly.auth.schemas import Actor
from staffly.common.audit import create_audit_entry
from staffly.common.constants import LeaveStatus, LeaveType
from staffly.common.exceptions import (
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    NotFoundException,
    StateConflictException,
    UnknownLeaveTypeException,
    ValidationException,
)
from staffly.common.pagination import PaginatedResponse, PaginationParams, paginate
from staffly.core_hr.models import Employee
from staffly.leave.ledger import LeaveLedger, coerce_leave_type
from staffly.leave.models import LeaveApplication, LeaveComment
from staffly.leave.schemas import LeaveApplicationOut

logger = logging.getLogger(__name__)

ENTITY = "leave_application"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: date | str, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationException({field: [f"'{value}' is not a valid ISO-8601 date."]})


def count_leave_days(from_date: date, to_date: date) -> int:
    """Inclusive calendar-day span; weekends and holidays count."""
    return (to_date - from_date).days + 1


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave application operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
    ) -> LeaveApplication:
        """Fresh load with comments; raises ``NotFoundException``."""
        result = await db.execute(
            select(LeaveApplication)
            .where(LeaveApplication.id == application_id)
            .options(selectinload(LeaveApplication.comments))
            .execution_options(populate_existing=True)
        )
        application = result.scalars().first()
        if application is None:
            raise NotFoundException("Leave application", application_id)
        return application

    @staticmethod
    async def _transition(
        db: AsyncSession,
        application_id: uuid.UUID,
        *,
        expected: LeaveStatus,
        action: str,
        values: dict,
    ) -> None:
        """Move an application out of *expected* status or raise.

        A zero rowcount means the application is gone or another request has
        already moved it.
        """
        result = await db.execute(
            update(LeaveApplication)
            .where(
                LeaveApplication.id == application_id,
                LeaveApplication.status == expected,
            )
            .values(updated_at=_utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await LeaveService._get_application(db, application_id)
            raise StateConflictException("leave application", current.status, action)

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply(
        db: AsyncSession,
        actor: Actor,
        *,
        leave_type: LeaveType | str,
        from_date: date | str,
        to_date: date | str,
        reason: str,
    ) -> LeaveApplication:
        """Create a pending application for the acting employee.

        Creation is blocked when the balance cannot cover the request; the
        same bound is enforced again by the ledger at approval time.
        """
        start = _parse_date(from_date, "from_date")
        end = _parse_date(to_date, "to_date")

        errors: dict[str, list[str]] = {}
        if end < start:
            errors["to_date"] = ["to_date must be on or after from_date."]
        if not reason or not reason.strip():
            errors["reason"] = ["A reason is required."]
        if errors:
            raise ValidationException(errors)

        leave_type = coerce_leave_type(leave_type)
        number_of_days = count_leave_days(start, end)

        balance = await LeaveLedger.get_balance(db, actor.id, leave_type)
        if balance is None:
            raise UnknownLeaveTypeException(leave_type)
        if balance.available < number_of_days:
            raise InsufficientBalanceException(
                leave_type, requested=number_of_days, available=balance.available,
            )

        application = LeaveApplication(
            employee_id=actor.id,
            leave_type=leave_type,
            from_date=start,
            to_date=end,
            number_of_days=number_of_days,
            reason=reason.strip(),
            status=LeaveStatus.pending,
            applied_on=_utcnow(),
        )
        db.add(application)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type=ENTITY,
            entity_id=application.id,
            actor_id=actor.id,
            new_values={
                "leave_type": leave_type.value,
                "from_date": start.isoformat(),
                "to_date": end.isoformat(),
                "number_of_days": number_of_days,
            },
        )
        logger.info(
            "Leave %s applied by %s: %s %d day(s) %s → %s",
            application.id, actor.id, leave_type.value, number_of_days, start, end,
        )
        return await LeaveService._get_application(db, application.id)

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveApplication:
        """pending → approved, then deduct the days from the ledger."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can approve leave.")

        await LeaveService._transition(
            db,
            application_id,
            expected=LeaveStatus.pending,
            action="approve",
            values={
                "status": LeaveStatus.approved,
                "approved_by": actor.id,
                "approved_on": _utcnow(),
            },
        )
        application = await LeaveService._get_application(db, application_id)

        try:
            balance = await LeaveLedger.adjust(
                db,
                application.employee_id,
                application.leave_type,
                application.number_of_days,
            )
        except AppException:
            await db.execute(
                update(LeaveApplication)
                .where(
                    LeaveApplication.id == application_id,
                    LeaveApplication.status == LeaveStatus.approved,
                )
                .values(status=LeaveStatus.pending, approved_by=None, approved_on=None)
                .execution_options(synchronize_session=False)
            )
            logger.warning(
                "Approval of leave %s reverted: ledger refused %d %s day(s)",
                application_id, application.number_of_days, application.leave_type.value,
            )
            raise

        await create_audit_entry(
            db,
            action="approve",
            entity_type=ENTITY,
            entity_id=application_id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={
                "status": LeaveStatus.approved.value,
                "used": balance.used,
                "available": balance.available,
            },
        )
        logger.info("Leave %s approved by %s", application_id, actor.id)
        return await LeaveService._get_application(db, application_id)

    @staticmethod
    async def reject(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor: Actor,
        reason: str,
    ) -> LeaveApplication:
        """pending → rejected. No ledger effect."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can reject leave.")
        if not reason or not reason.strip():
            raise ValidationException({"reason": ["A rejection reason is required."]})

        await LeaveService._transition(
            db,
            application_id,
            expected=LeaveStatus.pending,
            action="reject",
            values={
                "status": LeaveStatus.rejected,
                "rejection_reason": reason.strip(),
                "approved_by": actor.id,
                "approved_on": _utcnow(),
            },
        )

        await create_audit_entry(
            db,
            action="reject",
            entity_type=ENTITY,
            entity_id=application_id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={
                "status": LeaveStatus.rejected.value,
                "rejection_reason": reason.strip(),
            },
        )
        logger.info("Leave %s rejected by %s", application_id, actor.id)
        return await LeaveService._get_application(db, application_id)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor: Actor,
    ) -> Optional[LeaveApplication]:
        """Cancel an application.

        Returns ``None`` when a pending application was deleted, or the
        cancelled application when an approved one had its days restored.
        """
        application = await LeaveService._get_application(db, application_id)
        if not actor.can_act_for(application.employee_id):
            raise ForbiddenException("You can only cancel your own leave.")

        if application.status == LeaveStatus.pending:
            result = await db.execute(
                delete(LeaveApplication).where(
                    LeaveApplication.id == application_id,
                    LeaveApplication.status == LeaveStatus.pending,
                )
            )
            if result.rowcount == 0:
                current = await LeaveService._get_application(db, application_id)
                raise StateConflictException("leave application", current.status, "cancel")
            await db.execute(
                delete(LeaveComment).where(LeaveComment.application_id == application_id)
            )
            logger.info("Pending leave %s deleted by %s", application_id, actor.id)
            return None

        if application.status != LeaveStatus.approved:
            raise StateConflictException("leave application", application.status, "cancel")

        await LeaveService._transition(
            db,
            application_id,
            expected=LeaveStatus.approved,
            action="cancel",
            values={"status": LeaveStatus.cancelled, "cancelled_at": _utcnow()},
        )

        try:
            balance = await LeaveLedger.adjust(
                db,
                application.employee_id,
                application.leave_type,
                -application.number_of_days,
            )
        except AppException:
            await db.execute(
                update(LeaveApplication)
                .where(
                    LeaveApplication.id == application_id,
                    LeaveApplication.status == LeaveStatus.cancelled,
                )
                .values(status=LeaveStatus.approved, cancelled_at=None)
                .execution_options(synchronize_session=False)
            )
            logger.warning(
                "Cancellation of leave %s reverted: ledger refused to restore %d %s day(s)",
                application_id, application.number_of_days, application.leave_type.value,
            )
            raise

        await create_audit_entry(
            db,
            action="cancel",
            entity_type=ENTITY,
            entity_id=application_id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.approved.value},
            new_values={
                "status": LeaveStatus.cancelled.value,
                "used": balance.used,
                "available": balance.available,
            },
        )
        logger.info("Approved leave %s cancelled by %s", application_id, actor.id)
        return await LeaveService._get_application(db, application_id)

    # ─────────────────────────────────────────────────────────────────
    # Comments
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor: Actor,
        text: str,
    ) -> LeaveApplication:
        if not text or not text.strip():
            raise ValidationException({"text": ["Comment text is required."]})

        await LeaveService._get_application(db, application_id)
        db.add(
            LeaveComment(
                application_id=application_id,
                author_id=actor.id,
                text=text.strip(),
                created_at=_utcnow(),
            )
        )
        await db.flush()
        return await LeaveService._get_application(db, application_id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
        actor: Actor,
    ) -> LeaveApplication:
        application = await LeaveService._get_application(db, application_id)
        if not actor.can_act_for(application.employee_id):
            raise ForbiddenException("You can only view your own leave.")
        return application

    @staticmethod
    async def list_my_applications(
        db: AsyncSession,
        actor: Actor,
        *,
        status: Optional[LeaveStatus] = None,
        year: Optional[int] = None,
    ) -> list[LeaveApplication]:
        """The actor's own applications, newest first."""
        query = (
            select(LeaveApplication)
            .where(LeaveApplication.employee_id == actor.id)
            .options(selectinload(LeaveApplication.comments))
            .order_by(LeaveApplication.applied_on.desc())
        )
        if status is not None:
            query = query.where(LeaveApplication.status == status)
        if year is not None:
            query = query.where(
                LeaveApplication.from_date >= date(year, 1, 1),
                LeaveApplication.from_date <= date(year, 12, 31),
            )
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_applications(
        db: AsyncSession,
        actor: Actor,
        params: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        department_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
        oldest_first: bool = False,
    ) -> PaginatedResponse:
        """Organisation-wide application list (HR/admin)."""
        if not actor.is_privileged:
            raise ForbiddenException("Only HR or admin can list all leave applications.")

        query = select(LeaveApplication).options(
            selectinload(LeaveApplication.comments)
        )
        if status is not None:
            query = query.where(LeaveApplication.status == status)
        if leave_type is not None:
            query = query.where(LeaveApplication.leave_type == leave_type)
        if employee_id is not None:
            query = query.where(LeaveApplication.employee_id == employee_id)
        if department_id is not None:
            query = query.join(
                Employee, Employee.id == LeaveApplication.employee_id
            ).where(Employee.department_id == department_id)

        order = LeaveApplication.applied_on.asc() if oldest_first else LeaveApplication.applied_on.desc()
        query = query.order_by(order, LeaveApplication.id)

        return await paginate(
            db, query, params, transform=LeaveApplicationOut.model_validate,
        )
