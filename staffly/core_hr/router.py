"""Core HR router — per-employee leave balance administration.

Routes:
    /employees/{id}/initialize-leaves — Reset balances from the active leave policy
    /employees/{id}/leave-balance     — View or manually correct balances

Employees may read their own balances; every other call requires HR or admin.
"""


import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.dependencies import get_current_actor, require_privileged
from staffly.auth.schemas import Actor
from staffly.common.exceptions import ForbiddenException, NotFoundException
from staffly.core_hr.models import Employee
from staffly.database import get_db
from staffly.leave.ledger import LeaveLedger
from staffly.leave.schemas import LeaveBalanceOut, LeaveBalanceUpdate
from staffly.policy.service import PolicyService


employees_router = APIRouter(prefix="", tags=["employees"])


# ── POST /employees/{id}/initialize-leaves ──────────────────────────

@employees_router.post(
    "/{employee_id}/initialize-leaves",
    response_model=list[LeaveBalanceOut],
)
async def initialize_leaves(
    employee_id: uuid.UUID,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Replace the employee's balances with the active leave policy's quotas.

    Destructive: previously used days are discarded.
    """
    return await PolicyService.reinitialize(db, employee_id, actor)


# ── PUT /employees/{id}/leave-balance ───────────────────────────────

@employees_router.put(
    "/{employee_id}/leave-balance",
    response_model=list[LeaveBalanceOut],
)
async def update_leave_balance(
    employee_id: uuid.UUID,
    body: LeaveBalanceUpdate,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Overwrite one balance row (creating it when absent)."""
    return await LeaveLedger.set_manual(
        db,
        employee_id,
        body.leave_type,
        total=body.total,
        used=body.used,
        carried_forward=body.carried_forward,
        actor=actor,
    )


# ── GET /employees/{id}/leave-balance ───────────────────────────────

@employees_router.get(
    "/{employee_id}/leave-balance",
    response_model=list[LeaveBalanceOut],
)
async def get_leave_balance(
    employee_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    if not actor.can_act_for(employee_id):
        raise ForbiddenException("You can only view your own leave balance.")
    if await db.get(Employee, employee_id) is None:
        raise NotFoundException("Employee", employee_id)
    return await LeaveLedger.list_balances(db, employee_id)
