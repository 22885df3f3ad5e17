"""Policy router — active policy lookup, policy management, balance seeding.

The active-policy lookups are open to every authenticated employee; all
other endpoints require the HR or admin role.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.dependencies import get_current_actor, require_privileged
from staffly.auth.schemas import Actor
from staffly.common.constants import PolicyCategory
from staffly.common.exceptions import NotFoundException
from staffly.database import get_db
from staffly.policy.schemas import (
    PolicyApplyResult,
    PolicyCreate,
    PolicyLeaveTypeIn,
    PolicyOut,
)
from staffly.policy.service import PolicyService

router = APIRouter()


async def _active_or_404(db: AsyncSession, category: PolicyCategory):
    policy = await PolicyService.get_active_policy(db, category)
    if policy is None:
        raise NotFoundException("Active policy", category.value)
    return policy


# ── GET /leave/active ───────────────────────────────────────────────

@router.get("/leave/active", response_model=PolicyOut)
async def active_leave_policy(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """The leave policy in effect today, with its quota table."""
    return await _active_or_404(db, PolicyCategory.leave)


# ── GET /attendance/active ──────────────────────────────────────────

@router.get("/attendance/active", response_model=PolicyOut)
async def active_attendance_policy(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await _active_or_404(db, PolicyCategory.attendance)


# ── GET / (HR) ──────────────────────────────────────────────────────

@router.get("/", response_model=list[PolicyOut])
async def list_policies(
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyService.list_policies(db, actor)


# ── POST / (HR) ─────────────────────────────────────────────────────

@router.post("/", response_model=PolicyOut, status_code=201)
async def create_policy(
    body: PolicyCreate,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Create a policy. An active policy retires the category's previous one."""
    return await PolicyService.create_policy(db, actor, body)


# ── GET /{id} (HR) ──────────────────────────────────────────────────

@router.get("/{policy_id}", response_model=PolicyOut)
async def get_policy(
    policy_id: uuid.UUID,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyService.get_policy(db, policy_id, actor)


# ── PUT /{id}/leave-type (HR) ───────────────────────────────────────

@router.put("/{policy_id}/leave-type", response_model=PolicyOut)
async def upsert_leave_type(
    policy_id: uuid.UUID,
    body: PolicyLeaveTypeIn,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Add or replace one leave type's quota row."""
    return await PolicyService.upsert_leave_type(db, policy_id, actor, body)


# ── PUT /{id}/deactivate (HR) ───────────────────────────────────────

@router.put("/{policy_id}/deactivate", response_model=PolicyOut)
async def deactivate_policy(
    policy_id: uuid.UUID,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    return await PolicyService.deactivate(db, policy_id, actor)


# ── POST /{id}/apply-to-employees (HR) ──────────────────────────────

@router.post("/{policy_id}/apply-to-employees", response_model=PolicyApplyResult)
async def apply_to_employees(
    policy_id: uuid.UUID,
    actor: Actor = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    """Re-seed every active employee's balances. Failures are reported per employee."""
    return await PolicyService.apply_policy_to_all_employees(db, policy_id, actor)
