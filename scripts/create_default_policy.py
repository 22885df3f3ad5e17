#!/usr/bin/env python3
"""Create the default leave policy when no leave policy is active.

The policy is recorded as created by the given HR or admin employee.

Usage:
    python scripts/create_default_policy.py --actor-email hr@company.com
    python scripts/create_default_policy.py --actor-email hr@company.com --effective-from 2026-01-01

Exit codes:
    0 = policy created, or an active leave policy already exists
    1 = the actor is unknown or not HR/admin
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime, timezone

from sqlalchemy import select

from staffly.auth.schemas import Actor
from staffly.common.constants import PRIVILEGED_ROLES, LeaveType, PolicyCategory
from staffly.core_hr.models import Employee
from staffly.database import async_session_factory, engine
from staffly.policy.schemas import PolicyCreate, PolicyLeaveTypeIn
from staffly.policy.service import PolicyService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("create_default_policy")

# (leave type, annual quota, max carry forward)
DEFAULT_QUOTAS: list[tuple[LeaveType, int, int]] = [
    (LeaveType.casual, 12, 5),
    (LeaveType.sick, 10, 0),
    (LeaveType.annual, 20, 10),
    (LeaveType.maternity, 180, 0),
    (LeaveType.paternity, 15, 0),
    (LeaveType.unpaid, 30, 0),
    (LeaveType.compensatory, 12, 6),
]


def default_policy(effective_from: date) -> PolicyCreate:
    return PolicyCreate(
        title="Default Leave Policy",
        description="Standard leave entitlements for all employees.",
        category=PolicyCategory.leave,
        working_hours_per_day=8,
        working_days_per_week=5,
        weekend_days=["Saturday", "Sunday"],
        grace_time_minutes=15,
        half_day_threshold_hours=4,
        effective_from=effective_from,
        leave_types=[
            PolicyLeaveTypeIn(
                leave_type=leave_type,
                annual_quota=quota,
                carry_forward=max_cf > 0,
                max_carry_forward=max_cf,
            )
            for leave_type, quota, max_cf in DEFAULT_QUOTAS
        ],
    )


async def run(actor_email: str, effective_from: date) -> int:
    async with async_session_factory() as db:
        existing = await PolicyService.get_active_policy(db, PolicyCategory.leave)
        if existing is not None:
            logger.info("Active leave policy already exists: %s (%s)", existing.title, existing.id)
            return 0

        employee = (
            await db.execute(select(Employee).where(Employee.email == actor_email))
        ).scalars().first()
        if employee is None or employee.role not in PRIVILEGED_ROLES:
            logger.error("%s is not a known HR or admin employee", actor_email)
            return 1

        actor = Actor(id=employee.id, role=employee.role)
        policy = await PolicyService.create_policy(db, actor, default_policy(effective_from))
        await db.commit()
        logger.info(
            "Created default leave policy %s with %d leave types",
            policy.id, len(DEFAULT_QUOTAS),
        )
    return 0


async def _main(actor_email: str, effective_from: date) -> int:
    try:
        return await run(actor_email, effective_from)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Create the default leave policy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--actor-email", required=True, help="HR/admin employee recorded as creator")
    parser.add_argument(
        "--effective-from",
        type=date.fromisoformat,
        default=datetime.now(timezone.utc).date(),
        help="First day the policy applies (YYYY-MM-DD, default today)",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(_main(args.actor_email, args.effective_from)))


if __name__ == "__main__":
    main()
