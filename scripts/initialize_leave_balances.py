#!/usr/bin/env python3
"""Give every active employee without leave balances a set from the active leave policy.

Employees that already hold any balance row are left untouched. Each
employee is seeded in its own savepoint so one failure does not stop the run.

Usage:
    python scripts/initialize_leave_balances.py
    python scripts/initialize_leave_balances.py --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from sqlalchemy import exists, select

from staffly.common.constants import EmploymentStatus, PolicyCategory
from staffly.core_hr.models import Employee
from staffly.database import async_session_factory, engine
from staffly.leave.ledger import LeaveLedger, Quota
from staffly.leave.models import LeaveBalance
from staffly.policy.service import PolicyService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("initialize_leave_balances")


async def run(dry_run: bool) -> int:
    async with async_session_factory() as db:
        policy = await PolicyService.get_active_policy(db, PolicyCategory.leave)
        if policy is None or not policy.leave_types:
            logger.error("No active leave policy with leave types; run create_default_policy.py first")
            return 1
        quota_rows = [Quota(lt.leave_type, lt.annual_quota) for lt in policy.leave_types]

        employees = (
            await db.execute(
                select(Employee.id, Employee.employee_code, ~exists().where(
                    LeaveBalance.employee_id == Employee.id
                ).label("uninitialised"))
                .where(Employee.status == EmploymentStatus.active)
                .order_by(Employee.employee_code)
            )
        ).all()

        initialised = already = failed = 0
        for employee_id, code, uninitialised in employees:
            if not uninitialised:
                already += 1
                continue
            if dry_run:
                logger.info("Would initialise %s", code)
                initialised += 1
                continue
            try:
                async with db.begin_nested():
                    await LeaveLedger.initialize(db, employee_id, quota_rows)
            except Exception as exc:
                failed += 1
                logger.error("Failed to initialise %s: %s", code, exc)
            else:
                initialised += 1

        if not dry_run:
            await db.commit()

    logger.info(
        "Policy %s: %d initialised, %d already initialised, %d failed",
        policy.title, initialised, already, failed,
    )
    return 1 if failed else 0


async def _main(dry_run: bool) -> int:
    try:
        return await run(dry_run)
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(
        description="Seed leave balances for employees that have none",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()
    sys.exit(asyncio.run(_main(args.dry_run)))


if __name__ == "__main__":
    main()
