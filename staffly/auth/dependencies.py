"""Auth dependencies — JWT validation, RBAC enforcement."""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from staffly.auth.schemas import Actor
from staffly.common.constants import EmploymentStatus, UserRole
from staffly.common.exceptions import ForbiddenException
from staffly.config import settings
from staffly.core_hr.models import Employee
from staffly.database import get_db

# Each role implicitly includes the roles below it
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.hr: {UserRole.hr, UserRole.manager, UserRole.employee},
    UserRole.manager: {UserRole.manager, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}

_ALLOWED_STATUSES = (EmploymentStatus.active, EmploymentStatus.on_leave)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")
    return payload


# ── Core dependencies ───────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Validate JWT and return the authenticated, active Employee."""
    payload = _decode_token(_extract_bearer(request))

    try:
        employee_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    employee = (
        await db.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.status.in_(_ALLOWED_STATUSES),
            ),
        )
    ).scalars().first()
    if employee is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    # The identity service's role claim wins over the stored role
    role_str = payload.get("role") or employee.role.value
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee
    request.state.user_role = role

    return employee


async def get_current_actor(
    request: Request,
    employee: Employee = Depends(get_current_user),
) -> Actor:
    """The authenticated principal as an ``Actor`` for service calls."""
    return Actor(id=employee.id, role=request.state.user_role)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy, e.g. admin can access hr endpoints.
    """

    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        # Expand the user role via hierarchy
        effective_roles = _ROLE_HIERARCHY.get(actor.role, {actor.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return actor

    return _check


require_privileged = require_role(UserRole.hr)
