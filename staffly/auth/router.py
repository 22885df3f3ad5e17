"""Auth router — the authenticated principal.

Tokens are issued by the identity service; this service only validates them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from staffly.auth.dependencies import get_current_user
from staffly.auth.schemas import MeResponse
from staffly.core_hr.models import Employee

router = APIRouter(prefix="", tags=["auth"])


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(
    request: Request,
    employee: Employee = Depends(get_current_user),
):
    """Return the caller's employee record with the role from the token."""
    return MeResponse(
        id=employee.id,
        employee_code=employee.employee_code,
        full_name=employee.full_name,
        email=employee.email,
        role=request.state.user_role,
        department_id=employee.department_id,
        designation=employee.designation,
    )
