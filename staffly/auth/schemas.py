"""Auth Pydantic schemas: the authenticated principal and its views."""


import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from staffly.common.constants import PRIVILEGED_ROLES, UserRole


# ── Principal ───────────────────────────────────────────────────────

class Actor(BaseModel):
    """Who is performing an operation.

    Passed explicitly into every leave, attendance and policy service call
    so authorization is checked by the service itself, with or without the
    HTTP layer in front of it.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    role: UserRole = UserRole.employee

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def can_act_for(self, employee_id: uuid.UUID) -> bool:
        """True when acting on *employee_id*'s own data or holding HR/admin rights."""
        return self.is_privileged or self.id == employee_id


# ── Responses ───────────────────────────────────────────────────────

class MeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    email: str
    role: UserRole
    department_id: Optional[uuid.UUID] = None
    designation: Optional[str] = None
