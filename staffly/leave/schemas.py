"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Response    → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from staffly.common.constants import LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Balance for a single leave type; ``available`` is always derived."""

    model_config = ConfigDict(from_attributes=True)

    leave_type: LeaveType
    total: int
    used: int
    carried_forward: int
    available: int


class LeaveBalanceSummary(BaseModel):
    """GET /leaves/balance — balances plus approved days per type this year."""

    balances: list[LeaveBalanceOut]
    used_this_year: dict[str, int]


class LeaveBalanceUpdate(BaseModel):
    """HR manual override of one balance row."""

    leave_type: str = Field(..., min_length=1, max_length=30)
    total: int = Field(..., ge=0)
    used: int = Field(..., ge=0)
    carried_forward: int = Field(0, ge=0)


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Requests
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Payload for applying for leave.

    ``leave_type`` is kept as free text so an unknown type surfaces as an
    ``unknown-leave-type`` problem rather than a schema error.
    """

    leave_type: str = Field(..., min_length=1, max_length=30)
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., max_length=1000, description="Reason for leave")


class LeaveRejectRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class LeaveCommentCreate(BaseModel):
    text: str = Field(..., max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Leave Application — Responses
# ═════════════════════════════════════════════════════════════════════


class LeaveCommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    author_id: uuid.UUID
    text: str
    created_at: datetime


class LeaveApplicationOut(BaseModel):
    """Full leave application representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    from_date: date
    to_date: date
    number_of_days: int
    reason: str
    status: LeaveStatus
    applied_on: datetime
    approved_by: Optional[uuid.UUID] = None
    approved_on: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    comments: list[LeaveCommentOut] = []


class LeaveCancelResponse(BaseModel):
    """Cancelling a pending application deletes it outright."""

    deleted: bool = True
    id: uuid.UUID
