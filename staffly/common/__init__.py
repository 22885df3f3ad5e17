"""Common module — shared utilities for Staffly."""

from staffly.common.audit import AuditTrail, create_audit_entry
from staffly.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PRIVILEGED_ROLES,
    WEEKDAY_NAMES,
    AttendanceStatus,
    EmploymentStatus,
    LeaveStatus,
    LeaveType,
    PolicyCategory,
    UserRole,
)
from staffly.common.exceptions import (
    AlreadyCheckedInException,
    AppException,
    ForbiddenException,
    InsufficientBalanceException,
    NoOpenSessionException,
    NotFoundException,
    StateConflictException,
    UnknownLeaveTypeException,
    ValidationException,
    register_exception_handlers,
)
from staffly.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AttendanceStatus",
    "EmploymentStatus",
    "LeaveStatus",
    "LeaveType",
    "PolicyCategory",
    "UserRole",
    "PRIVILEGED_ROLES",
    "WEEKDAY_NAMES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AlreadyCheckedInException",
    "AppException",
    "ForbiddenException",
    "InsufficientBalanceException",
    "NoOpenSessionException",
    "NotFoundException",
    "StateConflictException",
    "UnknownLeaveTypeException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
