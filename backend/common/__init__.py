"""Common module — shared utilities for the employee portal."""

from backend.common.audit import AuditTrail, create_audit_entry, snapshot
from backend.common.clock import BusinessClock
from backend.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TIMEZONE,
    AttendanceStatus,
    LeaveStatus,
    LeaveType,
    NotificationType,
    ResourceType,
    TimesheetStatus,
    UserRole,
    normalize_role,
)
from backend.common.exceptions import (
    AppException,
    ConflictError,
    DataIntegrityError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from backend.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "snapshot",
    # Clock
    "BusinessClock",
    # Constants / Enums
    "AttendanceStatus",
    "LeaveStatus",
    "LeaveType",
    "NotificationType",
    "ResourceType",
    "TimesheetStatus",
    "UserRole",
    "normalize_role",
    "TIMEZONE",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "DataIntegrityError",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
