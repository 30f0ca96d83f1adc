"""Common module — shared utilities for Timeloo."""

from timeloo.common.audit import AuditTrail, create_audit_entry
from timeloo.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    HALF_DAY_WINDOWS,
    MAX_PAGE_SIZE,
    DeliveryStatus,
    DurationType,
    HalfDayPeriod,
    LeavePolicy,
    LeaveStatus,
    NotificationChannel,
    NotificationType,
    UserRole,
)
from timeloo.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    UpstreamServiceError,
    ValidationException,
    register_exception_handlers,
)
from timeloo.common.pagination import (
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
    "DeliveryStatus",
    "DurationType",
    "HalfDayPeriod",
    "LeavePolicy",
    "LeaveStatus",
    "NotificationChannel",
    "NotificationType",
    "UserRole",
    "ACTIVE_LEAVE_STATUSES",
    "HALF_DAY_WINDOWS",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "UpstreamServiceError",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
