"""Enums and constants for Timeloo — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from datetime import time


# ── Profiles / Roles ────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class DurationType(str, enum.Enum):
    days = "days"
    hours = "hours"


class LeavePolicy(str, enum.Enum):
    """How a leave type grants allowance. Drives balance computation."""

    fixed = "fixed"
    accrual_with_carry_forward = "accrual_with_carry_forward"
    annual_pool = "annual_pool"


class HalfDayPeriod(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"


# Statuses that reserve allowance and block the calendar
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.approved,
    LeaveStatus.pending,
)

# Half-day clock windows. A stored start of 10:00 marks the morning half.
MORNING_HALF_START = time(10, 0)
MORNING_HALF_END = time(14, 0)
AFTERNOON_HALF_START = time(14, 0)
AFTERNOON_HALF_END = time(18, 30)

HALF_DAY_WINDOWS: dict[HalfDayPeriod, tuple[time, time]] = {
    HalfDayPeriod.morning: (MORNING_HALF_START, MORNING_HALF_END),
    HalfDayPeriod.afternoon: (AFTERNOON_HALF_START, AFTERNOON_HALF_END),
}


# ── Notifications ───────────────────────────────────────────────────

class NotificationChannel(str, enum.Enum):
    email = "email"
    slack = "slack"
    web = "web"


class DeliveryStatus(str, enum.Enum):
    sent = "sent"
    failed = "failed"
    skipped = "skipped"


class NotificationType(str, enum.Enum):
    info = "info"
    leave_submitted = "leave_submitted"
    leave_approved = "leave_approved"
    leave_rejected = "leave_rejected"
    leave_reverted = "leave_reverted"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%a, %b %d, %Y"     # Mon, Mar 02, 2026
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
