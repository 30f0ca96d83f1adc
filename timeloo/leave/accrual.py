"""Allowance arithmetic shared by the balance calculator and the aggregate
balance procedure.

Everything here is pure: callers pass already-fetched application rows
(or any object exposing the same attributes) and get Decimals back.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Protocol

ZERO = Decimal("0")
HALF_DAY = Decimal("0.5")
DEFAULT_HOURS_PER_RECORD = Decimal("1")


class UsageRecord(Protocol):
    start_date: date
    end_date: date
    is_half_day: Optional[bool]
    hours_requested: Optional[Decimal]
    actual_days_used: Optional[Decimal]


# ── Periods ─────────────────────────────────────────────────────────

def month_bounds(month: int, year: int) -> tuple[date, date]:
    """Half-open ``[first-of-month, first-of-next-month)``."""
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def year_bounds(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year + 1, 1, 1)


def previous_period(month: int, year: int) -> tuple[int, int]:
    """The (month, year) immediately before the given one."""
    if month == 1:
        return 12, year - 1
    return month - 1, year


# ── Per-record usage ────────────────────────────────────────────────

def inclusive_days(start: date, end: date) -> Decimal:
    return Decimal((end - start).days + 1)


def days_used(record: UsageRecord) -> Decimal:
    """Days consumed by one application.

    A stored ``actual_days_used`` wins; otherwise half-days count 0.5 and
    everything else counts every calendar day in the inclusive range.
    """
    if record.actual_days_used:
        return Decimal(record.actual_days_used)
    if record.is_half_day:
        return HALF_DAY
    return inclusive_days(record.start_date, record.end_date)


def hours_used(record: UsageRecord) -> Decimal:
    if record.hours_requested:
        return Decimal(record.hours_requested)
    return DEFAULT_HOURS_PER_RECORD


def total_days(records: Iterable[UsageRecord]) -> Decimal:
    return sum((days_used(r) for r in records), ZERO)


def total_hours(records: Iterable[UsageRecord]) -> Decimal:
    return sum((hours_used(r) for r in records), ZERO)


# ── Balances ────────────────────────────────────────────────────────

def remaining(
    allocated: Decimal,
    used: Decimal,
    carried_forward: Decimal = ZERO,
) -> Decimal:
    """``max(0, allocated + carried_forward - used)``."""
    return max(ZERO, allocated + carried_forward - used)


def carry_forward(
    allowance: Decimal,
    used_previous: Decimal,
    limit: Decimal,
) -> Decimal:
    """Unused allowance of the previous period, capped at *limit*."""
    return min(max(ZERO, limit), max(ZERO, allowance - used_previous))
