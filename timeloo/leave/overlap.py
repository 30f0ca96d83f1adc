"""Overlap validator — blocks double-booking of the same physical time.

Only dates and half-day periods are compared; quota is the balance
calculator's concern.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.constants import DATE_FORMAT, MORNING_HALF_START, HalfDayPeriod
from timeloo.leave.models import LeaveApplication
from timeloo.leave.repository import LeaveRepository
from timeloo.leave.schemas import AvailableSlots, LeaveApplicationOut, OverlapResult

logger = logging.getLogger(__name__)


def occupied_half(record: LeaveApplication) -> HalfDayPeriod:
    """Which half a half-day record occupies.

    The stored ``half_day_period`` wins; older rows only carry the clock
    window, where a 10:00 start is the morning half and anything else the
    afternoon.
    """
    if record.half_day_period is not None:
        return HalfDayPeriod(record.half_day_period)
    if record.leave_time_start == MORNING_HALF_START:
        return HalfDayPeriod.morning
    return HalfDayPeriod.afternoon


def _covers(record: LeaveApplication, day: date) -> bool:
    return record.start_date <= day <= record.end_date


def _fmt(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def _blocked(
    conflicts: Sequence[LeaveApplication],
    day: date,
    message: str,
) -> OverlapResult:
    return OverlapResult(
        can_apply=False,
        conflicts=[LeaveApplicationOut.model_validate(c) for c in conflicts],
        available_slots=AvailableSlots.none(),
        message=message,
        conflict_date=day,
    )


def evaluate_overlap(
    existing: Sequence[LeaveApplication],
    start: date,
    end: date,
    is_half_day: bool = False,
    half_day_period: Optional[HalfDayPeriod] = None,
) -> OverlapResult:
    """Decide a candidate ``[start, end]`` against already-fetched records."""

    if start > end:
        return OverlapResult(
            can_apply=False,
            available_slots=AvailableSlots.none(),
            message="Start date must be on or before end date.",
        )

    if is_half_day and half_day_period is None:
        return OverlapResult(
            can_apply=False,
            available_slots=AvailableSlots.none(),
            message="Choose the morning or afternoon half for a half-day request.",
        )

    single_day = start == end
    day = start
    while day <= end:
        on_day = [r for r in existing if _covers(r, day)]
        if not on_day:
            day += timedelta(days=1)
            continue

        if not single_day:
            return _blocked(
                existing, day,
                f"You already have leave on {_fmt(day)}. "
                "Please choose dates that do not overlap existing leave.",
            )

        full_day = [r for r in on_day if not r.is_half_day]
        if full_day:
            return _blocked(
                existing, day,
                f"You already have a full day of leave on {_fmt(day)}.",
            )

        taken = {occupied_half(r) for r in on_day}
        slots = AvailableSlots(
            morning=HalfDayPeriod.morning not in taken,
            afternoon=HalfDayPeriod.afternoon not in taken,
            full_day=False,
        )
        conflicts = [LeaveApplicationOut.model_validate(c) for c in existing]

        if not is_half_day:
            return OverlapResult(
                can_apply=False,
                conflicts=conflicts,
                available_slots=slots,
                message=(
                    f"{_fmt(day)} is already half booked. "
                    "Apply for the remaining half instead."
                ),
                conflict_date=day,
            )

        if half_day_period in taken:
            return OverlapResult(
                can_apply=False,
                conflicts=conflicts,
                available_slots=slots,
                message=(
                    f"You already have {half_day_period.value} leave "
                    f"on {_fmt(day)}."
                ),
                conflict_date=day,
            )

        return OverlapResult(
            can_apply=True,
            conflicts=conflicts,
            available_slots=slots,
            message=f"Only the {half_day_period.value} of {_fmt(day)} is available.",
            conflict_date=day,
        )

    return OverlapResult(can_apply=True)


async def validate_overlap(
    db: AsyncSession,
    user_id: str,
    start: date,
    end: date,
    is_half_day: bool = False,
    half_day_period: Optional[HalfDayPeriod] = None,
) -> OverlapResult:
    """Check a candidate range against the user's approved/pending leave."""
    if start > end:
        return evaluate_overlap((), start, end, is_half_day, half_day_period)

    try:
        existing = await LeaveRepository.fetch_overlapping(db, user_id, start, end)
    except SQLAlchemyError:
        logger.exception(
            "Overlap query failed for user=%s range=%s..%s", user_id, start, end,
        )
        return OverlapResult(
            can_apply=False,
            available_slots=AvailableSlots.none(),
            error="Failed to check for overlapping leave",
        )

    return evaluate_overlap(existing, start, end, is_half_day, half_day_period)
