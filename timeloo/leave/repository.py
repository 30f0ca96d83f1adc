"""Leave persistence queries and the monthly balance aggregate.

``get_monthly_leave_balance`` mirrors the database-side procedure of the
same name: it takes ``p_``-prefixed arguments and answers a JSON-shaped
dict (plain floats, no ORM objects) so callers treat it exactly like an
RPC payload.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from timeloo.common.constants import ACTIVE_LEAVE_STATUSES, LeavePolicy
from timeloo.leave import accrual
from timeloo.leave.models import LeaveApplication, LeaveType


def _num(value: Decimal) -> float:
    return float(value)


def _application_loads() -> tuple:
    return (
        selectinload(LeaveApplication.profile),
        selectinload(LeaveApplication.leave_type),
    )


class LeaveRepository:
    """Read-side queries over leave types and applications."""

    @staticmethod
    async def get_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
    ) -> Optional[LeaveType]:
        result = await db.execute(
            select(LeaveType).where(LeaveType.id == leave_type_id)
        )
        return result.scalars().first()

    @staticmethod
    async def list_leave_types(
        db: AsyncSession,
        *,
        is_active: Optional[bool] = True,
    ) -> Sequence[LeaveType]:
        query = select(LeaveType).order_by(LeaveType.label)
        if is_active is not None:
            query = query.where(LeaveType.is_active.is_(is_active))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_application(
        db: AsyncSession,
        application_id: uuid.UUID,
    ) -> Optional[LeaveApplication]:
        result = await db.execute(
            select(LeaveApplication)
            .where(LeaveApplication.id == application_id)
            .options(*_application_loads())
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def fetch_usage(
        db: AsyncSession,
        user_id: str,
        leave_type_id: uuid.UUID,
        start: date,
        end: date,
    ) -> Sequence[LeaveApplication]:
        """Approved/pending applications whose start_date is in ``[start, end)``."""
        result = await db.execute(
            select(LeaveApplication).where(
                LeaveApplication.user_id == user_id,
                LeaveApplication.leave_type_id == leave_type_id,
                LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveApplication.start_date >= start,
                LeaveApplication.start_date < end,
            )
        )
        return result.scalars().all()

    @staticmethod
    async def fetch_overlapping(
        db: AsyncSession,
        user_id: str,
        start: date,
        end: date,
    ) -> Sequence[LeaveApplication]:
        """Approved/pending applications intersecting the inclusive ``[start, end]``."""
        result = await db.execute(
            select(LeaveApplication)
            .where(
                LeaveApplication.user_id == user_id,
                LeaveApplication.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveApplication.end_date >= start,
                LeaveApplication.start_date <= end,
            )
            .order_by(LeaveApplication.start_date, LeaveApplication.applied_at)
            .options(*_application_loads())
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Aggregate procedure
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _used_in(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        bounds: tuple[date, date],
    ) -> Decimal:
        rows = await LeaveRepository.fetch_usage(db, user_id, leave_type.id, *bounds)
        if leave_type.is_hourly:
            return accrual.total_hours(rows)
        return accrual.total_days(rows)

    @staticmethod
    async def _fixed_payload(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> dict[str, Any]:
        allowance = Decimal(leave_type.allowance)
        used = await LeaveRepository._used_in(
            db, user_id, leave_type, accrual.month_bounds(month, year),
        )
        return {
            "leave_type": leave_type.label,
            "duration_type": leave_type.duration_type.value,
            "monthly_allowance": _num(allowance),
            "used_this_month": _num(used),
            "remaining_this_month": _num(accrual.remaining(allowance, used)),
        }

    @staticmethod
    async def _carry_forward_payload(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> dict[str, Any]:
        allowance = Decimal(leave_type.allowance)
        used = await LeaveRepository._used_in(
            db, user_id, leave_type, accrual.month_bounds(month, year),
        )
        prev_month, prev_year = accrual.previous_period(month, year)
        used_previous = await LeaveRepository._used_in(
            db, user_id, leave_type, accrual.month_bounds(prev_month, prev_year),
        )
        carried = accrual.carry_forward(
            allowance, used_previous, Decimal(leave_type.carry_forward_limit),
        )
        return {
            "leave_type": leave_type.label,
            "duration_type": leave_type.duration_type.value,
            "monthly_allowance": _num(allowance),
            "allocated_balance": _num(allowance + carried),
            "used_this_month": _num(used),
            "carried_forward": _num(carried),
            "remaining_this_month": _num(accrual.remaining(allowance, used, carried)),
        }

    @staticmethod
    async def _annual_pool_payload(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> dict[str, Any]:
        annual = Decimal(leave_type.allowance)
        used_year = await LeaveRepository._used_in(
            db, user_id, leave_type, accrual.year_bounds(year),
        )
        remaining_year = accrual.remaining(annual, used_year)

        primary_remaining = accrual.ZERO
        if leave_type.primary_leave_type_id is not None:
            primary = await LeaveRepository.get_leave_type(
                db, leave_type.primary_leave_type_id,
            )
            if primary is not None and primary.policy != LeavePolicy.annual_pool:
                primary_payload = await LeaveRepository._payload_for(
                    db, user_id, primary, month, year,
                )
                primary_remaining = Decimal(str(primary_payload["remaining_this_month"]))

        return {
            "leave_type": leave_type.label,
            "duration_type": leave_type.duration_type.value,
            "annual_allowance": _num(annual),
            "used_this_year": _num(used_year),
            "used_this_month": _num(used_year),
            "remaining_this_month": _num(remaining_year),
            "wfh_remaining": _num(primary_remaining),
            "can_apply": primary_remaining <= 0 and remaining_year > 0,
        }

    @staticmethod
    async def _payload_for(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> dict[str, Any]:
        if leave_type.carries_forward:
            return await LeaveRepository._carry_forward_payload(
                db, user_id, leave_type, month, year,
            )
        if leave_type.policy == LeavePolicy.annual_pool:
            return await LeaveRepository._annual_pool_payload(
                db, user_id, leave_type, month, year,
            )
        return await LeaveRepository._fixed_payload(
            db, user_id, leave_type, month, year,
        )

    @staticmethod
    async def get_monthly_leave_balance(
        db: AsyncSession,
        p_user_id: str,
        p_leave_type_id: uuid.UUID,
        p_month: int,
        p_year: int,
    ) -> Optional[dict[str, Any]]:
        """Monthly balance aggregate for one (user, leave type, month, year).

        Returns ``None`` when the leave type does not exist.
        """
        leave_type = await LeaveRepository.get_leave_type(db, p_leave_type_id)
        if leave_type is None:
            return None
        return await LeaveRepository._payload_for(
            db, p_user_id, leave_type, p_month, p_year,
        )
