"""Balance calculator: used / remaining / carried-forward allowance per
(user, leave type, month, year).

Dispatch is on ``LeaveType.policy``:

  - fixed, hours   → sum of hours_requested for the month (1 h per record default)
  - fixed, days    → sum of per-record day counts for the month
  - accrual_with_carry_forward → the monthly balance aggregate, trusted verbatim
  - annual_pool    → the monthly balance aggregate over the calendar year,
                     including ``can_apply`` / ``wfh_remaining``

Failures never surface as zero usage: a failed query or a malformed
aggregate yields ``BalanceStatus.error``.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.constants import LeavePolicy
from timeloo.leave import accrual
from timeloo.leave.models import LeaveType
from timeloo.leave.repository import LeaveRepository
from timeloo.leave.schemas import BalanceResult, BalanceStatus, MonthlyBalance

logger = logging.getLogger(__name__)

_REQUIRED_AGGREGATE_FIELDS = ("used_this_month", "remaining_this_month")


class MalformedBalanceError(ValueError):
    """The balance aggregate answered without the fields we rely on."""


def _to_decimal(payload: dict[str, Any], key: str) -> Optional[Decimal]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedBalanceError(f"'{key}' is not numeric: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise MalformedBalanceError(f"'{key}' is not numeric: {value!r}") from exc


def parse_aggregate(payload: Any, leave_type: LeaveType) -> MonthlyBalance:
    """Validate a monthly balance aggregate payload into ``MonthlyBalance``."""
    if not isinstance(payload, dict):
        raise MalformedBalanceError("Invalid balance data received")

    missing = [k for k in _REQUIRED_AGGREGATE_FIELDS if payload.get(k) is None]
    if missing:
        raise MalformedBalanceError(
            f"Balance data is missing {', '.join(missing)}"
        )

    monthly_allowance = _to_decimal(payload, "monthly_allowance")
    if monthly_allowance is None and leave_type.policy != LeavePolicy.annual_pool:
        monthly_allowance = _to_decimal(payload, "allocated_balance")

    can_apply = payload.get("can_apply")
    if can_apply is not None and not isinstance(can_apply, bool):
        raise MalformedBalanceError(f"'can_apply' is not boolean: {can_apply!r}")

    try:
        return MonthlyBalance(
            leave_type=payload.get("leave_type") or leave_type.label,
            duration_type=payload.get("duration_type") or leave_type.duration_type,
            monthly_allowance=monthly_allowance,
            annual_allowance=_to_decimal(payload, "annual_allowance"),
            used_this_month=_to_decimal(payload, "used_this_month"),
            used_this_year=_to_decimal(payload, "used_this_year"),
            remaining_this_month=_to_decimal(payload, "remaining_this_month"),
            carried_forward=_to_decimal(payload, "carried_forward"),
            can_apply=can_apply,
            wfh_remaining=_to_decimal(payload, "wfh_remaining"),
        )
    except ValidationError as exc:
        raise MalformedBalanceError(str(exc)) from exc


class BalanceCalculator:
    """Read-only monthly balance computation. Safe to call repeatedly."""

    @staticmethod
    async def _fixed_balance(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> MonthlyBalance:
        start, end = accrual.month_bounds(month, year)
        rows = await LeaveRepository.fetch_usage(db, user_id, leave_type.id, start, end)

        if leave_type.is_hourly:
            used = accrual.total_hours(rows)
        else:
            used = accrual.total_days(rows)

        allowance = Decimal(leave_type.allowance)
        return MonthlyBalance(
            leave_type=leave_type.label,
            duration_type=leave_type.duration_type,
            monthly_allowance=allowance,
            used_this_month=used,
            remaining_this_month=accrual.remaining(allowance, used),
        )

    @staticmethod
    async def _aggregate_balance(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        month: int,
        year: int,
    ) -> MonthlyBalance:
        payload = await LeaveRepository.get_monthly_leave_balance(
            db,
            p_user_id=user_id,
            p_leave_type_id=leave_type.id,
            p_month=month,
            p_year=year,
        )
        return parse_aggregate(payload, leave_type)

    @staticmethod
    async def compute_balance(
        db: AsyncSession,
        user_id: Optional[str],
        leave_type_id: Optional[uuid.UUID],
        month: int,
        year: int,
    ) -> BalanceResult:
        """How much of a leave type the user has used / has left for a month."""

        base = dict(leave_type_id=leave_type_id, month=month, year=year)

        if not user_id or not leave_type_id:
            return BalanceResult(
                status=BalanceStatus.not_computable,
                error="A user and a leave type are required.",
                **base,
            )
        if not 1 <= month <= 12:
            return BalanceResult(
                status=BalanceStatus.not_computable,
                error=f"Month must be between 1 and 12, got {month}.",
                **base,
            )

        try:
            leave_type = await LeaveRepository.get_leave_type(db, leave_type_id)
            if leave_type is None:
                return BalanceResult(
                    status=BalanceStatus.error,
                    error=f"Leave type '{leave_type_id}' does not exist.",
                    **base,
                )

            if leave_type.policy == LeavePolicy.fixed:
                balance = await BalanceCalculator._fixed_balance(
                    db, user_id, leave_type, month, year,
                )
            else:
                balance = await BalanceCalculator._aggregate_balance(
                    db, user_id, leave_type, month, year,
                )
        except SQLAlchemyError:
            logger.exception(
                "Balance query failed for user=%s leave_type=%s %02d/%d",
                user_id, leave_type_id, month, year,
            )
            return BalanceResult(
                status=BalanceStatus.error,
                error="Failed to load balance",
                **base,
            )
        except MalformedBalanceError as exc:
            logger.error(
                "Malformed balance aggregate for user=%s leave_type=%s: %s",
                user_id, leave_type_id, exc,
            )
            return BalanceResult(status=BalanceStatus.error, error=str(exc), **base)

        return BalanceResult(status=BalanceStatus.ok, balance=balance, **base)

    @staticmethod
    async def compute_overview(
        db: AsyncSession,
        user_id: str,
        month: int,
        year: int,
    ) -> list[BalanceResult]:
        """Balances for every active leave type (dashboard summary)."""
        try:
            leave_types = await LeaveRepository.list_leave_types(db, is_active=True)
        except SQLAlchemyError:
            logger.exception("Could not list leave types for balance overview")
            return [
                BalanceResult(
                    status=BalanceStatus.error,
                    month=month,
                    year=year,
                    error="Failed to load leave types",
                )
            ]

        return [
            await BalanceCalculator.compute_balance(db, user_id, lt.id, month, year)
            for lt in leave_types
        ]
