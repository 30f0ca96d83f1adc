"""Leave service layer — application submission, approvals, cancellation, listings.

Business logic:
  - Submission runs the overlap validator, then the balance calculator, then
    inserts. The checks and the insert are not atomic: two concurrent
    submissions can both pass and both land.
  - Types that do not require approval are approved on insert.
  - Approve / reject only from pending; revert only from approved / rejected.
  - Cancellation is owner-only, pending-only, and deletes the row.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from timeloo.common.audit import create_audit_entry
from timeloo.common.constants import (
    HALF_DAY_WINDOWS,
    LeavePolicy,
    LeaveStatus,
)
from timeloo.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from timeloo.common.pagination import PaginatedResponse, PaginationParams, paginate
from timeloo.leave import accrual
from timeloo.leave.balance import BalanceCalculator
from timeloo.leave.models import LeaveApplication, LeaveType
from timeloo.leave.overlap import validate_overlap
from timeloo.leave.repository import LeaveRepository
from timeloo.leave.schemas import (
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveTypeOut,
)
from timeloo.notifications.service import (
    notify_leave_approved,
    notify_leave_rejected,
    notify_leave_reverted,
    notify_leave_submitted,
)
from timeloo.profiles.models import Profile

ENTITY_TYPE = "leave_application"


def _snapshot(application: LeaveApplication) -> dict[str, Any]:
    """JSON-safe view of the fields an audit entry cares about."""
    return {
        "status": LeaveStatus(application.status).value,
        "leave_type_id": str(application.leave_type_id),
        "start_date": application.start_date.isoformat(),
        "end_date": application.end_date.isoformat(),
        "is_half_day": bool(application.is_half_day),
        "approved_by": application.approved_by,
    }


def _requested_amount(data: LeaveApplicationCreate, leave_type: LeaveType) -> Decimal:
    """Hours for hourly types, otherwise days (0.5 for a half day)."""
    if leave_type.is_hourly:
        return Decimal(data.hours_requested)
    if data.is_half_day:
        return accrual.HALF_DAY
    return accrual.inclusive_days(data.start_date, data.end_date)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: types, submission, decisions, listings."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_application_or_404(
        db: AsyncSession,
        application_id: uuid.UUID,
    ) -> LeaveApplication:
        application = await LeaveRepository.get_application(db, application_id)
        if application is None:
            raise NotFoundException("LeaveApplication", application_id)
        return application

    @staticmethod
    async def _to_out(db: AsyncSession, application_id: uuid.UUID) -> LeaveApplicationOut:
        application = await LeaveRepository.get_application(db, application_id)
        return LeaveApplicationOut.model_validate(application)

    @staticmethod
    async def _check_balance(
        db: AsyncSession,
        user_id: str,
        leave_type: LeaveType,
        data: LeaveApplicationCreate,
    ) -> None:
        result = await BalanceCalculator.compute_balance(
            db, user_id, leave_type.id, data.start_date.month, data.start_date.year,
        )
        if not result.ok:
            raise ValidationException(
                {"balance": [result.error or "Balance could not be computed."]}
            )

        balance = result.balance
        if leave_type.policy == LeavePolicy.annual_pool and not balance.can_apply:
            if balance.remaining_this_month <= 0:
                message = f"Your yearly {leave_type.label} allowance is used up."
            else:
                message = (
                    f"{leave_type.label} is only available once your regular "
                    f"allowance is used up ({balance.wfh_remaining} remaining)."
                )
            raise ValidationException({"leave_type_id": [message]})

        requested = _requested_amount(data, leave_type)
        if requested > balance.remaining_this_month:
            unit = leave_type.duration_type.value
            raise ValidationException(
                {
                    "balance": [
                        f"Insufficient {leave_type.label} balance: requested "
                        f"{requested} {unit}, remaining {balance.remaining_this_month} {unit}."
                    ]
                }
            )

    # ─────────────────────────────────────────────────────────────────
    # Leave types
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_leave_types(
        db: AsyncSession,
        *,
        is_active: Optional[bool] = True,
    ) -> list[LeaveTypeOut]:
        types = await LeaveRepository.list_leave_types(db, is_active=is_active)
        return [LeaveTypeOut.model_validate(t) for t in types]

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        user: Profile,
        data: LeaveApplicationCreate,
    ) -> LeaveApplicationOut:
        """Validate and insert a leave application for *user*."""

        leave_type = await LeaveRepository.get_leave_type(db, data.leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", data.leave_type_id)
        if not leave_type.is_active:
            raise ValidationException(
                {"leave_type_id": [f"{leave_type.label} is not available."]}
            )

        if leave_type.is_hourly:
            if data.hours_requested is None:
                raise ValidationException(
                    {"hours_requested": [f"{leave_type.label} requires hours_requested."]}
                )
            if data.start_date != data.end_date:
                raise ValidationException(
                    {"end_date": [f"{leave_type.label} must be taken within a single day."]}
                )

        overlap = await validate_overlap(
            db,
            user.id,
            data.start_date,
            data.end_date,
            is_half_day=data.is_half_day,
            half_day_period=data.half_day_period,
        )
        if not overlap.can_apply:
            raise ValidationException(
                {"dates": [overlap.error or overlap.message or "Dates overlap existing leave."]}
            )

        await LeaveService._check_balance(db, user.id, leave_type, data)

        # Check and insert are not atomic; concurrent submissions may both land
        auto_approve = not leave_type.requires_approval
        time_start = time_end = None
        if data.is_half_day:
            time_start, time_end = HALF_DAY_WINDOWS[data.half_day_period]

        application = LeaveApplication(
            user_id=user.id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            status=LeaveStatus.approved if auto_approve else LeaveStatus.pending,
            is_half_day=data.is_half_day,
            half_day_period=data.half_day_period if data.is_half_day else None,
            leave_time_start=time_start,
            leave_time_end=time_end,
            hours_requested=data.hours_requested if leave_type.is_hourly else None,
            actual_days_used=(
                None if leave_type.is_hourly else _requested_amount(data, leave_type)
            ),
            reason=data.reason,
            holiday_name=data.holiday_name,
            meeting_details=data.meeting_details,
            approved_at=datetime.now(timezone.utc) if auto_approve else None,
        )
        db.add(application)
        await db.flush()

        await create_audit_entry(
            db,
            action="apply",
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            actor_id=user.id,
            new_values=_snapshot(application),
        )

        if not auto_approve:
            await notify_leave_submitted(db, application, user.display_name)

        return await LeaveService._to_out(db, application.id)

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _decide(
        db: AsyncSession,
        application_id: uuid.UUID,
        admin: Profile,
        new_status: LeaveStatus,
    ) -> LeaveApplication:
        application = await LeaveService._get_application_or_404(db, application_id)

        if application.status != LeaveStatus.pending:
            raise ConflictError(
                f"Cannot {'approve' if new_status == LeaveStatus.approved else 'reject'} "
                f"a leave application with status '{LeaveStatus(application.status).value}'.",
                field="status",
            )

        old_values = _snapshot(application)
        application.status = new_status
        application.approved_by = admin.id
        application.approved_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="approve" if new_status == LeaveStatus.approved else "reject",
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            actor_id=admin.id,
            old_values=old_values,
            new_values=_snapshot(application),
        )
        return application

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        admin: Profile,
    ) -> LeaveApplicationOut:
        application = await LeaveService._decide(
            db, application_id, admin, LeaveStatus.approved,
        )
        await notify_leave_approved(db, application)
        return await LeaveService._to_out(db, application.id)

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        admin: Profile,
    ) -> LeaveApplicationOut:
        application = await LeaveService._decide(
            db, application_id, admin, LeaveStatus.rejected,
        )
        await notify_leave_rejected(db, application)
        return await LeaveService._to_out(db, application.id)

    @staticmethod
    async def revert_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        admin: Profile,
    ) -> LeaveApplicationOut:
        """Send an approved / rejected application back to pending."""
        application = await LeaveService._get_application_or_404(db, application_id)

        if application.status not in (LeaveStatus.approved, LeaveStatus.rejected):
            raise ConflictError(
                "Only approved or rejected applications can be reverted.",
                field="status",
            )

        old_values = _snapshot(application)
        application.status = LeaveStatus.pending
        application.approved_by = None
        application.approved_at = None
        await db.flush()

        await create_audit_entry(
            db,
            action="revert",
            entity_type=ENTITY_TYPE,
            entity_id=application.id,
            actor_id=admin.id,
            old_values=old_values,
            new_values=_snapshot(application),
        )
        await notify_leave_reverted(db, application)
        return await LeaveService._to_out(db, application.id)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        application_id: uuid.UUID,
        user: Profile,
    ) -> None:
        """Delete the caller's own pending application."""
        application = await LeaveService._get_application_or_404(db, application_id)

        if application.user_id != user.id:
            raise ForbiddenException("You can only cancel your own leave applications.")

        if application.status != LeaveStatus.pending:
            raise ConflictError(
                "Only pending applications can be cancelled.",
                field="status",
            )

        old_values = _snapshot(application)
        await db.delete(application)
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type=ENTITY_TYPE,
            entity_id=application_id,
            actor_id=user.id,
            old_values=old_values,
        )

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _base_query(
        *,
        user_id: Optional[str] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ):
        query = (
            select(LeaveApplication)
            .options(
                selectinload(LeaveApplication.profile),
                selectinload(LeaveApplication.leave_type),
            )
            .order_by(LeaveApplication.applied_at.desc())
        )
        if user_id is not None:
            query = query.where(LeaveApplication.user_id == user_id)
        if status is not None:
            query = query.where(LeaveApplication.status == status)
        if leave_type_id is not None:
            query = query.where(LeaveApplication.leave_type_id == leave_type_id)
        return query

    @staticmethod
    async def list_my_applications(
        db: AsyncSession,
        user: Profile,
        params: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        query = LeaveService._base_query(
            user_id=user.id, status=status, leave_type_id=leave_type_id,
        )
        return await paginate(
            db, query, params,
            model=LeaveApplication,
            transform=LeaveApplicationOut.model_validate,
        )

    @staticmethod
    async def list_all_applications(
        db: AsyncSession,
        params: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        user_id: Optional[str] = None,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        """Admin view across every user."""
        query = LeaveService._base_query(
            user_id=user_id, status=status, leave_type_id=leave_type_id,
        )
        return await paginate(
            db, query, params,
            model=LeaveApplication,
            transform=LeaveApplicationOut.model_validate,
        )

