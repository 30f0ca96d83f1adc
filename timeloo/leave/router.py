"""Leave router — types, balances, overlap check, apply, decisions, listings.

All endpoints require authentication. Decision and cross-user listing
endpoints are admin-only.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.auth.dependencies import get_current_user, require_admin
from timeloo.common.constants import LeaveStatus
from timeloo.common.pagination import PaginatedResponse, PaginationParams
from timeloo.common.rate_limit import limiter
from timeloo.database import get_db
from timeloo.leave.balance import BalanceCalculator
from timeloo.leave.overlap import validate_overlap
from timeloo.leave.schemas import (
    BalanceResult,
    LeaveApplicationCreate,
    LeaveApplicationOut,
    LeaveTypeOut,
    OverlapCheckRequest,
    OverlapResult,
)
from timeloo.leave.service import LeaveService
from timeloo.notifications.gateway import NotificationGateway, get_notification_gateway
from timeloo.profiles.models import Profile

router = APIRouter(prefix="", tags=["leave"])


def _period_or_today(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
    # month=0 must reach the calculator as 0, not fall back to today
    today = date.today()
    return (
        month if month is not None else today.month,
        year if year is not None else today.year,
    )


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    is_active: Optional[bool] = Query(True),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave types and their allowance policies."""
    return await LeaveService.list_leave_types(db, is_active=is_active)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=BalanceResult)
async def get_balance(
    leave_type_id: Optional[uuid.UUID] = Query(None),
    month: Optional[int] = Query(None, description="1-12; defaults to current month"),
    year: Optional[int] = Query(None, description="Defaults to current year"),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Used / remaining allowance for one leave type. Always 200; check ``status``."""
    month, year = _period_or_today(month, year)
    return await BalanceCalculator.compute_balance(db, user.id, leave_type_id, month, year)


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[BalanceResult])
async def get_balances(
    month: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Balances for every active leave type."""
    month, year = _period_or_today(month, year)
    return await BalanceCalculator.compute_overview(db, user.id, month, year)


# ── POST /validate-overlap ──────────────────────────────────────────

@router.post(
    "/validate-overlap",
    response_model=OverlapResult,
    response_model_by_alias=True,
)
async def check_overlap(
    body: OverlapCheckRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check a candidate range against existing approved / pending leave."""
    return await validate_overlap(
        db,
        user.id,
        body.start_date,
        body.end_date,
        is_half_day=body.is_half_day,
        half_day_period=body.half_day_period,
    )


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveApplicationOut, status_code=201)
@limiter.limit("20/minute")
async def apply_leave(
    request: Request,
    body: LeaveApplicationCreate,
    background_tasks: BackgroundTasks,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    """Apply for leave. Validates overlap and balance before inserting."""
    application = await LeaveService.apply_leave(db, user, body)
    # Background tasks run before get_db exits; the gateway reads in its own session
    await db.commit()
    if application.status == LeaveStatus.pending:
        background_tasks.add_task(gateway.notify_submission, application.id)
    else:
        background_tasks.add_task(
            gateway.notify_status_change, application.id, application.status,
        )
    return application


# ── GET /my-applications ────────────────────────────────────────────

@router.get("/my-applications", response_model=PaginatedResponse[LeaveApplicationOut])
async def my_applications(
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The authenticated user's applications, newest first."""
    return await LeaveService.list_my_applications(
        db, user, pagination, status=status, leave_type_id=leave_type_id,
    )


# ── GET /applications (admin) ───────────────────────────────────────

@router.get("/applications", response_model=PaginatedResponse[LeaveApplicationOut])
async def all_applications(
    status: Optional[LeaveStatus] = Query(None),
    user_id: Optional[str] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every user's applications (admin view)."""
    return await LeaveService.list_all_applications(
        db, pagination, status=status, user_id=user_id, leave_type_id=leave_type_id,
    )


# ── PUT /{id}/approve ───────────────────────────────────────────────

@router.put("/{application_id}/approve", response_model=LeaveApplicationOut)
async def approve_leave(
    application_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    """Approve a pending application."""
    application = await LeaveService.approve_leave(db, application_id, admin)
    await db.commit()
    background_tasks.add_task(
        gateway.notify_status_change, application.id, LeaveStatus.approved,
    )
    return application


# ── PUT /{id}/reject ────────────────────────────────────────────────

@router.put("/{application_id}/reject", response_model=LeaveApplicationOut)
async def reject_leave(
    application_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    """Reject a pending application."""
    application = await LeaveService.reject_leave(db, application_id, admin)
    await db.commit()
    background_tasks.add_task(
        gateway.notify_status_change, application.id, LeaveStatus.rejected,
    )
    return application


# ── PUT /{id}/revert ────────────────────────────────────────────────

@router.put("/{application_id}/revert", response_model=LeaveApplicationOut)
async def revert_leave(
    application_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
):
    """Send an approved / rejected application back to pending."""
    application = await LeaveService.revert_leave(db, application_id, admin)
    await db.commit()
    background_tasks.add_task(
        gateway.notify_status_change, application.id, LeaveStatus.pending,
    )
    return application


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{application_id}", status_code=204)
async def cancel_leave(
    application_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel (delete) your own pending application."""
    await LeaveService.cancel_leave(db, application_id, user)
    return Response(status_code=204)
