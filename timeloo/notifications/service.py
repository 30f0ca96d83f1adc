"""In-app notifications: the header-badge feed plus the leave lifecycle
messages written inside the same transaction as the state change.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.constants import DATE_FORMAT, NotificationType, UserRole
from timeloo.common.exceptions import ForbiddenException, NotFoundException
from timeloo.common.pagination import PaginationParams, paginate
from timeloo.notifications.models import Notification
from timeloo.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)
from timeloo.profiles.models import Profile

LEAVE_ENTITY = "leave_application"


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: str,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        user_id: str,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        notification_type: Optional[NotificationType] = None,
    ) -> NotificationListResponse:
        """Newest first. ``meta.unread`` ignores the filters so the badge stays right."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read.is_(is_read))
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        page = await paginate(
            db, query, pagination,
            model=Notification,
            transform=NotificationResponse.model_validate,
        )
        return NotificationListResponse(
            data=page.data,
            meta=NotificationListMeta(
                **page.meta.model_dump(),
                unread=await NotificationService.get_unread_count(db, user_id),
            ),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: str,
    ) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != user_id:
            raise ForbiddenException("You can only mark your own notifications as read.")

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: str) -> int:
        """Returns how many notifications flipped to read."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Leave lifecycle messages ────────────────────────────────────────
# Called by the leave service with the ORM row, before its commit.

_APPLICANT_MESSAGES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.leave_approved: (
        "Leave Approved",
        "Your leave on {period} has been approved.",
    ),
    NotificationType.leave_rejected: (
        "Leave Rejected",
        "Your leave on {period} was rejected.",
    ),
    NotificationType.leave_reverted: (
        "Leave Back to Pending",
        "The decision on your leave for {period} was reverted.",
    ),
}


def _period(application) -> str:
    start = application.start_date.strftime(DATE_FORMAT)
    if application.end_date == application.start_date:
        return start
    return f"{start} to {application.end_date.strftime(DATE_FORMAT)}"


async def _notify_applicant(
    db: AsyncSession,
    application,
    kind: NotificationType,
) -> Notification:
    title, template = _APPLICANT_MESSAGES[kind]
    return await NotificationService.create_notification(
        db,
        recipient_id=application.user_id,
        type=kind,
        title=title,
        message=template.format(period=_period(application)),
        action_url=f"/leave/{application.id}",
        entity_type=LEAVE_ENTITY,
        entity_id=application.id,
    )


async def notify_leave_submitted(
    db: AsyncSession,
    application,  # timeloo.leave.models.LeaveApplication
    applicant_name: str,
) -> list[Notification]:
    """One notification per active admin, skipping the applicant themself."""
    admin_ids = (
        await db.execute(
            select(Profile.id).where(
                Profile.role == UserRole.admin,
                Profile.is_active.is_(True),
                Profile.id != application.user_id,
            )
        )
    ).scalars().all()

    message = f"{applicant_name} applied for leave on {_period(application)}."
    return [
        await NotificationService.create_notification(
            db,
            recipient_id=admin_id,
            type=NotificationType.leave_submitted,
            title="New Leave Request",
            message=message,
            action_url=f"/admin/leave/{application.id}",
            entity_type=LEAVE_ENTITY,
            entity_id=application.id,
        )
        for admin_id in admin_ids
    ]


async def notify_leave_approved(db: AsyncSession, application) -> Notification:
    return await _notify_applicant(db, application, NotificationType.leave_approved)


async def notify_leave_rejected(db: AsyncSession, application) -> Notification:
    return await _notify_applicant(db, application, NotificationType.leave_rejected)


async def notify_leave_reverted(db: AsyncSession, application) -> Notification:
    return await _notify_applicant(db, application, NotificationType.leave_reverted)
