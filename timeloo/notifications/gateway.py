"""Notification gateway — out-of-band Slack / email delivery after a leave
state transition.

Scheduled as a background task by the leave routes once they have committed
the transition, then reloads the application in its own session.
Delivery is best-effort: every attempt is written to ``notification_logs``
as sent, failed or skipped, and nothing is raised back to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

import aiohttp
import httpx
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timeloo.common.constants import DeliveryStatus, LeaveStatus, NotificationChannel
from timeloo.config import settings
from timeloo.database import async_session_factory
from timeloo.leave.models import LeaveApplication
from timeloo.leave.repository import LeaveRepository
from timeloo.notifications.email import EmailDeliveryError, send_leave_approval_email
from timeloo.notifications.models import NotificationLog
from timeloo.notifications.slack import (
    SlackTokenService,
    build_channel_message,
    build_status_message,
    build_submission_message,
)
from timeloo.profiles.models import UserSlackIntegration

logger = logging.getLogger(__name__)

_SLACK_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)


def _default_slack_client(token: str) -> AsyncWebClient:
    return AsyncWebClient(token=token, timeout=int(settings.HTTP_TIMEOUT_SECONDS))


class NotificationGateway:
    """Delivers leave notifications to Slack (DM + channels) and email."""

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session_factory,
        *,
        slack_client_factory: Callable[[str], AsyncWebClient] = _default_slack_client,
        http_client_factory: Callable[[], httpx.AsyncClient] = httpx.AsyncClient,
    ) -> None:
        self._session_factory = session_factory
        self._slack_client_factory = slack_client_factory
        self._http_client_factory = http_client_factory

    # ─────────────────────────────────────────────────────────────────
    # Delivery log
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _record(
        db: AsyncSession,
        application: LeaveApplication,
        channel: NotificationChannel,
        destination: Optional[str],
        status: DeliveryStatus,
        error: Optional[str] = None,
        *,
        recipient_id: Optional[str] = None,
    ) -> None:
        db.add(
            NotificationLog(
                leave_application_id=application.id,
                recipient_id=recipient_id,
                channel=channel,
                destination=destination,
                status=status,
                error=error,
            )
        )

    # ─────────────────────────────────────────────────────────────────
    # Slack
    # ─────────────────────────────────────────────────────────────────

    async def _post_slack(
        self,
        db: AsyncSession,
        slack: Optional[AsyncWebClient],
        application: LeaveApplication,
        destination: Optional[str],
        message: tuple[str, list[dict[str, Any]]],
        *,
        recipient_id: Optional[str] = None,
        skip_reason: str = "",
    ) -> DeliveryStatus:
        if slack is None:
            skip_reason = "No Slack bot token configured"
        if not destination or slack is None:
            logger.info(
                "Slack notification skipped for application %s: %s",
                application.id, skip_reason,
            )
            self._record(
                db, application, NotificationChannel.slack, destination,
                DeliveryStatus.skipped, skip_reason, recipient_id=recipient_id,
            )
            return DeliveryStatus.skipped

        text, blocks = message
        try:
            await slack.chat_postMessage(channel=destination, text=text, blocks=blocks)
        except _SLACK_ERRORS as exc:
            logger.warning(
                "Slack delivery to %s failed for application %s: %s",
                destination, application.id, exc,
            )
            self._record(
                db, application, NotificationChannel.slack, destination,
                DeliveryStatus.failed, str(exc), recipient_id=recipient_id,
            )
            return DeliveryStatus.failed

        logger.info("Slack notification sent to %s for application %s", destination, application.id)
        self._record(
            db, application, NotificationChannel.slack, destination,
            DeliveryStatus.sent, recipient_id=recipient_id,
        )
        return DeliveryStatus.sent

    @staticmethod
    async def _slack_user_id(db: AsyncSession, user_id: str) -> Optional[str]:
        result = await db.execute(
            select(UserSlackIntegration.slack_user_id).where(
                UserSlackIntegration.user_id == user_id
            )
        )
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Email
    # ─────────────────────────────────────────────────────────────────

    async def _send_email(
        self,
        db: AsyncSession,
        application: LeaveApplication,
    ) -> DeliveryStatus:
        profile = application.profile
        if not settings.RESEND_API_KEY or profile is None or not profile.email:
            reason = "RESEND_API_KEY not configured" if not settings.RESEND_API_KEY else "No email address"
            self._record(
                db, application, NotificationChannel.email,
                profile.email if profile else None,
                DeliveryStatus.skipped, reason, recipient_id=application.user_id,
            )
            return DeliveryStatus.skipped

        async with self._http_client_factory() as client:
            try:
                await send_leave_approval_email(
                    client,
                    to=profile.email,
                    name=profile.display_name,
                    leave_type=application.leave_type.label,
                    start=application.start_date,
                    end=application.end_date,
                    reason=application.reason,
                )
            except EmailDeliveryError as exc:
                logger.warning(
                    "Approval email for application %s failed: %s", application.id, exc,
                )
                self._record(
                    db, application, NotificationChannel.email, profile.email,
                    DeliveryStatus.failed, str(exc), recipient_id=application.user_id,
                )
                return DeliveryStatus.failed

        self._record(
            db, application, NotificationChannel.email, profile.email,
            DeliveryStatus.sent, recipient_id=application.user_id,
        )
        return DeliveryStatus.sent

    # ─────────────────────────────────────────────────────────────────
    # Public entry points
    # ─────────────────────────────────────────────────────────────────

    async def dispatch(
        self,
        application_id: uuid.UUID,
        *,
        is_approval_update: bool,
        send_to_user: bool = False,
        send_to_admin_channel: bool = False,
        send_to_all_users_channel: bool = False,
        send_email: bool = False,
    ) -> dict[str, DeliveryStatus]:
        """Deliver to the selected audiences. Returns the outcome per audience."""
        outcomes: dict[str, DeliveryStatus] = {}
        try:
            async with self._session_factory() as db:
                application = await LeaveRepository.get_application(db, application_id)
                if application is None:
                    logger.warning("Notification for missing application %s dropped", application_id)
                    return outcomes

                status = LeaveStatus(application.status)
                token = await SlackTokenService.current_bot_token(db)
                slack = self._slack_client_factory(token) if token else None

                if send_to_user:
                    slack_user_id = await self._slack_user_id(db, application.user_id)
                    outcomes["user"] = await self._post_slack(
                        db, slack, application, slack_user_id,
                        build_status_message(application, status),
                        recipient_id=application.user_id,
                        skip_reason="No Slack integration for user",
                    )

                if send_to_admin_channel:
                    message = (
                        build_channel_message(application, status)
                        if is_approval_update
                        else build_submission_message(application)
                    )
                    outcomes["admin_channel"] = await self._post_slack(
                        db, slack, application, settings.SLACK_ADMIN_CHANNEL, message,
                        skip_reason="SLACK_ADMIN_CHANNEL not configured",
                    )

                if send_to_all_users_channel:
                    outcomes["all_users_channel"] = await self._post_slack(
                        db, slack, application, settings.SLACK_ALL_USERS_CHANNEL,
                        build_channel_message(application, status),
                        skip_reason="SLACK_ALL_USERS_CHANNEL not configured",
                    )

                if send_email:
                    outcomes["email"] = await self._send_email(db, application)

                await db.commit()
        except SQLAlchemyError:
            logger.exception("Could not record notifications for application %s", application_id)
        return outcomes

    async def notify_submission(self, application_id: uuid.UUID) -> dict[str, DeliveryStatus]:
        """New application: tell the admin channel."""
        return await self.dispatch(
            application_id,
            is_approval_update=False,
            send_to_admin_channel=True,
        )

    async def notify_status_change(
        self,
        application_id: uuid.UUID,
        new_status: LeaveStatus,
    ) -> dict[str, DeliveryStatus]:
        """Decision made: DM the user and tell the admin channel; approvals
        also go to the all-users channel and by email."""
        approved = new_status == LeaveStatus.approved
        return await self.dispatch(
            application_id,
            is_approval_update=True,
            send_to_user=True,
            send_to_admin_channel=True,
            send_to_all_users_channel=approved,
            send_email=approved,
        )


_gateway: Optional[NotificationGateway] = None


def get_notification_gateway() -> NotificationGateway:
    """FastAPI dependency; tests override it with a gateway bound to their engine."""
    global _gateway
    if _gateway is None:
        _gateway = NotificationGateway()
    return _gateway
