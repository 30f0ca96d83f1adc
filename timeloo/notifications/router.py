"""Notification endpoints: the in-app feed, per-user Slack connection and the
admin Slack token refresh."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.auth.dependencies import get_current_user, require_admin
from timeloo.common.constants import NotificationType
from timeloo.common.exceptions import UpstreamServiceError
from timeloo.common.pagination import PaginationParams
from timeloo.common.rate_limit import limiter
from timeloo.database import get_db
from timeloo.notifications.schemas import (
    CountData,
    MarkAllReadResponse,
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
    SlackConnectRequest,
    SlackIntegrationOut,
    SlackIntegrationResponse,
    SlackTokenRefreshOut,
    UnreadCountResponse,
)
from timeloo.notifications.service import NotificationService
from timeloo.notifications.slack import (
    SlackConnectError,
    SlackIntegrationService,
    SlackTokenRefreshError,
    SlackTokenService,
)
from timeloo.profiles.models import Profile

router = APIRouter(tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None),
    type: Optional[NotificationType] = Query(default=None),
    pagination: PaginationParams = Depends(),
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.get_notifications(
        db, user.id, pagination, is_read=is_read, notification_type=type,
    )


# Declared ahead of /{notification_id}/read so "unread-count" never reaches the UUID parser
@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.get_unread_count(db, user.id)
    return UnreadCountResponse(data=CountData(count=count))


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    flipped = await NotificationService.mark_all_read(db, user.id)
    return MarkAllReadResponse(data=CountData(count=flipped))


@router.put("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_read(
    notification_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, user.id)
    return MarkReadResponse(data=NotificationResponse.model_validate(notification))


@router.post("/slack/refresh-token", response_model=SlackTokenRefreshOut)
@limiter.limit("5/minute")
async def refresh_slack_token(
    request: Request,
    admin: Profile = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Rotate the Slack bot token through Slack's OAuth refresh grant.

    Admin only. A rejected refresh surfaces as 502 so the caller can tell
    a Slack outage from a bad request.
    """
    try:
        token = await SlackTokenService.refresh(db)
    except SlackTokenRefreshError as exc:
        raise UpstreamServiceError(
            "slack-token-refresh-failed", "Slack Token Refresh Failed", str(exc),
        ) from exc
    return SlackTokenRefreshOut(
        ok=True,
        expires_in=token.expires_in,
        refreshed_at=token.created_at,
    )


# ── Per-user Slack connection ───────────────────────────────────────

@router.get("/slack/integration", response_model=SlackIntegrationResponse)
async def get_slack_integration(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await SlackIntegrationService.get_integration(db, user.id)
    return SlackIntegrationResponse(
        data=SlackIntegrationOut.model_validate(integration) if integration else None,
    )


@router.post("/slack/connect", response_model=SlackIntegrationResponse)
@limiter.limit("10/minute")
async def connect_slack(
    request: Request,
    body: SlackConnectRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Finish "Add to Slack": trade the OAuth code for the caller's Slack identity."""
    try:
        integration = await SlackIntegrationService.connect(
            db, user.id, body.code, redirect_uri=body.redirect_uri,
        )
    except SlackConnectError as exc:
        raise UpstreamServiceError(
            "slack-connect-failed", "Slack Connection Failed", str(exc),
        ) from exc
    return SlackIntegrationResponse(data=SlackIntegrationOut.model_validate(integration))


@router.delete("/slack/connect", status_code=204)
async def disconnect_slack(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await SlackIntegrationService.disconnect(db, user.id)
    return Response(status_code=204)
