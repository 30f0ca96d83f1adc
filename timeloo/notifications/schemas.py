"""Response shapes for the in-app notification feed and the Slack token admin route."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from timeloo.common.constants import NotificationType
from timeloo.common.pagination import PaginationMeta


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationListMeta(PaginationMeta):
    # Unread total across the whole feed, independent of list filters
    unread: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: NotificationListMeta


class CountData(BaseModel):
    count: int


class UnreadCountResponse(BaseModel):
    data: CountData


class MarkAllReadResponse(BaseModel):
    message: str = "All notifications marked as read"
    data: CountData


class MarkReadResponse(BaseModel):
    message: str = "Notification marked as read"
    data: NotificationResponse


class SlackTokenRefreshOut(BaseModel):
    ok: bool
    expires_in: Optional[int] = None
    refreshed_at: datetime


class SlackConnectRequest(BaseModel):
    code: str = Field(..., min_length=1)
    # Must match the redirect_uri of the "Add to Slack" link, when one was sent
    redirect_uri: Optional[str] = None


class SlackIntegrationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slack_user_id: str
    slack_team_id: str
    created_at: Optional[datetime] = None


class SlackIntegrationResponse(BaseModel):
    data: Optional[SlackIntegrationOut] = None
