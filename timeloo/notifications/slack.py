"""Slack Block Kit message builders, bot-token rotation and per-user connection."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.constants import LeaveStatus
from timeloo.common.exceptions import NotFoundException
from timeloo.config import settings
from timeloo.notifications.models import SlackToken
from timeloo.profiles.models import UserSlackIntegration

logger = logging.getLogger(__name__)

SLACK_OAUTH_URL = "https://slack.com/api/oauth.v2.access"

_LONG_DATE = "%A, %B %d, %Y"


class SlackTokenRefreshError(Exception):
    """Slack refused to rotate the bot token."""


# ── Formatting helpers ──────────────────────────────────────────────

def date_range(start: date, end: date) -> str:
    if start == end:
        return start.strftime(_LONG_DATE)
    return f"{start.strftime(_LONG_DATE)} to {end.strftime(_LONG_DATE)}"


def duration(application) -> str:
    if application.hours_requested:
        hours = application.hours_requested
        return f"{hours:g} hour" if hours == 1 else f"{hours:g} hours"
    if application.is_half_day:
        period = application.half_day_period
        return f"Half day ({period.value})" if period else "Half day"
    days = (application.end_date - application.start_date).days + 1
    return "1 day" if days == 1 else f"{days} days"


def _label(application) -> str:
    return application.leave_type.label if application.leave_type else "leave"


def _who(application) -> str:
    profile = application.profile
    return profile.display_name if profile else application.user_id


def _fields(application, dates_title: str = "Dates") -> dict[str, Any]:
    return {
        "type": "section",
        "fields": [
            {"type": "mrkdwn", "text": f"*{dates_title}:*\n{date_range(application.start_date, application.end_date)}"},
            {"type": "mrkdwn", "text": f"*Duration:*\n{duration(application)}"},
            {"type": "mrkdwn", "text": f"*Type:*\n{_label(application)}"},
            {"type": "mrkdwn", "text": f"*Reason:*\n{application.reason or 'No reason provided'}"},
        ],
    }


def _context(text: str) -> dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


# ── Message builders ────────────────────────────────────────────────
# Each returns (fallback_text, blocks).

def build_submission_message(application) -> tuple[str, list[dict[str, Any]]]:
    """Admin-channel message for a new application awaiting review."""
    text = f"New {_label(application)} request from {_who(application)}"
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "New Leave Request", "emoji": True},
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{_who(application)}* applied for *{_label(application)}*.",
            },
        },
        _fields(application),
        _context(f"Review it in the Timeloo dashboard: {settings.APP_URL}/admin"),
    ]
    return text, blocks


def build_status_message(application, status: LeaveStatus) -> tuple[str, list[dict[str, Any]]]:
    """Direct message telling the applicant about a decision."""
    label = _label(application)
    if status == LeaveStatus.approved:
        text = "Great news! Your leave request has been approved!"
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "Leave Request Approved!", "emoji": True},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"Your *{label}* request has been approved."},
            },
            _fields(application),
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Enjoy your time off!* Remember to set up an out-of-office "
                            "message and hand over any urgent tasks.",
                },
            },
            _context("You can view all your leave applications in the Timeloo dashboard."),
        ]
    elif status == LeaveStatus.rejected:
        text = "Your leave request has been rejected."
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": "Leave Request Update", "emoji": True},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"Your *{label}* request has been rejected."},
            },
            _fields(application, dates_title="Requested Dates"),
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Need clarification?* Please reach out to your manager "
                            "to discuss alternative dates.",
                },
            },
            _context("You can submit a new leave request anytime through the Timeloo dashboard."),
        ]
    else:
        text = f"Your leave request status has been updated to: {status.value}"
        blocks = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"Your *{label}* request status has been updated to: *{status.value}*",
                },
            },
            _fields(application),
        ]
    return text, blocks


def build_channel_message(application, status: LeaveStatus) -> tuple[str, list[dict[str, Any]]]:
    """Admin / all-users channel digest of a decision."""
    verb = {
        LeaveStatus.approved: "approved",
        LeaveStatus.rejected: "rejected",
        LeaveStatus.pending: "moved back to pending",
    }.get(status, status.value)
    text = f"{_who(application)}'s {_label(application)} was {verb}"
    blocks = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{_who(application)}*: {_label(application)} *{verb}*",
            },
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Dates:*\n{date_range(application.start_date, application.end_date)}"},
                {"type": "mrkdwn", "text": f"*Duration:*\n{duration(application)}"},
            ],
        },
    ]
    return text, blocks


# ── OAuth ───────────────────────────────────────────────────────────

async def _oauth_access(
    form: dict[str, str],
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, Any]:
    """POST to ``oauth.v2.access``; HTTP failures propagate as ``httpx.HTTPError``."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    try:
        response = await client.post(SLACK_OAUTH_URL, data=form)
        response.raise_for_status()
        return response.json()
    finally:
        if owns_client:
            await client.aclose()


# ── Token rotation ──────────────────────────────────────────────────

class SlackTokenService:
    """Bot token lookup and refresh through Slack's OAuth v2 endpoint."""

    @staticmethod
    async def current_bot_token(db: AsyncSession) -> str:
        """Newest rotated token, else the configured ``SLACK_BOT_TOKEN``."""
        result = await db.execute(
            select(SlackToken.access_token)
            .order_by(SlackToken.created_at.desc())
            .limit(1)
        )
        token = result.scalars().first()
        return token or settings.SLACK_BOT_TOKEN

    @staticmethod
    async def _latest_refresh_token(db: AsyncSession) -> Optional[str]:
        result = await db.execute(
            select(SlackToken.refresh_token)
            .where(SlackToken.refresh_token.is_not(None))
            .order_by(SlackToken.created_at.desc())
            .limit(1)
        )
        return result.scalars().first() or settings.SLACK_REFRESH_TOKEN or None

    @staticmethod
    async def refresh(
        db: AsyncSession,
        client: Optional[httpx.AsyncClient] = None,
    ) -> SlackToken:
        """Exchange the refresh token for a new token pair and store it."""
        if not settings.SLACK_CLIENT_ID or not settings.SLACK_CLIENT_SECRET:
            raise SlackTokenRefreshError("Missing Slack client credentials")

        refresh_token = await SlackTokenService._latest_refresh_token(db)
        if not refresh_token:
            raise SlackTokenRefreshError("No Slack refresh token configured")

        form = {
            "client_id": settings.SLACK_CLIENT_ID,
            "client_secret": settings.SLACK_CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }

        try:
            data = await _oauth_access(form, client)
        except httpx.HTTPError as exc:
            logger.error("Slack token refresh request failed: %s", exc)
            raise SlackTokenRefreshError(f"Slack token refresh request failed: {exc}") from exc

        if not data.get("ok") or not data.get("access_token"):
            logger.warning("Slack refused token refresh: %s", data.get("error"))
            raise SlackTokenRefreshError(data.get("error") or "Slack token refresh failed")

        token = SlackToken(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_in=data.get("expires_in"),
        )
        db.add(token)
        await db.flush()
        logger.info("Slack bot token refreshed (expires_in=%s)", token.expires_in)
        return token


# ── Per-user connection ─────────────────────────────────────────────

class SlackConnectError(Exception):
    """Slack would not exchange the authorization code for a user identity."""


class SlackIntegrationService:
    """Links a profile to its Slack user so status updates can be sent as DMs."""

    @staticmethod
    async def get_integration(db: AsyncSession, user_id: str) -> Optional[UserSlackIntegration]:
        result = await db.execute(
            select(UserSlackIntegration).where(UserSlackIntegration.user_id == user_id)
        )
        return result.scalars().first()

    @staticmethod
    async def connect(
        db: AsyncSession,
        user_id: str,
        code: str,
        *,
        redirect_uri: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> UserSlackIntegration:
        """Exchange an "Add to Slack" authorization code and store the user's
        Slack identity. Reconnecting replaces the previous link.
        """
        if not settings.SLACK_CLIENT_ID or not settings.SLACK_CLIENT_SECRET:
            raise SlackConnectError("Missing Slack client credentials")

        form = {
            "client_id": settings.SLACK_CLIENT_ID,
            "client_secret": settings.SLACK_CLIENT_SECRET,
            "code": code,
        }
        redirect_uri = redirect_uri or settings.SLACK_REDIRECT_URI
        if redirect_uri:
            form["redirect_uri"] = redirect_uri

        try:
            data = await _oauth_access(form, client)
        except httpx.HTTPError as exc:
            logger.error("Slack code exchange failed for user %s: %s", user_id, exc)
            raise SlackConnectError(f"Slack code exchange request failed: {exc}") from exc

        if not data.get("ok"):
            logger.warning("Slack refused code exchange for user %s: %s", user_id, data.get("error"))
            raise SlackConnectError(data.get("error") or "Slack code exchange failed")

        slack_user_id = (data.get("authed_user") or {}).get("id")
        slack_team_id = (data.get("team") or {}).get("id")
        if not slack_user_id or not slack_team_id:
            raise SlackConnectError("Slack response is missing the user or team id")

        integration = await SlackIntegrationService.get_integration(db, user_id)
        if integration is None:
            integration = UserSlackIntegration(user_id=user_id)
            db.add(integration)
        integration.slack_user_id = slack_user_id
        integration.slack_team_id = slack_team_id
        await db.flush()
        logger.info("Slack user %s linked to profile %s", slack_user_id, user_id)
        return integration

    @staticmethod
    async def disconnect(db: AsyncSession, user_id: str) -> None:
        integration = await SlackIntegrationService.get_integration(db, user_id)
        if integration is None:
            raise NotFoundException("Slack integration", user_id)
        await db.delete(integration)
        await db.flush()
        logger.info("Slack integration removed for profile %s", user_id)
