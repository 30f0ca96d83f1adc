"""Leave approval email delivered through the Resend HTTP API."""

from __future__ import annotations

import html
import logging
from datetime import date
from typing import Any, Optional

import httpx

from timeloo.config import settings

logger = logging.getLogger(__name__)

_LONG_DATE = "%A, %B %d, %Y"


class EmailDeliveryError(Exception):
    """Resend rejected or could not receive the message."""


def render_approval_html(
    name: str,
    leave_type: str,
    start: date,
    end: date,
    reason: Optional[str] = None,
) -> str:
    reason_row = (
        f'<p style="margin: 5px 0;"><strong>Reason:</strong> {html.escape(reason)}</p>'
        if reason else ""
    )
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: #667eea; color: white; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
    <h1 style="margin: 0; font-size: 24px;">Leave Approved!</h1>
    <p style="margin: 10px 0 0 0;">Hi {html.escape(name)}, your leave application has been approved.</p>
  </div>
  <div style="background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px; border: 1px solid #e9ecef;">
    <h2 style="color: #343a40; margin-top: 0;">Leave Details</h2>
    <div style="background: white; padding: 20px; border-radius: 8px; border-left: 4px solid #28a745;">
      <p style="margin: 5px 0;"><strong>Leave Type:</strong> {html.escape(leave_type)}</p>
      <p style="margin: 5px 0;"><strong>Start Date:</strong> {start.strftime(_LONG_DATE)}</p>
      <p style="margin: 5px 0;"><strong>End Date:</strong> {end.strftime(_LONG_DATE)}</p>
      {reason_row}
    </div>
    <ul style="color: #6c757d; line-height: 1.6;">
      <li>Please hand over any pending work before your leave starts</li>
      <li>Set up your out-of-office message</li>
    </ul>
    <p style="text-align: center;"><a href="{settings.APP_URL}">Open Timeloo</a></p>
  </div>
</div>
""".strip()


async def send_leave_approval_email(
    client: httpx.AsyncClient,
    to: str,
    name: str,
    leave_type: str,
    start: date,
    end: date,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    """POST the approval email to Resend. Returns Resend's JSON response."""
    if not settings.RESEND_API_KEY:
        raise EmailDeliveryError("RESEND_API_KEY is not configured")

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": f"Your {leave_type} Application has been Approved!",
        "html": render_approval_html(name, leave_type, start, end, reason),
    }
    try:
        response = await client.post(
            f"{settings.RESEND_API_URL}/emails",
            json=payload,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Resend request failed: {exc}") from exc

    if response.status_code >= 400:
        raise EmailDeliveryError(
            f"Resend answered {response.status_code}: {response.text[:200]}"
        )

    logger.info("Approval email sent to %s", to)
    return response.json()
