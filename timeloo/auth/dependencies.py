"""Bearer-token authentication for the Timeloo API.

Tokens are HS256 JWTs whose ``sub`` is the profile id issued by the
identity provider. Every failure maps to a 401 with a short reason;
role checks raise the RFC 7807 403 instead.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from timeloo.common.exceptions import ForbiddenException
from timeloo.config import settings
from timeloo.database import get_db
from timeloo.profiles.models import Profile

BEARER_PREFIX = "Bearer "
ACCESS_TOKEN_TYPE = "access"


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(status_code=401, detail=reason)


def _decode_access_token(token: str) -> str:
    """Return the profile id carried by a valid access token."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise _unauthorized("Token has expired.")
    except JWTError:
        raise _unauthorized("Invalid token.")

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise _unauthorized("Invalid token type.")
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Invalid token.")
    return subject


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Profile:
    header = request.headers.get("Authorization", "")
    if not header.startswith(BEARER_PREFIX):
        raise _unauthorized("Missing or invalid Authorization header.")

    profile = await db.get(Profile, _decode_access_token(header[len(BEARER_PREFIX):]))
    if profile is None or not profile.is_active:
        raise _unauthorized("User account is inactive or not found.")
    return profile


async def require_admin(profile: Profile = Depends(get_current_user)) -> Profile:
    if not profile.is_admin:
        raise ForbiddenException(
            f"Role '{profile.role.value}' is not permitted. Required: ['admin'].",
        )
    return profile
