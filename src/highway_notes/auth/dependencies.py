"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. get_current_user is
the access guard in front of every protected route:

    no/invalid Authorization header ─┐
    bad signature / expired token ───┼──▶ 401 {"success": false, ...}
    user deleted after issuance ─────┘
    otherwise ──▶ User attached to request.state.user and returned

A token for a user that no longer exists is treated as "not
authenticated", not a server error: with no revocation list, deleting
the account is what retires its outstanding tokens.

The other providers hand out the process-wide objects built in
create_app (token issuer, notifier, Google client, OTP policy) and the
clock, so tests can swap any of them through app.state or
dependency_overrides.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.auth.google import GoogleOAuthClient
from highway_notes.auth.jwt import TokenError, TokenExpiredError, TokenIssuer
from highway_notes.db.engine import get_db
from highway_notes.db.models import User, utcnow
from highway_notes.errors import Unauthorized
from highway_notes.services.notifier import Notifier
from highway_notes.services.otp_service import OtpPolicy


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_google_client(request: Request) -> GoogleOAuthClient:
    return request.app.state.google_client


def get_otp_policy(request: Request) -> OtpPolicy:
    return request.app.state.otp_policy


def get_clock() -> Callable[[], datetime]:
    return utcnow


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthorized("Access token required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Access token required")
    return token.strip()


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
) -> User:
    """Resolve the bearer token to a User (required — 401 if no auth)."""
    token = extract_bearer_token(authorization)

    try:
        subject = token_issuer.verify(token)
    except TokenExpiredError:
        raise Unauthorized("Token has expired")
    except TokenError:
        raise Unauthorized("Invalid token")

    try:
        user_id = uuid.UUID(subject)
    except ValueError:
        raise Unauthorized("Invalid token")

    user = await db.get(User, user_id)
    if not user:
        raise Unauthorized("Invalid token - user not found")

    request.state.user = user
    return user
