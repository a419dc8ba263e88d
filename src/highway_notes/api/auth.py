"""Auth API — OTP signup/login, Google sign-in, current user.

Learn: Routes for the authentication flow:
- POST /auth/register → create an unverified user, email a code
- POST /auth/login → email a code to an existing user
- POST /auth/verify-otp → code → session JWT (completes signup or login)
- POST /auth/request-otp → resend a code (cooldown + daily quota)
- GET /auth/google → redirect to Google consent
- GET /auth/google/callback → bind identity, redirect to the frontend
- GET /auth/me → current user info

Failures are raised as HighwayError subclasses and rendered by the
handlers in main.py; the only exception is the Google callback, which
always answers with a redirect because a browser is on the other end.
"""

from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.auth.dependencies import (
    get_clock,
    get_current_user,
    get_google_client,
    get_notifier,
    get_otp_policy,
    get_token_issuer,
)
from highway_notes.auth.google import GoogleOAuthClient
from highway_notes.auth.jwt import TokenError, TokenIssuer
from highway_notes.db.engine import get_db
from highway_notes.db.models import User
from highway_notes.errors import FederatedAuthError
from highway_notes.schemas.auth import (
    LoginRequest,
    OtpRequest,
    OtpSentResponse,
    RegisterRequest,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from highway_notes.schemas.common import MessageResponse
from highway_notes.schemas.user import UserPublic, UserResponse
from highway_notes.services.federated_service import FederatedService
from highway_notes.services.notifier import Notifier
from highway_notes.services.otp_service import OtpPolicy, OtpService
from highway_notes.services.user_service import UserService

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")


def _otp(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
    policy: OtpPolicy = Depends(get_otp_policy),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OtpService:
    return OtpService(db, notifier, token_issuer, policy=policy, clock=clock)


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=OtpSentResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    otp: OtpService = Depends(_otp),
):
    """Create a password-less account and email the first code."""
    user = await UserService(db).register(
        email=body.email, name=body.name, date_of_birth=body.date_of_birth
    )
    await otp.issue_code(user)
    return OtpSentResponse(
        message="User registered successfully. Please check your email for OTP verification.",
        user_id=user.id,
    )


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=OtpSentResponse)
async def login(body: LoginRequest, otp: OtpService = Depends(_otp)):
    """Email a login code to an existing user."""
    issued = await otp.start_login(body.email)
    logger.info("auth.login_code_sent", user_id=str(issued.user_id), delivered=issued.delivered)
    return OtpSentResponse(
        message="OTP sent to your email for login verification",
        user_id=issued.user_id,
    )


# ─── Verify ──────────────────────────────────────────────


@router.post("/verify-otp", response_model=VerifyOtpResponse)
async def verify_otp(body: VerifyOtpRequest, otp: OtpService = Depends(_otp)):
    """Exchange a valid code for a session token."""
    result = await otp.verify_code(body.email, body.otp)
    return VerifyOtpResponse(
        message="Login successful" if result.was_verified else "Email verified successfully",
        token=result.token,
        user=UserPublic.model_validate(result.user),
    )


# ─── Resend ──────────────────────────────────────────────


@router.post("/request-otp", response_model=MessageResponse)
async def request_otp(body: OtpRequest, otp: OtpService = Depends(_otp)):
    """Send a fresh code, subject to the resend cooldown and daily quota."""
    await otp.request_code(body.email)
    return MessageResponse(message="OTP sent to your email")


# ─── Google ──────────────────────────────────────────────


def _frontend_redirect(request: Request, path: str, **params: str) -> RedirectResponse:
    base = request.app.state.settings.frontend_url.rstrip("/")
    return RedirectResponse(f"{base}{path}?{urlencode(params)}", status_code=302)


def _google_failure(request: Request) -> RedirectResponse:
    return _frontend_redirect(request, "/signin", error="google_auth_failed")


@router.get("/google")
async def google_login(
    request: Request,
    google: GoogleOAuthClient = Depends(get_google_client),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Start the Google OAuth handshake."""
    if not google.configured:
        logger.warning("google.not_configured")
        return _google_failure(request)
    state = token_issuer.issue_state()
    return RedirectResponse(google.authorization_url(state), status_code=302)


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    google: GoogleOAuthClient = Depends(get_google_client),
    token_issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Finish the handshake and hand the session token to the frontend."""
    if error or not code or not state:
        logger.info("google.callback_rejected", error=error, has_code=bool(code))
        return _google_failure(request)

    try:
        token_issuer.verify_state(state)
    except TokenError as e:
        logger.warning("google.bad_state", error=str(e))
        return _google_failure(request)

    try:
        identity = await google.fetch_identity(code)
    except FederatedAuthError as e:
        logger.warning("google.identity_failed", error=e.message)
        return _google_failure(request)

    try:
        user = await FederatedService(db).bind_identity(identity)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("google.bind_failed", error=str(e))
        return _google_failure(request)

    token = token_issuer.issue(str(user.id))
    return _frontend_redirect(request, "/dashboard", token=token)


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    """Get the current authenticated user's info."""
    return UserResponse(user=UserPublic.model_validate(user))
