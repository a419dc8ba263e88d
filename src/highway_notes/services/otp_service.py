"""OTP engine — issue, throttle, verify and expire one-time email codes.

Learn: A code lives on the user row (otp + otp_expires) until it is used
or replaced. The lifecycle:

    issue_code   → otp = 6 random digits, otp_expires = now + ttl, notify
    request_code → cooldown + daily quota checks, then issue_code
    verify_code  → check presence, match, expiry → mark verified, clear
                   the code, mint a session token

Registration and login call issue_code directly. Only the explicit
"send me another code" path goes through request_code's throttle.

Delivery is best-effort: the code is committed before the notifier runs,
and a failed send is logged (code included) instead of failing the
request, so an operator can still read it out to a stuck user.

Throttle window: the quota counter is never reset. It only counts while
last_otp_request falls on the current calendar day (midnight in the
configured timezone, server local time by default). The first request on
a new day sees a stale counter but fails the "same day" test, so it goes
through and the count keeps growing from there.

Concurrency: two requests for the same user race on the row and the
later commit wins. There is no locking beyond the database's own row
atomicity.
"""

import math
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.auth.jwt import TokenIssuer
from highway_notes.config import Settings
from highway_notes.db.models import User, utcnow
from highway_notes.errors import (
    OtpExpired,
    OtpMismatch,
    OtpNotIssued,
    OtpQuotaExceeded,
    OtpThrottled,
    UserNotFound,
)
from highway_notes.services.notifier import Notifier
from highway_notes.services.user_service import UserService

logger = structlog.get_logger()

Clock = Callable[[], datetime]

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Uniform random code in [100000, 999999]; never has a leading zero."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite drops tzinfo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Midnight of now's calendar day in tz (server local time if None)."""
    local = as_utc(now).astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class OtpPolicy:
    ttl: timedelta = timedelta(minutes=10)
    cooldown: timedelta = timedelta(seconds=60)
    daily_limit: int = 10
    tz: Optional[tzinfo] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpPolicy":
        tz = None
        if settings.otp_timezone:
            tz = ZoneInfo(settings.otp_timezone)
        return cls(
            ttl=timedelta(minutes=settings.otp_ttl_minutes),
            cooldown=timedelta(seconds=settings.otp_cooldown_seconds),
            daily_limit=settings.otp_daily_limit,
            tz=tz,
        )

    @property
    def ttl_minutes(self) -> int:
        return int(self.ttl.total_seconds() // 60)


@dataclass(frozen=True)
class OtpIssue:
    """Outcome of issuing a code.

    The code is always persisted when this is returned; delivered is a
    separate diagnostic that never turns into a request failure.
    """

    user_id: uuid.UUID
    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class OtpVerification:
    token: str
    user: User
    was_verified: bool


class OtpService:
    """Business logic for one-time codes."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Notifier,
        token_issuer: TokenIssuer,
        policy: Optional[OtpPolicy] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.users = UserService(db)
        self.notifier = notifier
        self.token_issuer = token_issuer
        self.policy = policy or OtpPolicy()
        self.clock = clock

    # ─── Issue ──────────────────────────────────────────

    async def issue_code(self, user: User) -> OtpIssue:
        """Store a fresh code on the user and try to deliver it."""
        code = generate_otp()
        expires_at = as_utc(self.clock()) + self.policy.ttl
        user.otp = code
        user.otp_expires = expires_at
        await self.db.commit()

        logger.info("otp.issued", user_id=str(user.id), expires_at=expires_at.isoformat())
        delivered = await self._deliver(user.email, code)
        return OtpIssue(user_id=user.id, expires_at=expires_at, delivered=delivered)

    async def start_login(self, email: str) -> OtpIssue:
        """Send a login code. Unverified users may log in too (finishes signup)."""
        user = await self.users.get_by_email(email)
        if not user:
            raise UserNotFound("User not found. Please sign up first.")
        return await self.issue_code(user)

    async def request_code(self, email: str) -> OtpIssue:
        """Explicit resend, subject to the cooldown and daily quota."""
        user = await self.users.get_by_email(email)
        if not user:
            raise UserNotFound()

        now = as_utc(self.clock())
        self.check_throttle(user, now)

        user.last_otp_request = now
        user.otp_request_count = (user.otp_request_count or 0) + 1
        return await self.issue_code(user)

    def check_throttle(self, user: User, now: datetime) -> None:
        if not user.last_otp_request:
            return

        last = as_utc(user.last_otp_request)
        available_at = last + self.policy.cooldown
        if available_at > now:
            # Capped at the cooldown: a clock stepped backwards must not
            # push the wait past it.
            retry_after = min(
                math.ceil((available_at - now).total_seconds()),
                math.ceil(self.policy.cooldown.total_seconds()),
            )
            logger.info("otp.throttled", user_id=str(user.id), retry_after=retry_after)
            raise OtpThrottled(retry_after)

        same_day = last >= start_of_day(now, self.policy.tz)
        if (user.otp_request_count or 0) >= self.policy.daily_limit and same_day:
            logger.info("otp.quota_exceeded", user_id=str(user.id), count=user.otp_request_count)
            raise OtpQuotaExceeded()

    async def _deliver(self, email: str, code: str) -> bool:
        try:
            delivered = await self.notifier.send_code(email, code, self.policy.ttl_minutes)
        except Exception as e:
            logger.error("otp.notifier_error", email=email, error=str(e))
            delivered = False

        if not delivered:
            # Surfaced for manual recovery when email is down.
            logger.warning("otp.delivery_failed", email=email, otp=code)
        return delivered

    # ─── Verify ─────────────────────────────────────────

    async def verify_code(self, email: str, code: str) -> OtpVerification:
        """Check a submitted code. Serves both signup completion and login."""
        user = await self.users.get_by_email(email)
        if not user:
            raise UserNotFound()

        if not user.otp or not user.otp_expires:
            raise OtpNotIssued()

        if user.otp != code:
            logger.info("otp.mismatch", user_id=str(user.id))
            raise OtpMismatch()

        if as_utc(self.clock()) > as_utc(user.otp_expires):
            logger.info("otp.expired", user_id=str(user.id))
            raise OtpExpired()

        was_verified = user.is_email_verified
        user.is_email_verified = True
        user.otp = None
        user.otp_expires = None
        await self.db.commit()

        token = self.token_issuer.issue(str(user.id))
        logger.info("otp.verified", user_id=str(user.id), first_verification=not was_verified)
        return OtpVerification(token=token, user=user, was_verified=was_verified)
