"""Test fixtures — in-memory SQLite per test, fake notifier, frozen clock.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets a fresh in-memory SQLite database (aiosqlite). StaticPool
   keeps a single connection so every session sees the same data.
2. get_db is overridden to open a NEW session per request, like
   production, so identity-map state never leaks between requests.
3. The notifier is replaced with one that records codes instead of sending
   mail, and the clock with one the test can move forward.

Environment variables are set before any highway_notes import: Settings()
refuses to load without a signing secret.
"""

import os

os.environ.setdefault("HIGHWAY_JWT_SECRET", "test-secret-not-for-production")
os.environ["HIGHWAY_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["HIGHWAY_REDIS_URL"] = "redis://127.0.0.1:6399/0"
os.environ["HIGHWAY_AUTO_CREATE_TABLES"] = "false"

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from highway_notes.auth.dependencies import get_clock  # noqa: E402
from highway_notes.auth.jwt import TokenIssuer  # noqa: E402
from highway_notes.db.engine import get_db  # noqa: E402
from highway_notes.db.models import Base, User  # noqa: E402
from highway_notes.main import create_app  # noqa: E402
from highway_notes.services.notifier import Notifier  # noqa: E402
from highway_notes.services.otp_service import OtpPolicy  # noqa: E402

TEST_SECRET = "test-secret-not-for-production"


class RecordingNotifier(Notifier):
    """Keeps every code it is asked to send; can be told to fail."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False
        self.raise_error: Optional[Exception] = None

    async def send_code(self, email: str, code: str, ttl_minutes: int) -> bool:
        if self.raise_error:
            raise self.raise_error
        self.sent.append((email, code))
        return not self.fail

    def last_code(self, email: Optional[str] = None) -> str:
        for sent_to, code in reversed(self.sent):
            if email is None or sent_to == email:
                return code
        raise AssertionError(f"no code sent to {email}")


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """A session for tests that call services directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def clock():
    # Mid-morning UTC so a handful of minute-spaced requests stay on one day.
    return FrozenClock(datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def token_issuer():
    return TokenIssuer(TEST_SECRET, expires_in=timedelta(days=7))


@pytest.fixture()
def otp_policy():
    return OtpPolicy(tz=timezone.utc)


@pytest.fixture()
def app(session_factory, notifier, clock, token_issuer, otp_policy):
    """App wired to the test database and fakes."""
    application = create_app()
    application.state.notifier = notifier
    application.state.token_issuer = token_issuer
    application.state.otp_policy = otp_policy

    async def override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_clock] = lambda: clock
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def make_user(session_factory):
    """Insert a user directly (bypassing the OTP flow)."""

    async def _make(
        email: str = "ann@example.com",
        name: str = "Ann Example",
        verified: bool = True,
        google_id: Optional[str] = None,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                name=name,
                is_email_verified=verified,
                google_id=google_id,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest_asyncio.fixture()
async def user(make_user):
    return await make_user()


@pytest.fixture()
def auth_headers(token_issuer, user):
    return {"Authorization": f"Bearer {token_issuer.issue(str(user.id))}"}
