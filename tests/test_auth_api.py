"""Auth API tests — signup, login, code verification, resend, guard, Google.

Learn: Tests cover:
1. Registration creates an unverified user and emails a code
2. verify-otp completes signup (or login) and returns a working token
3. Error bodies: {"success": false, "message": ...} with the right status
4. request-otp cooldown (429 + retryAfter) and daily quota
5. Access guard on /auth/me: missing, malformed, tampered, expired, orphaned
6. Google redirect flow end to end against a mocked Google
"""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from highway_notes.auth.google import TOKEN_URL, USERINFO_URL, GoogleOAuthClient
from highway_notes.auth.jwt import TokenIssuer
from highway_notes.services.federated_service import FederatedService

from conftest import TEST_SECRET


# ─── Helpers ─────────────────────────────────────────────


async def _register(client, email="carl@example.com", name="Carl Carter", **extra):
    body = {"email": email, "name": name, **extra}
    return await client.post("/api/auth/register", json=body)


async def _signup(client, notifier, email="carl@example.com"):
    """Register and verify; return the verify-otp JSON body."""
    r = await _register(client, email=email)
    assert r.status_code == 201
    r = await client.post(
        "/api/auth/verify-otp",
        json={"email": email, "otp": notifier.last_code(email)},
    )
    assert r.status_code == 200
    return r.json()


def _query(location: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


# ═══════════════════════════════════════════════════════════
# Register
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_creates_user_and_sends_code(client, notifier):
    r = await _register(client, dateOfBirth="1990-05-17")
    assert r.status_code == 201
    data = r.json()
    assert data["success"] is True
    assert data["userId"]
    assert "check your email" in data["message"]

    assert notifier.sent[-1][0] == "carl@example.com"
    assert len(notifier.last_code()) == 6


@pytest.mark.asyncio
async def test_register_normalizes_email(client, notifier):
    r = await _register(client, email="  Carl@Example.COM ")
    assert r.status_code == 201
    assert notifier.sent[-1][0] == "carl@example.com"


@pytest.mark.asyncio
async def test_register_duplicate_email(client):
    await _register(client)
    r = await _register(client, email="CARL@example.com")
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "User already exists with this email"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, field",
    [
        ({"email": "not-an-email", "name": "Carl Carter"}, "email"),
        ({"email": "carl@example.com", "name": "C"}, "name"),
        ({"email": "carl@example.com", "name": "R2 D2"}, "name"),
        ({"email": "carl@example.com", "name": "Carl", "dateOfBirth": "yesterday"}, "dateOfBirth"),
        ({"name": "Carl Carter"}, "email"),
    ],
)
async def test_register_validation(client, notifier, body, field):
    r = await client.post("/api/auth/register", json=body)
    assert r.status_code == 400
    data = r.json()
    assert data["success"] is False
    assert data["message"] == "Validation failed"
    assert field in [e["field"] for e in data["errors"]]
    assert notifier.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email",
    [
        "ann@example..com",
        "ann@.example.com",
        "ann.@example.com",
        "a..b@example.com",
        "ann@example",
        "ann example@example.com",
        "@example.com",
    ],
)
async def test_register_rejects_malformed_email(client, notifier, email):
    r = await _register(client, email=email)
    assert r.status_code == 400
    assert r.json()["message"] == "Validation failed"
    assert [e["field"] for e in r.json()["errors"]] == ["email"]
    assert notifier.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("path", ["/api/auth/login", "/api/auth/request-otp"])
async def test_code_routes_reject_malformed_email(client, path):
    r = await client.post(path, json={"email": "ann@example..com"})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_register_accepts_blank_and_timestamp_dates(client):
    r = await _register(client, email="a@example.com", dateOfBirth="")
    assert r.status_code == 201
    r = await _register(client, email="b@example.com", dateOfBirth="1990-05-17T00:00:00.000Z")
    assert r.status_code == 201


@pytest.mark.asyncio
async def test_register_succeeds_when_email_fails(client, notifier):
    notifier.fail = True
    r = await _register(client)
    assert r.status_code == 201


# ═══════════════════════════════════════════════════════════
# Verify
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_signup_flow_returns_working_token(client, notifier):
    data = await _signup(client, notifier)

    assert data["success"] is True
    assert data["message"] == "Email verified successfully"
    assert data["user"]["email"] == "carl@example.com"
    assert data["user"]["isEmailVerified"] is True
    assert data["user"]["dateOfBirth"] is None
    assert "otp" not in data["user"]

    r = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"}
    )
    assert r.status_code == 200
    assert r.json()["user"]["id"] == data["user"]["id"]


@pytest.mark.asyncio
async def test_code_cannot_be_reused(client, notifier):
    await _register(client)
    code = notifier.last_code()
    body = {"email": "carl@example.com", "otp": code}

    assert (await client.post("/api/auth/verify-otp", json=body)).status_code == 200
    r = await client.post("/api/auth/verify-otp", json=body)
    assert r.status_code == 400
    assert r.json()["message"] == "No OTP found. Please request a new one."


@pytest.mark.asyncio
async def test_verify_wrong_code(client, notifier):
    await _register(client)
    wrong = "123456" if notifier.last_code() != "123456" else "654321"
    r = await client.post("/api/auth/verify-otp", json={"email": "carl@example.com", "otp": wrong})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Invalid OTP"}


@pytest.mark.asyncio
async def test_verify_expired_code(client, notifier, clock):
    await _register(client)
    clock.advance(minutes=11)
    r = await client.post(
        "/api/auth/verify-otp",
        json={"email": "carl@example.com", "otp": notifier.last_code()},
    )
    assert r.status_code == 400
    assert r.json()["message"] == "OTP expired. Please request a new one."


@pytest.mark.asyncio
async def test_verify_unknown_user(client):
    r = await client.post(
        "/api/auth/verify-otp", json={"email": "ghost@example.com", "otp": "123456"}
    )
    assert r.status_code == 400
    assert r.json()["message"] == "User not found"


@pytest.mark.asyncio
@pytest.mark.parametrize("otp", ["12345", "1234567", "12ab56", ""])
async def test_verify_rejects_malformed_code(client, otp):
    r = await client.post("/api/auth/verify-otp", json={"email": "carl@example.com", "otp": otp})
    assert r.status_code == 400
    assert "otp" in [e["field"] for e in r.json()["errors"]]


# ═══════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_unknown_email(client, notifier):
    r = await client.post("/api/auth/login", json={"email": "ghost@example.com"})
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "User not found. Please sign up first."}
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_login_flow_for_verified_user(client, user, notifier):
    r = await client.post("/api/auth/login", json={"email": "Ann@Example.com"})
    assert r.status_code == 200
    assert r.json()["userId"] == str(user.id)
    assert r.json()["message"] == "OTP sent to your email for login verification"

    r = await client.post(
        "/api/auth/verify-otp",
        json={"email": "ann@example.com", "otp": notifier.last_code("ann@example.com")},
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Login successful"


@pytest.mark.asyncio
async def test_login_completes_unfinished_signup(client, notifier):
    await _register(client)
    r = await client.post("/api/auth/login", json={"email": "carl@example.com"})
    assert r.status_code == 200

    r = await client.post(
        "/api/auth/verify-otp",
        json={"email": "carl@example.com", "otp": notifier.last_code()},
    )
    assert r.json()["message"] == "Email verified successfully"


# ═══════════════════════════════════════════════════════════
# Resend
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_request_otp_cooldown(client, user, clock):
    r = await client.post("/api/auth/request-otp", json={"email": "ann@example.com"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "OTP sent to your email"}

    clock.advance(seconds=20)
    r = await client.post("/api/auth/request-otp", json={"email": "ann@example.com"})
    assert r.status_code == 429
    data = r.json()
    assert data["success"] is False
    assert data["retryAfter"] == 40
    assert r.headers["Retry-After"] == "40"
    assert "40 seconds" in data["message"]


@pytest.mark.asyncio
async def test_request_otp_daily_quota(client, user, clock):
    for _ in range(10):
        r = await client.post("/api/auth/request-otp", json={"email": "ann@example.com"})
        assert r.status_code == 200
        clock.advance(seconds=61)

    r = await client.post("/api/auth/request-otp", json={"email": "ann@example.com"})
    assert r.status_code == 429
    assert r.json()["message"] == "Daily OTP limit reached. Please try again tomorrow."

    clock.now = datetime(2025, 3, 15, 8, 0, tzinfo=timezone.utc)
    r = await client.post("/api/auth/request-otp", json={"email": "ann@example.com"})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_request_otp_unknown_email(client):
    r = await client.post("/api/auth/request-otp", json={"email": "ghost@example.com"})
    assert r.status_code == 400
    assert r.json()["message"] == "User not found"


# ═══════════════════════════════════════════════════════════
# Access guard
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_me_with_valid_token(client, user, auth_headers):
    r = await client.get("/api/auth/me", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["user"] == {
        "id": str(user.id),
        "email": "ann@example.com",
        "name": "Ann Example",
        "dateOfBirth": None,
        "isEmailVerified": True,
    }


@pytest.mark.asyncio
async def test_me_without_token(client):
    r = await client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Access token required"}
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Basic abc", "Bearer", "token"])
async def test_me_with_malformed_header(client, header):
    r = await client.get("/api/auth/me", headers={"Authorization": header})
    assert r.status_code == 401
    assert r.json()["message"] == "Access token required"


@pytest.mark.asyncio
async def test_me_with_tampered_token(client, user, token_issuer):
    header, payload, signature = token_issuer.issue(str(user.id)).split(".")
    i = len(signature) // 2
    signature = signature[:i] + ("A" if signature[i] != "A" else "B") + signature[i + 1:]
    r = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {header}.{payload}.{signature}"}
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


@pytest.mark.asyncio
async def test_me_with_expired_token(client, user):
    expired = TokenIssuer(TEST_SECRET, expires_in=timedelta(seconds=-1)).issue(str(user.id))
    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401
    assert r.json()["message"] == "Token has expired"


@pytest.mark.asyncio
async def test_me_with_non_uuid_subject(client, token_issuer):
    r = await client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {token_issuer.issue('42')}"}
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


@pytest.mark.asyncio
async def test_me_for_deleted_user(client, auth_headers):
    r = await client.delete("/api/user/account", headers=auth_headers)
    assert r.status_code == 200

    r = await client.get("/api/auth/me", headers=auth_headers)
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token - user not found"


# ═══════════════════════════════════════════════════════════
# Google
# ═══════════════════════════════════════════════════════════


def _fake_google(profile: dict) -> GoogleOAuthClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "ya29.fake"})
        if str(request.url) == USERINFO_URL:
            return httpx.Response(200, json=profile)
        return httpx.Response(404)

    return GoogleOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://test/api/auth/google/callback",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture()
def google(app):
    app.state.google_client = _fake_google(
        {"id": "g-777", "email": "gina@example.com", "name": "Gina Google"}
    )
    return app.state.google_client


@pytest.mark.asyncio
async def test_google_not_configured_redirects_to_signin(client, app):
    app.state.google_client = GoogleOAuthClient("", "", "")
    r = await client.get("/api/auth/google")
    assert r.status_code == 302
    location = r.headers["location"]
    assert urlparse(location).path == "/signin"
    assert _query(location) == {"error": "google_auth_failed"}


@pytest.mark.asyncio
async def test_google_start_redirects_with_signed_state(client, google, token_issuer):
    r = await client.get("/api/auth/google")
    assert r.status_code == 302
    location = r.headers["location"]
    assert location.startswith("https://accounts.google.com/")
    token_issuer.verify_state(_query(location)["state"])


@pytest.mark.asyncio
async def test_google_callback_signs_in_new_user(client, google, token_issuer):
    state = token_issuer.issue_state()
    r = await client.get(
        "/api/auth/google/callback", params={"code": "auth-code", "state": state}
    )
    assert r.status_code == 302
    location = r.headers["location"]
    assert urlparse(location).path == "/dashboard"

    token = _query(location)["token"]
    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "gina@example.com"
    assert r.json()["user"]["isEmailVerified"] is True


@pytest.mark.asyncio
async def test_google_callback_links_existing_account(client, google, token_issuer, make_user):
    gina = await make_user(email="gina@example.com", name="Gina", verified=False)
    r = await client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": token_issuer.issue_state()},
    )
    assert token_issuer.verify(_query(r.headers["location"])["token"]) == str(gina.id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"code": "auth-code", "state": "forged"},
        {"code": "auth-code"},
        {"state": "will-be-replaced"},
        {"error": "access_denied"},
    ],
)
async def test_google_callback_failures_redirect_to_signin(client, google, token_issuer, params):
    if params.get("state") == "will-be-replaced":
        params = {"state": token_issuer.issue_state()}
    r = await client.get("/api/auth/google/callback", params=params)
    assert r.status_code == 302
    assert urlparse(r.headers["location"]).path == "/signin"


@pytest.mark.asyncio
async def test_google_callback_rejects_session_token_as_state(client, google, user, token_issuer):
    r = await client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": token_issuer.issue(str(user.id))},
    )
    assert urlparse(r.headers["location"]).path == "/signin"


@pytest.mark.asyncio
async def test_google_callback_when_google_fails(client, app, token_issuer):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    app.state.google_client = GoogleOAuthClient(
        "client-id", "client-secret", "http://test/cb", transport=httpx.MockTransport(handler)
    )
    r = await client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": token_issuer.issue_state()},
    )
    assert r.status_code == 302
    assert _query(r.headers["location"]) == {"error": "google_auth_failed"}


@pytest.mark.asyncio
async def test_google_callback_store_failure_redirects(client, google, token_issuer, monkeypatch):
    async def broken_bind(self, identity):
        raise IntegrityError(
            "INSERT INTO users", {}, Exception("UNIQUE constraint failed: users.google_id")
        )

    monkeypatch.setattr(FederatedService, "bind_identity", broken_bind)
    r = await client.get(
        "/api/auth/google/callback",
        params={"code": "auth-code", "state": token_issuer.issue_state()},
    )
    assert r.status_code == 302
    location = r.headers["location"]
    assert urlparse(location).path == "/signin"
    assert _query(location) == {"error": "google_auth_failed"}


@pytest.mark.asyncio
async def test_register_and_login_share_code_sent_schema(client):
    schemas = (await client.get("/openapi.json")).json()["components"]["schemas"]
    assert "OtpSentResponse" in schemas
    assert "RegisterResponse" not in schemas
