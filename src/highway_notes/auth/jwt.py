"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication. A session
token carries the user id in "sub" and an expiry; nothing is stored
server-side, so a token stays valid until it expires or the client drops it.

The same signer also produces short-lived OAuth "state" values for the
Google redirect. The "type" claim keeps the two apart: a state value is
never accepted as a session token and vice versa.
"""

import secrets
from datetime import datetime, timedelta, timezone

import jwt

from highway_notes.config import Settings
from highway_notes.errors import ConfigurationError

ACCESS_TOKEN_TYPE = "access"
OAUTH_STATE_TYPE = "oauth_state"


class TokenError(Exception):
    """Raised when token verification fails."""


class InvalidTokenError(TokenError):
    """Malformed token, bad signature, or wrong token type."""


class TokenExpiredError(TokenError):
    """Token signature is fine but its expiry has passed."""


class TokenIssuer:
    """Mints and verifies signed bearer tokens.

    Built once at startup from Settings and shared by every request.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(days=7),
        state_expires_in: timedelta = timedelta(minutes=10),
    ):
        if not secret:
            raise ConfigurationError("JWT signing secret is not configured")
        self._secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in
        self.state_expires_in = state_expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_in=settings.token_lifetime,
        )

    def issue(self, user_id: str) -> str:
        """Create a session token for a user."""
        return self._encode(
            {"sub": str(user_id), "type": ACCESS_TOKEN_TYPE}, self.expires_in
        )

    def verify(self, token: str) -> str:
        """Verify a session token and return the user id it was issued for."""
        payload = self._decode(token)
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError("Invalid token: not a session token")
        user_id = payload.get("sub")
        if not user_id:
            raise InvalidTokenError("Invalid token: missing subject")
        return user_id

    def issue_state(self) -> str:
        """Create a signed, single-purpose OAuth state value."""
        return self._encode(
            {"type": OAUTH_STATE_TYPE, "nonce": secrets.token_urlsafe(16)},
            self.state_expires_in,
        )

    def verify_state(self, state: str) -> None:
        payload = self._decode(state)
        if payload.get("type") != OAUTH_STATE_TYPE:
            raise InvalidTokenError("Invalid token: not an OAuth state")

    def _encode(self, claims: dict, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + lifetime}
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def _decode(self, token: str) -> dict:
        try:
            return jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")
