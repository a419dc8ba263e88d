"""Google OAuth 2.0 authorization-code client.

Learn: The browser is sent to Google's consent page, Google redirects back
to our callback with ?code=...&state=..., and the server exchanges the code
for an access token and reads the user's profile from the userinfo
endpoint. Only the identity (Google id, email, display name) is kept;
Google's tokens are discarded after the exchange.
"""

from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog

from highway_notes.config import Settings
from highway_notes.errors import FederatedAuthError
from highway_notes.services.federated_service import FederatedIdentity

logger = structlog.get_logger()

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
SCOPE = "openid email profile"


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleOAuthClient":
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_redirect_uri,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": SCOPE,
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def fetch_identity(self, code: str) -> FederatedIdentity:
        """Exchange an authorization code for the user's Google identity."""
        if not self.configured:
            raise FederatedAuthError("Google sign-in is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                token_response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                token_result = token_response.json()
                access_token = (
                    token_result.get("access_token") if isinstance(token_result, dict) else None
                )
                if not access_token:
                    raise FederatedAuthError("Google returned no access token")

                userinfo_response = await client.get(
                    USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_response.raise_for_status()
                userinfo = userinfo_response.json()
        except httpx.HTTPError as e:
            logger.error("google.exchange_failed", error=str(e))
            raise FederatedAuthError("Google authentication failed")
        except ValueError as e:
            logger.error("google.bad_response", error=str(e))
            raise FederatedAuthError("Google returned an unreadable response")

        return parse_userinfo(userinfo)


def parse_userinfo(userinfo: dict) -> FederatedIdentity:
    if not isinstance(userinfo, dict):
        raise FederatedAuthError("Google returned an unreadable profile")
    provider_id = userinfo.get("id") or userinfo.get("sub")
    email = userinfo.get("email")
    if not provider_id or not email:
        raise FederatedAuthError("Google profile is missing id or email")
    return FederatedIdentity(
        provider_id=str(provider_id),
        email=email,
        name=userinfo.get("name") or "",
    )
