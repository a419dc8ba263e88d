"""Security headers middleware.

Learn: Every response gets the baseline headers below. Responses from
/api/auth additionally get Cache-Control: no-store, because they carry
session tokens (verify-otp body, Google callback redirect) or a user's
profile, and no browser or proxy cache should keep them.

- X-Content-Type-Options: nosniff
- X-Frame-Options: DENY
- Referrer-Policy: no-referrer. The Google callback puts the session
  token in the redirect URL, so it must not leak through Referer.
- Strict-Transport-Security only when the request arrived over HTTPS.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

BASELINE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}
HSTS_VALUE = "max-age=31536000; includeSubDomains"
NO_STORE_PREFIX = "/api/auth"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(BASELINE_HEADERS)
        if request.url.path.startswith(NO_STORE_PREFIX):
            response.headers["Cache-Control"] = "no-store"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS_VALUE
        return response
