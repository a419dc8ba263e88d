"""Application exception hierarchy.

Every error a request can hit is a HighwayError subclass carrying a
client-safe message and an HTTP status. Handlers in main.py render them
as {"success": false, "message": ...} so route code never builds error
responses by hand.

    HighwayError
    ├── ValidationFailed      400
    ├── NotFound
    │   ├── UserNotFound      400 (auth routes answer 400, not 404)
    │   └── NoteNotFound      404
    ├── OtpStateError         400
    │   ├── OtpNotIssued
    │   ├── OtpMismatch
    │   └── OtpExpired
    ├── Throttled             429
    │   ├── OtpThrottled      (carries retry_after seconds)
    │   └── OtpQuotaExceeded
    ├── Unauthorized          401
    └── FederatedAuthError    (never rendered; callback redirects instead)

ConfigurationError is separate: it is raised during startup and is meant
to stop the process, not to be turned into a response.
"""

from typing import Any, Optional


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid."""


class HighwayError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional fields merged into the JSON error body."""
        return {}


class ValidationFailed(HighwayError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []

    def extra(self) -> dict[str, Any]:
        return {"errors": self.errors} if self.errors else {}


class NotFound(HighwayError):
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    status_code = 400
    default_message = "User not found"


class NoteNotFound(NotFound):
    default_message = "Note not found"


class OtpStateError(HighwayError):
    status_code = 400


class OtpNotIssued(OtpStateError):
    default_message = "No OTP found. Please request a new one."


class OtpMismatch(OtpStateError):
    default_message = "Invalid OTP"


class OtpExpired(OtpStateError):
    default_message = "OTP expired. Please request a new one."


class Throttled(HighwayError):
    status_code = 429
    default_message = "Too many requests"


class OtpThrottled(Throttled):
    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(f"Please wait {retry_after} seconds before requesting another OTP")

    def extra(self) -> dict[str, Any]:
        return {"retryAfter": self.retry_after}


class OtpQuotaExceeded(Throttled):
    default_message = "Daily OTP limit reached. Please try again tomorrow."


class Unauthorized(HighwayError):
    status_code = 401
    default_message = "Access token required"


class FederatedAuthError(HighwayError):
    status_code = 400
    default_message = "Google authentication failed"
