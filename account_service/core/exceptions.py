"""
Error taxonomy for authentication and second-factor operations.

Every error carries a stable machine-readable ``code`` and a short,
user-safe ``message``. HTTP status codes live here so the API layer can
render any error with one handler.
"""

import math
from typing import Any, Dict, Optional


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing or invalid."""


class AuthError(Exception):
    """Base class for typed authentication failures."""

    code = "auth_error"
    status_code = 400
    default_message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class InvalidCredentials(AuthError):
    """Wrong password or unknown identifier (deliberately indistinguishable)."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class AccountLocked(AuthError):
    """Too many consecutive failures; carries the remaining lock duration."""

    code = "locked"
    status_code = 423

    def __init__(self, retry_after: int, scope: str = "account"):
        self.retry_after = max(int(retry_after), 0)
        self.scope = scope
        minutes = max(math.ceil(self.retry_after / 60), 1)
        unit = "minute" if minutes == 1 else "minutes"
        if scope == "second_factor":
            prefix = "Two-factor verification is locked"
        else:
            prefix = "Account is locked due to too many failed attempts"
        super().__init__(f"{prefix}. Try again in {minutes} {unit}.")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data


class InvalidSecondFactor(AuthError):
    code = "invalid_second_factor"
    status_code = 401
    default_message = "Invalid two-factor code or recovery code"


class EnrollmentNotInProgress(AuthError):
    code = "enrollment_not_in_progress"
    status_code = 400
    default_message = "No two-factor setup in progress. Please start setup first."


class EnrollmentExpired(AuthError):
    code = "enrollment_expired"
    status_code = 400
    default_message = "Two-factor setup has expired. Please start setup again."


class AlreadyEnabled(AuthError):
    code = "already_enabled"
    status_code = 409
    default_message = "Two-factor authentication is already enabled"


class NotEnabled(AuthError):
    code = "not_enabled"
    status_code = 400
    default_message = "Two-factor authentication is not enabled"


class TokenExpired(AuthError):
    code = "token_expired"
    status_code = 401
    default_message = "Token has expired"


class TokenInvalid(AuthError):
    code = "token_invalid"
    status_code = 401
    default_message = "Invalid token"


class AccountNotVerified(AuthError):
    code = "account_not_verified"
    status_code = 403
    default_message = "Account not verified. Please verify your email."


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 403
    default_message = "Account is not active"


class InvalidRequest(AuthError):
    code = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


class EmailAlreadyRegistered(AuthError):
    code = "email_already_registered"
    status_code = 409
    default_message = "An account with this email already exists"


class WeakPassword(AuthError):
    code = "weak_password"
    status_code = 400
    default_message = "Password does not meet strength requirements"


class InvalidOneTimeCode(AuthError):
    code = "invalid_one_time_code"
    status_code = 400
    default_message = "Invalid or expired code"


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class RateLimited(AuthError):
    code = "rate_limited"
    status_code = 429
    default_message = "Too many attempts. Please try again later."
