"""Domain exceptions.

Services raise these; the API layer turns them into JSON error responses
using ``status_code`` and ``error_code``.
"""

from typing import Optional


class OfficeMateError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class ValidationError(OfficeMateError):
    default_code = "VALIDATION_ERROR"


class OTPError(OfficeMateError):
    """OTP missing, expired, used or attempts exhausted."""

    default_code = "OTP_ERROR"


class CorporateEmailError(OfficeMateError):
    default_code = "INVALID_CORPORATE_EMAIL"


class WalletError(OfficeMateError):
    """Wallet operation failure; ``error_code`` names the reason."""

    default_code = "WALLET_ERROR"


class SafetyError(OfficeMateError):
    default_code = "SAFETY_ERROR"


class AuthenticationError(OfficeMateError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class ProfileAccessError(OfficeMateError):
    """Raised when an account lacks the verification a feature needs."""

    status_code = 403
    default_code = "PROFILE_ACCESS_DENIED"

    def __init__(
        self,
        message: str,
        mobile_verified: bool = False,
        email_verified: bool = False,
        error_code: Optional[str] = None,
    ):
        super().__init__(message, error_code)
        self.mobile_verified = mobile_verified
        self.email_verified = email_verified

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["mobile_verified"] = self.mobile_verified
        data["email_verified"] = self.email_verified
        return data


class NotFoundError(OfficeMateError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(OfficeMateError):
    status_code = 409
    default_code = "CONFLICT"


class AccountLockedError(OfficeMateError):
    status_code = 423
    default_code = "ACCOUNT_LOCKED"


class RateLimitExceededError(OfficeMateError):
    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"


class ConfigurationError(OfficeMateError):
    status_code = 500
    default_code = "CONFIGURATION_ERROR"


class ExternalServiceError(OfficeMateError):
    """An AWS or other remote call failed."""

    status_code = 502
    default_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str, error_code: Optional[str] = None):
        super().__init__(f"{service}: {message}", error_code)
        self.service = service
