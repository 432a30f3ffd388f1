"""Authentication module.

Provides:
- MobileAuthService: phone registration and OTP login
- EmailVerificationService: corporate email verification and changes
- SessionManager: JWT sessions tracked in Redis
- OTPService / RateLimiter: OTP lifecycle and abuse protection
"""

from officemate.auth.email import EmailVerificationService, VerificationResponse
from officemate.auth.mobile import AuthResponse, MobileAuthService, RegistrationResponse
from officemate.auth.otp import OTPService
from officemate.auth.rate_limit import RateLimiter
from officemate.auth.sessions import DeviceInfo, SessionManager, SessionTokens, TokenValidation
from officemate.auth.tokens import TokenCodec

__all__ = [
    "AuthResponse",
    "DeviceInfo",
    "EmailVerificationService",
    "MobileAuthService",
    "OTPService",
    "RateLimiter",
    "RegistrationResponse",
    "SessionManager",
    "SessionTokens",
    "TokenCodec",
    "TokenValidation",
    "VerificationResponse",
]
