"""Request and response contracts for the HTTP API.

These Pydantic models define the API interface. Services work on ORM
models; routers convert at the edge.
"""

from officemate.contracts.auth import (
    AuthTokenResponse,
    CorporateEmailRequest,
    EmailOTPRequest,
    EmailRemoveRequest,
    EmailUpdateRequest,
    EmailVerificationResult,
    MessageResponse,
    OTPVerificationRequest,
    PhoneNumberRequest,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegistrationResult,
    SessionInfo,
)
from officemate.contracts.profile import (
    DriverProfileRequest,
    DriverProfileResponse,
    DriverProfileUpdateRequest,
    ProfileResponse,
    RiderProfileRequest,
    RiderProfileResponse,
    RiderProfileUpdateRequest,
    RoutePreferencesRequest,
    UserProfileRequest,
    UserProfileUpdateRequest,
)

__all__ = [
    # Auth contracts
    "AuthTokenResponse",
    "CorporateEmailRequest",
    "EmailOTPRequest",
    "EmailRemoveRequest",
    "EmailUpdateRequest",
    "EmailVerificationResult",
    "MessageResponse",
    "OTPVerificationRequest",
    "PhoneNumberRequest",
    "RefreshTokenRequest",
    "RefreshTokenResponse",
    "RegistrationResult",
    "SessionInfo",
    # Profile contracts
    "DriverProfileRequest",
    "DriverProfileResponse",
    "DriverProfileUpdateRequest",
    "ProfileResponse",
    "RiderProfileRequest",
    "RiderProfileResponse",
    "RiderProfileUpdateRequest",
    "RoutePreferencesRequest",
    "UserProfileRequest",
    "UserProfileUpdateRequest",
]
