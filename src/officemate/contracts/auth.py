"""Authentication request and response contracts."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PhoneNumberRequest(BaseModel):
    """Registration or login by phone number."""

    phone_number: str = Field(..., min_length=1, max_length=25, description="Phone number, E.164 preferred")


class DeviceFields(BaseModel):
    device_type: Optional[str] = Field(None, max_length=50, description="IOS, ANDROID, WEB")
    device_id: Optional[str] = Field(None, max_length=255)
    app_version: Optional[str] = Field(None, max_length=50)


class OTPVerificationRequest(DeviceFields):
    phone_number: str = Field(..., min_length=1, max_length=25)
    otp: str = Field(..., description="Numeric one-time password")

    @field_validator("otp")
    @classmethod
    def validate_otp(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit() or not 4 <= len(v) <= 8:
            raise ValueError("OTP must be 4-8 digits")
        return v


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class RegistrationResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    otp_sent: bool
    expires_at: datetime
    masked_phone_number: str


class AuthTokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    user_id: str
    session_id: str
    mobile_verified: bool
    email_verified: bool
    profile_complete: bool
    expires_at: datetime


class RefreshTokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    session_id: str
    expires_at: datetime


class SessionInfo(BaseModel):
    """Active session as kept in Redis."""

    session_id: str
    device_type: Optional[str] = None
    device_id: Optional[str] = None
    app_version: Optional[str] = None
    created_at: Optional[str] = None
    last_access_at: Optional[str] = None
    expires_at: Optional[str] = None
    current: bool = False


class CorporateEmailRequest(BaseModel):
    corporate_email: str = Field(..., min_length=3, max_length=255)


class EmailOTPRequest(BaseModel):
    otp: str = Field(..., min_length=4, max_length=8)


class EmailUpdateRequest(BaseModel):
    """Change or add the corporate email. Requires a fresh mobile OTP."""

    mobile_otp: str = Field(..., min_length=4, max_length=8)
    new_email: str = Field(..., min_length=3, max_length=255)
    reason: Optional[str] = Field(None, max_length=500)


class EmailRemoveRequest(BaseModel):
    mobile_otp: str = Field(..., min_length=4, max_length=8)
    reason: Optional[str] = Field(None, max_length=500)


class EmailVerificationResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    otp_sent: bool
    verified: bool
    masked_email: str
    expires_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str
