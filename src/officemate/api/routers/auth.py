"""Authentication endpoints: phone OTP, sessions and corporate email."""

import logging
import uuid

from fastapi import APIRouter, Depends, Request

from officemate.api.dependencies import (
    CurrentUser,
    client_ip,
    device_from_request,
    get_current_user,
    get_store,
)
from officemate.auth.email import EmailVerificationService
from officemate.auth.mobile import MobileAuthService
from officemate.auth.sessions import SessionManager
from officemate.auth.tokens import TokenCodec
from officemate.cache.redis_client import RedisStore
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
from officemate.db.database import get_db
from officemate.db.models import UserAccount
from officemate.errors import AuthenticationError, ProfileAccessError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# Phone registration and login
@router.post("/register", response_model=RegistrationResult, status_code=201)
async def register(request: PhoneNumberRequest, store: RedisStore = Depends(get_store)) -> RegistrationResult:
    """Register a phone number and send the verification OTP."""
    async with get_db() as session:
        result = await MobileAuthService(session, store).register_user(request.phone_number)
    return RegistrationResult.model_validate(result)


@router.post("/verify-otp", response_model=AuthTokenResponse)
async def verify_otp(
    body: OTPVerificationRequest, request: Request, store: RedisStore = Depends(get_store)
) -> AuthTokenResponse:
    """Verify the registration OTP and open a session."""
    device = device_from_request(request, body.device_type, body.device_id, body.app_version)
    async with get_db() as session:
        result = await MobileAuthService(session, store).verify_otp(body.phone_number, body.otp, device)
    return AuthTokenResponse.model_validate(result)


@router.post("/login", response_model=RegistrationResult)
async def login(request: PhoneNumberRequest, store: RedisStore = Depends(get_store)) -> RegistrationResult:
    """Send a login OTP to a registered number."""
    async with get_db() as session:
        result = await MobileAuthService(session, store).login_user(request.phone_number)
    return RegistrationResult.model_validate(result)


@router.post("/verify-login-otp", response_model=AuthTokenResponse)
async def verify_login_otp(
    body: OTPVerificationRequest, request: Request, store: RedisStore = Depends(get_store)
) -> AuthTokenResponse:
    device = device_from_request(request, body.device_type, body.device_id, body.app_version)
    async with get_db() as session:
        result = await MobileAuthService(session, store).verify_login_otp(
            body.phone_number, body.otp, device
        )
    return AuthTokenResponse.model_validate(result)


@router.post("/mobile/send-otp", response_model=RegistrationResult)
async def send_mobile_otp(
    user: CurrentUser = Depends(get_current_user), store: RedisStore = Depends(get_store)
) -> RegistrationResult:
    """Send an OTP to the caller's own number, for sensitive operations."""
    async with get_db() as session:
        result = await MobileAuthService(session, store).request_mobile_otp(user.user_id)
    return RegistrationResult.model_validate(result)


# Sessions
@router.post("/refresh", response_model=RefreshTokenResponse)
async def refresh(request: RefreshTokenRequest, store: RedisStore = Depends(get_store)) -> RefreshTokenResponse:
    """Exchange a refresh token for a new access token."""
    claims = TokenCodec().decode(request.refresh_token)
    try:
        user_id = uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid refresh token", "INVALID_REFRESH_TOKEN")

    async with get_db() as session:
        account = await session.get(UserAccount, user_id)
        if account is None:
            raise AuthenticationError("User account not found", "INVALID_REFRESH_TOKEN")
        if account.is_suspended:
            raise ProfileAccessError(
                "Account is suspended",
                bool(account.phone_verified),
                bool(account.email_verified),
                "ACCOUNT_SUSPENDED",
            )
        tokens = await SessionManager(store, session).refresh_session(request.refresh_token, account)
    return RefreshTokenResponse.model_validate(tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    user: CurrentUser = Depends(get_current_user), store: RedisStore = Depends(get_store)
) -> MessageResponse:
    async with get_db() as session:
        await MobileAuthService(session, store).logout(user.session_id)
    return MessageResponse(message="Logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    user: CurrentUser = Depends(get_current_user), store: RedisStore = Depends(get_store)
) -> MessageResponse:
    """End every session of the caller, on all devices."""
    async with get_db() as session:
        count = await SessionManager(store, session).revoke_all_sessions(str(user.user_id), "USER_LOGOUT")
    return MessageResponse(message=f"Logged out of {count} sessions")


@router.get("/sessions", response_model=list[SessionInfo])
async def list_sessions(
    user: CurrentUser = Depends(get_current_user), store: RedisStore = Depends(get_store)
) -> list[SessionInfo]:
    async with get_db() as session:
        records = await SessionManager(store, session).get_user_sessions(str(user.user_id))
    return [
        SessionInfo(
            session_id=record["session_id"],
            device_type=record.get("device_type"),
            device_id=record.get("device_id"),
            app_version=record.get("app_version"),
            created_at=record.get("created_at"),
            last_access_at=record.get("last_access_at"),
            expires_at=record.get("expires_at"),
            current=record["session_id"] == user.session_id,
        )
        for record in records
    ]


@router.delete("/sessions/devices/{device_id}", response_model=MessageResponse)
async def revoke_device(
    device_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> MessageResponse:
    async with get_db() as session:
        count = await SessionManager(store, session).revoke_device_sessions(str(user.user_id), device_id)
    return MessageResponse(message=f"Revoked {count} sessions on device {device_id}")


# Corporate email
@router.post("/email/send-otp", response_model=EmailVerificationResult)
async def send_email_otp(
    request: CorporateEmailRequest,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> EmailVerificationResult:
    async with get_db() as session:
        result = await EmailVerificationService(session, store).send_email_otp(
            user.user_id, request.corporate_email
        )
    return EmailVerificationResult.model_validate(result)


@router.post("/email/verify-otp", response_model=EmailVerificationResult)
async def verify_email_otp(
    request: EmailOTPRequest,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> EmailVerificationResult:
    """Verify the corporate email; completes account activation."""
    async with get_db() as session:
        result = await EmailVerificationService(session, store).verify_email_otp(user.user_id, request.otp)
    return EmailVerificationResult.model_validate(result)


@router.post("/email/resend-otp", response_model=EmailVerificationResult)
async def resend_email_otp(
    user: CurrentUser = Depends(get_current_user), store: RedisStore = Depends(get_store)
) -> EmailVerificationResult:
    async with get_db() as session:
        result = await EmailVerificationService(session, store).resend_email_otp(user.user_id)
    return EmailVerificationResult.model_validate(result)


@router.post("/email/update", response_model=EmailVerificationResult)
async def initiate_email_update(
    body: EmailUpdateRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> EmailVerificationResult:
    """Start a corporate email change; needs an OTP from ``/mobile/send-otp``."""
    async with get_db() as session:
        result = await EmailVerificationService(session, store).initiate_email_update(
            user.user_id,
            body.mobile_otp,
            body.new_email,
            body.reason,
            client_ip(request),
            request.headers.get("user-agent"),
        )
    return EmailVerificationResult.model_validate(result)


@router.post("/email/update/complete", response_model=EmailVerificationResult)
async def complete_email_update(
    request: EmailOTPRequest,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> EmailVerificationResult:
    async with get_db() as session:
        result = await EmailVerificationService(session, store).complete_email_update(
            user.user_id, request.otp
        )
    return EmailVerificationResult.model_validate(result)


@router.post("/email/remove", response_model=MessageResponse)
async def remove_email(
    body: EmailRemoveRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    store: RedisStore = Depends(get_store),
) -> MessageResponse:
    async with get_db() as session:
        await EmailVerificationService(session, store).remove_corporate_email(
            user.user_id,
            body.mobile_otp,
            body.reason,
            client_ip(request),
            request.headers.get("user-agent"),
        )
    return MessageResponse(message="Corporate email removed")
