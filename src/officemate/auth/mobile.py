"""Phone-number registration and OTP login."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.audit import AuditService
from officemate.auth.otp import OTPService
from officemate.auth.rate_limit import RateLimiter
from officemate.auth.sessions import DeviceInfo, SessionManager
from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.db.models import AccountStatus, SecuritySeverity, UserAccount, utcnow
from officemate.errors import (
    AccountLockedError,
    ConflictError,
    NotFoundError,
    OTPError,
    ProfileAccessError,
    RateLimitExceededError,
)
from officemate.notifications.sms import SmsSender, get_sms_sender
from officemate.validation import mask_phone_number, normalize_phone_number

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResponse:
    user_id: str
    otp_sent: bool
    expires_at: datetime
    masked_phone_number: str


@dataclass
class AuthResponse:
    access_token: str
    refresh_token: str
    user_id: str
    session_id: str
    mobile_verified: bool
    email_verified: bool
    profile_complete: bool
    expires_at: datetime
    token_type: str = "Bearer"


class MobileAuthService:
    """Registration and login by phone number and SMS OTP."""

    def __init__(
        self,
        session: AsyncSession,
        store: RedisStore,
        sms_sender: Optional[SmsSender] = None,
        sessions: Optional[SessionManager] = None,
    ):
        self.settings = get_settings()
        self.session = session
        self.audit = AuditService(session)
        self.otp = OTPService(store)
        self.rate_limiter = RateLimiter(store, self.audit)
        self.sessions = sessions or SessionManager(store, session)
        self.sms = sms_sender or get_sms_sender()

    async def get_account_by_phone(self, phone_number: str) -> Optional[UserAccount]:
        stmt = select(UserAccount).where(UserAccount.phone_number == phone_number)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _ensure_not_locked(self, phone_number: str) -> None:
        if await self.rate_limiter.is_account_locked(phone_number):
            logger.warning(f"Blocked request for locked account {mask_phone_number(phone_number)}")
            raise AccountLockedError("Account temporarily locked due to suspicious activity")

    async def _send_otp(self, phone_number: str) -> datetime:
        otp = await self.otp.generate_mobile_otp(phone_number)
        await self.sms.send_otp_sms(phone_number, otp)
        return utcnow() + timedelta(minutes=self.settings.otp_expiration_minutes)

    async def register_user(self, phone_number: str) -> RegistrationResponse:
        """Create a pending account and send the verification OTP.

        Raises:
            ValidationError: Malformed phone number
            AccountLockedError: Number is locked out
            RateLimitExceededError: Too many registrations for the number
            ConflictError: Number already registered
        """
        phone = normalize_phone_number(phone_number)
        logger.info(f"Starting registration for {mask_phone_number(phone)}")

        await self._ensure_not_locked(phone)

        if not await self.rate_limiter.is_registration_allowed(
            phone, self.settings.registration_max_per_hour
        ):
            await self.rate_limiter.track_suspicious_activity(phone, "EXCESSIVE_REGISTRATION_ATTEMPTS")
            await self.session.commit()
            raise RateLimitExceededError("Too many registration attempts. Please try again later.")

        if await self.get_account_by_phone(phone) is not None:
            logger.warning(f"Registration rejected, number already exists: {mask_phone_number(phone)}")
            raise ConflictError("Phone number already registered", "PHONE_ALREADY_REGISTERED")

        account = UserAccount(
            phone_number=phone,
            phone_verified=False,
            email_verified=False,
            account_status=AccountStatus.PENDING_EMAIL,
        )
        self.session.add(account)
        await self.session.flush()
        logger.info(f"User account created with ID: {account.id}")

        expires_at = await self._send_otp(phone)
        return RegistrationResponse(
            user_id=str(account.id),
            otp_sent=True,
            expires_at=expires_at,
            masked_phone_number=mask_phone_number(phone),
        )

    async def login_user(self, phone_number: str) -> RegistrationResponse:
        """Send a login OTP to a registered number."""
        phone = normalize_phone_number(phone_number)
        logger.info(f"Login attempt for {mask_phone_number(phone)}")

        await self._ensure_not_locked(phone)

        if not await self.rate_limiter.is_login_attempt_allowed(phone, self.settings.login_max_per_hour):
            await self.rate_limiter.track_suspicious_activity(phone, "EXCESSIVE_LOGIN_ATTEMPTS")
            await self.session.commit()
            raise RateLimitExceededError("Too many login attempts. Please try again later.")

        account = await self.get_account_by_phone(phone)
        if account is None:
            raise NotFoundError("Phone number not registered", "PHONE_NOT_REGISTERED")
        if account.is_suspended:
            raise ProfileAccessError(
                "Account is suspended",
                bool(account.phone_verified),
                bool(account.email_verified),
                "ACCOUNT_SUSPENDED",
            )

        expires_at = await self._send_otp(phone)
        return RegistrationResponse(
            user_id=str(account.id),
            otp_sent=True,
            expires_at=expires_at,
            masked_phone_number=mask_phone_number(phone),
        )

    async def verify_otp(
        self, phone_number: str, otp: str, device: Optional[DeviceInfo] = None
    ) -> AuthResponse:
        """Verify the registration OTP, mark the phone verified and open a session."""
        return await self._verify(phone_number, otp, device, "OTP_VERIFICATION")

    async def verify_login_otp(
        self, phone_number: str, otp: str, device: Optional[DeviceInfo] = None
    ) -> AuthResponse:
        """Verify a login OTP and open a session."""
        return await self._verify(phone_number, otp, device, "LOGIN_OTP_VERIFICATION")

    async def _verify(
        self, phone_number: str, otp: str, device: Optional[DeviceInfo], attempt_type: str
    ) -> AuthResponse:
        phone = normalize_phone_number(phone_number)
        await self._ensure_not_locked(phone)

        account = await self.get_account_by_phone(phone)
        if account is None:
            raise NotFoundError("User account not found", "USER_NOT_FOUND")
        if account.is_suspended:
            raise ProfileAccessError(
                "Account is suspended",
                bool(account.phone_verified),
                bool(account.email_verified),
                "ACCOUNT_SUSPENDED",
            )

        if not await self.otp.verify_mobile_otp(phone, otp):
            remaining = await self.otp.get_remaining_attempts(phone)
            locked = await self.rate_limiter.record_failed_attempt(phone, attempt_type, account.id)
            self.audit.log_security_event(
                "FAILED_OTP_VERIFICATION",
                SecuritySeverity.MEDIUM,
                user_id=account.id,
                identifier=mask_phone_number(phone),
                details={"attempt_type": attempt_type, "remaining_attempts": remaining},
            )
            # Security events must outlive the failed request
            await self.session.commit()
            if locked:
                raise AccountLockedError("Account locked due to too many failed attempts")
            raise OTPError(f"Invalid OTP. Remaining attempts: {remaining}", "INVALID_OTP")

        await self.rate_limiter.clear_failed_attempts(phone)
        account.verify_phone()
        account.update_last_login()
        await self.otp.delete_mobile_otp(phone)
        self.audit.log_security_event(
            "SUCCESSFUL_LOGIN",
            SecuritySeverity.LOW,
            user_id=account.id,
            identifier=mask_phone_number(phone),
            details={"attempt_type": attempt_type},
        )
        await self.session.flush()

        tokens = await self.sessions.create_session(account, device)
        logger.info(
            f"Phone verification successful for user {account.id} "
            f"(email verified: {bool(account.email_verified)})"
        )
        return AuthResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            user_id=str(account.id),
            session_id=tokens.session_id,
            mobile_verified=bool(account.phone_verified),
            email_verified=bool(account.email_verified),
            profile_complete=account.is_fully_verified,
            expires_at=tokens.expires_at,
        )

    async def request_mobile_otp(self, user_id: uuid.UUID) -> RegistrationResponse:
        """Send an OTP to the account's own number (email changes, removals)."""
        account = await self.session.get(UserAccount, user_id)
        if account is None:
            raise NotFoundError("User account not found", "USER_NOT_FOUND")
        await self._ensure_not_locked(account.phone_number)

        expires_at = await self._send_otp(account.phone_number)
        return RegistrationResponse(
            user_id=str(account.id),
            otp_sent=True,
            expires_at=expires_at,
            masked_phone_number=mask_phone_number(account.phone_number),
        )

    async def logout(self, session_id: str) -> bool:
        return await self.sessions.revoke_session(session_id)
