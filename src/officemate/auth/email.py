"""Corporate email verification and email change workflow.

Email OTPs live in the relational store (``EmailVerification``) rather than
Redis, so the verification trail survives restarts. Every change of the
corporate email is recorded in ``EmailChangeAuditLog``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from officemate.auth.otp import OTPService, generate_numeric_otp
from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.crypto import hash_secret, verify_secret
from officemate.db.models import (
    EmailChangeAuditLog,
    EmailChangeStatus,
    EmailChangeType,
    EmailVerification,
    UserAccount,
    utcnow,
)
from officemate.errors import CorporateEmailError, NotFoundError, WalletError
from officemate.notifications.email import EmailSender, get_email_sender
from officemate.validation import mask_email, validate_corporate_email
from officemate.wallet.service import WalletService

logger = logging.getLogger(__name__)


@dataclass
class VerificationResponse:
    user_id: str
    otp_sent: bool
    verified: bool
    masked_email: str
    expires_at: Optional[datetime] = None


class EmailVerificationService:
    """Sends and checks corporate email OTPs and manages email changes."""

    def __init__(
        self,
        session: AsyncSession,
        store: RedisStore,
        email_sender: Optional[EmailSender] = None,
    ):
        settings = get_settings()
        self.session = session
        self.otp = OTPService(store)
        self.email_sender = email_sender or get_email_sender()
        self.otp_length = settings.otp_length
        self.expiration_minutes = settings.email_otp_expiration_minutes
        self.max_attempts = settings.email_otp_max_attempts

    async def _get_account(self, user_id: uuid.UUID) -> UserAccount:
        account = await self.session.get(UserAccount, user_id)
        if account is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        return account

    async def _email_taken(self, email: str, user_id: uuid.UUID) -> bool:
        stmt = select(UserAccount.id).where(
            UserAccount.corporate_email == email, UserAccount.id != user_id
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def get_active_verification(self, user_id: uuid.UUID) -> Optional[EmailVerification]:
        """Latest unverified, unexpired verification for the user."""
        stmt = (
            select(EmailVerification)
            .where(
                EmailVerification.user_id == user_id,
                EmailVerification.verified.is_(False),
                EmailVerification.expires_at > utcnow(),
            )
            .order_by(EmailVerification.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _clear_pending(self, user_id: uuid.UUID) -> None:
        await self.session.execute(
            delete(EmailVerification).where(
                EmailVerification.user_id == user_id, EmailVerification.verified.is_(False)
            )
        )

    # OTP
    async def send_email_otp(self, user_id: uuid.UUID, corporate_email: str) -> VerificationResponse:
        """Send a verification OTP to a corporate address.

        Raises:
            CorporateEmailError: Invalid/personal address, address already used
                by another account, or a verification is already pending
            NotFoundError: Unknown user
        """
        email = validate_corporate_email(corporate_email)
        logger.info(f"Sending email OTP for user {user_id} to {mask_email(email)}")

        await self._get_account(user_id)

        if await self._email_taken(email, user_id):
            raise CorporateEmailError(
                "Corporate email already registered to another account", "EMAIL_ALREADY_EXISTS"
            )

        if await self.get_active_verification(user_id) is not None:
            raise CorporateEmailError(
                "Active verification already exists. Please wait for it to expire or use the existing OTP.",
                "ACTIVE_VERIFICATION_EXISTS",
            )

        return await self._issue(user_id, email)

    async def _issue(self, user_id: uuid.UUID, email: str) -> VerificationResponse:
        otp = generate_numeric_otp(self.otp_length)
        verification = EmailVerification.create(
            user_id, email, hash_secret(otp), self.expiration_minutes
        )
        self.session.add(verification)
        await self.session.flush()

        await self.email_sender.send_otp_email(email, otp)
        logger.info(f"Email OTP issued for user {user_id}")

        return VerificationResponse(
            user_id=str(user_id),
            otp_sent=True,
            verified=False,
            masked_email=mask_email(email),
            expires_at=verification.expires_at,
        )

    async def verify_email_otp(self, user_id: uuid.UUID, otp: str) -> VerificationResponse:
        """Verify the pending OTP and attach the email to the account.

        A wrong OTP is counted and committed before the error is raised so
        the attempt limit holds across requests.
        """
        verification = await self.get_active_verification(user_id)
        if verification is None:
            raise CorporateEmailError(
                "No active email verification found or OTP expired", "NO_ACTIVE_VERIFICATION"
            )

        if verification.attempts >= self.max_attempts:
            await self.session.delete(verification)
            await self.session.commit()
            raise CorporateEmailError("Maximum verification attempts exceeded", "MAX_ATTEMPTS_EXCEEDED")

        if not verify_secret(otp or "", verification.otp_hash):
            verification.attempts += 1
            remaining = self.max_attempts - verification.attempts
            await self.session.commit()
            logger.warning(f"Invalid email OTP for user {user_id}. Remaining attempts: {remaining}")
            raise CorporateEmailError(f"Invalid OTP. {remaining} attempts remaining.", "INVALID_OTP")

        verification.mark_verified()
        account = await self._get_account(user_id)
        if await self._email_taken(verification.corporate_email, user_id):
            raise CorporateEmailError(
                "Corporate email already registered to another account", "EMAIL_ALREADY_EXISTS"
            )
        account.corporate_email = verification.corporate_email
        account.verify_email()
        await self.session.flush()
        logger.info(f"Email verified for user {user_id}")

        await self._initialize_wallet(user_id)

        return VerificationResponse(
            user_id=str(user_id),
            otp_sent=False,
            verified=True,
            masked_email=mask_email(verification.corporate_email),
        )

    async def _initialize_wallet(self, user_id: uuid.UUID) -> None:
        try:
            await WalletService(self.session).initialize_wallet(user_id)
            logger.info(f"Wallet initialized for user {user_id} after email verification")
        except WalletError as e:
            if e.error_code == "WALLET_ALREADY_EXISTS":
                logger.debug(f"Wallet already exists for user {user_id}")
            else:
                logger.warning(f"Could not initialize wallet for user {user_id}: {e.message}")

    async def resend_email_otp(self, user_id: uuid.UUID) -> VerificationResponse:
        existing = await self.get_active_verification(user_id)
        if existing is None:
            raise CorporateEmailError("No active email verification found", "NO_ACTIVE_VERIFICATION")

        email = existing.corporate_email
        await self.session.delete(existing)
        await self.session.flush()
        return await self.send_email_otp(user_id, email)

    # Email changes
    async def _check_mobile_otp(self, account: UserAccount, mobile_otp: str) -> None:
        if not await self.otp.verify_mobile_otp(account.phone_number, mobile_otp):
            logger.warning(f"Mobile OTP check failed for email change by user {account.id}")
            raise CorporateEmailError("Invalid mobile OTP", "INVALID_MOBILE_OTP")
        await self.otp.delete_mobile_otp(account.phone_number)

    async def initiate_email_update(
        self,
        user_id: uuid.UUID,
        mobile_otp: str,
        new_email: str,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> VerificationResponse:
        """Start replacing (or adding) the corporate email.

        Requires a fresh mobile OTP. The current email is detached and an
        OTP goes to the new address; ``complete_email_update`` finishes.
        """
        email = validate_corporate_email(new_email)
        account = await self._get_account(user_id)
        logger.info(f"Initiating email update for user {user_id} to {mask_email(email)}")

        await self._check_mobile_otp(account, mobile_otp)

        if await self._email_taken(email, user_id):
            raise CorporateEmailError(
                "Corporate email already registered to another account", "EMAIL_ALREADY_EXISTS"
            )

        old_email = account.corporate_email
        self.session.add(
            EmailChangeAuditLog(
                user_id=user_id,
                old_email=old_email,
                new_email=email,
                change_type=EmailChangeType.UPDATE if old_email else EmailChangeType.ADDITION,
                reason=reason,
                ip_address=ip_address,
                user_agent=user_agent,
                mobile_otp_verified=True,
                email_otp_verified=False,
                status=EmailChangeStatus.MOBILE_VERIFIED,
                created_at=utcnow(),
            )
        )

        account.clear_corporate_email()
        await self._clear_pending(user_id)
        await self.session.flush()

        return await self._issue(user_id, email)

    async def complete_email_update(self, user_id: uuid.UUID, email_otp: str) -> VerificationResponse:
        response = await self.verify_email_otp(user_id, email_otp)

        stmt = (
            select(EmailChangeAuditLog)
            .where(EmailChangeAuditLog.user_id == user_id)
            .order_by(EmailChangeAuditLog.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        latest = result.scalar_one_or_none()
        if latest is not None and latest.status in (
            EmailChangeStatus.MOBILE_VERIFIED,
            EmailChangeStatus.EMAIL_VERIFIED,
        ):
            latest.email_otp_verified = True
            latest.status = EmailChangeStatus.COMPLETED
            await self.session.flush()
            logger.info(f"Email update completed for user {user_id}")

            if latest.new_email:
                await self.email_sender.send_email_change_notification(
                    latest.new_email,
                    f"Your OfficeMate corporate email is now {mask_email(latest.new_email)}.",
                )

        return response

    async def remove_corporate_email(
        self,
        user_id: uuid.UUID,
        mobile_otp: str,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Detach the corporate email after a mobile OTP check."""
        account = await self._get_account(user_id)
        if not account.corporate_email:
            raise CorporateEmailError("No corporate email to remove", "NO_CORPORATE_EMAIL")

        await self._check_mobile_otp(account, mobile_otp)

        self.session.add(
            EmailChangeAuditLog(
                user_id=user_id,
                old_email=account.corporate_email,
                new_email=None,
                change_type=EmailChangeType.REMOVAL,
                reason=reason,
                ip_address=ip_address,
                user_agent=user_agent,
                mobile_otp_verified=True,
                email_otp_verified=False,
                status=EmailChangeStatus.COMPLETED,
                created_at=utcnow(),
            )
        )
        account.clear_corporate_email()
        await self.session.flush()
        logger.info(f"Corporate email removed for user {user_id}")

    async def get_email_change_history(self, user_id: uuid.UUID) -> list[EmailChangeAuditLog]:
        stmt = (
            select(EmailChangeAuditLog)
            .where(EmailChangeAuditLog.user_id == user_id)
            .order_by(EmailChangeAuditLog.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def cleanup_expired_verifications(self) -> int:
        """Delete unverified email OTP records past their expiry."""
        result = await self.session.execute(
            delete(EmailVerification).where(
                EmailVerification.verified.is_(False),
                EmailVerification.expires_at < utcnow(),
            )
        )
        count = result.rowcount or 0
        if count:
            logger.info(f"Deleted {count} expired email verifications")
        return count
