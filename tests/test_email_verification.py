"""Tests for corporate email verification and email changes."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from officemate.auth.email import EmailVerificationService
from officemate.auth.otp import OTPService
from officemate.db.models import (
    AccountStatus,
    EmailChangeStatus,
    EmailChangeType,
    EmailVerification,
    Wallet,
    utcnow,
)
from officemate.errors import CorporateEmailError

EMAIL = "jane.doe@acme.com"


def wrong_otp(otp: str) -> str:
    return "000000" if otp != "000000" else "111111"


class TestSendEmailOtp:
    @pytest.mark.asyncio
    async def test_send_stores_hashed_otp(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        result = await service.send_email_otp(phone_only_account.id, "Jane.Doe@ACME.com")

        assert result.otp_sent is True
        assert result.masked_email == "ja****oe@acme.com"
        otp = email_sender.otps[EMAIL]

        verification = await service.get_active_verification(phone_only_account.id)
        assert verification.corporate_email == EMAIL
        assert verification.otp_hash != otp

    @pytest.mark.asyncio
    async def test_personal_email_rejected(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        with pytest.raises(CorporateEmailError):
            await service.send_email_otp(phone_only_account.id, "jane@gmail.com")
        assert email_sender.otps == {}

    @pytest.mark.asyncio
    async def test_email_used_by_other_account(
        self, db_session, store, email_sender, verified_account, account_factory
    ):
        other = await account_factory(phone_number="+14155550100")
        service = EmailVerificationService(db_session, store, email_sender)

        with pytest.raises(CorporateEmailError) as exc_info:
            await service.send_email_otp(other.id, verified_account.corporate_email)
        assert exc_info.value.error_code == "EMAIL_ALREADY_EXISTS"

    @pytest.mark.asyncio
    async def test_pending_verification_blocks_new_one(
        self, db_session, store, email_sender, phone_only_account
    ):
        service = EmailVerificationService(db_session, store, email_sender)
        await service.send_email_otp(phone_only_account.id, EMAIL)

        with pytest.raises(CorporateEmailError) as exc_info:
            await service.send_email_otp(phone_only_account.id, "john.roe@acme.com")
        assert exc_info.value.error_code == "ACTIVE_VERIFICATION_EXISTS"

    @pytest.mark.asyncio
    async def test_resend_replaces_pending(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        await service.send_email_otp(phone_only_account.id, EMAIL)
        first = await service.get_active_verification(phone_only_account.id)

        await service.resend_email_otp(phone_only_account.id)
        second = await service.get_active_verification(phone_only_account.id)
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_resend_without_pending(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        with pytest.raises(CorporateEmailError) as exc_info:
            await service.resend_email_otp(phone_only_account.id)
        assert exc_info.value.error_code == "NO_ACTIVE_VERIFICATION"


class TestVerifyEmailOtp:
    @pytest.mark.asyncio
    async def test_verify_activates_account_and_wallet(
        self, db_session, store, email_sender, phone_only_account
    ):
        service = EmailVerificationService(db_session, store, email_sender)
        await service.send_email_otp(phone_only_account.id, EMAIL)

        result = await service.verify_email_otp(phone_only_account.id, email_sender.otps[EMAIL])

        assert result.verified is True
        assert phone_only_account.corporate_email == EMAIL
        assert phone_only_account.email_verified is True
        assert phone_only_account.account_status == AccountStatus.ACTIVE

        wallet = (
            await db_session.execute(select(Wallet).where(Wallet.user_id == phone_only_account.id))
        ).scalar_one_or_none()
        assert wallet is not None

    @pytest.mark.asyncio
    async def test_wrong_otp_then_attempts_exhausted(
        self, db_session, store, email_sender, phone_only_account
    ):
        service = EmailVerificationService(db_session, store, email_sender)
        await service.send_email_otp(phone_only_account.id, EMAIL)
        bad = wrong_otp(email_sender.otps[EMAIL])

        for remaining in (2, 1, 0):
            with pytest.raises(CorporateEmailError) as exc_info:
                await service.verify_email_otp(phone_only_account.id, bad)
            assert exc_info.value.error_code == "INVALID_OTP"
            assert f"{remaining} attempts remaining" in exc_info.value.message

        with pytest.raises(CorporateEmailError) as exc_info:
            await service.verify_email_otp(phone_only_account.id, email_sender.otps[EMAIL])
        assert exc_info.value.error_code == "MAX_ATTEMPTS_EXCEEDED"
        assert phone_only_account.email_verified is False

    @pytest.mark.asyncio
    async def test_no_active_verification(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        with pytest.raises(CorporateEmailError) as exc_info:
            await service.verify_email_otp(phone_only_account.id, "123456")
        assert exc_info.value.error_code == "NO_ACTIVE_VERIFICATION"


class TestEmailChanges:
    @pytest.mark.asyncio
    async def test_update_flow(self, db_session, store, email_sender, verified_account):
        service = EmailVerificationService(db_session, store, email_sender)
        mobile_otp = await OTPService(store).generate_mobile_otp(verified_account.phone_number)

        await service.initiate_email_update(
            verified_account.id, mobile_otp, "jane.doe@globex.com", reason="New employer"
        )
        assert verified_account.corporate_email is None
        assert verified_account.account_status == AccountStatus.PENDING_EMAIL

        await service.complete_email_update(verified_account.id, email_sender.otps["jane.doe@globex.com"])
        assert verified_account.corporate_email == "jane.doe@globex.com"
        assert verified_account.account_status == AccountStatus.ACTIVE

        history = await service.get_email_change_history(verified_account.id)
        assert len(history) == 1
        assert history[0].change_type == EmailChangeType.UPDATE
        assert history[0].old_email == EMAIL
        assert history[0].status == EmailChangeStatus.COMPLETED
        assert history[0].email_otp_verified is True

        subjects = [subject for _, subject in email_sender.messages]
        assert "OfficeMate - Corporate Email Updated" in subjects

    @pytest.mark.asyncio
    async def test_update_requires_mobile_otp(self, db_session, store, email_sender, verified_account):
        service = EmailVerificationService(db_session, store, email_sender)
        otp = await OTPService(store).generate_mobile_otp(verified_account.phone_number)

        with pytest.raises(CorporateEmailError) as exc_info:
            await service.initiate_email_update(verified_account.id, wrong_otp(otp), "jane.doe@globex.com")
        assert exc_info.value.error_code == "INVALID_MOBILE_OTP"
        assert verified_account.corporate_email == EMAIL

    @pytest.mark.asyncio
    async def test_remove_email(self, db_session, store, email_sender, verified_account):
        service = EmailVerificationService(db_session, store, email_sender)
        otp = await OTPService(store).generate_mobile_otp(verified_account.phone_number)

        await service.remove_corporate_email(verified_account.id, otp, reason="Left company")

        assert verified_account.corporate_email is None
        assert verified_account.email_verified is False
        history = await service.get_email_change_history(verified_account.id)
        assert history[0].change_type == EmailChangeType.REMOVAL

    @pytest.mark.asyncio
    async def test_remove_without_email(self, db_session, store, email_sender, phone_only_account):
        service = EmailVerificationService(db_session, store, email_sender)
        with pytest.raises(CorporateEmailError) as exc_info:
            await service.remove_corporate_email(phone_only_account.id, "123456")
        assert exc_info.value.error_code == "NO_CORPORATE_EMAIL"


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_expired(self, db_session, store, email_sender, phone_only_account):
        expired = EmailVerification.create(phone_only_account.id, EMAIL, "hash", 10)
        expired.expires_at = utcnow() - timedelta(minutes=1)
        db_session.add(expired)
        await db_session.flush()

        service = EmailVerificationService(db_session, store, email_sender)
        assert await service.cleanup_expired_verifications() == 1
