"""Tests for phone registration and OTP login."""

import pytest
from sqlalchemy import select

from officemate.auth.mobile import MobileAuthService
from officemate.auth.otp import OTPService
from officemate.auth.rate_limit import RateLimiter
from officemate.auth.sessions import DeviceInfo
from officemate.db.models import AccountStatus, SecurityEvent, UserAccount
from officemate.errors import (
    AccountLockedError,
    ConflictError,
    NotFoundError,
    OTPError,
    ProfileAccessError,
    ValidationError,
)

PHONE = "+919876543210"


def wrong_otp(otp: str) -> str:
    return "000000" if otp != "000000" else "111111"


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_sends_otp(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        result = await service.register_user("98765 43210")

        assert result.otp_sent is True
        assert result.masked_phone_number == "****3210"
        assert PHONE in sms_sender.otps

        account = await service.get_account_by_phone(PHONE)
        assert account is not None
        assert account.phone_verified is False
        assert account.account_status == AccountStatus.PENDING_EMAIL

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.register_user(PHONE)

        with pytest.raises(ConflictError) as exc_info:
            await service.register_user(PHONE)
        assert exc_info.value.error_code == "PHONE_ALREADY_REGISTERED"

    @pytest.mark.asyncio
    async def test_invalid_phone(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        with pytest.raises(ValidationError):
            await service.register_user("12ab")

    @pytest.mark.asyncio
    async def test_locked_number_rejected(self, db_session, store, sms_sender):
        await RateLimiter(store).lock_account(PHONE, "test")
        service = MobileAuthService(db_session, store, sms_sender)

        with pytest.raises(AccountLockedError):
            await service.register_user(PHONE)
        assert sms_sender.otps == {}


class TestVerification:
    @pytest.mark.asyncio
    async def test_verify_otp_opens_session(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.register_user(PHONE)

        response = await service.verify_otp(
            PHONE, sms_sender.otps[PHONE], DeviceInfo(device_type="IOS", device_id="iphone")
        )

        assert response.mobile_verified is True
        assert response.email_verified is False
        assert response.profile_complete is False
        assert response.access_token
        assert response.refresh_token

        account = await service.get_account_by_phone(PHONE)
        assert account.phone_verified is True
        assert account.last_login_at is not None
        assert await OTPService(store).has_valid_otp(PHONE) is False

        validation = await service.sessions.validate_token(response.access_token)
        assert validation.valid is True

    @pytest.mark.asyncio
    async def test_wrong_otp_recorded(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.register_user(PHONE)
        await db_session.commit()

        with pytest.raises(OTPError) as exc_info:
            await service.verify_otp(PHONE, wrong_otp(sms_sender.otps[PHONE]))
        assert exc_info.value.error_code == "INVALID_OTP"
        assert "Remaining attempts: 2" in exc_info.value.message

        events = (await db_session.execute(select(SecurityEvent))).scalars().all()
        assert "FAILED_OTP_VERIFICATION" in [e.event_type for e in events]
        assert await RateLimiter(store).get_failed_attempts(PHONE) == 1

    @pytest.mark.asyncio
    async def test_repeated_failures_lock_account(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.register_user(PHONE)
        await db_session.commit()

        for _ in range(3):
            with pytest.raises(OTPError):
                await service.verify_otp(PHONE, wrong_otp(sms_sender.otps[PHONE]))

        await service.login_user(PHONE)
        with pytest.raises(OTPError):
            await service.verify_login_otp(PHONE, wrong_otp(sms_sender.otps[PHONE]))
        with pytest.raises(AccountLockedError):
            await service.verify_login_otp(PHONE, wrong_otp(sms_sender.otps[PHONE]))

        with pytest.raises(AccountLockedError):
            await service.login_user(PHONE)

    @pytest.mark.asyncio
    async def test_verify_unknown_number(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        with pytest.raises(NotFoundError):
            await service.verify_otp(PHONE, "123456")


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_flow(self, db_session, store, sms_sender, verified_account):
        service = MobileAuthService(db_session, store, sms_sender)
        result = await service.login_user(verified_account.phone_number)
        assert result.user_id == str(verified_account.id)

        response = await service.verify_login_otp(
            verified_account.phone_number, sms_sender.otps[verified_account.phone_number]
        )
        assert response.profile_complete is True
        assert response.email_verified is True

    @pytest.mark.asyncio
    async def test_login_unregistered(self, db_session, store, sms_sender):
        service = MobileAuthService(db_session, store, sms_sender)
        with pytest.raises(NotFoundError) as exc_info:
            await service.login_user(PHONE)
        assert exc_info.value.error_code == "PHONE_NOT_REGISTERED"

    @pytest.mark.asyncio
    async def test_login_suspended(self, db_session, store, sms_sender, verified_account):
        verified_account.suspend()
        await db_session.commit()

        service = MobileAuthService(db_session, store, sms_sender)
        with pytest.raises(ProfileAccessError) as exc_info:
            await service.login_user(verified_account.phone_number)
        assert exc_info.value.error_code == "ACCOUNT_SUSPENDED"

    @pytest.mark.asyncio
    async def test_request_mobile_otp(self, db_session, store, sms_sender, verified_account):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.request_mobile_otp(verified_account.id)
        assert verified_account.phone_number in sms_sender.otps

    @pytest.mark.asyncio
    async def test_logout(self, db_session, store, sms_sender, verified_account):
        service = MobileAuthService(db_session, store, sms_sender)
        await service.login_user(verified_account.phone_number)
        response = await service.verify_login_otp(
            verified_account.phone_number, sms_sender.otps[verified_account.phone_number]
        )

        assert await service.logout(response.session_id) is True
        assert (await service.sessions.validate_token(response.access_token)).valid is False

        stored = await db_session.get(UserAccount, verified_account.id)
        assert stored.account_status == AccountStatus.ACTIVE
