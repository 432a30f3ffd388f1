"""Tests for rate limiting, lockout and CAPTCHA triggers."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from officemate.audit import AuditService
from officemate.auth.rate_limit import RateLimiter
from officemate.cache.redis_client import RedisStore
from officemate.db.models import SecurityEvent

PHONE = "+919876543210"


class BrokenRedis:
    """Client whose every call fails like an unreachable server."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        return fail


class TestRequestLimits:
    @pytest.mark.asyncio
    async def test_allows_up_to_max(self, store):
        limiter = RateLimiter(store)
        results = [await limiter.is_allowed("key", 3, 60) for _ in range(4)]
        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_window_ttl_set(self, store):
        limiter = RateLimiter(store)
        await limiter.is_allowed("key", 3, 60)
        assert 0 < await limiter.get_time_until_reset("key") <= 60

    @pytest.mark.asyncio
    async def test_remaining_and_reset(self, store):
        limiter = RateLimiter(store)
        await limiter.is_allowed("key", 5, 60)
        await limiter.is_allowed("key", 5, 60)
        assert await limiter.get_remaining_requests("key", 5) == 3

        await limiter.reset("key")
        assert await limiter.get_remaining_requests("key", 5) == 5

    @pytest.mark.asyncio
    async def test_separate_namespaces(self, store):
        limiter = RateLimiter(store)
        assert await limiter.is_otp_request_allowed(PHONE, 1) is True
        assert await limiter.is_otp_request_allowed(PHONE, 1) is False
        assert await limiter.is_login_attempt_allowed(PHONE, 1) is True
        assert await limiter.is_registration_allowed(PHONE, 1) is True

    @pytest.mark.asyncio
    async def test_fails_open_without_redis(self):
        limiter = RateLimiter(RedisStore(BrokenRedis()))
        assert await limiter.is_allowed("key", 1, 60) is True

    @pytest.mark.asyncio
    async def test_captcha_fails_safe_without_redis(self):
        limiter = RateLimiter(RedisStore(BrokenRedis()))
        assert await limiter.should_require_captcha(PHONE) is True


class TestLockout:
    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, store):
        limiter = RateLimiter(store)
        await limiter.lock_account(PHONE, "manual")

        assert await limiter.is_account_locked(PHONE) is True
        assert await limiter.get_lockout_end_time(PHONE) is not None

        await limiter.unlock_account(PHONE)
        assert await limiter.is_account_locked(PHONE) is False

    @pytest.mark.asyncio
    async def test_failed_attempts_trigger_lockout(self, store):
        limiter = RateLimiter(store)
        results = [await limiter.record_failed_attempt(PHONE, "OTP") for _ in range(5)]

        assert results == [False, False, False, False, True]
        assert await limiter.is_account_locked(PHONE) is True
        assert await limiter.get_failed_attempts(PHONE) == 5

    @pytest.mark.asyncio
    async def test_clear_failed_attempts(self, store):
        limiter = RateLimiter(store)
        await limiter.record_failed_attempt(PHONE, "OTP")
        await limiter.clear_failed_attempts(PHONE)
        assert await limiter.get_failed_attempts(PHONE) == 0

    @pytest.mark.asyncio
    async def test_suspicious_activity_threshold(self, store):
        limiter = RateLimiter(store)
        for _ in range(9):
            assert await limiter.track_suspicious_activity(PHONE, "OTP_FLOOD") is False
        assert await limiter.track_suspicious_activity(PHONE, "OTP_FLOOD") is True
        assert await limiter.is_account_locked(PHONE) is True

    @pytest.mark.asyncio
    async def test_security_events_recorded(self, store, db_session):
        limiter = RateLimiter(store, AuditService(db_session))
        for _ in range(5):
            await limiter.record_failed_attempt(PHONE, "OTP")
        await db_session.commit()

        events = (await db_session.execute(select(SecurityEvent))).scalars().all()
        types = [e.event_type for e in events]
        assert types.count("FAILED_LOGIN") == 5
        assert "ACCOUNT_LOCKOUT" in types
        assert all(e.identifier != PHONE for e in events)


class TestCaptcha:
    @pytest.mark.asyncio
    async def test_not_required_initially(self, store):
        limiter = RateLimiter(store)
        assert await limiter.should_require_captcha(PHONE, "10.0.0.1") is False

    @pytest.mark.asyncio
    async def test_required_after_two_failures(self, store):
        limiter = RateLimiter(store)
        await limiter.record_failed_attempt(PHONE, "OTP")
        assert await limiter.should_require_captcha(PHONE) is False
        await limiter.record_failed_attempt(PHONE, "OTP")
        assert await limiter.should_require_captcha(PHONE) is True

    @pytest.mark.asyncio
    async def test_required_after_ip_failures(self, store):
        limiter = RateLimiter(store)
        for _ in range(3):
            await limiter.record_ip_failed_attempt("10.0.0.1", "OTP")
        assert await limiter.should_require_captcha(PHONE, "10.0.0.1") is True
