"""Fixed-window rate limiting and account lockout on Redis.

Keys:
    rate_limit:<key>            request counters
    failed_attempts:<id>        failed verification counter (1h window)
    account_lockout:<id>        lockout marker holding the lockout end time
    suspicious:<id>:<type>      suspicious activity counter (24h window)
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from redis.exceptions import RedisError

from officemate.audit import AuditService
from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.db.models import SecuritySeverity, utcnow
from officemate.validation import mask_phone_number

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:"
OTP_LIMIT_PREFIX = "otp_limit:"
LOGIN_LIMIT_PREFIX = "login_limit:"
REGISTRATION_LIMIT_PREFIX = "registration_limit:"
ACCOUNT_LOCKOUT_PREFIX = "account_lockout:"
FAILED_ATTEMPTS_PREFIX = "failed_attempts:"
SUSPICIOUS_ACTIVITY_PREFIX = "suspicious:"

HOUR = 3600
DAY = 24 * HOUR


class RateLimiter:
    """Counters, lockouts and suspicious-activity tracking.

    Pass an ``AuditService`` to persist security events alongside the
    Redis bookkeeping.
    """

    def __init__(self, store: RedisStore, audit: Optional[AuditService] = None):
        settings = get_settings()
        self.store = store
        self.audit = audit
        self.max_failed_attempts = settings.lockout_max_failed_attempts
        self.lockout_minutes = settings.lockout_duration_minutes
        self.suspicious_threshold = settings.suspicious_activity_threshold
        self.captcha_threshold = settings.captcha_after_failed_attempts

    # Request limits
    async def is_allowed(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Count a request and report whether it fits in the window.

        Fails open when Redis is unreachable.
        """
        try:
            count = await self.store.incr(RATE_LIMIT_PREFIX + key, window=window_seconds)
        except RedisError as e:
            logger.error(f"Rate limit check failed for {key}, allowing request: {e}")
            return True

        allowed = count <= max_requests
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key} (count: {count}, max: {max_requests})")
        return allowed

    async def is_otp_request_allowed(self, phone_number: str, max_requests: int) -> bool:
        return await self.is_allowed(OTP_LIMIT_PREFIX + phone_number, max_requests, HOUR)

    async def is_login_attempt_allowed(self, identifier: str, max_attempts: int) -> bool:
        return await self.is_allowed(LOGIN_LIMIT_PREFIX + identifier, max_attempts, HOUR)

    async def is_registration_allowed(self, phone_number: str, max_attempts: int) -> bool:
        return await self.is_allowed(REGISTRATION_LIMIT_PREFIX + phone_number, max_attempts, HOUR)

    async def get_remaining_requests(self, key: str, max_requests: int) -> int:
        count = await self.store.get(RATE_LIMIT_PREFIX + key)
        if count is None:
            return max_requests
        return max(0, max_requests - int(count))

    async def get_time_until_reset(self, key: str) -> int:
        return await self.store.ttl(RATE_LIMIT_PREFIX + key)

    async def reset(self, key: str) -> None:
        await self.store.delete(RATE_LIMIT_PREFIX + key)
        logger.info(f"Rate limit reset for {key}")

    # Lockout
    async def is_account_locked(self, identifier: str) -> bool:
        return await self.store.exists(ACCOUNT_LOCKOUT_PREFIX + identifier)

    async def get_lockout_end_time(self, identifier: str) -> Optional[datetime]:
        value = await self.store.get(ACCOUNT_LOCKOUT_PREFIX + identifier)
        return datetime.fromisoformat(value) if value else None

    async def lock_account(
        self, identifier: str, reason: str, user_id: Optional[uuid.UUID] = None
    ) -> None:
        lockout_end = utcnow() + timedelta(minutes=self.lockout_minutes)
        await self.store.set(
            ACCOUNT_LOCKOUT_PREFIX + identifier,
            lockout_end.isoformat(),
            ttl=self.lockout_minutes * 60,
        )
        if self.audit is not None:
            self.audit.log_security_event(
                "ACCOUNT_LOCKOUT",
                SecuritySeverity.HIGH,
                user_id=user_id,
                identifier=mask_phone_number(identifier),
                details={"reason": reason, "duration_minutes": self.lockout_minutes},
            )
        logger.warning(
            f"Account locked for {mask_phone_number(identifier)}: {reason} "
            f"(Duration: {self.lockout_minutes} minutes)"
        )

    async def unlock_account(self, identifier: str) -> None:
        await self.store.delete(ACCOUNT_LOCKOUT_PREFIX + identifier, FAILED_ATTEMPTS_PREFIX + identifier)
        logger.info(f"Account unlocked for {mask_phone_number(identifier)}")

    async def record_failed_attempt(
        self, identifier: str, attempt_type: str, user_id: Optional[uuid.UUID] = None
    ) -> bool:
        """Count a failed attempt; returns True when it triggered a lockout."""
        count = await self.store.incr(FAILED_ATTEMPTS_PREFIX + identifier, window=HOUR)

        if self.audit is not None:
            self.audit.log_security_event(
                "FAILED_LOGIN",
                SecuritySeverity.MEDIUM,
                user_id=user_id,
                identifier=mask_phone_number(identifier),
                details={"attempt_type": attempt_type, "attempt": count},
            )

        if count >= self.max_failed_attempts:
            await self.lock_account(
                identifier, f"Too many failed {attempt_type} attempts ({count})", user_id
            )
            return True

        logger.warning(f"Failed {attempt_type} attempt #{count} for {mask_phone_number(identifier)}")
        return False

    async def clear_failed_attempts(self, identifier: str) -> None:
        await self.store.delete(FAILED_ATTEMPTS_PREFIX + identifier)

    async def get_failed_attempts(self, identifier: str) -> int:
        value = await self.store.get(FAILED_ATTEMPTS_PREFIX + identifier)
        return int(value) if value else 0

    async def track_suspicious_activity(
        self, identifier: str, activity_type: str, user_id: Optional[uuid.UUID] = None
    ) -> bool:
        """Count suspicious activity over 24h; locks and returns True at the threshold."""
        key = f"{SUSPICIOUS_ACTIVITY_PREFIX}{identifier}:{activity_type}"
        count = await self.store.incr(key, window=DAY)
        reached = count >= self.suspicious_threshold

        if self.audit is not None:
            self.audit.log_security_event(
                "SUSPICIOUS_ACTIVITY",
                SecuritySeverity.HIGH if reached else SecuritySeverity.MEDIUM,
                user_id=user_id,
                identifier=mask_phone_number(identifier),
                details={"activity_type": activity_type, "count": count},
            )

        if reached:
            await self.lock_account(
                identifier,
                f"Suspicious activity threshold exceeded: {activity_type} ({count})",
                user_id,
            )
            return True

        logger.warning(
            f"Suspicious activity #{count} detected for {mask_phone_number(identifier)}: {activity_type}"
        )
        return False

    # CAPTCHA
    async def record_ip_failed_attempt(self, ip_address: str, attempt_type: str) -> int:
        count = await self.store.incr(f"{FAILED_ATTEMPTS_PREFIX}ip:{ip_address}", window=HOUR)
        logger.debug(f"Failed {attempt_type} attempt #{count} from {ip_address}")
        return count

    async def should_require_captcha(self, identifier: str, ip_address: Optional[str] = None) -> bool:
        """CAPTCHA is due after repeated failures for the account or the IP.

        Fails safe (True) when Redis is unreachable.
        """
        try:
            failed = await self.get_failed_attempts(identifier)
            ip_failed = 0
            if ip_address:
                value = await self.store.get(f"{FAILED_ATTEMPTS_PREFIX}ip:{ip_address}")
                ip_failed = int(value) if value else 0
        except RedisError as e:
            logger.error(f"CAPTCHA check failed for {mask_phone_number(identifier)}: {e}")
            return True

        return (
            failed >= 2
            or ip_failed >= self.captcha_threshold
            or failed >= self.max_failed_attempts - 2
        )
