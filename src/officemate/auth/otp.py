"""One-time passwords kept in Redis.

Only the SHA-256 hash of an OTP is stored, under ``otp:phone:<number>`` or
``otp:email:<address>``, with a TTL equal to the OTP lifetime. Requests per
identifier are capped per hour.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from officemate.cache.redis_client import RedisStore
from officemate.config import get_settings
from officemate.crypto import hash_secret, verify_secret
from officemate.db.models import utcnow
from officemate.errors import OTPError, RateLimitExceededError
from officemate.validation import mask_identifier

logger = logging.getLogger(__name__)

OTP_PHONE_PREFIX = "otp:phone:"
OTP_EMAIL_PREFIX = "otp:email:"
RATE_LIMIT_PREFIX = "rate_limit:otp:"
RATE_LIMIT_WINDOW = 3600


def generate_numeric_otp(length: int) -> str:
    """Random digits from the OS CSPRNG."""
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


class OTPService:
    """Generates and verifies mobile and email OTPs."""

    def __init__(self, store: RedisStore):
        settings = get_settings()
        self.store = store
        self.otp_length = settings.otp_length
        self.expiration_minutes = settings.otp_expiration_minutes
        self.max_attempts = settings.otp_max_attempts
        self.requests_per_hour = settings.otp_max_requests_per_hour

    # Generation
    async def generate_mobile_otp(self, phone_number: str) -> str:
        return await self._generate(OTP_PHONE_PREFIX, phone_number, "MOBILE")

    async def generate_email_otp(self, email: str) -> str:
        return await self._generate(OTP_EMAIL_PREFIX, email, "EMAIL")

    async def _generate(self, prefix: str, identifier: str, otp_type: str) -> str:
        logger.info(f"Generating {otp_type.lower()} OTP for {mask_identifier(identifier)}")
        await self._check_rate_limit(identifier)

        otp = generate_numeric_otp(self.otp_length)
        now = utcnow()
        record = {
            "otp_hash": hash_secret(otp),
            "attempts": 0,
            "created_at": now.isoformat(),
            "expires_at": (now + timedelta(minutes=self.expiration_minutes)).isoformat(),
            "verified": False,
            "type": otp_type,
        }
        await self.store.set_json(prefix + identifier, record, ttl=self.expiration_minutes * 60)
        await self.store.incr(RATE_LIMIT_PREFIX + identifier, window=RATE_LIMIT_WINDOW)
        return otp

    async def _check_rate_limit(self, identifier: str) -> None:
        count = await self.store.get(RATE_LIMIT_PREFIX + identifier)
        if count is not None and int(count) >= self.requests_per_hour:
            logger.warning(f"OTP rate limit exceeded for {mask_identifier(identifier)}")
            raise RateLimitExceededError("Too many OTP requests. Please try again later.")

    # Verification
    async def verify_mobile_otp(self, phone_number: str, otp: str) -> bool:
        return await self._verify(OTP_PHONE_PREFIX, phone_number, otp)

    async def verify_email_otp(self, email: str, otp: str) -> bool:
        return await self._verify(OTP_EMAIL_PREFIX, email, otp)

    async def _verify(self, prefix: str, identifier: str, otp: str) -> bool:
        """Check an OTP against its stored record.

        Returns False for a wrong code (and counts the attempt).

        Raises:
            OTPError: If the record is missing, used, expired or out of attempts
        """
        key = prefix + identifier
        record = await self.store.get_json(key)
        if record is None:
            raise OTPError("OTP not found or expired")

        if record.get("verified"):
            logger.warning(f"OTP already used for {mask_identifier(identifier)}")
            raise OTPError("OTP already used")

        if datetime.fromisoformat(record["expires_at"]) < utcnow():
            await self.store.delete(key)
            raise OTPError("OTP expired")

        if record.get("attempts", 0) >= self.max_attempts:
            logger.warning(f"Max OTP attempts reached for {mask_identifier(identifier)}")
            await self.store.delete(key)
            raise OTPError("Maximum verification attempts exceeded")

        remaining_ttl = await self.store.ttl(key)
        ttl = remaining_ttl if remaining_ttl > 0 else self.expiration_minutes * 60

        if verify_secret(otp or "", record["otp_hash"]):
            record["verified"] = True
            await self.store.set_json(key, record, ttl=ttl)
            logger.info(f"OTP verified for {mask_identifier(identifier)}")
            return True

        record["attempts"] = record.get("attempts", 0) + 1
        await self.store.set_json(key, record, ttl=ttl)
        logger.warning(
            f"Invalid OTP attempt {record['attempts']} of {self.max_attempts} "
            f"for {mask_identifier(identifier)}"
        )
        return False

    # Housekeeping
    async def delete_mobile_otp(self, phone_number: str) -> None:
        await self.store.delete(OTP_PHONE_PREFIX + phone_number)

    async def delete_email_otp(self, email: str) -> None:
        await self.store.delete(OTP_EMAIL_PREFIX + email)

    async def get_remaining_attempts(self, phone_number: str) -> int:
        record = await self.store.get_json(OTP_PHONE_PREFIX + phone_number)
        if record is None:
            return self.max_attempts
        return max(self.max_attempts - record.get("attempts", 0), 0)

    async def has_valid_otp(self, phone_number: str) -> bool:
        """True when an unexpired, unused OTP with attempts left exists."""
        record: Optional[dict] = await self.store.get_json(OTP_PHONE_PREFIX + phone_number)
        if record is None or record.get("verified"):
            return False
        if datetime.fromisoformat(record["expires_at"]) < utcnow():
            return False
        return record.get("attempts", 0) < self.max_attempts
