"""Cryptographic utilities for sensitive field storage.

Uses Fernet (AES-128-CBC with HMAC) for symmetric encryption. When a KMS
key is configured, each process obtains a KMS data key and uses it as the
Fernet key (envelope encryption); the encrypted data key travels with the
ciphertext.
"""

import asyncio
import base64
import binascii
import hashlib
import hmac
import logging
from typing import Optional, Protocol

from cryptography.fernet import Fernet

from officemate.aws.kms import KmsService
from officemate.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

ENVELOPE_PREFIX = "kms:v1:"


class Encryptor(Protocol):
    async def encrypt_field(self, plaintext: str) -> str: ...

    async def decrypt_field(self, ciphertext: str) -> str: ...


def generate_master_key() -> str:
    """Generate a new master encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for Fernet
    """
    return Fernet.generate_key().decode()


def hash_secret(value: str) -> str:
    """SHA-256 of a short secret (OTP), base64 encoded."""
    digest = hashlib.sha256(value.encode()).digest()
    return base64.b64encode(digest).decode()


def verify_secret(value: str, expected_hash: str) -> bool:
    """Constant-time comparison of a secret against its stored hash."""
    return hmac.compare_digest(hash_secret(value), expected_hash)


def fingerprint(value: str, key: Optional[str] = None) -> str:
    """Keyed hash for looking up encrypted identifiers without decrypting them."""
    if key is None:
        from officemate.config import get_settings

        key = get_settings().jwt_secret_key
    return hmac.new(key.encode(), value.encode(), hashlib.sha256).hexdigest()


class FieldEncryptor:
    """Encrypts and decrypts field values using Fernet.

    Usage:
        encryptor = FieldEncryptor(master_key)
        encrypted = encryptor.encrypt("4111111111111111")
        decrypted = encryptor.decrypt(encrypted)
    """

    def __init__(self, master_key: str):
        """Initialize with master encryption key.

        Args:
            master_key: Base64-encoded Fernet key (32 bytes)
        """
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a Fernet token.

        Raises:
            InvalidToken: If decryption fails (wrong key or corrupted data)
        """
        return self._fernet.decrypt(ciphertext.encode()).decode()

    def rotate_key(self, old_key: str, new_key: str, ciphertext: str) -> str:
        """Re-encrypt a value with a new key."""
        old_fernet = Fernet(old_key.encode())
        new_fernet = Fernet(new_key.encode())

        decrypted = old_fernet.decrypt(ciphertext.encode())
        return new_fernet.encrypt(decrypted).decode()

    async def encrypt_field(self, plaintext: str) -> str:
        return self.encrypt(plaintext)

    async def decrypt_field(self, ciphertext: str) -> str:
        return self.decrypt(ciphertext)


class KmsEnvelopeEncryptor:
    """Envelope encryption with a KMS-issued AES-256 data key.

    Ciphertext format: ``kms:v1:<base64 encrypted data key>:<fernet token>``.
    Data keys come from ``KmsService``, so the KMS round trips run in the
    default executor; plaintext keys are cached per encrypted blob.
    """

    def __init__(self, kms: KmsService):
        self.kms = kms
        self._active: Optional[tuple[str, Fernet]] = None
        self._active_lock = asyncio.Lock()
        self._key_cache: dict[str, Fernet] = {}

    async def _active_key(self) -> tuple[str, Fernet]:
        async with self._active_lock:
            if self._active is None:
                data_key = await self.kms.generate_data_key()
                blob = base64.b64encode(data_key.ciphertext_blob).decode()
                fernet = Fernet(base64.urlsafe_b64encode(data_key.plaintext))
                self._key_cache[blob] = fernet
                self._active = (blob, fernet)
                logger.info("Obtained new KMS data key")
            return self._active

    async def _key_for(self, blob: str) -> Fernet:
        fernet = self._key_cache.get(blob)
        if fernet is None:
            try:
                wrapped = base64.b64decode(blob, validate=True)
            except (binascii.Error, ValueError):
                raise ValidationError("Malformed encrypted value", "INVALID_CIPHERTEXT")
            plaintext = await self.kms.decrypt_data_key(wrapped)
            fernet = Fernet(base64.urlsafe_b64encode(plaintext))
            self._key_cache[blob] = fernet
        return fernet

    async def encrypt_field(self, plaintext: str) -> str:
        blob, fernet = await self._active_key()
        token = fernet.encrypt(plaintext.encode()).decode()
        return f"{ENVELOPE_PREFIX}{blob}:{token}"

    async def decrypt_field(self, ciphertext: str) -> str:
        """Decrypt an envelope produced by ``encrypt_field``.

        Raises:
            ValidationError: INVALID_CIPHERTEXT if the envelope is malformed
            InvalidToken: If the Fernet token does not match its data key
        """
        blob, separator, token = ciphertext.removeprefix(ENVELOPE_PREFIX).partition(":")
        if not ciphertext.startswith(ENVELOPE_PREFIX) or not separator or not blob or not token:
            raise ValidationError("Malformed encrypted value", "INVALID_CIPHERTEXT")
        fernet = await self._key_for(blob)
        return fernet.decrypt(token.encode()).decode()


_encryptor: Optional[Encryptor] = None


def get_field_encryptor() -> Encryptor:
    """Get the encryptor for sensitive fields.

    KMS envelope encryption when KMS_KEY_ID is set, otherwise Fernet with
    MASTER_KEY.

    Raises:
        ConfigurationError: If neither is configured
    """
    global _encryptor
    if _encryptor is not None:
        return _encryptor

    from officemate.config import get_settings

    settings = get_settings()
    if settings.kms_key_id:
        _encryptor = KmsEnvelopeEncryptor(KmsService(key_id=settings.kms_key_id))
    elif settings.master_key:
        _encryptor = FieldEncryptor(settings.master_key)
    else:
        raise ConfigurationError("Neither KMS_KEY_ID nor MASTER_KEY is configured")
    return _encryptor


def reset_field_encryptor() -> None:
    """Forget the cached encryptor (useful for testing)."""
    global _encryptor
    _encryptor = None
