"""AWS KMS adapter.

Symmetric encrypt/decrypt and data-key generation back field encryption;
an asymmetric key (RSA) can sign and verify payloads. boto3 is blocking, so
every call runs in the default executor.

Reference:
- https://docs.aws.amazon.com/kms/latest/developerguide/concepts.html#enveloping
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from officemate.aws.clients import get_client
from officemate.config import get_settings
from officemate.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "RSASSA_PKCS1_V1_5_SHA_256"


@dataclass
class DataKey:
    """Plaintext data key plus its KMS-encrypted form."""

    plaintext: bytes
    ciphertext_blob: bytes


class KmsService:
    """Async wrapper over the KMS client."""

    def __init__(
        self,
        client=None,
        key_id: Optional[str] = None,
        signing_key_id: Optional[str] = None,
    ):
        settings = get_settings()
        self._client = client
        self.key_id = key_id or settings.kms_key_id
        self.signing_key_id = signing_key_id or settings.kms_signing_key_id

    @property
    def client(self):
        if self._client is None:
            self._client = get_client("kms")
        return self._client

    def _require_key(self, key_id: Optional[str]) -> str:
        if not key_id:
            raise ConfigurationError("KMS key id is not configured")
        return key_id

    async def _call(self, operation: str, **kwargs) -> dict:
        loop = asyncio.get_running_loop()
        method = getattr(self.client, operation)
        try:
            return await loop.run_in_executor(None, lambda: method(**kwargs))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"KMS {operation} failed: {e}")
            raise ExternalServiceError("KMS", f"{operation} failed: {e}")

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt a string; returns base64 ciphertext."""
        key_id = self._require_key(self.key_id)
        response = await self._call("encrypt", KeyId=key_id, Plaintext=plaintext.encode())
        return base64.b64encode(response["CiphertextBlob"]).decode()

    async def decrypt(self, ciphertext: str) -> str:
        """Decrypt base64 ciphertext produced by ``encrypt``."""
        response = await self._call("decrypt", CiphertextBlob=base64.b64decode(ciphertext))
        return response["Plaintext"].decode()

    async def generate_data_key(self) -> DataKey:
        """Generate an AES-256 data key for envelope encryption."""
        key_id = self._require_key(self.key_id)
        response = await self._call("generate_data_key", KeyId=key_id, KeySpec="AES_256")
        return DataKey(plaintext=response["Plaintext"], ciphertext_blob=response["CiphertextBlob"])

    async def decrypt_data_key(self, ciphertext_blob: bytes) -> bytes:
        """Unwrap a data key returned by ``generate_data_key``."""
        response = await self._call("decrypt", CiphertextBlob=ciphertext_blob)
        return response["Plaintext"]

    async def sign(self, message: str) -> str:
        """Sign a message with the asymmetric key; returns base64 signature."""
        key_id = self._require_key(self.signing_key_id)
        response = await self._call(
            "sign",
            KeyId=key_id,
            Message=message.encode(),
            MessageType="RAW",
            SigningAlgorithm=SIGNING_ALGORITHM,
        )
        return base64.b64encode(response["Signature"]).decode()

    async def verify(self, message: str, signature: str) -> bool:
        """Verify a signature. Invalid signatures return False."""
        key_id = self._require_key(self.signing_key_id)
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.verify(
                    KeyId=key_id,
                    Message=message.encode(),
                    MessageType="RAW",
                    Signature=base64.b64decode(signature),
                    SigningAlgorithm=SIGNING_ALGORITHM,
                ),
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"KMS signature verification failed: {e}")
            return False
        return bool(response.get("SignatureValid", False))
