"""Tests for field encryption, secret hashing and the KMS adapter."""

import asyncio
import base64
import os
import threading
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from cryptography.fernet import InvalidToken

from officemate.aws.kms import KmsService
from officemate.config import get_settings
from officemate.crypto import (
    ENVELOPE_PREFIX,
    FieldEncryptor,
    KmsEnvelopeEncryptor,
    fingerprint,
    generate_master_key,
    get_field_encryptor,
    hash_secret,
    verify_secret,
)
from officemate.errors import ConfigurationError, ExternalServiceError, ValidationError


def kms_client() -> MagicMock:
    """KMS double whose data key decrypts back to the same bytes."""
    key = os.urandom(32)
    client = MagicMock()
    client.generate_data_key.return_value = {"Plaintext": key, "CiphertextBlob": b"wrapped-key"}
    client.decrypt.return_value = {"Plaintext": key}
    return client


class TestFieldEncryptor:
    def test_roundtrip(self):
        encryptor = FieldEncryptor(generate_master_key())
        token = encryptor.encrypt("4111111111111111")

        assert token != "4111111111111111"
        assert encryptor.decrypt(token) == "4111111111111111"

    def test_wrong_key(self):
        token = FieldEncryptor(generate_master_key()).encrypt("secret")
        with pytest.raises(InvalidToken):
            FieldEncryptor(generate_master_key()).decrypt(token)

    def test_rotate_key(self):
        old_key, new_key = generate_master_key(), generate_master_key()
        token = FieldEncryptor(old_key).encrypt("jane@okbank")

        rotated = FieldEncryptor(old_key).rotate_key(old_key, new_key, token)
        assert FieldEncryptor(new_key).decrypt(rotated) == "jane@okbank"

    @pytest.mark.asyncio
    async def test_field_interface(self):
        encryptor = FieldEncryptor(generate_master_key())
        token = await encryptor.encrypt_field("jane@okbank")
        assert await encryptor.decrypt_field(token) == "jane@okbank"

    def test_default_uses_master_key(self):
        assert isinstance(get_field_encryptor(), FieldEncryptor)
        assert get_field_encryptor() is get_field_encryptor()


class TestSecrets:
    def test_hash_and_verify(self):
        stored = hash_secret("123456")
        assert stored != "123456"
        assert verify_secret("123456", stored) is True
        assert verify_secret("654321", stored) is False

    def test_fingerprint_is_keyed(self):
        assert fingerprint("4111111111111111", "a") == fingerprint("4111111111111111", "a")
        assert fingerprint("4111111111111111", "a") != fingerprint("4111111111111111", "b")


class TestKmsEnvelopeEncryptor:
    @pytest.mark.asyncio
    async def test_roundtrip_reuses_data_key(self):
        client = kms_client()
        encryptor = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))

        first = await encryptor.encrypt_field("one")
        second = await encryptor.encrypt_field("two")

        assert first.startswith(ENVELOPE_PREFIX)
        assert await encryptor.decrypt_field(first) == "one"
        assert await encryptor.decrypt_field(second) == "two"
        client.generate_data_key.assert_called_once_with(KeyId="alias/officemate", KeySpec="AES_256")
        client.decrypt.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_first_use_generates_one_key(self):
        client = kms_client()
        encryptor = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))

        await asyncio.gather(*(encryptor.encrypt_field(str(i)) for i in range(5)))
        client.generate_data_key.assert_called_once()

    @pytest.mark.asyncio
    async def test_kms_calls_leave_event_loop_thread(self):
        loop_thread = threading.get_ident()
        call_threads = []
        client = kms_client()
        response = client.generate_data_key.return_value

        def generate_data_key(**kwargs):
            call_threads.append(threading.get_ident())
            return response

        client.generate_data_key.side_effect = generate_data_key
        encryptor = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))
        await encryptor.encrypt_field("card")

        assert call_threads and loop_thread not in call_threads

    @pytest.mark.asyncio
    async def test_other_process_unwraps_data_key(self):
        client = kms_client()
        token = await KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate")).encrypt_field(
            "card"
        )

        reader = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))
        assert await reader.decrypt_field(token) == "card"
        client.decrypt.assert_called_once_with(CiphertextBlob=b"wrapped-key")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ciphertext",
        [
            "plain-fernet-token",
            f"{ENVELOPE_PREFIX}no-separator",
            f"{ENVELOPE_PREFIX}:token-without-key",
            f"{ENVELOPE_PREFIX}%%%not-base64%%%:token",
        ],
    )
    async def test_malformed_envelope(self, ciphertext):
        client = kms_client()
        encryptor = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))

        with pytest.raises(ValidationError) as exc_info:
            await encryptor.decrypt_field(ciphertext)
        assert exc_info.value.error_code == "INVALID_CIPHERTEXT"
        client.decrypt.assert_not_called()

    @pytest.mark.asyncio
    async def test_tampered_token(self):
        encryptor = KmsEnvelopeEncryptor(KmsService(client=kms_client(), key_id="alias/officemate"))
        token = await encryptor.encrypt_field("card")

        with pytest.raises(InvalidToken):
            await encryptor.decrypt_field(token[:-4] + "AAAA")

    @pytest.mark.asyncio
    async def test_kms_failure(self):
        client = MagicMock()
        client.generate_data_key.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "denied"}}, "GenerateDataKey"
        )
        encryptor = KmsEnvelopeEncryptor(KmsService(client=client, key_id="alias/officemate"))
        with pytest.raises(ExternalServiceError):
            await encryptor.encrypt_field("x")

    def test_selected_when_kms_key_configured(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "kms_key_id", "alias/officemate")
        encryptor = get_field_encryptor()

        assert isinstance(encryptor, KmsEnvelopeEncryptor)
        assert encryptor.kms.key_id == "alias/officemate"


class TestKmsService:
    @pytest.mark.asyncio
    async def test_encrypt_decrypt(self):
        client = MagicMock()
        client.encrypt.return_value = {"CiphertextBlob": b"blob"}
        client.decrypt.return_value = {"Plaintext": b"hello"}
        service = KmsService(client=client, key_id="alias/officemate")

        ciphertext = await service.encrypt("hello")
        assert ciphertext == base64.b64encode(b"blob").decode()
        assert await service.decrypt(ciphertext) == "hello"
        client.decrypt.assert_called_once_with(CiphertextBlob=b"blob")

    @pytest.mark.asyncio
    async def test_requires_key_id(self):
        service = KmsService(client=MagicMock(), key_id="")
        with pytest.raises(ConfigurationError):
            await service.generate_data_key()

    @pytest.mark.asyncio
    async def test_sign_and_verify(self):
        client = MagicMock()
        client.sign.return_value = {"Signature": b"sig"}
        client.verify.return_value = {"SignatureValid": True}
        service = KmsService(client=client, key_id="k", signing_key_id="alias/signing")

        signature = await service.sign("payload")
        assert await service.verify("payload", signature) is True
        assert client.sign.call_args.kwargs["SigningAlgorithm"] == "RSASSA_PKCS1_V1_5_SHA_256"

    @pytest.mark.asyncio
    async def test_invalid_signature_is_false(self):
        client = MagicMock()
        client.verify.side_effect = ClientError(
            {"Error": {"Code": "KMSInvalidSignatureException", "Message": "bad"}}, "Verify"
        )
        service = KmsService(client=client, key_id="k", signing_key_id="alias/signing")
        assert await service.verify("payload", base64.b64encode(b"x").decode()) is False

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self):
        client = MagicMock()
        client.encrypt.side_effect = ClientError({"Error": {"Code": "Throttling", "Message": "slow"}}, "Encrypt")
        with pytest.raises(ExternalServiceError) as exc_info:
            await KmsService(client=client, key_id="k").encrypt("x")
        assert exc_info.value.service == "KMS"
