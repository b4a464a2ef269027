"""Tests for request/response payload encryption."""

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import List, Optional

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from payloadcrypt.backend import CryptographyBackend
from payloadcrypt.kdf import KdfStrategy
from payloadcrypt.payload import PayloadEnvelopeCodec, decrypt_if_needed, encrypt_if_enabled
from payloadcrypt.policy import EncryptionPolicy
from payloadcrypt.serialization import JsonSerializer
from payloadcrypt.types import ConfigurationError, FormatError, IntegrityError, ServerError
from .test_vectors import PAYLOAD_SECRET, TEST_PAYLOADS


@dataclass
class LoginRequest:
    username: str
    password: str


@dataclass
class ValidateResponse:
    valid: bool
    resultado: Optional[str] = None
    mensaje: Optional[str] = None


@dataclass
class UsersListResponse:
    resultado: str
    usuarios: List[dict]


class FixedRandomBackend(CryptographyBackend):
    """Backend that hands out predetermined random bytes."""

    def __init__(self, *values: bytes) -> None:
        self._values = list(values)

    def random_bytes(self, length: int) -> bytes:
        value = self._values.pop(0)
        assert len(value) == length
        return value


def encrypted_bytes(body: str) -> bytes:
    """Decode the envelope bytes out of an {"encryptedPayload": ...} body."""
    return base64.b64decode(json.loads(body)["encryptedPayload"])


def flip_bit(encrypted_payload: str, index: int, bit: int) -> str:
    """Flip one bit of a Base64 envelope."""
    data = bytearray(base64.b64decode(encrypted_payload))
    data[index] ^= 1 << bit
    return base64.b64encode(bytes(data)).decode("ascii")


@pytest.fixture
def policy():
    """Enabled policy with the default HMAC KDF."""
    return EncryptionPolicy(enabled=True, secret=PAYLOAD_SECRET)


@pytest.fixture
def codec(policy):
    """Codec for the enabled policy."""
    return PayloadEnvelopeCodec(policy)


class TestEncrypt:
    """Test payload encryption."""

    def test_known_answer(self, policy) -> None:
        """With fixed salt and IV the output matches an independent computation."""
        salt = bytes(range(32))
        iv = bytes(range(100, 112))
        payload = {"username": "ana", "password": "s3cr3t!"}

        codec = PayloadEnvelopeCodec(policy, backend=FixedRandomBackend(salt, iv))
        result = codec.encrypt(payload)

        key = hmac.new(PAYLOAD_SECRET.encode("utf-8"), salt, hashlib.sha256).digest()
        plaintext = b'{"username":"ana","password":"s3cr3t!"}'
        expected = base64.b64encode(salt + iv + AESGCM(key).encrypt(iv, plaintext, None))

        assert result == expected.decode("ascii")

    def test_envelope_layout(self, codec) -> None:
        """Envelope is salt(32) || iv(12) || ciphertext || tag(16)."""
        payload = {"a": 1}
        raw = base64.b64decode(codec.encrypt(payload))

        plaintext_size = len(JsonSerializer().dumps(payload).encode("utf-8"))
        assert len(raw) == 32 + 12 + plaintext_size + 16

    def test_fresh_salt_and_iv(self, codec) -> None:
        """Every call mints a new salt and IV."""
        first = base64.b64decode(codec.encrypt({"a": 1}))
        second = base64.b64decode(codec.encrypt({"a": 1}))

        assert first[:32] != second[:32]
        assert first[32:44] != second[32:44]
        assert first != second

    def test_dataclass_payload(self, codec) -> None:
        """Dataclass payloads are encrypted as JSON objects."""
        encrypted = codec.encrypt(LoginRequest(username="ana", password="pw"))

        assert codec.decrypt(encrypted) == {"username": "ana", "password": "pw"}
        assert codec.decrypt(encrypted, model=LoginRequest) == LoginRequest("ana", "pw")

    def test_unserializable_payload(self, codec) -> None:
        """Payloads that are not JSON fail before any crypto."""
        with pytest.raises(FormatError):
            codec.encrypt({"raw": b"bytes"})


class TestRoundTrip:
    """Test encrypt then decrypt."""

    @pytest.mark.parametrize("payload_key,payload", TEST_PAYLOADS.items())
    @pytest.mark.parametrize("kdf", list(KdfStrategy))
    def test_round_trip(self, payload_key: str, payload, kdf: KdfStrategy) -> None:
        """Each payload survives a round trip under both KDFs."""
        codec = PayloadEnvelopeCodec(EncryptionPolicy(enabled=True, secret=PAYLOAD_SECRET, kdf=kdf))

        assert codec.decrypt(codec.encrypt(payload)) == payload, f"Mismatch for {payload_key}"

    def test_timestamp_wrapper(self, policy) -> None:
        """wrap_timestamp seals {"data", "timestamp"} and unwraps it again."""
        wrapping = PayloadEnvelopeCodec(policy, wrap_timestamp=True)
        plain = PayloadEnvelopeCodec(policy)

        encrypted = wrapping.encrypt({"username": "ana"})

        sealed = plain.decrypt(encrypted)
        assert sealed["data"] == {"username": "ana"}
        assert isinstance(sealed["timestamp"], int)
        assert sealed["timestamp"] > 1_600_000_000_000

        assert wrapping.decrypt(encrypted) == {"username": "ana"}

    def test_pbkdf2_interop(self) -> None:
        """An envelope built independently with PBKDF2 decrypts."""
        salt = bytes([7] * 32)
        iv = bytes([9] * 12)
        key = hashlib.pbkdf2_hmac("sha256", PAYLOAD_SECRET.encode("utf-8"), salt, 100_000, 32)
        sealed = AESGCM(key).encrypt(iv, b'{"valid":true}', None)
        encrypted = base64.b64encode(salt + iv + sealed).decode("ascii")

        policy = EncryptionPolicy(enabled=True, secret=PAYLOAD_SECRET, kdf=KdfStrategy.PBKDF2_SHA256)
        assert PayloadEnvelopeCodec(policy).decrypt(encrypted) == {"valid": True}


class TestDecryptErrors:
    """Test rejection of bad envelopes."""

    def test_any_bit_flip(self, codec) -> None:
        """Flipping any single bit makes decryption fail authentication."""
        encrypted = codec.encrypt({"balance": 100})
        length = len(base64.b64decode(encrypted))

        for index in range(length):
            tampered = flip_bit(encrypted, index, index % 8)
            with pytest.raises(IntegrityError):
                codec.decrypt(tampered)

    def test_tag_region(self, codec) -> None:
        """Every bit of the tag is checked."""
        encrypted = codec.encrypt({"balance": 100})
        length = len(base64.b64decode(encrypted))

        for index in range(length - 16, length):
            for bit in range(8):
                with pytest.raises(IntegrityError):
                    codec.decrypt(flip_bit(encrypted, index, bit))

    def test_wrong_secret(self, codec) -> None:
        """Another secret fails authentication."""
        encrypted = codec.encrypt({"a": 1})
        other = PayloadEnvelopeCodec(EncryptionPolicy(enabled=True, secret="another-secret"))

        with pytest.raises(IntegrityError):
            other.decrypt(encrypted)

    def test_kdf_mismatch(self, codec) -> None:
        """Mixing KDF strategies between sides fails authentication."""
        encrypted = codec.encrypt({"a": 1})
        pbkdf2 = PayloadEnvelopeCodec(
            EncryptionPolicy(enabled=True, secret=PAYLOAD_SECRET, kdf=KdfStrategy.PBKDF2_SHA256)
        )

        with pytest.raises(IntegrityError):
            pbkdf2.decrypt(encrypted)

    def test_truncated(self, codec) -> None:
        """Envelopes shorter than salt + iv + tag are format errors."""
        with pytest.raises(FormatError):
            codec.decrypt(base64.b64encode(bytes(59)).decode("ascii"))

    def test_not_base64(self, codec) -> None:
        """Non-Base64 envelopes are format errors."""
        with pytest.raises(FormatError):
            codec.decrypt("%%%")


class TestEncryptIfEnabled:
    """Test policy gating of request bodies."""

    @pytest.mark.parametrize("payload_key,payload", TEST_PAYLOADS.items())
    def test_disabled_is_plain_json(self, payload_key: str, payload) -> None:
        """With the policy off the body is the payload's own JSON."""
        codec = PayloadEnvelopeCodec(EncryptionPolicy.disabled())
        body = codec.encrypt_if_enabled(payload)

        assert body == JsonSerializer().dumps(payload)
        assert json.loads(body) == payload

    def test_disabled_module_function(self) -> None:
        """Module function honours the policy."""
        body = encrypt_if_enabled({"a": 1}, EncryptionPolicy.disabled())
        assert body == '{"a":1}'

    def test_enabled_wraps_envelope(self, codec) -> None:
        """With the policy on the body is a one-field envelope."""
        body = codec.encrypt_if_enabled({"a": 1})
        parsed = json.loads(body)

        assert list(parsed) == ["encryptedPayload"]
        assert codec.decrypt(parsed["encryptedPayload"]) == {"a": 1}

    def test_force(self) -> None:
        """force encrypts even when the policy is off."""
        codec = PayloadEnvelopeCodec(EncryptionPolicy(enabled=False, secret=PAYLOAD_SECRET))
        body = codec.encrypt_if_enabled({"a": 1}, force=True)

        assert codec.decrypt(json.loads(body)["encryptedPayload"]) == {"a": 1}

    def test_force_without_secret(self) -> None:
        """Forcing encryption without a secret is a configuration error."""
        codec = PayloadEnvelopeCodec(EncryptionPolicy.disabled())

        with pytest.raises(ConfigurationError):
            codec.encrypt_if_enabled({"a": 1}, force=True)


class TestDecryptIfNeeded:
    """Test the response fallback chain."""

    def test_envelope(self, codec) -> None:
        """Envelope responses are decrypted."""
        body = codec.encrypt_if_enabled({"valid": True, "extra": "ignored"})

        assert codec.decrypt_if_needed(body) == {"valid": True, "extra": "ignored"}
        assert codec.decrypt_if_needed(body.encode("utf-8"), model=ValidateResponse) == ValidateResponse(valid=True)

    def test_server_error(self, codec) -> None:
        """The generic error shape raises ServerError."""
        body = '{"resultado":"error","mensaje":"Usuario no encontrado","detalle":"id=7"}'

        with pytest.raises(ServerError) as exc_info:
            codec.decrypt_if_needed(body)
        assert exc_info.value.mensaje == "Usuario no encontrado"
        assert exc_info.value.detalle == "id=7"

    def test_server_error_without_detail(self, codec) -> None:
        """detalle is optional."""
        with pytest.raises(ServerError, match="Token expirado") as exc_info:
            codec.decrypt_if_needed('{"resultado": "error", "mensaje": "Token expirado"}')
        assert exc_info.value.detalle is None

    def test_plain_fallback(self, codec) -> None:
        """Unencrypted responses are parsed as plain JSON."""
        body = '{"resultado": "ok", "usuarios": [{"id": 1}], "total": 1}'

        assert codec.decrypt_if_needed(body)["total"] == 1
        assert codec.decrypt_if_needed(body, model=UsersListResponse) == UsersListResponse(
            resultado="ok", usuarios=[{"id": 1}]
        )

    def test_tampered_envelope_does_not_fall_back(self, codec) -> None:
        """A matched envelope that fails authentication raises."""
        encrypted = json.loads(codec.encrypt_if_enabled({"a": 1}))["encryptedPayload"]
        body = json.dumps({"encryptedPayload": flip_bit(encrypted, 50, 3)})

        with pytest.raises(IntegrityError):
            codec.decrypt_if_needed(body)

    def test_not_json(self, codec) -> None:
        """Bodies that are not JSON are format errors."""
        with pytest.raises(FormatError):
            codec.decrypt_if_needed("<html>502 Bad Gateway</html>")

    def test_missing_required_field(self, codec) -> None:
        """A body that lacks a required model field is a format error."""
        with pytest.raises(FormatError):
            codec.decrypt_if_needed('{"resultado": "ok"}', model=ValidateResponse)

    def test_disabled_parses_directly(self) -> None:
        """With the policy off nothing is decrypted or interpreted."""
        policy = EncryptionPolicy.disabled()

        body = '{"encryptedPayload": "QUJD"}'
        assert decrypt_if_needed(body, policy) == {"encryptedPayload": "QUJD"}

        error = '{"resultado": "error", "mensaje": "x"}'
        assert decrypt_if_needed(error, policy) == {"resultado": "error", "mensaje": "x"}

    def test_module_function(self, policy) -> None:
        """Module function decrypts with a policy-bound codec."""
        body = encrypt_if_enabled({"a": [1, 2]}, policy)
        assert decrypt_if_needed(body, policy) == {"a": [1, 2]}


class TestLogging:
    """Test what the codec logs."""

    def test_server_error_is_logged(self, codec, caplog) -> None:
        """Server error responses are logged at WARNING."""
        with caplog.at_level(logging.WARNING, logger="payloadcrypt"):
            with pytest.raises(ServerError):
                codec.decrypt_if_needed('{"resultado": "error", "mensaje": "boom"}')

        assert "boom" in caplog.text

    def test_secrets_never_logged(self, codec, caplog) -> None:
        """Secrets and plaintext never reach the log."""
        with caplog.at_level(logging.DEBUG, logger="payloadcrypt"):
            body = codec.encrypt_if_enabled({"password": "hunter2"})
            codec.decrypt_if_needed(body)
            codec.decrypt_if_needed('{"plain": true}')

        assert PAYLOAD_SECRET not in caplog.text
        assert "hunter2" not in caplog.text
