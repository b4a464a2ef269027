"""Encryption and decryption of request/response payloads."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .backend import CryptoBackend, default_backend
from .envelope import (
    EncryptedEnvelope,
    envelope_from_b64,
    envelope_to_b64,
    extract_encrypted_payload,
    wrap_encrypted_payload,
)
from .kdf import derive_key
from .policy import EncryptionPolicy
from .serialization import JsonSerializer, default_serializer
from .types import (
    DETAIL_FIELD,
    IV_SIZE,
    MESSAGE_FIELD,
    RESULT_ERROR,
    RESULT_FIELD,
    SALT_SIZE,
    FormatError,
    ServerError,
)

logger = logging.getLogger(__name__)

Model = Optional[Union[type, Callable[[Any], Any]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class PayloadWrapper:
    """Payload stamped with its creation time before encryption."""
    data: Any
    timestamp: int = field(default_factory=_now_ms)  # epoch milliseconds


class PayloadEnvelopeCodec:
    """
    Encrypts request bodies and decrypts response bodies for the wire.

    Each encrypt call draws a fresh 32-byte salt and 12-byte IV, derives a
    key from the policy secret and seals the JSON with AES-256-GCM:

        {"encryptedPayload": base64(salt || iv || ciphertext || tag)}

    Example usage:
        ```python
        policy = EncryptionPolicy(enabled=True, secret="server-shared-secret")
        codec = PayloadEnvelopeCodec(policy)

        body = codec.encrypt_if_enabled({"username": "ana", "password": "..."})
        user = codec.decrypt_if_needed(response_text, model=UserResponse)
        ```
    """

    def __init__(
        self,
        policy: EncryptionPolicy,
        backend: Optional[CryptoBackend] = None,
        serializer: Optional[JsonSerializer] = None,
        wrap_timestamp: bool = False,
    ) -> None:
        """
        Create a payload codec.

        Args:
            policy: Encryption switch and secret.
            backend: Primitive backend (default: cryptography).
            serializer: JSON serializer (default: JsonSerializer).
            wrap_timestamp: Encrypt {"data": payload, "timestamp": ms} instead
                of the bare payload, and unwrap it again on decrypt.
        """
        self.policy = policy
        self._backend = backend or default_backend()
        self._serializer = serializer or default_serializer()
        self._wrap_timestamp = wrap_timestamp

    def encrypt(self, payload: Any) -> str:
        """
        Encrypt a payload into a Base64 envelope string.

        Encrypts regardless of whether the policy is enabled.

        Args:
            payload: Any JSON-serializable value or dataclass

        Returns:
            Base64 of salt || iv || ciphertext || tag
        """
        if self._wrap_timestamp:
            payload = PayloadWrapper(payload)

        plaintext = self._serializer.dumps(payload).encode("utf-8")

        salt = self._backend.random_bytes(SALT_SIZE)
        iv = self._backend.random_bytes(IV_SIZE)
        key = derive_key(self.policy.current_secret(), salt, self.policy.kdf, self._backend)

        ciphertext, tag = self._backend.aes_gcm_encrypt(key, iv, plaintext)

        return envelope_to_b64(EncryptedEnvelope(salt=salt, iv=iv, ciphertext=ciphertext, tag=tag))

    def decrypt(self, encrypted_payload: str, model: Model = None) -> Any:
        """
        Decrypt a Base64 envelope string.

        Args:
            encrypted_payload: Base64 of salt || iv || ciphertext || tag
            model: Optional dataclass type or callable for the result

        Returns:
            The decrypted payload

        Raises:
            FormatError: If the envelope or the decrypted JSON is malformed
            IntegrityError: If the GCM tag does not verify
        """
        envelope = envelope_from_b64(encrypted_payload)

        key = derive_key(self.policy.current_secret(), envelope.salt, self.policy.kdf, self._backend)
        plaintext = self._backend.aes_gcm_decrypt(key, envelope.iv, envelope.ciphertext, envelope.tag)

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError("Decrypted payload is not valid UTF-8") from e

        value = self._serializer.loads(text)

        if self._wrap_timestamp and isinstance(value, dict) and {"data", "timestamp"} <= value.keys():
            value = value["data"]

        return self._serializer.convert(value, model)

    def encrypt_if_enabled(self, payload: Any, force: bool = False) -> str:
        """
        Build the request body for a payload.

        Args:
            payload: Request payload
            force: Encrypt even when the policy is disabled

        Returns:
            The plain JSON of the payload, or the {"encryptedPayload": ...} body
        """
        if not (self.policy.is_enabled() or force):
            return self._serializer.dumps(payload)

        return wrap_encrypted_payload(self.encrypt(payload))

    def decrypt_if_needed(self, response: Union[str, bytes], model: Model = None) -> Any:
        """
        Read a response body.

        With the policy enabled, the body is tried as an encrypted envelope
        first, then as the generic error shape, then as plain JSON, because
        the backend does not encrypt errors or some endpoints.

        Args:
            response: Raw response body
            model: Optional dataclass type or callable for the result

        Returns:
            The decoded payload

        Raises:
            ServerError: If the backend answered {"resultado": "error", ...}
            FormatError: If the body is not JSON or the envelope is malformed
            IntegrityError: If an envelope fails authentication
        """
        if not self.policy.is_enabled():
            return self._serializer.loads(response, model)

        body = self._serializer.loads(response)

        encrypted = extract_encrypted_payload(body)
        if encrypted is not None:
            logger.debug("Decrypting envelope response (%d chars)", len(encrypted))
            return self.decrypt(encrypted, model)

        if isinstance(body, dict) and body.get(RESULT_FIELD) == RESULT_ERROR:
            mensaje = body.get(MESSAGE_FIELD)
            detalle = body.get(DETAIL_FIELD)
            logger.warning("Server returned an error response: %s", mensaje)
            raise ServerError(
                str(mensaje) if mensaje is not None else "Unknown server error",
                str(detalle) if detalle is not None else None,
            )

        logger.debug("Response is not encrypted, parsing as plain JSON")
        return self._serializer.convert(body, model)


def encrypt_if_enabled(payload: Any, policy: EncryptionPolicy, force: bool = False) -> str:
    """Build the request body for a payload under the given policy."""
    return PayloadEnvelopeCodec(policy).encrypt_if_enabled(payload, force=force)


def decrypt_if_needed(
    response: Union[str, bytes],
    policy: EncryptionPolicy,
    model: Model = None,
) -> Any:
    """Read a response body under the given policy."""
    return PayloadEnvelopeCodec(policy).decrypt_if_needed(response, model)
