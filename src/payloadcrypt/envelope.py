"""Envelope encoding and decoding for encrypted request/response bodies."""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

from .encoding import b64decode, b64encode
from .types import (
    ENCRYPTED_PAYLOAD_FIELD,
    ENVELOPE_MIN_SIZE,
    IV_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    FormatError,
)


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Encrypted payload envelope."""
    salt: bytes  # 32 bytes
    iv: bytes  # 12 bytes
    ciphertext: bytes  # variable
    tag: bytes  # 16 bytes


def encode_envelope(envelope: EncryptedEnvelope) -> bytes:
    """
    Encode an envelope to bytes.

    Format (44-byte header + ciphertext + 16-byte tag):
        [0-31]    salt (32 bytes)
        [32-43]   iv (12 bytes)
        [44..-16] ciphertext (variable)
        [-16..]   tag (16 bytes)

    Args:
        envelope: EncryptedEnvelope to encode

    Returns:
        Encoded bytes
    """
    return envelope.salt + envelope.iv + envelope.ciphertext + envelope.tag


def decode_envelope(data: bytes) -> EncryptedEnvelope:
    """
    Decode bytes into an envelope.

    Args:
        data: Encoded envelope bytes

    Returns:
        Decoded EncryptedEnvelope

    Raises:
        FormatError: If data is too short to hold salt, iv and tag
    """
    if len(data) < ENVELOPE_MIN_SIZE:
        raise FormatError(f"Envelope too short: {len(data)} bytes (minimum {ENVELOPE_MIN_SIZE})")

    offset = 0
    salt = data[offset : offset + SALT_SIZE]
    offset += SALT_SIZE

    iv = data[offset : offset + IV_SIZE]
    offset += IV_SIZE

    return EncryptedEnvelope(
        salt=salt,
        iv=iv,
        ciphertext=data[offset:-TAG_SIZE],
        tag=data[-TAG_SIZE:],
    )


def envelope_to_b64(envelope: EncryptedEnvelope) -> str:
    """Encode an envelope as the standard Base64 string sent on the wire."""
    return b64encode(encode_envelope(envelope))


def envelope_from_b64(text: str) -> EncryptedEnvelope:
    """Decode the standard Base64 wire string into an envelope."""
    return decode_envelope(b64decode(text))


def wrap_encrypted_payload(encrypted_payload: str) -> str:
    """Wrap a Base64 envelope as the JSON body {"encryptedPayload": ...}."""
    return json.dumps({ENCRYPTED_PAYLOAD_FIELD: encrypted_payload}, separators=(",", ":"))


def extract_encrypted_payload(body: Any) -> Optional[str]:
    """
    Pull the Base64 envelope out of a parsed JSON body.

    Args:
        body: Parsed JSON value

    Returns:
        The encryptedPayload string, or None if the body is not an envelope
    """
    if not isinstance(body, dict):
        return None

    value = body.get(ENCRYPTED_PAYLOAD_FIELD)
    if not isinstance(value, str):
        return None

    return value


def is_encrypted_body(body: Union[str, bytes]) -> bool:
    """
    Check if a raw JSON body looks like an encrypted envelope.

    Args:
        body: Raw response body

    Returns:
        True if the body is a JSON object with a string encryptedPayload field
    """
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return False

    return extract_encrypted_payload(parsed) is not None
