"""Base64 and Base64URL codecs.

Standard Base64 carries payload envelopes; Base64URL carries Fernet keys and
tokens. Both decoders validate the alphabet strictly and raise FormatError
instead of silently discarding characters.
"""

import base64
import binascii
import re
from typing import Union

from .types import FormatError


_URLSAFE_ALPHABET = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def _as_text(data: Union[str, bytes]) -> str:
    if isinstance(data, (bytes, bytearray)):
        try:
            return bytes(data).decode("ascii")
        except UnicodeDecodeError as e:
            raise FormatError("Base64 input is not ASCII") from e
    return data


def b64encode(data: bytes) -> str:
    """Encode bytes as padded standard Base64."""
    return base64.b64encode(data).decode("ascii")


def b64decode(data: Union[str, bytes]) -> bytes:
    """
    Decode padded standard Base64.

    Args:
        data: Base64 text

    Returns:
        Decoded bytes

    Raises:
        FormatError: On characters outside the alphabet or bad padding
    """
    text = _as_text(data)
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid Base64: {e}") from e


def b64url_encode(data: bytes) -> str:
    """Encode bytes as URL-safe Base64 with the padding stripped."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: Union[str, bytes]) -> bytes:
    """
    Decode URL-safe Base64, padded or unpadded.

    Args:
        data: Base64URL text

    Returns:
        Decoded bytes

    Raises:
        FormatError: On characters outside the alphabet or corrupt padding
    """
    text = _as_text(data)

    if not _URLSAFE_ALPHABET.fullmatch(text):
        raise FormatError("Invalid Base64URL: unexpected character")

    stripped = text.rstrip("=")
    if len(stripped) != len(text) and len(text) % 4 != 0:
        raise FormatError("Invalid Base64URL: corrupt padding")

    # A single leftover character can never encode a whole byte
    if len(stripped) % 4 == 1:
        raise FormatError("Invalid Base64URL: truncated input")

    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise FormatError(f"Invalid Base64URL: {e}") from e
