"""Fernet token decryption for build-time config secrets.

Secrets ship inside the client as ``ENC(<token>)`` where the token is a
standard Fernet token encoded with Base64URL:

    [0]       version (0x80)
    [1-8]     timestamp (8 bytes, big-endian seconds)
    [9-24]    iv (16 bytes)
    [25..-32] ciphertext (AES-128-CBC, PKCS#7)
    [-32..]   hmac (HMAC-SHA256 over everything before it)

Tokens are only consumed here; they are minted by the provisioning tooling.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .backend import CryptoBackend, default_backend
from .encoding import b64url_decode
from .types import (
    FERNET_HEADER_SIZE,
    FERNET_HMAC_SIZE,
    FERNET_IV_SIZE,
    FERNET_MASTER_KEY_SIZE,
    FERNET_MIN_TOKEN_SIZE,
    FERNET_TIMESTAMP_SIZE,
    FERNET_VERSION,
    WRAPPED_PREFIX,
    WRAPPED_SUFFIX,
    DecryptError,
    FormatError,
    IntegrityError,
    InvalidKeyError,
    UnsupportedVersionError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FernetToken:
    """Decoded Fernet token."""
    version: int
    timestamp: int  # seconds since the epoch, not enforced
    iv: bytes  # 16 bytes
    ciphertext: bytes  # variable, whole AES blocks
    hmac: bytes  # 32 bytes
    signed_data: bytes  # version + timestamp + iv + ciphertext

    @property
    def issued_at(self) -> datetime:
        """Token creation time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True, repr=False)
class FernetKeys:
    """Signing/encryption key pair split from a 32-byte master key."""
    signing_key: bytes  # bytes 0-15
    encryption_key: bytes  # bytes 16-31

    def __repr__(self) -> str:
        return "FernetKeys(<redacted>)"

    @classmethod
    def from_master_key(cls, master_key: Union[str, bytes]) -> "FernetKeys":
        """
        Split a master key into its signing and encryption halves.

        Args:
            master_key: Base64URL text, or the raw 32 key bytes

        Returns:
            FernetKeys

        Raises:
            InvalidKeyError: If the key does not decode to exactly 32 bytes
        """
        if isinstance(master_key, str):
            try:
                key_bytes = b64url_decode(master_key)
            except FormatError as e:
                raise InvalidKeyError(f"Master key is not valid Base64URL: {e}") from e
        else:
            key_bytes = bytes(master_key)

        if len(key_bytes) != FERNET_MASTER_KEY_SIZE:
            raise InvalidKeyError(
                f"Master key must be {FERNET_MASTER_KEY_SIZE} bytes, got {len(key_bytes)}"
            )

        half = FERNET_MASTER_KEY_SIZE // 2
        return cls(signing_key=key_bytes[:half], encryption_key=key_bytes[half:])


def decode_fernet_token(token: Union[str, bytes]) -> FernetToken:
    """
    Decode a Base64URL Fernet token into its fields.

    Only the structure is checked here; the HMAC is not verified.

    Args:
        token: Base64URL token without the ENC() wrapper

    Returns:
        FernetToken

    Raises:
        FormatError: If the token is not Base64URL or shorter than 57 bytes
        UnsupportedVersionError: If the version byte is not 0x80
    """
    data = b64url_decode(token)

    if len(data) < FERNET_MIN_TOKEN_SIZE:
        raise FormatError(
            f"Token too short: {len(data)} bytes (minimum {FERNET_MIN_TOKEN_SIZE})"
        )

    version = data[0]
    if version != FERNET_VERSION:
        raise UnsupportedVersionError(version)

    offset = 1
    timestamp = int.from_bytes(data[offset : offset + FERNET_TIMESTAMP_SIZE], byteorder="big")
    offset += FERNET_TIMESTAMP_SIZE

    iv = data[offset : offset + FERNET_IV_SIZE]

    return FernetToken(
        version=version,
        timestamp=timestamp,
        iv=iv,
        ciphertext=data[FERNET_HEADER_SIZE:-FERNET_HMAC_SIZE],
        hmac=data[-FERNET_HMAC_SIZE:],
        signed_data=data[:-FERNET_HMAC_SIZE],
    )


def is_wrapped(value: str) -> bool:
    """Check whether a config value has the ENC(...) wrapper."""
    return value.startswith(WRAPPED_PREFIX) and value.endswith(WRAPPED_SUFFIX)


class ConfigSecretCodec:
    """
    Decrypts config secrets wrapped as ENC(<fernet token>).

    Decryption failures always propagate. A wrapped value that cannot be
    decrypted means the build was provisioned with the wrong key, and handing
    the raw wrapped string to the caller would only hide that.

    Example usage:
        ```python
        codec = ConfigSecretCodec("vlKu87oIFmDRvkvPvNlAL7qne6MQzxYvIjWm646hR1Y=")
        api_key = codec.unwrap_if_needed("ENC(gAAAAAB...)")
        ```
    """

    def __init__(
        self,
        master_key: Union[str, bytes],
        backend: Optional[CryptoBackend] = None,
    ) -> None:
        """
        Create a codec for one master key.

        Args:
            master_key: Base64URL master key, or its raw 32 bytes.
            backend: Primitive backend (default: cryptography).

        Raises:
            InvalidKeyError: If the key is not 32 bytes.
        """
        self._keys = FernetKeys.from_master_key(master_key)
        self._backend = backend or default_backend()

    def is_wrapped(self, value: str) -> bool:
        """Check whether a config value has the ENC(...) wrapper."""
        return is_wrapped(value)

    def unwrap_if_needed(self, value: str) -> str:
        """Return plain values unchanged and decrypt wrapped ones."""
        if not is_wrapped(value):
            return value

        token = value[len(WRAPPED_PREFIX) : -len(WRAPPED_SUFFIX)]
        return self.decrypt_token(token)

    def decrypt_token(self, token: Union[str, bytes]) -> str:
        """
        Verify and decrypt a Fernet token.

        Args:
            token: Base64URL token without the ENC() wrapper

        Returns:
            The decrypted UTF-8 text

        Raises:
            FormatError: Bad Base64URL or token shorter than 57 bytes
            UnsupportedVersionError: Version byte is not 0x80
            IntegrityError: HMAC mismatch
            DecryptError: AES-CBC or UTF-8 decoding failed
        """
        parsed = decode_fernet_token(token)

        # Verify before decrypting
        if not self._backend.verify_hmac_sha256(
            self._keys.signing_key, parsed.signed_data, parsed.hmac
        ):
            raise IntegrityError("Invalid HMAC: token corrupt or manipulated")

        plaintext = self._backend.aes_cbc_decrypt(
            self._keys.encryption_key, parsed.iv, parsed.ciphertext
        )

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptError("Decrypted secret is not valid UTF-8") from e

        logger.debug("Decrypted config secret (timestamp %d)", parsed.timestamp)
        return text


def decrypt_fernet_token(token: Union[str, bytes], master_key: Union[str, bytes]) -> str:
    """Verify and decrypt a Fernet token with the given master key."""
    return ConfigSecretCodec(master_key).decrypt_token(token)


def unwrap_if_needed(value: str, master_key: Union[str, bytes]) -> str:
    """Decrypt an ENC(...) value, or return a plain value unchanged."""
    if not is_wrapped(value):
        return value
    return ConfigSecretCodec(master_key).unwrap_if_needed(value)
