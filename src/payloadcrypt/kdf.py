"""Per-envelope key derivation.

Each payload envelope carries its own 32-byte salt. The symmetric key is
derived from the master secret and that salt with one of two strategies:

    - HMAC_SHA256:   key = HMAC-SHA256(key=secret, msg=salt)
    - PBKDF2_SHA256: key = PBKDF2-HMAC-SHA256(secret, salt, 100000, 32)

Both sides of a connection must use the same strategy for every message.
"""

from enum import Enum
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .backend import CryptoBackend, default_backend
from .types import KEY_SIZE, PBKDF2_ITERATIONS, SALT_SIZE, KeyDerivationError


class KdfStrategy(Enum):
    """Key derivation strategy used for payload envelopes."""
    HMAC_SHA256 = "hmac-sha256"
    PBKDF2_SHA256 = "pbkdf2-sha256"


def _secret_bytes(secret: Union[str, bytes]) -> bytes:
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    if not secret:
        raise KeyDerivationError("Secret must not be empty")
    return bytes(secret)


def _check_salt(salt: bytes) -> None:
    if len(salt) != SALT_SIZE:
        raise KeyDerivationError(f"Salt must be {SALT_SIZE} bytes, got {len(salt)}")


def derive_key_hmac(
    secret: Union[str, bytes],
    salt: bytes,
    backend: Optional[CryptoBackend] = None,
) -> bytes:
    """
    Derive a 32-byte key as HMAC-SHA256 keyed by the secret over the salt.

    Args:
        secret: Master secret (str is UTF-8 encoded)
        salt: 32-byte per-envelope salt
        backend: Primitive backend (default: cryptography)

    Returns:
        32-byte derived key
    """
    _check_salt(salt)
    backend = backend or default_backend()
    return backend.hmac_sha256(_secret_bytes(secret), salt)


def derive_key_pbkdf2(
    secret: Union[str, bytes],
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive a 32-byte key with PBKDF2-HMAC-SHA256.

    Args:
        secret: Master secret (str is UTF-8 encoded)
        salt: 32-byte per-envelope salt
        iterations: PBKDF2 iteration count

    Returns:
        32-byte derived key
    """
    _check_salt(salt)
    if iterations < 1:
        raise KeyDerivationError(f"Iterations must be positive, got {iterations}")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(_secret_bytes(secret))


def derive_key(
    secret: Union[str, bytes],
    salt: bytes,
    strategy: KdfStrategy = KdfStrategy.HMAC_SHA256,
    backend: Optional[CryptoBackend] = None,
) -> bytes:
    """Derive the envelope key using the given strategy."""
    if strategy is KdfStrategy.HMAC_SHA256:
        return derive_key_hmac(secret, salt, backend)
    if strategy is KdfStrategy.PBKDF2_SHA256:
        return derive_key_pbkdf2(secret, salt)
    raise KeyDerivationError(f"Unknown KDF strategy: {strategy!r}")
