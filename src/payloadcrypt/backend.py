"""Cryptographic primitive interface and its default implementation.

The codecs only talk to a CryptoBackend. Any platform that can provide
HMAC-SHA256, AES-CBC decryption, AES-GCM and a secure random source can plug
in its own implementation.
"""

import os
from abc import ABC, abstractmethod
from typing import Tuple

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .types import (
    AES_BLOCK_SIZE,
    TAG_SIZE,
    DecryptError,
    EncryptionError,
    IntegrityError,
)


class CryptoBackend(ABC):
    """Interface for the primitives both codecs are built on."""

    @abstractmethod
    def hmac_sha256(self, key: bytes, data: bytes) -> bytes:
        """Compute a 32-byte HMAC-SHA256."""
        ...

    @abstractmethod
    def verify_hmac_sha256(self, key: bytes, data: bytes, expected: bytes) -> bool:
        """Check an HMAC-SHA256 in constant time."""
        ...

    @abstractmethod
    def aes_cbc_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
        """Decrypt AES-CBC and strip PKCS#7 padding."""
        ...

    @abstractmethod
    def aes_gcm_encrypt(self, key: bytes, iv: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
        """Encrypt with AES-GCM, returning (ciphertext, tag)."""
        ...

    @abstractmethod
    def aes_gcm_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        """Decrypt and authenticate AES-GCM."""
        ...

    @abstractmethod
    def random_bytes(self, length: int) -> bytes:
        """Return cryptographically secure random bytes."""
        ...


class CryptographyBackend(CryptoBackend):
    """CryptoBackend implemented with the `cryptography` package."""

    def hmac_sha256(self, key: bytes, data: bytes) -> bytes:
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        return h.finalize()

    def verify_hmac_sha256(self, key: bytes, data: bytes, expected: bytes) -> bool:
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(data)
        try:
            h.verify(expected)
            return True
        except InvalidSignature:
            return False

    def aes_cbc_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
        """
        Decrypt AES-CBC ciphertext and remove PKCS#7 padding.

        Args:
            key: 16, 24 or 32-byte AES key
            iv: 16-byte IV
            ciphertext: Whole blocks of ciphertext

        Returns:
            Unpadded plaintext

        Raises:
            DecryptError: On partial blocks, bad keys or bad padding
        """
        if not ciphertext or len(ciphertext) % AES_BLOCK_SIZE != 0:
            raise DecryptError(
                f"Ciphertext length {len(ciphertext)} is not a positive multiple of {AES_BLOCK_SIZE}"
            )

        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptError(f"AES-CBC decryption failed: {e}") from e

    def aes_gcm_encrypt(self, key: bytes, iv: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
        try:
            sealed = AESGCM(key).encrypt(iv, plaintext, None)
        except (ValueError, OverflowError) as e:
            raise EncryptionError(f"AES-GCM encryption failed: {e}") from e

        # AESGCM appends the tag to the ciphertext
        return sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    def aes_gcm_decrypt(self, key: bytes, iv: bytes, ciphertext: bytes, tag: bytes) -> bytes:
        try:
            return AESGCM(key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise IntegrityError("AES-GCM authentication failed") from e
        except ValueError as e:
            raise DecryptError(f"AES-GCM decryption failed: {e}") from e

    def random_bytes(self, length: int) -> bytes:
        return os.urandom(length)


_DEFAULT_BACKEND = CryptographyBackend()


def default_backend() -> CryptoBackend:
    """Return the shared, stateless default backend."""
    return _DEFAULT_BACKEND
