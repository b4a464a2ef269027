"""Encryption policy shared by the payload codec."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from .backend import CryptoBackend
from .fernet import ConfigSecretCodec, is_wrapped
from .kdf import KdfStrategy
from .types import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptionPolicy:
    """
    Whether payload encryption is active, and the secret it derives keys from.

    Built once at startup and passed to codecs explicitly. Instances are
    immutable.
    """

    enabled: bool
    """Encrypt request bodies and expect encrypted responses."""

    secret: str = field(default="", repr=False)
    """Plain master secret for per-envelope key derivation."""

    kdf: KdfStrategy = KdfStrategy.HMAC_SHA256
    """Key derivation strategy, shared by encrypt and decrypt."""

    def __post_init__(self) -> None:
        if self.enabled and not self.secret:
            raise ConfigurationError("Encryption is enabled but no secret is configured")
        if is_wrapped(self.secret):
            raise ConfigurationError(
                "Payload secret is still ENC()-wrapped; build the policy with from_wrapped_secret"
            )
        if not isinstance(self.kdf, KdfStrategy):
            raise ConfigurationError(f"Unknown KDF strategy: {self.kdf!r}")

    def is_enabled(self) -> bool:
        return self.enabled

    def current_secret(self) -> str:
        if not self.secret:
            raise ConfigurationError("No payload secret is configured")
        return self.secret

    @classmethod
    def disabled(cls) -> "EncryptionPolicy":
        """Policy that sends and expects plain JSON."""
        return cls(enabled=False)

    @classmethod
    def from_wrapped_secret(
        cls,
        enabled: bool,
        secret: str,
        master_key: Union[str, bytes],
        kdf: KdfStrategy = KdfStrategy.HMAC_SHA256,
        backend: Optional[CryptoBackend] = None,
    ) -> "EncryptionPolicy":
        """
        Build a policy whose secret may ship as ENC(<fernet token>).

        The secret is unwrapped once, here. Decryption errors propagate.

        Args:
            enabled: Whether payload encryption is active.
            secret: Plain or ENC()-wrapped payload secret.
            master_key: Fernet master key for the wrapped secret.
            kdf: Key derivation strategy.
            backend: Primitive backend (default: cryptography).

        Returns:
            EncryptionPolicy holding the plain secret.
        """
        codec = ConfigSecretCodec(master_key, backend)
        if codec.is_wrapped(secret):
            logger.debug("Unwrapping payload secret from config")
        return cls(enabled=enabled, secret=codec.unwrap_if_needed(secret), kdf=kdf)
