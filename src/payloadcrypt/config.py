"""
Static crypto configuration.

Holds the values a client is built with: the Fernet master key, the
(usually wrapped) payload secret and API key, and the encryption switch.
Everything else in the package is wired from here.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .backend import CryptoBackend
from .fernet import ConfigSecretCodec
from .kdf import KdfStrategy
from .payload import PayloadEnvelopeCodec
from .policy import EncryptionPolicy
from .types import ConfigurationError


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {value!r}")


def _as_kdf(value: Any) -> KdfStrategy:
    if isinstance(value, KdfStrategy):
        return value
    try:
        return KdfStrategy(str(value).strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown KDF strategy: {value!r}") from e


@dataclass(frozen=True)
class CryptoConfig:
    """Configuration for the payload crypto layer."""

    fernet_key: str = field(repr=False)
    """Base64URL Fernet master key used to unwrap ENC() secrets."""

    payload_secret: str = field(default="", repr=False)
    """Payload master secret, plain or ENC()-wrapped."""

    api_key: Optional[str] = field(default=None, repr=False)
    """API key, plain or ENC()-wrapped (optional)."""

    encryption_enabled: bool = False
    """Whether request/response bodies are encrypted."""

    kdf: KdfStrategy = KdfStrategy.HMAC_SHA256
    """Key derivation strategy agreed with the backend."""

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> "CryptoConfig":
        """
        Build a config from plain settings, e.g. a parsed settings file.

        Keys are matched case-insensitively and unknown keys are ignored.

        Args:
            settings: Mapping with fernet_key, payload_secret, api_key,
                encryption_enabled and kdf entries.

        Returns:
            CryptoConfig

        Raises:
            ConfigurationError: If fernet_key is missing or a value is invalid.
        """
        values = {str(k).lower(): v for k, v in settings.items()}

        if not values.get("fernet_key"):
            raise ConfigurationError("fernet_key is required")

        return cls(
            fernet_key=str(values["fernet_key"]),
            payload_secret=str(values.get("payload_secret") or ""),
            api_key=str(values["api_key"]) if values.get("api_key") is not None else None,
            encryption_enabled=_as_bool("encryption_enabled", values.get("encryption_enabled", False)),
            kdf=_as_kdf(values.get("kdf", KdfStrategy.HMAC_SHA256)),
        )

    def secret_codec(self, backend: Optional[CryptoBackend] = None) -> ConfigSecretCodec:
        """Codec for this config's ENC() values."""
        return ConfigSecretCodec(self.fernet_key, backend)

    def resolve_api_key(self, backend: Optional[CryptoBackend] = None) -> str:
        """Return the API key, decrypting it if it is wrapped."""
        if not self.api_key:
            raise ConfigurationError("No API key is configured")
        return self.secret_codec(backend).unwrap_if_needed(self.api_key)

    def resolve_payload_secret(self, backend: Optional[CryptoBackend] = None) -> str:
        """Return the payload secret, decrypting it if it is wrapped."""
        if not self.payload_secret:
            raise ConfigurationError("No payload secret is configured")
        return self.secret_codec(backend).unwrap_if_needed(self.payload_secret)

    def policy(self, backend: Optional[CryptoBackend] = None) -> EncryptionPolicy:
        """Build the encryption policy, unwrapping the payload secret once."""
        if not self.payload_secret:
            return EncryptionPolicy(enabled=self.encryption_enabled, kdf=self.kdf)

        return EncryptionPolicy.from_wrapped_secret(
            enabled=self.encryption_enabled,
            secret=self.payload_secret,
            master_key=self.fernet_key,
            kdf=self.kdf,
            backend=backend,
        )

    def payload_codec(
        self,
        backend: Optional[CryptoBackend] = None,
        wrap_timestamp: bool = False,
    ) -> PayloadEnvelopeCodec:
        """Build a payload codec bound to this config's policy."""
        return PayloadEnvelopeCodec(self.policy(backend), backend=backend, wrap_timestamp=wrap_timestamp)
