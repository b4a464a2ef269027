"""
payloadcrypt - Payload cryptography for the site API client

Decrypts ENC(<fernet token>) config secrets and encrypts/decrypts JSON
request/response bodies as AES-256-GCM envelopes.
"""

from .encoding import b64encode, b64decode, b64url_encode, b64url_decode
from .backend import CryptoBackend, CryptographyBackend, default_backend
from .kdf import KdfStrategy, derive_key, derive_key_hmac, derive_key_pbkdf2
from .fernet import (
    FernetToken,
    FernetKeys,
    ConfigSecretCodec,
    decode_fernet_token,
    decrypt_fernet_token,
    is_wrapped,
    unwrap_if_needed,
)
from .envelope import (
    EncryptedEnvelope,
    encode_envelope,
    decode_envelope,
    is_encrypted_body,
)
from .serialization import JsonSerializer
from .policy import EncryptionPolicy
from .payload import (
    PayloadWrapper,
    PayloadEnvelopeCodec,
    encrypt_if_enabled,
    decrypt_if_needed,
)
from .config import CryptoConfig
from .types import (
    PayloadCryptError,
    FormatError,
    UnsupportedVersionError,
    IntegrityError,
    DecryptError,
    EncryptionError,
    KeyDerivationError,
    InvalidKeyError,
    ConfigurationError,
    ServerError,
    FERNET_VERSION,
    FERNET_MIN_TOKEN_SIZE,
    SALT_SIZE,
    IV_SIZE,
    TAG_SIZE,
    KEY_SIZE,
    PBKDF2_ITERATIONS,
)

__version__ = "0.1.0"

__all__ = [
    # Encoding
    "b64encode",
    "b64decode",
    "b64url_encode",
    "b64url_decode",
    # Backend
    "CryptoBackend",
    "CryptographyBackend",
    "default_backend",
    # KDF
    "KdfStrategy",
    "derive_key",
    "derive_key_hmac",
    "derive_key_pbkdf2",
    # Config secrets
    "FernetToken",
    "FernetKeys",
    "ConfigSecretCodec",
    "decode_fernet_token",
    "decrypt_fernet_token",
    "is_wrapped",
    "unwrap_if_needed",
    # Envelope
    "EncryptedEnvelope",
    "encode_envelope",
    "decode_envelope",
    "is_encrypted_body",
    # Payloads
    "JsonSerializer",
    "EncryptionPolicy",
    "PayloadWrapper",
    "PayloadEnvelopeCodec",
    "encrypt_if_enabled",
    "decrypt_if_needed",
    # Config
    "CryptoConfig",
    # Errors
    "PayloadCryptError",
    "FormatError",
    "UnsupportedVersionError",
    "IntegrityError",
    "DecryptError",
    "EncryptionError",
    "KeyDerivationError",
    "InvalidKeyError",
    "ConfigurationError",
    "ServerError",
    # Constants
    "FERNET_VERSION",
    "FERNET_MIN_TOKEN_SIZE",
    "SALT_SIZE",
    "IV_SIZE",
    "TAG_SIZE",
    "KEY_SIZE",
    "PBKDF2_ITERATIONS",
]
