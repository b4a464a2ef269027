"""Constants and exception types for payloadcrypt."""


# Fernet token constants
FERNET_VERSION = 0x80
FERNET_TIMESTAMP_SIZE = 8
FERNET_IV_SIZE = 16
FERNET_HMAC_SIZE = 32
FERNET_HEADER_SIZE = 1 + FERNET_TIMESTAMP_SIZE + FERNET_IV_SIZE  # 25 bytes
FERNET_MIN_TOKEN_SIZE = FERNET_HEADER_SIZE + FERNET_HMAC_SIZE  # 57 bytes
FERNET_MASTER_KEY_SIZE = 32
AES_BLOCK_SIZE = 16

# Config secret wrapper
WRAPPED_PREFIX = "ENC("
WRAPPED_SUFFIX = ")"

# Payload envelope constants
SALT_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
ENVELOPE_MIN_SIZE = SALT_SIZE + IV_SIZE + TAG_SIZE  # 60 bytes

# Key derivation constants
PBKDF2_ITERATIONS = 100_000

# JSON field names
ENCRYPTED_PAYLOAD_FIELD = "encryptedPayload"
RESULT_FIELD = "resultado"
MESSAGE_FIELD = "mensaje"
DETAIL_FIELD = "detalle"
RESULT_ERROR = "error"


# Exception types
class PayloadCryptError(Exception):
    """Base exception for payloadcrypt errors."""
    pass


class FormatError(PayloadCryptError):
    """Malformed Base64, envelope or token structure."""
    pass


class UnsupportedVersionError(PayloadCryptError):
    """Fernet version byte is not 0x80."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(f"Unsupported Fernet version: 0x{version:02x}")


class IntegrityError(PayloadCryptError):
    """HMAC or GCM tag mismatch (tampering or wrong key)."""
    pass


class DecryptError(PayloadCryptError):
    """The cipher operation itself failed."""
    pass


class EncryptionError(PayloadCryptError):
    """Encryption failed."""
    pass


class KeyDerivationError(PayloadCryptError):
    """Key derivation failed."""
    pass


class InvalidKeyError(PayloadCryptError, ValueError):
    """Invalid master key format or length."""
    pass


class ConfigurationError(PayloadCryptError):
    """Inconsistent crypto configuration."""
    pass


class ServerError(PayloadCryptError):
    """The backend answered with an explicit error payload."""

    def __init__(self, mensaje: str, detalle: str = None) -> None:
        self.mensaje = mensaje
        self.detalle = detalle
        message = mensaje if detalle is None else f"{mensaje} ({detalle})"
        super().__init__(message)
