"""
Exception classes for file envelope operations.

Every exception carries a user-facing message: operation boundaries log the
error and re-raise it unchanged, so ``str(exc)`` is what the end user sees.
"""

from __future__ import annotations

from enum import Enum


class FileEnvelopeError(Exception):
    """Base exception for all file envelope operations."""

    pass


# =============================================================================
# Envelope Errors
# =============================================================================


class PayloadTooLargeError(FileEnvelopeError):
    """Payload exceeds the configured size bound (checked before any crypto)."""

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(f"File size exceeds {max_size // (1024 * 1024)}MB limit")


class MalformedEnvelopeError(FileEnvelopeError):
    """Envelope is structurally bad. Never retried."""

    pass


class EmptyInputError(MalformedEnvelopeError):
    """No envelope was supplied."""

    def __init__(self, message: str = "No data provided for decryption") -> None:
        super().__init__(message)


class MalformedTransportEncodingError(MalformedEnvelopeError):
    """Envelope is not valid base64url text."""

    def __init__(self, message: str = "Invalid file data format") -> None:
        super().__init__(message)


class InvalidStructureError(MalformedEnvelopeError):
    """Envelope does not decode to a JSON object."""

    def __init__(self, message: str = "Invalid file data structure") -> None:
        super().__init__(message)


class IncompleteEnvelopeError(MalformedEnvelopeError):
    """One of the k/i/d/s fields is missing or has the wrong type."""

    def __init__(self, message: str = "Incomplete file data") -> None:
        super().__init__(message)


class DecryptionFailedError(FileEnvelopeError):
    """Cryptographic transform failed or produced unusable output."""

    def __init__(self, cause: str) -> None:
        self.cause = cause
        super().__init__(f"Failed to decrypt file: {cause}")


class CryptoError(FileEnvelopeError):
    """Cryptographic operation failed on the encryption path."""

    pass


# =============================================================================
# Collaborator Errors
# =============================================================================


class ConfigError(FileEnvelopeError):
    """Configuration error."""

    pass


class StorageError(FileEnvelopeError):
    """Storage backend error (database, in-memory, etc.)."""

    pass


class RecordNotFoundError(StorageError):
    """Record not found in storage."""

    pass


class ConnectionFailedError(StorageError):
    """Backend unreachable or timed out. The only retried error."""

    pass


class ApiKeyError(FileEnvelopeError):
    """API key is invalid, expired or does not belong to the caller."""

    pass


class AuthErrorKind(Enum):
    """Tag attached to every AuthError. Match on this, not on the message."""

    NOT_AUTHENTICATED = "not_authenticated"
    SESSION_EXPIRED = "session_expired"
    ALREADY_REGISTERED = "already_registered"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_ADMIN = "not_admin"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class AuthError(FileEnvelopeError):
    """Authentication collaborator error."""

    def __init__(self, kind: AuthErrorKind, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or f"Authentication error: {kind}")


class PermissionDeniedError(AuthError):
    """Caller is authenticated but not allowed to perform the operation."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(AuthErrorKind.NOT_ADMIN, message)
