"""
File Envelope Library

Client-side encryption for stored files: each upload is sealed with a fresh
AES-256 key and IV into a self-contained text envelope, and opened again on
download.

Quick Start
-----------
```python
import asyncio
from uuid import uuid4
from file_envelope import (
    FileService,
    InMemoryFileStorage,
    InMemoryProfileStore,
    MemorySink,
    ensure_profile,
)

async def main():
    profiles = InMemoryProfileStore()
    service = FileService(InMemoryFileStorage(), profiles)

    user_id = uuid4()
    await ensure_profile(profiles, user_id, "user@example.com")

    record = await service.upload(user_id, "notes.txt", b"Sensitive data", "text/plain")

    sink = MemorySink()
    delivered = await service.download(user_id, record.id, sink)
    assert delivered.data == b"Sensitive data"

asyncio.run(main())
```

Envelope format
---------------
    base64url_nopad(JSON({"k": hex(key32), "i": hex(iv16),
                          "d": base64(ciphertext), "s": plaintext_length}))

The key travels inside the envelope: it protects content against passive
inspection of the storage layer, not against whoever holds the envelope.

Modules
-------
- `crypto`: AES-256-CBC primitives and constants
- `envelope`: Envelope encoder/decoder (the wire format)
- `files`: encrypt_file / decrypt_file operation boundaries
- `delivery`: Sinks that hand decrypted files to the user
- `storage`: File record storage (in-memory, PostgreSQL)
- `auth`: Profiles, admin checks, tagged auth errors
- `api_keys`: Administrator API keys
- `service`: Upload/download/list/delete workflow
- `client`: Explicit PostgreSQL client handle
- `retry`: Call-site retry policy
- `config`: Settings from environment / .env
- `errors`: Error types and exception classes
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto / Envelope Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    BLOCK_SIZE,
    IV_SIZE,
    MAX_FILE_SIZE,
    AesCbcCipher,
    SecureKey,
    generate_random_bytes,
)
from .envelope import (
    Envelope,
    decode,
    encode,
    transport_decode,
    transport_encode,
)
from .files import decrypt_file, encrypt_file
from .delivery import (
    DEFAULT_FILE_NAME,
    DEFAULT_MIME_TYPE,
    DeliveredFile,
    DirectorySink,
    FileSink,
    MemorySink,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    ApiKeyError,
    AuthError,
    AuthErrorKind,
    ConfigError,
    ConnectionFailedError,
    CryptoError,
    DecryptionFailedError,
    EmptyInputError,
    FileEnvelopeError,
    IncompleteEnvelopeError,
    InvalidStructureError,
    MalformedEnvelopeError,
    MalformedTransportEncodingError,
    PayloadTooLargeError,
    PermissionDeniedError,
    RecordNotFoundError,
    StorageError,
)

# =============================================================================
# Collaborator Exports
# =============================================================================

from .config import Settings
from .retry import RetryPolicy
from .client import ConnectionStatus, DatabaseClient
from .storage import (
    FileRecord,
    FileStorage,
    InMemoryFileStorage,
    NewFile,
    PostgresFileStorage,
)
from .auth import (
    InMemoryProfileStore,
    PostgresProfileStore,
    Profile,
    ProfileStore,
    classify_auth_error,
    ensure_profile,
    require_admin,
)
from .api_keys import (
    ApiKey,
    ApiKeyService,
    ApiKeyStore,
    InMemoryApiKeyStore,
    PostgresApiKeyStore,
    hash_api_key,
)
from .service import FileService

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "IV_SIZE",
    "BLOCK_SIZE",
    "MAX_FILE_SIZE",
    "AesCbcCipher",
    "SecureKey",
    "generate_random_bytes",
    # Envelope
    "Envelope",
    "encode",
    "decode",
    "transport_encode",
    "transport_decode",
    "encrypt_file",
    "decrypt_file",
    # Delivery
    "DEFAULT_FILE_NAME",
    "DEFAULT_MIME_TYPE",
    "DeliveredFile",
    "FileSink",
    "DirectorySink",
    "MemorySink",
    # Errors
    "FileEnvelopeError",
    "PayloadTooLargeError",
    "MalformedEnvelopeError",
    "EmptyInputError",
    "MalformedTransportEncodingError",
    "InvalidStructureError",
    "IncompleteEnvelopeError",
    "DecryptionFailedError",
    "CryptoError",
    "ConfigError",
    "StorageError",
    "RecordNotFoundError",
    "ConnectionFailedError",
    "PermissionDeniedError",
    "ApiKeyError",
    "AuthError",
    "AuthErrorKind",
    # Config / client
    "Settings",
    "RetryPolicy",
    "DatabaseClient",
    "ConnectionStatus",
    # Storage
    "FileStorage",
    "FileRecord",
    "NewFile",
    "InMemoryFileStorage",
    "PostgresFileStorage",
    # Auth
    "Profile",
    "ProfileStore",
    "InMemoryProfileStore",
    "PostgresProfileStore",
    "classify_auth_error",
    "ensure_profile",
    "require_admin",
    # API keys
    "ApiKey",
    "ApiKeyStore",
    "InMemoryApiKeyStore",
    "PostgresApiKeyStore",
    "ApiKeyService",
    "hash_api_key",
    # Service
    "FileService",
]
