"""
Upload/download entry points around the envelope codec.

``encrypt_file`` reads a file (the only suspend point) and encodes it;
``decrypt_file`` decodes an envelope and delivers the bytes to a sink.
Both are the error boundary for their operation: failures are logged and
re-raised with a user-facing message, never swallowed.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Union

from .crypto import MAX_FILE_SIZE
from .delivery import DeliveredFile, FileSink
from .envelope import decode, encode
from .errors import (
    CryptoError,
    DecryptionFailedError,
    FileEnvelopeError,
    PayloadTooLargeError,
    StorageError,
)

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, str, os.PathLike]


async def encrypt_file(source: Source, max_size: int = MAX_FILE_SIZE) -> str:
    """
    Encrypt a file or an in-memory payload into an envelope string.

    For paths the size is checked from file metadata before reading, so an
    oversized file is never loaded into memory.

    Args:
        source: Raw bytes or a filesystem path
        max_size: Upper bound on the payload size

    Returns:
        Envelope string for the storage collaborator

    Raises:
        PayloadTooLargeError: If the payload exceeds max_size
        StorageError: If the file cannot be read
        CryptoError: If encryption fails
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            payload = bytes(source)
        else:
            path = Path(source)
            try:
                size = path.stat().st_size
            except OSError as e:
                raise StorageError(f"Cannot read {path.name}: {e}")
            if size > max_size:
                raise PayloadTooLargeError(size, max_size)
            try:
                payload = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise StorageError(f"Cannot read {path.name}: {e}")

        return encode(payload, max_size)
    except PayloadTooLargeError as e:
        logger.warning("Rejected upload of %d bytes (limit %d)", e.size, e.max_size)
        raise
    except FileEnvelopeError as e:
        logger.error("Encryption error: %s", e)
        raise
    except Exception as e:
        logger.exception("Encryption error")
        raise CryptoError(
            "Failed to encrypt file. Please try again with a smaller file."
        ) from e


def decrypt_file(
    envelope: Optional[str],
    name: Optional[str],
    mime_type: Optional[str],
    sink: FileSink,
) -> DeliveredFile:
    """
    Decrypt an envelope and hand the bytes to the user.

    Args:
        envelope: Envelope string from the storage collaborator
        name: File name to save as (defaults to "downloaded-file")
        mime_type: MIME type (defaults to application/octet-stream)
        sink: Where the recovered bytes are delivered

    Returns:
        DeliveredFile describing what was delivered

    Raises:
        MalformedEnvelopeError subclasses: Envelope is structurally bad
        DecryptionFailedError: Decryption failed
        StorageError: Sink could not save the file
    """
    try:
        data = decode(envelope)
        return sink.deliver(data, name, mime_type)
    except FileEnvelopeError as e:
        logger.error("Decryption error for %s: %s", name, e)
        raise
    except Exception as e:
        logger.exception("Decryption error for %s", name)
        raise DecryptionFailedError(str(e)) from e
