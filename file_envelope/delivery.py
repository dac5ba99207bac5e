"""
Delivery of decrypted files to the end user.

This module provides:
- DeliveredFile: Result of a delivery (final name, type, size, location)
- FileSink: Abstract destination for recovered bytes
- DirectorySink: Saves into a download directory via a transient temp file
- MemorySink: Keeps delivered files in memory
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import List, Optional

from .errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_FILE_NAME = "downloaded-file"


def safe_file_name(name: Optional[str]) -> str:
    """Strip directory components; fall back to DEFAULT_FILE_NAME."""
    if not name:
        return DEFAULT_FILE_NAME
    base = PurePath(name.replace("\\", "/")).name
    if base in ("", ".", ".."):
        return DEFAULT_FILE_NAME
    return base


@dataclass
class DeliveredFile:
    """A file handed to the end user."""

    name: str
    mime_type: str
    size: int
    path: Optional[Path] = None
    data: Optional[bytes] = field(default=None, repr=False)


class FileSink(ABC):
    """Destination for decrypted file content."""

    @abstractmethod
    def deliver(
        self, data: bytes, name: Optional[str], mime_type: Optional[str]
    ) -> DeliveredFile:
        """Hand data to the user as ``name`` with the given MIME type."""
        ...


class DirectorySink(FileSink):
    """
    Save delivered files into a directory.

    Bytes are written to a hidden temporary file first and moved to the
    final name once complete. The temporary file is removed if anything
    fails, so a partial download is never left behind.
    """

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def deliver(
        self, data: bytes, name: Optional[str], mime_type: Optional[str]
    ) -> DeliveredFile:
        file_name = safe_file_name(name)
        mime = mime_type or DEFAULT_MIME_TYPE

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._directory, prefix=".download-", suffix=".part"
            )
        except OSError as e:
            raise StorageError(f"Cannot write to {self._directory}: {e}")

        tmp_path = Path(tmp_name)
        target: Optional[Path] = None
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            target = self._claim_path(file_name)
            os.replace(tmp_path, target)
        except OSError as e:
            if target is not None:
                target.unlink(missing_ok=True)
            raise StorageError(f"Failed to save {file_name}: {e}")
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info("Saved %s (%d bytes, %s)", target.name, len(data), mime)
        return DeliveredFile(name=target.name, mime_type=mime, size=len(data), path=target)

    def _claim_path(self, file_name: str) -> Path:
        """
        Create an empty placeholder at the first free ``name (n).ext``.

        O_EXCL makes the claim atomic, so concurrent deliveries of the same
        name end up at different paths and the rename only ever replaces
        our own placeholder.
        """
        candidate = self._directory / file_name
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while True:
            try:
                os.close(os.open(candidate, os.O_CREAT | os.O_EXCL | os.O_WRONLY))
                return candidate
            except FileExistsError:
                candidate = self._directory / f"{stem} ({counter}){suffix}"
                counter += 1


class MemorySink(FileSink):
    """Keep delivered files in memory (tests and API consumers)."""

    def __init__(self) -> None:
        self.files: List[DeliveredFile] = []

    def deliver(
        self, data: bytes, name: Optional[str], mime_type: Optional[str]
    ) -> DeliveredFile:
        delivered = DeliveredFile(
            name=safe_file_name(name),
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size=len(data),
            data=bytes(data),
        )
        self.files.append(delivered)
        return delivered
