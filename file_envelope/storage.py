"""
File record storage.

This module provides:
- FileRecord / NewFile: Stored file row and insert payload
- FileStorage: Abstract "store under a record" / "fetch by id" interface
- InMemoryFileStorage: asyncio-safe in-memory implementation for testing
- PostgresFileStorage: ``files`` table backend over a DatabaseClient

The ``content`` column holds the envelope string verbatim; storage never
sees plaintext or key material separately from it.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List
from uuid import UUID, uuid4

import asyncpg

from .client import DatabaseClient
from .errors import RecordNotFoundError, StorageError


@dataclass
class NewFile:
    """Record to insert. ``size`` is the plaintext size in bytes."""

    name: str
    content: str = field(repr=False)
    size: int
    mime_type: str
    user_id: UUID


@dataclass
class FileRecord:
    """Stored file row."""

    id: UUID
    name: str
    content: str = field(repr=False)
    size: int
    mime_type: str
    user_id: UUID
    created_at: datetime


class FileStorage(ABC):
    """
    Abstract storage interface for encrypted file records.

    All methods are async to support both in-memory and database backends.
    """

    @abstractmethod
    async def put(self, new_file: NewFile) -> UUID:
        """Store a record and return its id."""
        ...

    @abstractmethod
    async def get(self, file_id: UUID) -> FileRecord:
        """Fetch a record by id, raising RecordNotFoundError if absent."""
        ...

    @abstractmethod
    async def list_for_user(self, user_id: UUID) -> List[FileRecord]:
        """List a user's records, newest first."""
        ...

    @abstractmethod
    async def list_all(self) -> List[FileRecord]:
        """List every record, newest first."""
        ...

    @abstractmethod
    async def delete(self, file_id: UUID) -> bool:
        """Delete a record. Returns False if it did not exist."""
        ...


class InMemoryFileStorage(FileStorage):
    """
    In-memory storage implementation for testing.

    Uses asyncio.Lock for safe concurrent access.
    """

    def __init__(self) -> None:
        self._records: Dict[UUID, FileRecord] = {}
        self._lock = asyncio.Lock()

    async def put(self, new_file: NewFile) -> UUID:
        async with self._lock:
            record = FileRecord(
                id=uuid4(),
                name=new_file.name,
                content=new_file.content,
                size=new_file.size,
                mime_type=new_file.mime_type,
                user_id=new_file.user_id,
                created_at=datetime.now(timezone.utc),
            )
            self._records[record.id] = record
            return record.id

    async def get(self, file_id: UUID) -> FileRecord:
        async with self._lock:
            record = self._records.get(file_id)
        if record is None:
            raise RecordNotFoundError(f"File {file_id} not found")
        return record

    async def list_for_user(self, user_id: UUID) -> List[FileRecord]:
        async with self._lock:
            records = [r for r in self._records.values() if r.user_id == user_id]
        # dict keeps insertion order, so reversing gives newest first
        return records[::-1]

    async def list_all(self) -> List[FileRecord]:
        async with self._lock:
            return list(self._records.values())[::-1]

    async def delete(self, file_id: UUID) -> bool:
        async with self._lock:
            return self._records.pop(file_id, None) is not None


class PostgresFileStorage(FileStorage):
    """
    PostgreSQL storage backend for the ``files`` table (see schema.sql).
    """

    _COLUMNS = "id, name, content, size, mime_type, user_id, created_at"

    def __init__(self, client: DatabaseClient) -> None:
        """
        Initialize PostgreSQL storage.

        Args:
            client: Connected DatabaseClient
        """
        self._client = client

    async def put(self, new_file: NewFile) -> UUID:
        query = """
            INSERT INTO files (name, content, size, mime_type, user_id)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id
        """
        try:
            row = await self._client.fetchrow(
                query,
                new_file.name,
                new_file.content,
                new_file.size,
                new_file.mime_type,
                new_file.user_id,
            )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to store file: {e}")
        if row is None:
            raise StorageError("Failed to store file: no id returned")
        return row["id"]

    async def get(self, file_id: UUID) -> FileRecord:
        query = f"SELECT {self._COLUMNS} FROM files WHERE id = $1"
        try:
            row = await self._client.fetchrow(query, file_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to get file: {e}")
        if row is None:
            raise RecordNotFoundError(f"File {file_id} not found")
        return self._row_to_record(row)

    async def list_for_user(self, user_id: UUID) -> List[FileRecord]:
        query = f"""
            SELECT {self._COLUMNS} FROM files
            WHERE user_id = $1
            ORDER BY created_at DESC
        """
        try:
            rows = await self._client.fetch(query, user_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to list files: {e}")
        return [self._row_to_record(row) for row in rows]

    async def list_all(self) -> List[FileRecord]:
        query = f"SELECT {self._COLUMNS} FROM files ORDER BY created_at DESC"
        try:
            rows = await self._client.fetch(query)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to list files: {e}")
        return [self._row_to_record(row) for row in rows]

    async def delete(self, file_id: UUID) -> bool:
        try:
            status = await self._client.execute("DELETE FROM files WHERE id = $1", file_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to delete file: {e}")
        return status.endswith(" 1")

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> FileRecord:
        """Convert database row to FileRecord."""
        return FileRecord(
            id=row["id"],
            name=row["name"],
            content=row["content"],
            size=row["size"],
            mime_type=row["mime_type"],
            user_id=row["user_id"],
            created_at=row["created_at"],
        )

