"""
Administrator API keys.

Raw keys are shown once at creation and never stored: the database holds
their SHA-256 hex digest. A valid key lets its administrator list every
stored file (for analysis tooling) without an interactive session.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import asyncpg

from .auth import ProfileStore, require_admin
from .client import DatabaseClient
from .errors import ApiKeyError, PermissionDeniedError, StorageError
from .storage import FileRecord, FileStorage

logger = logging.getLogger(__name__)


def generate_api_key() -> str:
    """Two random UUID4 strings concatenated (72 characters)."""
    return str(uuid4()) + str(uuid4())


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest stored in place of the raw key."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


@dataclass
class ApiKey:
    """API key metadata. The hashed key is deliberately not part of it."""

    id: UUID
    name: str
    admin_id: UUID
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(timezone.utc))


class ApiKeyStore(ABC):
    """Abstract API key storage."""

    @abstractmethod
    async def insert(
        self,
        admin_id: UUID,
        hashed_key: str,
        name: str,
        expires_at: Optional[datetime],
    ) -> ApiKey:
        """Store a new key."""
        ...

    @abstractmethod
    async def list_for_admin(self, admin_id: UUID) -> List[ApiKey]:
        """List an administrator's keys, newest first."""
        ...

    @abstractmethod
    async def delete(self, admin_id: UUID, key_id: UUID) -> bool:
        """Delete one of an administrator's keys."""
        ...

    @abstractmethod
    async def verify(self, hashed_key: str) -> Optional[UUID]:
        """
        Mark an unexpired key as used and return its admin id.

        Returns None for unknown or expired keys.
        """
        ...


class InMemoryApiKeyStore(ApiKeyStore):
    """In-memory API key store for testing."""

    def __init__(self) -> None:
        self._keys: Dict[str, ApiKey] = {}
        self._lock = asyncio.Lock()

    async def insert(
        self,
        admin_id: UUID,
        hashed_key: str,
        name: str,
        expires_at: Optional[datetime],
    ) -> ApiKey:
        async with self._lock:
            if hashed_key in self._keys:
                raise StorageError("Duplicate API key")
            key = ApiKey(id=uuid4(), name=name, admin_id=admin_id, expires_at=expires_at)
            self._keys[hashed_key] = key
            return key

    async def list_for_admin(self, admin_id: UUID) -> List[ApiKey]:
        async with self._lock:
            keys = [k for k in self._keys.values() if k.admin_id == admin_id]
        return keys[::-1]

    async def delete(self, admin_id: UUID, key_id: UUID) -> bool:
        async with self._lock:
            for hashed, key in self._keys.items():
                if key.id == key_id and key.admin_id == admin_id:
                    del self._keys[hashed]
                    return True
            return False

    async def verify(self, hashed_key: str) -> Optional[UUID]:
        async with self._lock:
            key = self._keys.get(hashed_key)
            if key is None or key.is_expired():
                return None
            key.last_used_at = datetime.now(timezone.utc)
            return key.admin_id


class PostgresApiKeyStore(ApiKeyStore):
    """PostgreSQL ``api_keys`` table; verification uses verify_api_key()."""

    _COLUMNS = "id, name, admin_id, created_at, last_used_at, expires_at"

    def __init__(self, client: DatabaseClient) -> None:
        self._client = client

    async def insert(
        self,
        admin_id: UUID,
        hashed_key: str,
        name: str,
        expires_at: Optional[datetime],
    ) -> ApiKey:
        query = f"""
            INSERT INTO api_keys (key, name, admin_id, expires_at)
            VALUES ($1, $2, $3, $4)
            RETURNING {self._COLUMNS}
        """
        try:
            row = await self._client.fetchrow(query, hashed_key, name, admin_id, expires_at)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to create API key: {e}")
        return self._row_to_key(row)

    async def list_for_admin(self, admin_id: UUID) -> List[ApiKey]:
        query = f"""
            SELECT {self._COLUMNS} FROM api_keys
            WHERE admin_id = $1
            ORDER BY created_at DESC
        """
        try:
            rows = await self._client.fetch(query, admin_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to list API keys: {e}")
        return [self._row_to_key(row) for row in rows]

    async def delete(self, admin_id: UUID, key_id: UUID) -> bool:
        query = "DELETE FROM api_keys WHERE id = $1 AND admin_id = $2"
        try:
            status = await self._client.execute(query, key_id, admin_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to delete API key: {e}")
        return status.endswith(" 1")

    async def verify(self, hashed_key: str) -> Optional[UUID]:
        try:
            row = await self._client.fetchrow(
                "SELECT verify_api_key($1) AS admin_id", hashed_key
            )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to verify API key: {e}")
        return row["admin_id"] if row else None

    @staticmethod
    def _row_to_key(row: asyncpg.Record) -> ApiKey:
        return ApiKey(
            id=row["id"],
            name=row["name"],
            admin_id=row["admin_id"],
            created_at=row["created_at"],
            last_used_at=row["last_used_at"],
            expires_at=row["expires_at"],
        )


class ApiKeyService:
    """
    API key issuance and key-authenticated file access.

    Issuing, listing and deleting keys require an administrator session.
    """

    def __init__(
        self, keys: ApiKeyStore, profiles: ProfileStore, files: FileStorage
    ) -> None:
        self._keys = keys
        self._profiles = profiles
        self._files = files

    async def create_api_key(
        self,
        admin_id: Optional[UUID],
        name: str,
        expires_at: Optional[datetime] = None,
    ) -> str:
        """
        Issue a new key and return it in raw form (shown once).

        Raises:
            AuthError / PermissionDeniedError: Caller is not an administrator
            ApiKeyError: If name is blank or expires_at is in the past
        """
        profile = await require_admin(self._profiles, admin_id)

        if not name or not name.strip():
            raise ApiKeyError("API key name is required")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= datetime.now(timezone.utc):
                raise ApiKeyError("API key expiry must be in the future")

        raw_key = generate_api_key()
        key = await self._keys.insert(profile.id, hash_api_key(raw_key), name.strip(), expires_at)
        logger.info("API key %s created by admin %s", key.id, profile.id)
        return raw_key

    async def list_api_keys(self, admin_id: Optional[UUID]) -> List[ApiKey]:
        profile = await require_admin(self._profiles, admin_id)
        return await self._keys.list_for_admin(profile.id)

    async def delete_api_key(self, admin_id: Optional[UUID], key_id: UUID) -> None:
        """
        Delete one of the caller's keys.

        Raises:
            ApiKeyError: If the key does not exist or belongs to another admin
        """
        profile = await require_admin(self._profiles, admin_id)
        if not await self._keys.delete(profile.id, key_id):
            raise ApiKeyError(f"API key {key_id} not found")
        logger.info("API key %s deleted by admin %s", key_id, profile.id)

    async def verify_api_key(self, raw_key: str) -> UUID:
        """
        Return the owning admin id of a valid key.

        Raises:
            ApiKeyError: If the key is unknown or expired
        """
        admin_id = await self._keys.verify(hash_api_key(raw_key)) if raw_key else None
        if admin_id is None:
            raise ApiKeyError("Invalid or expired API key")
        return admin_id

    async def get_files_for_analysis(self, raw_key: str) -> List[FileRecord]:
        """
        List every stored file for a key whose owner is still an admin.

        Raises:
            ApiKeyError: If the key is unknown or expired
            PermissionDeniedError: If the key's owner lost admin rights
        """
        admin_id = await self.verify_api_key(raw_key)
        profile = await self._profiles.get(admin_id)
        if profile is None or not profile.is_admin:
            raise PermissionDeniedError("User is not an admin")
        return await self._files.list_all()
