"""
User profiles and authentication error tagging.

This module provides:
- classify_auth_error: Map auth backend status/code to an AuthErrorKind
- Profile: Per-user profile row (admin flag)
- ProfileStore: Abstract profile storage, with in-memory and PostgreSQL backends
- ensure_profile: Fetch-or-create a profile when a user signs in
- require_admin: Admin gate used by privileged operations

Sign-up, sign-in and sessions belong to the managed auth provider; this
module only consumes its results.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import UUID

import asyncpg

from .client import DatabaseClient
from .errors import (
    AuthError,
    AuthErrorKind,
    PermissionDeniedError,
    StorageError,
)

logger = logging.getLogger(__name__)

# Error codes reported by the auth provider
_CODE_KINDS: Dict[str, AuthErrorKind] = {
    "user_already_exists": AuthErrorKind.ALREADY_REGISTERED,
    "email_exists": AuthErrorKind.ALREADY_REGISTERED,
    "invalid_credentials": AuthErrorKind.INVALID_CREDENTIALS,
    "invalid_grant": AuthErrorKind.INVALID_CREDENTIALS,
    "session_not_found": AuthErrorKind.SESSION_EXPIRED,
    "session_expired": AuthErrorKind.SESSION_EXPIRED,
    "bad_jwt": AuthErrorKind.SESSION_EXPIRED,
    "no_authorization": AuthErrorKind.NOT_AUTHENTICATED,
}


def classify_auth_error(status: Optional[int], code: Optional[str]) -> AuthErrorKind:
    """
    Map an auth provider error to a tag.

    The provider's error code wins; the HTTP status is the fallback.
    """
    if code:
        kind = _CODE_KINDS.get(code.lower())
        if kind is not None:
            return kind
    if status == 401:
        return AuthErrorKind.SESSION_EXPIRED
    if status == 403:
        return AuthErrorKind.NOT_ADMIN
    if status == 422:
        return AuthErrorKind.ALREADY_REGISTERED
    return AuthErrorKind.UNKNOWN


@dataclass
class Profile:
    """Profile row; ``id`` matches the auth provider's user id."""

    id: UUID
    email: str
    is_admin: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ProfileStore(ABC):
    """Abstract profile storage."""

    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[Profile]:
        """Get a profile by user id."""
        ...

    @abstractmethod
    async def create(self, profile: Profile) -> Profile:
        """Insert a profile and return the stored row."""
        ...


class InMemoryProfileStore(ProfileStore):
    """In-memory profile store for testing."""

    def __init__(self) -> None:
        self._profiles: Dict[UUID, Profile] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: UUID) -> Optional[Profile]:
        async with self._lock:
            return self._profiles.get(user_id)

    async def create(self, profile: Profile) -> Profile:
        async with self._lock:
            if profile.id in self._profiles:
                raise StorageError(f"Profile {profile.id} already exists")
            self._profiles[profile.id] = profile
            return profile


class PostgresProfileStore(ProfileStore):
    """PostgreSQL ``profiles`` table."""

    def __init__(self, client: DatabaseClient) -> None:
        self._client = client

    async def get(self, user_id: UUID) -> Optional[Profile]:
        query = "SELECT id, email, is_admin, created_at FROM profiles WHERE id = $1"
        try:
            row = await self._client.fetchrow(query, user_id)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to get profile: {e}")
        if row is None:
            return None
        return self._row_to_profile(row)

    async def create(self, profile: Profile) -> Profile:
        query = """
            INSERT INTO profiles (id, email, is_admin)
            VALUES ($1, $2, $3)
            RETURNING id, email, is_admin, created_at
        """
        try:
            row = await self._client.fetchrow(
                query, profile.id, profile.email, profile.is_admin
            )
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to create profile: {e}")
        return self._row_to_profile(row)

    @staticmethod
    def _row_to_profile(row: asyncpg.Record) -> Profile:
        return Profile(
            id=row["id"],
            email=row["email"],
            is_admin=bool(row["is_admin"]),
            created_at=row["created_at"],
        )


async def ensure_profile(store: ProfileStore, user_id: UUID, email: str) -> Profile:
    """
    Return the user's profile, creating a non-admin one on first sign-in.
    """
    existing = await store.get(user_id)
    if existing is not None:
        return existing

    logger.info("Creating profile for user %s", user_id)
    try:
        return await store.create(Profile(id=user_id, email=email, is_admin=False))
    except StorageError:
        # A concurrent first sign-in may have created it in between.
        existing = await store.get(user_id)
        if existing is None:
            raise
        return existing


async def require_admin(store: ProfileStore, user_id: Optional[UUID]) -> Profile:
    """
    Return the caller's profile if they are an administrator.

    Raises:
        AuthError: NOT_AUTHENTICATED if there is no user or no profile
        PermissionDeniedError: NOT_ADMIN if the user is not an administrator
    """
    if user_id is None:
        raise AuthError(AuthErrorKind.NOT_AUTHENTICATED, "Authorization required")

    profile = await store.get(user_id)
    if profile is None:
        raise AuthError(AuthErrorKind.NOT_AUTHENTICATED, "Authorization required")
    if not profile.is_admin:
        raise PermissionDeniedError("Insufficient permissions")
    return profile
