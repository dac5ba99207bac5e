"""
Pytest configuration and fixtures for file envelope tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

from file_envelope import (
    ApiKeyService,
    DatabaseClient,
    FileService,
    InMemoryApiKeyStore,
    InMemoryFileStorage,
    InMemoryProfileStore,
    MemorySink,
    PostgresFileStorage,
    PostgresProfileStore,
    Profile,
    RetryPolicy,
)


@pytest.fixture
def memory_storage() -> InMemoryFileStorage:
    """Create an in-memory file storage instance for testing."""
    return InMemoryFileStorage()


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    """Create an in-memory profile store for testing."""
    return InMemoryProfileStore()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
async def user_id(profile_store: InMemoryProfileStore) -> UUID:
    """A regular (non-admin) user with a profile."""
    uid = uuid4()
    await profile_store.create(Profile(id=uid, email="user@example.com"))
    return uid


@pytest.fixture
async def admin_id(profile_store: InMemoryProfileStore) -> UUID:
    """An administrator with a profile."""
    uid = uuid4()
    await profile_store.create(Profile(id=uid, email="admin@example.com", is_admin=True))
    return uid


@pytest.fixture
def file_service(
    memory_storage: InMemoryFileStorage, profile_store: InMemoryProfileStore
) -> FileService:
    return FileService(memory_storage, profile_store)


@pytest.fixture
def api_key_service(
    memory_storage: InMemoryFileStorage, profile_store: InMemoryProfileStore
) -> ApiKeyService:
    return ApiKeyService(InMemoryApiKeyStore(), profile_store, memory_storage)


@pytest.fixture
async def pg_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a connected PostgreSQL client for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    client = DatabaseClient(
        database_url, retry=RetryPolicy(max_attempts=1, initial_delay=0.0, timeout=10.0)
    )
    await client.connect()

    schema = (Path(__file__).parent.parent / "schema.sql").read_text()
    await client.pool.execute(schema)
    await client.execute("TRUNCATE TABLE api_keys, files, profiles CASCADE")

    yield client

    await client.close()


@pytest.fixture
async def postgres_storage(pg_client: DatabaseClient) -> PostgresFileStorage:
    """Create a PostgreSQL storage instance for testing."""
    return PostgresFileStorage(pg_client)


@pytest.fixture
async def postgres_profiles(pg_client: DatabaseClient) -> PostgresProfileStore:
    return PostgresProfileStore(pg_client)
