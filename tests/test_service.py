"""
Tests for storage, profiles and the FileService workflow (in-memory backends).
"""

from uuid import uuid4

import pytest

from file_envelope import (
    AuthError,
    AuthErrorKind,
    InMemoryProfileStore,
    NewFile,
    PayloadTooLargeError,
    PermissionDeniedError,
    Profile,
    RecordNotFoundError,
    StorageError,
    classify_auth_error,
    decode,
    encode,
    ensure_profile,
    require_admin,
)
from file_envelope.service import FileService


# --- Storage Collaborator ---


class TestInMemoryFileStorage:
    async def test_put_then_get(self, memory_storage):
        owner = uuid4()
        envelope = encode(b"stored")
        file_id = await memory_storage.put(
            NewFile(name="a.txt", content=envelope, size=6, mime_type="text/plain", user_id=owner)
        )

        record = await memory_storage.get(file_id)
        assert record.id == file_id
        assert record.content == envelope
        assert record.user_id == owner
        assert decode(record.content) == b"stored"

    async def test_get_missing(self, memory_storage):
        with pytest.raises(RecordNotFoundError):
            await memory_storage.get(uuid4())

    async def test_listing_is_newest_first_and_scoped(self, memory_storage):
        alice, bob = uuid4(), uuid4()
        ids = []
        for owner, name in ((alice, "1"), (bob, "2"), (alice, "3")):
            ids.append(
                await memory_storage.put(
                    NewFile(name=name, content="x", size=1, mime_type="t", user_id=owner)
                )
            )

        assert [r.name for r in await memory_storage.list_for_user(alice)] == ["3", "1"]
        assert [r.name for r in await memory_storage.list_all()] == ["3", "2", "1"]

    async def test_delete(self, memory_storage):
        file_id = await memory_storage.put(
            NewFile(name="a", content="x", size=1, mime_type="t", user_id=uuid4())
        )
        assert await memory_storage.delete(file_id) is True
        assert await memory_storage.delete(file_id) is False

    def test_record_repr_hides_content(self):
        new_file = NewFile(name="a", content="SECRET", size=1, mime_type="t", user_id=uuid4())
        assert "SECRET" not in repr(new_file)


# --- Profiles / Auth ---


class TestProfiles:
    async def test_ensure_profile_creates_non_admin(self, profile_store):
        uid = uuid4()
        profile = await ensure_profile(profile_store, uid, "new@example.com")
        assert profile.id == uid
        assert profile.is_admin is False
        assert await profile_store.get(uid) == profile

    async def test_ensure_profile_returns_existing(self, profile_store, admin_id):
        profile = await ensure_profile(profile_store, admin_id, "other@example.com")
        assert profile.is_admin is True
        assert profile.email == "admin@example.com"

    async def test_ensure_profile_survives_concurrent_sign_in(self):
        uid = uuid4()

        class RacingStore(InMemoryProfileStore):
            """Another sign-in creates the profile between get and create."""

            async def create(self, profile):
                await super().create(Profile(id=profile.id, email="first@example.com"))
                return await super().create(profile)

        store = RacingStore()
        profile = await ensure_profile(store, uid, "second@example.com")
        assert profile.id == uid
        assert profile.email == "first@example.com"

    async def test_ensure_profile_reraises_when_create_fails(self):
        class FailingStore(InMemoryProfileStore):
            async def create(self, profile):
                raise StorageError("insert failed")

        with pytest.raises(StorageError, match="insert failed"):
            await ensure_profile(FailingStore(), uuid4(), "x@example.com")

    async def test_non_admin_is_tagged(self, profile_store, user_id):
        with pytest.raises(AuthError) as exc_info:
            await require_admin(profile_store, user_id)
        assert isinstance(exc_info.value, PermissionDeniedError)
        assert exc_info.value.kind is AuthErrorKind.NOT_ADMIN
        assert str(exc_info.value) == "Insufficient permissions"

    async def test_duplicate_create_rejected(self, profile_store, user_id):
        with pytest.raises(StorageError):
            await profile_store.create(Profile(id=user_id, email="dup@example.com"))

    async def test_require_admin(self, profile_store, admin_id, user_id):
        assert (await require_admin(profile_store, admin_id)).id == admin_id

        with pytest.raises(PermissionDeniedError):
            await require_admin(profile_store, user_id)

        with pytest.raises(AuthError) as exc_info:
            await require_admin(profile_store, None)
        assert exc_info.value.kind is AuthErrorKind.NOT_AUTHENTICATED

        with pytest.raises(AuthError) as exc_info:
            await require_admin(InMemoryProfileStore(), uuid4())
        assert exc_info.value.kind is AuthErrorKind.NOT_AUTHENTICATED


@pytest.mark.parametrize(
    "status,code,kind",
    [
        (422, "user_already_exists", AuthErrorKind.ALREADY_REGISTERED),
        (400, "invalid_credentials", AuthErrorKind.INVALID_CREDENTIALS),
        (400, "INVALID_GRANT", AuthErrorKind.INVALID_CREDENTIALS),
        (401, None, AuthErrorKind.SESSION_EXPIRED),
        (403, None, AuthErrorKind.NOT_ADMIN),
        (500, "something_else", AuthErrorKind.UNKNOWN),
        (None, None, AuthErrorKind.UNKNOWN),
    ],
)
def test_classify_auth_error(status, code, kind):
    assert classify_auth_error(status, code) is kind


# --- FileService ---


class TestFileService:
    async def test_upload_and_download(self, file_service, user_id, sink):
        record = await file_service.upload(user_id, "notes.txt", b"my notes", "text/plain")

        assert record.size == 8
        assert record.mime_type == "text/plain"
        assert b"my notes" not in record.content.encode()

        delivered = await file_service.download(user_id, record.id, sink)
        assert delivered.data == b"my notes"
        assert delivered.name == "notes.txt"
        assert delivered.mime_type == "text/plain"

    async def test_upload_empty_file(self, file_service, user_id, sink):
        record = await file_service.upload(user_id, "empty", b"")
        delivered = await file_service.download(user_id, record.id, sink)
        assert delivered.data == b""
        assert delivered.mime_type == "application/octet-stream"

    async def test_upload_requires_user(self, file_service):
        with pytest.raises(AuthError) as exc_info:
            await file_service.upload(None, "a", b"x")
        assert exc_info.value.kind is AuthErrorKind.NOT_AUTHENTICATED

    async def test_upload_too_large_stores_nothing(
        self, memory_storage, profile_store, user_id
    ):
        service = FileService(memory_storage, profile_store, max_size=4)
        with pytest.raises(PayloadTooLargeError):
            await service.upload(user_id, "big", b"12345")
        assert await memory_storage.list_all() == []

    async def test_other_user_cannot_download(self, file_service, profile_store, user_id, sink):
        record = await file_service.upload(user_id, "private", b"mine")
        stranger = uuid4()
        await profile_store.create(Profile(id=stranger, email="s@example.com"))

        with pytest.raises(PermissionDeniedError):
            await file_service.download(stranger, record.id, sink)
        assert sink.files == []

    async def test_admin_can_download_any_file(self, file_service, user_id, admin_id, sink):
        record = await file_service.upload(user_id, "report.csv", b"a,b\n1,2\n", "text/csv")
        delivered = await file_service.download(admin_id, record.id, sink)
        assert delivered.data == b"a,b\n1,2\n"

    async def test_list_files(self, file_service, user_id, admin_id):
        await file_service.upload(user_id, "one", b"1")
        await file_service.upload(admin_id, "two", b"2")

        assert [r.name for r in await file_service.list_files(user_id)] == ["one"]
        assert {r.name for r in await file_service.list_all_files(admin_id)} == {"one", "two"}

        with pytest.raises(PermissionDeniedError):
            await file_service.list_all_files(user_id)

    async def test_delete_own_file_only(self, file_service, user_id, admin_id):
        record = await file_service.upload(user_id, "one", b"1")

        with pytest.raises(PermissionDeniedError):
            await file_service.delete(admin_id, record.id)

        await file_service.delete(user_id, record.id)
        with pytest.raises(RecordNotFoundError):
            await file_service.delete(user_id, record.id)

    async def test_download_missing(self, file_service, user_id, sink):
        with pytest.raises(RecordNotFoundError):
            await file_service.download(user_id, uuid4(), sink)

    async def test_upload_sanitizes_name(self, file_service, user_id):
        record = await file_service.upload(user_id, "../../secret.txt", b"x")
        assert record.name == "secret.txt"
