"""
File workflow: upload, download, list and delete.

FileService ties the envelope codec to the storage collaborator. Access
rules mirror the backend's row-level security: users manage their own
files, administrators may read everyone's.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from .auth import ProfileStore, require_admin
from .crypto import MAX_FILE_SIZE
from .delivery import DEFAULT_MIME_TYPE, DeliveredFile, FileSink, safe_file_name
from .errors import AuthError, AuthErrorKind, PermissionDeniedError
from .files import decrypt_file, encrypt_file
from .storage import FileRecord, FileStorage, NewFile

logger = logging.getLogger(__name__)


class FileService:
    """Encrypted file storage for authenticated users."""

    def __init__(
        self,
        files: FileStorage,
        profiles: ProfileStore,
        max_size: int = MAX_FILE_SIZE,
    ) -> None:
        """
        Args:
            files: Storage collaborator for file records
            profiles: Profile store (admin flag lookups)
            max_size: Upload bound in bytes
        """
        self._files = files
        self._profiles = profiles
        self._max_size = max_size

    async def upload(
        self,
        user_id: Optional[UUID],
        name: str,
        data: bytes,
        mime_type: Optional[str] = None,
    ) -> FileRecord:
        """
        Encrypt ``data`` and store it for the user.

        Raises:
            AuthError: If there is no signed-in user
            PayloadTooLargeError: If data exceeds the upload bound
        """
        self._require_user(user_id)

        content = await encrypt_file(data, self._max_size)
        file_id = await self._files.put(
            NewFile(
                name=safe_file_name(name),
                content=content,
                size=len(data),
                mime_type=mime_type or DEFAULT_MIME_TYPE,
                user_id=user_id,
            )
        )
        logger.info("User %s uploaded file %s (%d bytes)", user_id, file_id, len(data))
        return await self._files.get(file_id)

    async def download(
        self, user_id: Optional[UUID], file_id: UUID, sink: FileSink
    ) -> DeliveredFile:
        """
        Decrypt a stored file and deliver it to ``sink``.

        Raises:
            AuthError: If there is no signed-in user
            RecordNotFoundError: If the file does not exist
            PermissionDeniedError: If the file belongs to someone else and the
                caller is not an administrator
        """
        self._require_user(user_id)
        record = await self._files.get(file_id)

        if record.user_id != user_id:
            profile = await self._profiles.get(user_id)
            if profile is None or not profile.is_admin:
                raise PermissionDeniedError("Insufficient permissions")

        return decrypt_file(record.content, record.name, record.mime_type, sink)

    async def list_files(self, user_id: Optional[UUID]) -> List[FileRecord]:
        self._require_user(user_id)
        return await self._files.list_for_user(user_id)

    async def list_all_files(self, admin_id: Optional[UUID]) -> List[FileRecord]:
        await require_admin(self._profiles, admin_id)
        return await self._files.list_all()

    async def delete(self, user_id: Optional[UUID], file_id: UUID) -> None:
        """
        Delete one of the caller's files.

        Raises:
            RecordNotFoundError: If the file does not exist
            PermissionDeniedError: If the file belongs to someone else
        """
        self._require_user(user_id)
        record = await self._files.get(file_id)
        if record.user_id != user_id:
            raise PermissionDeniedError("Insufficient permissions")
        await self._files.delete(file_id)
        logger.info("User %s deleted file %s", user_id, file_id)

    @staticmethod
    def _require_user(user_id: Optional[UUID]) -> None:
        if user_id is None:
            raise AuthError(AuthErrorKind.NOT_AUTHENTICATED, "Authorization required")
