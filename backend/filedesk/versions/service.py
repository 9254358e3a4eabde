from __future__ import annotations

from pathlib import Path

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..activity.service import ActivityRecorder
from ..common.errors import APIError, InvalidInput, NotFound
from ..common.identity import Identity
from ..common.storage import BlobStore, discard_blobs
from ..common.transaction import ServiceBase, ServiceSettings
from ..files.service import TreeStore
from ..models import AccessLevel, File, FileVersion
from ..permissions.service import PermissionResolver


MAX_COMMENT_LENGTH = 500


class VersionService(ServiceBase):
    """Content history of a file. The file row always points at the current version's blob."""

    def __init__(
        self,
        session: Session,
        blobs: BlobStore,
        resolver: PermissionResolver,
        tree: TreeStore,
        activity: ActivityRecorder,
        settings: ServiceSettings,
    ) -> None:
        super().__init__(session)
        self.blobs = blobs
        self.resolver = resolver
        self.tree = tree
        self.activity = activity
        self.settings = settings

    def _next_number(self, file: File) -> int:
        current = self.session.query(func.max(FileVersion.version_number)).filter(FileVersion.file_id == file.id).scalar()
        return int(current or 0) + 1

    def create_version(self, identity: Identity, file_id: str, data: bytes, comment: str | None = None) -> FileVersion:
        if not data:
            raise InvalidInput("File is empty.", code="INVALID_FILE")
        if len(data) > self.settings.max_upload_size:
            raise APIError(413, "UPLOAD_TOO_LARGE", "File exceeds max upload size.")
        cleaned_comment = (comment or "").strip()[:MAX_COMMENT_LENGTH] or None

        storage_path: str | None = None
        try:
            with self.atomic():
                file = self.tree.live_file(file_id)
                self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot add versions to this file.")

                if self._next_number(file) == 1:
                    # First revision: keep the uploaded content as version 1.
                    self.session.add(
                        FileVersion(
                            file_id=file.id,
                            version_number=1,
                            size=file.size,
                            storage_path=file.storage_path,
                            created_by=file.created_by,
                            created_at=file.created_at,
                            is_current=False,
                        )
                    )
                    self.session.flush()

                self.session.query(FileVersion).filter(FileVersion.file_id == file.id).update(
                    {FileVersion.is_current: False}, synchronize_session="fetch"
                )
                storage_path = self.blobs.put(data, Path(file.name).suffix.lower()[:16])
                version = FileVersion(
                    file_id=file.id,
                    version_number=self._next_number(file),
                    size=len(data),
                    storage_path=storage_path,
                    comment=cleaned_comment,
                    created_by=identity.user_id,
                    is_current=True,
                )
                self.session.add(version)
                file.storage_path = storage_path
                file.size = len(data)
                self.session.flush()

                self.activity.record(
                    identity.user_id,
                    "versions.create",
                    "file",
                    file.id,
                    file.name,
                    {"version_number": version.version_number, "size": version.size},
                )
        except Exception:
            if storage_path is not None:
                discard_blobs(self.blobs, [storage_path])
            raise
        return version

    def list_versions(self, identity: Identity, file_id: str) -> list[FileVersion]:
        file = self.tree.get_file(identity, file_id)
        return (
            self.session.query(FileVersion)
            .filter(FileVersion.file_id == file.id)
            .order_by(FileVersion.version_number.desc())
            .all()
        )

    def restore_version(self, identity: Identity, version_id: str) -> FileVersion:
        with self.atomic():
            version = self.session.get(FileVersion, version_id)
            if version is None:
                raise NotFound("Version not found.", code="VERSION_NOT_FOUND")
            file = self.tree.live_file(version.file_id)
            self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot restore versions of this file.")

            self.session.query(FileVersion).filter(FileVersion.file_id == file.id).update(
                {FileVersion.is_current: False}, synchronize_session="fetch"
            )
            version.is_current = True
            file.storage_path = version.storage_path
            file.size = version.size
            self.session.flush()

            self.activity.record(
                identity.user_id,
                "versions.restore",
                "file",
                file.id,
                file.name,
                {"version_number": version.version_number},
            )
        return version
