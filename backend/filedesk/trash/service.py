from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..activity.service import ActivityRecorder
from ..common.errors import InvalidInput, NotFound, PreconditionFailed, TreeIntegrityError, Unauthorized
from ..common.identity import AccessPolicy, Identity
from ..common.storage import BlobStore, discard_blobs
from ..common.transaction import ServiceBase, ServiceSettings
from ..common.tree import collect_subtree
from ..files.service import TreeStore
from ..models import (
    AccessLevel,
    Favorite,
    File,
    FileVersion,
    Folder,
    RecentFile,
    ResourceType,
    ShareLink,
    as_utc,
    utc_now,
)
from ..permissions.service import PermissionResolver


def parse_resource_type(value: Any) -> ResourceType:
    normalized = str(value or "").strip().lower()
    for resource_type in ResourceType:
        if resource_type.value == normalized:
            return resource_type
    raise InvalidInput("type must be file or folder.", {"type": value}, code="INVALID_RESOURCE_TYPE")


@dataclass
class PurgeReport:
    cutoff: datetime | None = None
    folder_ids: list[str] = field(default_factory=list)
    file_ids: list[str] = field(default_factory=list)
    blob_paths: list[str] = field(default_factory=list)
    blobs_removed: int = 0
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "cutoff": self.cutoff.isoformat() if self.cutoff else None,
            "folders": len(self.folder_ids),
            "files": len(self.file_ids),
            "blobs": len(self.blob_paths),
            "blobs_removed": self.blobs_removed,
            "dry_run": self.dry_run,
        }


class LifecycleEngine(ServiceBase):
    """Soft delete, restore and permanent removal of folders and files."""

    def __init__(
        self,
        session: Session,
        blobs: BlobStore,
        policy: AccessPolicy,
        resolver: PermissionResolver,
        tree: TreeStore,
        activity: ActivityRecorder,
        settings: ServiceSettings,
    ) -> None:
        super().__init__(session)
        self.blobs = blobs
        self.policy = policy
        self.resolver = resolver
        self.tree = tree
        self.activity = activity
        self.settings = settings

    def soft_delete_folder(self, identity: Identity, folder_id: str) -> dict[str, int]:
        with self.atomic():
            folder = self.tree.live_folder(folder_id)
            self.resolver.require(identity, folder, AccessLevel.MANAGE, "You cannot delete this folder.")

            subtree = collect_subtree(self.session, folder, self.settings.max_tree_depth)
            deleted_at = utc_now()
            # Items already in the trash keep their own timestamp so a later
            # restore of this folder leaves them where they are.
            folders = [item for item in subtree.folders if not item.is_deleted]
            files = [item for item in subtree.files if not item.is_deleted]
            for item in [*folders, *files]:
                item.is_deleted = True
                item.deleted_at = deleted_at
            self.session.flush()

            counts = {"folders": len(folders), "files": len(files)}
            self.activity.record(identity.user_id, "folders.delete", "folder", folder.id, folder.name, counts)
        return counts

    def soft_delete_file(self, identity: Identity, file_id: str) -> File:
        with self.atomic():
            file = self.tree.live_file(file_id)
            self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot delete this file.")

            file.is_deleted = True
            file.deleted_at = utc_now()
            self.session.flush()
            self.activity.record(identity.user_id, "files.delete", "file", file.id, file.name, {"folder_id": file.folder_id})
        return file

    def _trashed_folder(self, folder_id: str) -> Folder:
        folder = self.session.get(Folder, folder_id)
        if folder is None or not folder.is_deleted:
            raise NotFound("Folder not found in trash.", code="NOT_IN_TRASH")
        return folder

    def _trashed_file(self, file_id: str) -> File:
        file = self.session.get(File, file_id)
        if file is None or not file.is_deleted:
            raise NotFound("File not found in trash.", code="NOT_IN_TRASH")
        return file

    def restore_folder(self, identity: Identity, folder_id: str) -> dict[str, int]:
        with self.atomic():
            folder = self._trashed_folder(folder_id)
            if not self.policy.is_owner_or_admin(identity, folder.created_by):
                raise Unauthorized("Only the creator or an administrator can restore this folder.")

            if folder.parent_id is not None:
                parent = self.session.get(Folder, folder.parent_id)
                if parent is None or parent.is_deleted:
                    raise PreconditionFailed(
                        "The parent folder is missing or deleted; restore it first.",
                        {"parent_id": folder.parent_id},
                        code="PARENT_DELETED",
                    )
            self.tree.assert_folder_name_available(folder.name, folder.parent_id, exclude_id=folder.id)

            # Only what was trashed together with this folder comes back.
            # Earlier deletions stay in the trash and are restored on their own.
            subtree = collect_subtree(self.session, folder, self.settings.max_tree_depth)
            stamp = as_utc(folder.deleted_at)
            folders = [item for item in subtree.folders if item.is_deleted and as_utc(item.deleted_at) == stamp]
            files = [item for item in subtree.files if item.is_deleted and as_utc(item.deleted_at) == stamp]

            for item in folders:
                if item.id != folder.id:
                    self.tree.assert_folder_name_available(item.name, item.parent_id, exclude_id=item.id)
            for item in [*folders, *files]:
                item.is_deleted = False
                item.deleted_at = None
            self.session.flush()

            counts = {"folders": len(folders), "files": len(files)}
            self.activity.record(identity.user_id, "trash.restore", "folder", folder.id, folder.name, counts)
        return counts

    def restore_file(self, identity: Identity, file_id: str) -> File:
        with self.atomic():
            file = self._trashed_file(file_id)
            if not self.policy.is_owner_or_admin(identity, file.created_by):
                raise Unauthorized("Only the creator or an administrator can restore this file.")

            folder = self.session.get(Folder, file.folder_id)
            if folder is None or folder.is_deleted:
                raise PreconditionFailed(
                    "The containing folder is missing or deleted; restore it first.",
                    {"folder_id": file.folder_id},
                    code="PARENT_DELETED",
                )
            self.tree.assert_file_name_available(file.name, file.folder_id, exclude_id=file.id)

            file.is_deleted = False
            file.deleted_at = None
            self.session.flush()
            self.activity.record(identity.user_id, "trash.restore", "file", file.id, file.name, {"folder_id": file.folder_id})
        return file

    def _hard_delete(self, folders: Iterable[Folder], files: Iterable[File]) -> list[str]:
        """Remove rows and their dependents; returns the blob paths to free after commit."""
        folders = list(folders)
        files = list(files)
        folder_ids = [folder.id for folder in folders]
        file_ids = [file.id for file in files]

        blob_paths: list[str] = []
        if file_ids:
            blob_paths.extend(path for (path,) in self.session.query(File.storage_path).filter(File.id.in_(file_ids)))
            blob_paths.extend(
                path for (path,) in self.session.query(FileVersion.storage_path).filter(FileVersion.file_id.in_(file_ids))
            )

        link_filters = []
        favorite_filters = []
        if file_ids:
            link_filters.append(and_(ShareLink.resource_type == ResourceType.FILE, ShareLink.resource_id.in_(file_ids)))
            favorite_filters.append(and_(Favorite.resource_type == ResourceType.FILE, Favorite.resource_id.in_(file_ids)))
            self.session.query(RecentFile).filter(RecentFile.file_id.in_(file_ids)).delete(synchronize_session=False)
        if folder_ids:
            link_filters.append(and_(ShareLink.resource_type == ResourceType.FOLDER, ShareLink.resource_id.in_(folder_ids)))
            favorite_filters.append(
                and_(Favorite.resource_type == ResourceType.FOLDER, Favorite.resource_id.in_(folder_ids))
            )
        if link_filters:
            self.session.query(ShareLink).filter(or_(*link_filters)).delete(synchronize_session=False)
            self.session.query(Favorite).filter(or_(*favorite_filters)).delete(synchronize_session=False)

        for file in files:
            self.session.delete(file)
        self.session.flush()

        # Leaves first, one level per flush, so no parent row goes before its children.
        remaining = {folder.id: folder for folder in folders}
        while remaining:
            parent_ids = {folder.parent_id for folder in remaining.values()}
            leaves = [folder for folder_id, folder in remaining.items() if folder_id not in parent_ids]
            if not leaves:
                raise TreeIntegrityError("Folder graph contains a cycle.", {"folder_ids": sorted(remaining)})
            for folder in leaves:
                self.session.delete(folder)
                del remaining[folder.id]
            self.session.flush()

        return list(dict.fromkeys(blob_paths))

    def _expired_candidates(self, cutoff: datetime) -> tuple[list[Folder], list[File]]:
        expired_roots = (
            self.session.query(Folder)
            .filter(Folder.is_deleted.is_(True), Folder.deleted_at.isnot(None), Folder.deleted_at < cutoff)
            .order_by(Folder.deleted_at.asc(), Folder.id.asc())
            .all()
        )
        folders: dict[str, Folder] = {}
        files: dict[str, File] = {}
        for root in expired_roots:
            if root.id in folders:
                continue
            # An expired folder takes every descendant with it, including ones
            # trashed later whose own retention window has not run out yet.
            subtree = collect_subtree(self.session, root, self.settings.max_tree_depth)
            folders.update((folder.id, folder) for folder in subtree.folders)
            files.update((file.id, file) for file in subtree.files)

        expired_files = (
            self.session.query(File)
            .filter(File.is_deleted.is_(True), File.deleted_at.isnot(None), File.deleted_at < cutoff)
            .all()
        )
        files.update((file.id, file) for file in expired_files)
        return list(folders.values()), list(files.values())

    def purge_expired(self, retention_days: int | None = None, *, dry_run: bool = False) -> PurgeReport:
        days = self.settings.trash_retention_days if retention_days is None else int(retention_days)
        if days < 0:
            raise InvalidInput("retention_days must be >= 0.", code="INVALID_RETENTION")
        cutoff = utc_now() - timedelta(days=days)
        report = PurgeReport(cutoff=cutoff, dry_run=dry_run)

        with self.atomic():
            folders, files = self._expired_candidates(cutoff)
            report.folder_ids = [folder.id for folder in folders]
            report.file_ids = [file.id for file in files]
            if dry_run:
                report.blob_paths = [file.storage_path for file in files]
                return report
            if not folders and not files:
                return report

            report.blob_paths = self._hard_delete(folders, files)
            self.activity.record(
                None,
                "trash.purge",
                None,
                None,
                None,
                {"folders": len(report.folder_ids), "files": len(report.file_ids), "retention_days": days},
            )

        report.blobs_removed = discard_blobs(self.blobs, report.blob_paths)
        current_app.logger.info(
            "Trash purge removed %d folders, %d files and %d blobs older than %d days",
            len(report.folder_ids),
            len(report.file_ids),
            report.blobs_removed,
            days,
        )
        return report

    def permanently_delete(
        self,
        identity: Identity,
        resource_type: Any,
        resource_id: str,
        force: bool = False,
    ) -> dict[str, int]:
        parsed_type = parse_resource_type(resource_type)

        with self.atomic():
            if parsed_type == ResourceType.FOLDER:
                item: Folder | File | None = self.session.get(Folder, resource_id)
            else:
                item = self.session.get(File, resource_id)
            if item is None:
                raise NotFound(f"{parsed_type.value.capitalize()} not found.", code="NOT_FOUND")
            if not self.policy.is_owner_or_admin(identity, item.created_by):
                raise Unauthorized("Only the creator or an administrator can delete this permanently.")
            if not item.is_deleted:
                if not force:
                    raise PreconditionFailed("Move the item to the trash before deleting it permanently.", code="NOT_IN_TRASH")
                if not self.policy.is_admin(identity):
                    raise Unauthorized("Only administrators can permanently delete live items.")

            if isinstance(item, Folder):
                subtree = collect_subtree(self.session, item, self.settings.max_tree_depth)
                folders, files = subtree.folders, subtree.files
            else:
                folders, files = [], [item]

            counts = {"folders": len(folders), "files": len(files)}
            name = item.name
            blob_paths = self._hard_delete(folders, files)
            self.activity.record(
                identity.user_id,
                "trash.delete_permanently",
                parsed_type.value,
                resource_id,
                name,
                {**counts, "force": bool(force)},
            )

        discard_blobs(self.blobs, blob_paths)
        return counts

    def list_trash(self, identity: Identity) -> list[dict[str, Any]]:
        folder_query = self.session.query(Folder).filter(Folder.is_deleted.is_(True))
        file_query = self.session.query(File).filter(File.is_deleted.is_(True))
        if not self.policy.is_admin(identity):
            folder_query = folder_query.filter(Folder.created_by == identity.user_id)
            file_query = file_query.filter(File.created_by == identity.user_id)

        now = utc_now()
        retention = timedelta(days=self.settings.trash_retention_days)
        items: list[dict[str, Any]] = []
        for item in [*folder_query.all(), *file_query.all()]:
            payload = item.to_dict()
            deleted_at = as_utc(item.deleted_at)
            if deleted_at is not None:
                remaining = deleted_at + retention - now
                payload["days_remaining"] = max(0, remaining.days)
            else:
                payload["days_remaining"] = None
            items.append(payload)

        items.sort(key=lambda payload: payload["deleted_at"] or "", reverse=True)
        return items

    def empty_trash(self, identity: Identity) -> dict[str, int]:
        with self.atomic():
            folder_query = self.session.query(Folder).filter(Folder.is_deleted.is_(True))
            file_query = self.session.query(File).filter(File.is_deleted.is_(True))
            if not self.policy.is_admin(identity):
                folder_query = folder_query.filter(Folder.created_by == identity.user_id)
                file_query = file_query.filter(File.created_by == identity.user_id)

            folders: dict[str, Folder] = {}
            files: dict[str, File] = {}
            for root in folder_query.all():
                if root.id in folders:
                    continue
                subtree = collect_subtree(self.session, root, self.settings.max_tree_depth)
                folders.update((folder.id, folder) for folder in subtree.folders)
                files.update((file.id, file) for file in subtree.files)
            files.update((file.id, file) for file in file_query.all())

            counts = {"folders": len(folders), "files": len(files)}
            if not folders and not files:
                return counts

            blob_paths = self._hard_delete(folders.values(), files.values())
            self.activity.record(identity.user_id, "trash.empty", None, None, None, counts)

        discard_blobs(self.blobs, blob_paths)
        return counts
