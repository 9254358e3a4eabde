from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..activity.service import ActivityRecorder
from ..common.errors import APIError, Conflict, InvalidInput, NotFound
from ..common.identity import AccessPolicy, Identity
from ..common.storage import BlobStore, discard_blobs, file_category, validate_node_name
from ..common.transaction import ServiceBase, ServiceSettings
from ..common.tree import ancestor_chain, assert_not_descendant, subtree_height
from ..models import AccessLevel, File, Folder, GrantTargetType
from ..permissions.service import PermissionResolver


class TreeStore(ServiceBase):
    """Folder and file rows: creation, naming, moves, uploads and reads."""

    def __init__(
        self,
        session: Session,
        blobs: BlobStore,
        policy: AccessPolicy,
        resolver: PermissionResolver,
        activity: ActivityRecorder,
        settings: ServiceSettings,
    ) -> None:
        super().__init__(session)
        self.blobs = blobs
        self.policy = policy
        self.resolver = resolver
        self.activity = activity
        self.settings = settings

    def live_folder(self, folder_id: str | None) -> Folder:
        folder = self.session.get(Folder, folder_id) if folder_id else None
        if folder is None or folder.is_deleted:
            raise NotFound("Folder not found.", code="FOLDER_NOT_FOUND")
        return folder

    def live_file(self, file_id: str | None) -> File:
        file = self.session.get(File, file_id) if file_id else None
        if file is None or file.is_deleted:
            raise NotFound("File not found.", code="FILE_NOT_FOUND")
        return file

    def assert_folder_name_available(self, name: str, parent_id: str | None, exclude_id: str | None = None) -> None:
        query = self.session.query(Folder.id).filter(Folder.name == name, Folder.is_deleted.is_(False))
        if self.settings.folder_name_scope == "sibling":
            if parent_id is None:
                query = query.filter(Folder.parent_id.is_(None))
            else:
                query = query.filter(Folder.parent_id == parent_id)
        if exclude_id is not None:
            query = query.filter(Folder.id != exclude_id)
        if query.first() is not None:
            raise Conflict("A folder with this name already exists.", {"name": name}, code="NAME_CONFLICT")

    def assert_file_name_available(self, name: str, folder_id: str, exclude_id: str | None = None) -> None:
        query = self.session.query(File.id).filter(
            File.name == name,
            File.folder_id == folder_id,
            File.is_deleted.is_(False),
        )
        if exclude_id is not None:
            query = query.filter(File.id != exclude_id)
        if query.first() is not None:
            raise Conflict("A file with this name already exists in the folder.", {"name": name}, code="NAME_CONFLICT")

    def assert_depth_allowed(self, parent: Folder | None, height: int = 0) -> None:
        """Reject a placement whose deepest folder would sit below ``max_tree_depth``.

        ``height`` is how many folder levels hang below the folder being placed.
        Roots are at depth 0.
        """
        depth = 0 if parent is None else len(ancestor_chain(self.session, parent, self.settings.max_tree_depth)) + 1
        limit = self.settings.max_tree_depth
        if depth + height > limit:
            raise InvalidInput(
                f"Folders cannot be nested more than {limit} levels deep.",
                {"max_depth": limit, "resulting_depth": depth + height},
                code="TREE_TOO_DEEP",
            )

    def create_folder(self, identity: Identity, name: Any, parent_id: str | None = None) -> Folder:
        cleaned = validate_node_name(name)

        with self.atomic():
            if parent_id is not None:
                parent = self.live_folder(parent_id)
                self.resolver.require(identity, parent, AccessLevel.EDIT, "You cannot create folders here.")
                self.assert_depth_allowed(parent)

            self.assert_folder_name_available(cleaned, parent_id)

            folder = Folder(name=cleaned, parent_id=parent_id, created_by=identity.user_id)
            self.session.add(folder)
            self.session.flush()

            self.resolver.upsert_grant(folder, GrantTargetType.USER, identity.user_id, AccessLevel.MANAGE, identity.user_id)
            self.activity.record(
                identity.user_id,
                "folders.create",
                "folder",
                folder.id,
                folder.name,
                {"parent_id": parent_id},
            )
        return folder

    def rename_folder(self, identity: Identity, folder_id: str, name: Any) -> Folder:
        cleaned = validate_node_name(name)

        with self.atomic():
            folder = self.live_folder(folder_id)
            self.resolver.require(identity, folder, self.settings.folder_rename_level, "You cannot rename this folder.")
            if folder.name == cleaned:
                return folder

            self.assert_folder_name_available(cleaned, folder.parent_id, exclude_id=folder.id)

            previous = folder.name
            folder.name = cleaned
            self.session.flush()
            self.activity.record(
                identity.user_id,
                "folders.rename",
                "folder",
                folder.id,
                folder.name,
                {"old_name": previous, "new_name": cleaned},
            )
        return folder

    def rename_file(self, identity: Identity, file_id: str, name: Any) -> File:
        cleaned = validate_node_name(name)

        with self.atomic():
            file = self.live_file(file_id)
            self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot rename this file.")
            if file.name == cleaned:
                return file

            self.assert_file_name_available(cleaned, file.folder_id, exclude_id=file.id)

            previous = file.name
            file.name = cleaned
            self.session.flush()
            self.activity.record(
                identity.user_id,
                "files.rename",
                "file",
                file.id,
                file.name,
                {"old_name": previous, "new_name": cleaned},
            )
        return file

    def move_folder(
        self,
        identity: Identity,
        folder_id: str,
        new_parent_id: str | None,
        expected_version: int | None = None,
    ) -> Folder:
        """Reparent ``folder_id`` under ``new_parent_id`` (``None`` moves it to the root).

        The moved row is locked for the rest of the transaction and carries a
        version counter, so two moves racing on the same folder cannot both
        win; the loser gets Conflict.
        """
        with self.atomic():
            folder = (
                self.session.query(Folder)
                .filter(Folder.id == folder_id, Folder.is_deleted.is_(False))
                .populate_existing()
                .with_for_update()
                .one_or_none()
            )
            if folder is None:
                raise NotFound("Folder not found.", code="FOLDER_NOT_FOUND")
            self.resolver.require(identity, folder, AccessLevel.MANAGE, "You cannot move this folder.")

            if expected_version is not None and folder.version_id != expected_version:
                raise Conflict(
                    "The folder was changed by another request; reload and try again.",
                    {"expected_version": expected_version, "current_version": folder.version_id},
                    code="CONCURRENT_MODIFICATION",
                )
            if new_parent_id == folder.id:
                raise Conflict("A folder cannot be moved into itself.", code="INVALID_MOVE")
            if new_parent_id == folder.parent_id:
                raise Conflict("The folder is already in that location.", code="ALREADY_IN_DESTINATION")

            destination: Folder | None = None
            if new_parent_id is not None:
                destination = self.live_folder(new_parent_id)
                self.resolver.require(identity, destination, AccessLevel.EDIT, "You cannot move folders into the destination.")
                assert_not_descendant(self.session, folder.id, destination.id, self.settings.max_tree_depth)
            self.assert_depth_allowed(destination, subtree_height(self.session, folder, self.settings.max_tree_depth))

            self.assert_folder_name_available(folder.name, new_parent_id, exclude_id=folder.id)

            previous_parent_id = folder.parent_id
            folder.parent_id = new_parent_id
            self.session.flush()
            self.activity.record(
                identity.user_id,
                "folders.move",
                "folder",
                folder.id,
                folder.name,
                {"from_parent_id": previous_parent_id, "to_parent_id": new_parent_id},
            )
        return folder

    def move_file(self, identity: Identity, file_id: str, new_folder_id: str) -> File:
        with self.atomic():
            file = self.live_file(file_id)
            self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot move this file.")
            if new_folder_id == file.folder_id:
                raise Conflict("The file is already in that folder.", code="ALREADY_IN_DESTINATION")

            destination = self.live_folder(new_folder_id)
            self.resolver.require(identity, destination, AccessLevel.EDIT, "You cannot move files into the destination.")
            self.assert_file_name_available(file.name, destination.id, exclude_id=file.id)

            previous_folder_id = file.folder_id
            file.folder_id = destination.id
            self.session.flush()
            self.activity.record(
                identity.user_id,
                "files.move",
                "file",
                file.id,
                file.name,
                {"from_folder_id": previous_folder_id, "to_folder_id": destination.id},
            )
        return file

    def upload_file(
        self,
        identity: Identity,
        folder_id: str,
        filename: Any,
        data: bytes,
        mime: str | None = None,
    ) -> File:
        name = validate_node_name(filename)
        if not data:
            raise InvalidInput("File is empty.", code="INVALID_FILE")
        if len(data) > self.settings.max_upload_size:
            raise APIError(413, "UPLOAD_TOO_LARGE", "File exceeds max upload size.")

        storage_path: str | None = None
        try:
            with self.atomic():
                folder = self.live_folder(folder_id)
                self.resolver.require(identity, folder, AccessLevel.EDIT, "You cannot upload to this folder.")
                self.assert_file_name_available(name, folder.id)

                storage_path = self.blobs.put(data, Path(name).suffix.lower()[:16])
                file = File(
                    name=name,
                    folder_id=folder.id,
                    size=len(data),
                    mime=mime or "application/octet-stream",
                    category=file_category(mime, name),
                    storage_path=storage_path,
                    created_by=identity.user_id,
                )
                self.session.add(file)
                self.session.flush()
                self.activity.record(
                    identity.user_id,
                    "files.upload",
                    "file",
                    file.id,
                    file.name,
                    {"folder_id": folder.id, "size": file.size},
                )
        except Exception:
            if storage_path is not None:
                discard_blobs(self.blobs, [storage_path])
            raise
        return file

    def get_folder(self, identity: Identity, folder_id: str) -> Folder:
        folder = self.live_folder(folder_id)
        self.resolver.require(identity, folder, AccessLevel.VIEW)
        return folder

    def get_file(self, identity: Identity, file_id: str) -> File:
        file = self.live_file(file_id)
        self.resolver.require(identity, file.folder, AccessLevel.VIEW)
        return file

    def read_file(self, identity: Identity, file_id: str) -> tuple[File, bytes]:
        file = self.get_file(identity, file_id)
        return file, self.blobs.get(file.storage_path)

    def list_folder(self, identity: Identity, folder_id: str | None = None) -> dict[str, Any]:
        if folder_id is None:
            roots = (
                self.session.query(Folder)
                .filter(Folder.parent_id.is_(None), Folder.is_deleted.is_(False))
                .order_by(Folder.name.asc())
                .all()
            )
            visible = [folder for folder in roots if self.resolver.folder_access(identity, folder) != AccessLevel.NONE]
            return {"folder": None, "folders": visible, "files": []}

        folder = self.get_folder(identity, folder_id)
        children = (
            self.session.query(Folder)
            .filter(Folder.parent_id == folder.id, Folder.is_deleted.is_(False))
            .order_by(Folder.name.asc())
            .all()
        )
        files = (
            self.session.query(File)
            .filter(File.folder_id == folder.id, File.is_deleted.is_(False))
            .order_by(File.name.asc())
            .all()
        )
        visible = [child for child in children if self.resolver.folder_access(identity, child) != AccessLevel.NONE]
        return {"folder": folder, "folders": visible, "files": files}

    def folder_path(self, identity: Identity, folder_id: str) -> list[Folder]:
        folder = self.get_folder(identity, folder_id)
        chain = ancestor_chain(self.session, folder, self.settings.max_tree_depth)
        chain.reverse()
        chain.append(folder)
        return chain

    def storage_usage(self, user_id: str) -> dict[str, Any]:
        rows = (
            self.session.query(File.is_deleted, func.count(File.id), func.coalesce(func.sum(File.size), 0))
            .filter(File.created_by == user_id)
            .group_by(File.is_deleted)
            .all()
        )
        usage = {"user_id": user_id, "file_count": 0, "live_bytes": 0, "trashed_bytes": 0}
        for is_deleted, count, total in rows:
            usage["file_count"] += int(count)
            usage["trashed_bytes" if is_deleted else "live_bytes"] += int(total)
        usage["total_bytes"] = usage["live_bytes"] + usage["trashed_bytes"]
        return usage
