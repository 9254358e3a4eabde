from __future__ import annotations

from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..common.errors import Conflict, InvalidInput, NotFound
from ..common.identity import Identity
from ..common.transaction import ServiceBase, ServiceSettings
from ..files.service import TreeStore
from ..models import AccessLevel, Favorite, File, Folder, RecentFile, ResourceType, utc_now
from ..permissions.service import PermissionResolver
from ..trash.service import parse_resource_type


DEFAULT_RECENT_LIMIT = 20
MAX_RECENT_LIMIT = 100


class FavoriteService(ServiceBase):
    """Per-user favorites and recently opened files.

    Entries whose resource was trashed, or which the user can no longer
    view, stay stored but are left out of the listings.
    """

    def __init__(
        self,
        session: Session,
        resolver: PermissionResolver,
        tree: TreeStore,
        settings: ServiceSettings,
    ) -> None:
        super().__init__(session)
        self.resolver = resolver
        self.tree = tree
        self.settings = settings

    def _visible_resource(self, identity: Identity, resource_type: ResourceType, resource_id: str) -> File | Folder:
        if resource_type == ResourceType.FILE:
            return self.tree.get_file(identity, resource_id)
        return self.tree.get_folder(identity, resource_id)

    def _can_view(self, identity: Identity, folder: Folder | None) -> bool:
        if folder is None or folder.is_deleted:
            return False
        return self.resolver.folder_access(identity, folder).covers(AccessLevel.VIEW)

    def add_favorite(self, identity: Identity, resource_type: Any, resource_id: Any) -> Favorite:
        parsed_type = parse_resource_type(resource_type)
        resource = self._visible_resource(identity, parsed_type, str(resource_id or ""))

        existing = (
            self.session.query(Favorite.id)
            .filter_by(user_id=identity.user_id, resource_type=parsed_type, resource_id=resource.id)
            .first()
        )
        if existing is not None:
            raise Conflict("Already in favorites.", {"favorite_id": existing[0]}, code="ALREADY_FAVORITE")

        favorite = Favorite(user_id=identity.user_id, resource_type=parsed_type, resource_id=resource.id)
        try:
            with self.atomic():
                self.session.add(favorite)
                self.session.flush()
        except IntegrityError as error:
            raise Conflict("Already in favorites.", code="ALREADY_FAVORITE") from error
        return favorite

    def remove_favorite(
        self,
        identity: Identity,
        favorite_id: str | None = None,
        resource_type: Any = None,
        resource_id: Any = None,
    ) -> None:
        """Remove by favorite id, or by the resource it points at."""
        query = self.session.query(Favorite).filter(Favorite.user_id == identity.user_id)
        if favorite_id:
            query = query.filter(Favorite.id == favorite_id)
        elif resource_type is not None and resource_id:
            parsed_type = parse_resource_type(resource_type)
            query = query.filter(Favorite.resource_type == parsed_type, Favorite.resource_id == str(resource_id))
        else:
            raise InvalidInput("favorite_id or resource_type and resource_id are required.", code="INVALID_FAVORITE")

        with self.atomic():
            favorite = query.first()
            if favorite is None:
                raise NotFound("Favorite not found.", code="FAVORITE_NOT_FOUND")
            self.session.delete(favorite)

    def list_favorites(self, identity: Identity) -> list[dict[str, Any]]:
        favorites = (
            self.session.query(Favorite)
            .filter(Favorite.user_id == identity.user_id)
            .order_by(Favorite.created_at.desc())
            .all()
        )
        file_ids = [item.resource_id for item in favorites if item.resource_type == ResourceType.FILE]
        folder_ids = [item.resource_id for item in favorites if item.resource_type == ResourceType.FOLDER]
        files = {file.id: file for file in self.session.query(File).filter(File.id.in_(file_ids))} if file_ids else {}
        folders = (
            {folder.id: folder for folder in self.session.query(Folder).filter(Folder.id.in_(folder_ids))}
            if folder_ids
            else {}
        )

        items: list[dict[str, Any]] = []
        for favorite in favorites:
            entry = favorite.to_dict()
            if favorite.resource_type == ResourceType.FILE:
                file = files.get(favorite.resource_id)
                if file is None or file.is_deleted or not self._can_view(identity, file.folder):
                    continue
                entry.update(
                    resource_name=file.name,
                    parent_id=file.folder_id,
                    size=file.size,
                    mime=file.mime,
                    category=file.category,
                )
            else:
                folder = folders.get(favorite.resource_id)
                if not self._can_view(identity, folder):
                    continue
                entry.update(resource_name=folder.name, parent_id=folder.parent_id)
            items.append(entry)
        return items

    def track_recent(self, identity: Identity, file_id: str) -> RecentFile:
        file = self.tree.get_file(identity, file_id)
        with self.atomic():
            entry = self.session.query(RecentFile).filter_by(user_id=identity.user_id, file_id=file.id).first()
            if entry is None:
                entry = RecentFile(user_id=identity.user_id, file_id=file.id)
                self.session.add(entry)
            entry.accessed_at = utc_now()
            self.session.flush()

            stale_ids = [
                entry_id
                for (entry_id,) in self.session.query(RecentFile.id)
                .filter(RecentFile.user_id == identity.user_id)
                .order_by(RecentFile.accessed_at.desc(), RecentFile.id.desc())
                .offset(max(1, self.settings.recent_files_kept))
            ]
            if stale_ids:
                self.session.query(RecentFile).filter(RecentFile.id.in_(stale_ids)).delete(synchronize_session=False)
        return entry

    def list_recent(self, identity: Identity, limit: int = DEFAULT_RECENT_LIMIT) -> list[dict[str, Any]]:
        try:
            limit = int(limit)
        except (TypeError, ValueError) as error:
            raise InvalidInput("limit must be an integer.", {"limit": limit}, code="INVALID_LIMIT") from error
        limit = min(MAX_RECENT_LIMIT, max(1, limit))

        entries = (
            self.session.query(RecentFile)
            .join(File, File.id == RecentFile.file_id)
            .filter(RecentFile.user_id == identity.user_id, File.is_deleted.is_(False))
            .order_by(RecentFile.accessed_at.desc())
            .all()
        )

        items: list[dict[str, Any]] = []
        for entry in entries:
            file = entry.file
            if not self._can_view(identity, file.folder):
                continue
            item = entry.to_dict()
            item.update(
                {
                    "name": file.name,
                    "size": file.size,
                    "mime": file.mime,
                    "category": file.category,
                    "folder_id": file.folder_id,
                    "folder_name": file.folder.name,
                }
            )
            items.append(item)
            if len(items) >= limit:
                break
        return items
