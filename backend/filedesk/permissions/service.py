from __future__ import annotations

from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..activity.service import ActivityRecorder
from ..common.errors import InvalidInput, NotFound, Unauthorized
from ..common.identity import AccessPolicy, Identity
from ..common.transaction import ServiceBase
from ..models import AccessLevel, File, Folder, FolderGrant, GrantTargetType, utc_now


def parse_target_type(value: Any) -> GrantTargetType:
    normalized = str(value or "").strip().lower()
    for target_type in GrantTargetType:
        if target_type.value == normalized:
            return target_type
    raise InvalidInput(
        "target_type must be one of user, branch, department.",
        {"target_type": value},
        code="INVALID_TARGET_TYPE",
    )


def parse_grant_level(value: Any) -> AccessLevel:
    try:
        level = AccessLevel.parse(str(value or ""))
    except ValueError as error:
        raise InvalidInput("level must be one of view, edit, manage.", {"level": value}, code="INVALID_LEVEL") from error
    if level == AccessLevel.NONE:
        raise InvalidInput("level must be one of view, edit, manage.", {"level": value}, code="INVALID_LEVEL")
    return level


def _clean_target_id(value: Any) -> str:
    target_id = str(value or "").strip()
    if not target_id:
        raise InvalidInput("target_id is required.", code="INVALID_TARGET")
    if len(target_id) > 64:
        raise InvalidInput("target_id must be <= 64 characters.", code="INVALID_TARGET")
    return target_id


class PermissionResolver(ServiceBase):
    """Effective access of an identity on folders and the files inside them.

    Every check reads the grant table afresh; nothing is cached between calls.
    """

    def __init__(self, session: Session, policy: AccessPolicy, activity: ActivityRecorder) -> None:
        super().__init__(session)
        self.policy = policy
        self.activity = activity

    def resolve_access(self, identity: Identity, folder_id: str | None) -> AccessLevel:
        """Access on a live folder; missing and trashed folders resolve to ``none``."""
        if not folder_id:
            return AccessLevel.NONE
        folder = self.session.get(Folder, folder_id)
        if folder is None or folder.is_deleted:
            return AccessLevel.NONE
        return self.folder_access(identity, folder)

    def folder_access(self, identity: Identity, folder: Folder) -> AccessLevel:
        if self.policy.is_admin(identity):
            return AccessLevel.MANAGE

        best = AccessLevel.NONE
        if folder.created_by == identity.user_id:
            best = AccessLevel.MANAGE

        target_filters = [
            and_(FolderGrant.target_type == GrantTargetType.USER, FolderGrant.target_id == identity.user_id)
        ]
        if identity.branch_id:
            target_filters.append(
                and_(FolderGrant.target_type == GrantTargetType.BRANCH, FolderGrant.target_id == identity.branch_id)
            )
        if identity.department_id:
            target_filters.append(
                and_(
                    FolderGrant.target_type == GrantTargetType.DEPARTMENT,
                    FolderGrant.target_id == identity.department_id,
                )
            )

        levels = (
            self.session.query(FolderGrant.level)
            .filter(FolderGrant.folder_id == folder.id, or_(*target_filters))
            .all()
        )
        for (level,) in levels:
            if level.rank > best.rank:
                best = level
        return best

    def file_access(self, identity: Identity, file_id: str) -> AccessLevel:
        folder_id = self.session.query(File.folder_id).filter(File.id == file_id).scalar()
        return self.resolve_access(identity, folder_id)

    def require(self, identity: Identity, folder: Folder, level: AccessLevel, message: str | None = None) -> AccessLevel:
        """Raise unless ``identity`` holds at least ``level`` on ``folder``.

        Callers with no access at all get NotFound so that the folder's
        existence is not revealed to them.
        """
        resolved = self.folder_access(identity, folder)
        if resolved.covers(level):
            return resolved
        if resolved == AccessLevel.NONE:
            raise NotFound("Folder not found.", code="FOLDER_NOT_FOUND")
        raise Unauthorized(
            message or f"This operation needs {level.value} access on the folder.",
            {"required": level.value, "granted": resolved.value},
        )

    def _folder_or_404(self, folder_id: str) -> Folder:
        folder = self.session.get(Folder, folder_id)
        if folder is None or folder.is_deleted:
            raise NotFound("Folder not found.", code="FOLDER_NOT_FOUND")
        return folder

    def grant(
        self,
        identity: Identity,
        folder_id: str,
        target_type: Any,
        target_id: Any,
        level: Any,
    ) -> FolderGrant:
        parsed_type = parse_target_type(target_type)
        parsed_level = parse_grant_level(level)
        cleaned_target = _clean_target_id(target_id)

        with self.atomic():
            folder = self._folder_or_404(folder_id)
            self.require(identity, folder, AccessLevel.MANAGE, "Only folder managers can change permissions.")

            grant = self.upsert_grant(folder, parsed_type, cleaned_target, parsed_level, identity.user_id)
            self.activity.record(
                identity.user_id,
                "permissions.grant",
                "folder",
                folder.id,
                folder.name,
                {"target_type": parsed_type.value, "target_id": cleaned_target, "level": parsed_level.value},
            )
        return grant

    def upsert_grant(
        self,
        folder: Folder,
        target_type: GrantTargetType,
        target_id: str,
        level: AccessLevel,
        granted_by: str | None,
    ) -> FolderGrant:
        grant = (
            self.session.query(FolderGrant)
            .filter_by(folder_id=folder.id, target_type=target_type, target_id=target_id)
            .one_or_none()
        )
        if grant is None:
            grant = FolderGrant(
                folder_id=folder.id,
                target_type=target_type,
                target_id=target_id,
                level=level,
                granted_by=granted_by,
            )
            self.session.add(grant)
        else:
            grant.level = level
            grant.granted_by = granted_by
            grant.updated_at = utc_now()
        self.session.flush()
        return grant

    def revoke(self, identity: Identity, folder_id: str, target_type: Any, target_id: Any) -> None:
        parsed_type = parse_target_type(target_type)
        cleaned_target = _clean_target_id(target_id)

        with self.atomic():
            folder = self._folder_or_404(folder_id)
            self.require(identity, folder, AccessLevel.MANAGE, "Only folder managers can change permissions.")

            grant = (
                self.session.query(FolderGrant)
                .filter_by(folder_id=folder.id, target_type=parsed_type, target_id=cleaned_target)
                .one_or_none()
            )
            if grant is None:
                raise NotFound("Permission not found.", code="GRANT_NOT_FOUND")

            self.session.delete(grant)
            self.activity.record(
                identity.user_id,
                "permissions.revoke",
                "folder",
                folder.id,
                folder.name,
                {"target_type": parsed_type.value, "target_id": cleaned_target},
            )

    def list_grants(self, identity: Identity, folder_id: str) -> dict[str, list[dict[str, Any]]]:
        folder = self._folder_or_404(folder_id)
        self.require(identity, folder, AccessLevel.VIEW)

        grouped: dict[str, list[dict[str, Any]]] = {target_type.value: [] for target_type in GrantTargetType}
        grants = (
            self.session.query(FolderGrant)
            .filter(FolderGrant.folder_id == folder.id)
            .order_by(FolderGrant.created_at.asc(), FolderGrant.id.asc())
            .all()
        )
        for grant in grants:
            grouped[grant.target_type.value].append(grant.to_dict())
        return grouped
