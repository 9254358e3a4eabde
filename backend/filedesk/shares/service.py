from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ..activity.service import ActivityRecorder
from ..common.errors import (
    DownloadLimitReached,
    InvalidInput,
    InvalidPassword,
    NotFound,
    PasswordRequired,
    ShareLinkExpired,
    ShareLinkInactive,
    Unauthorized,
)
from ..common.identity import AccessPolicy, Identity
from ..common.storage import BlobStore
from ..common.transaction import ServiceBase
from ..files.service import TreeStore
from ..models import AccessLevel, File, Folder, ResourceType, ShareLink, as_utc, utc_now
from ..permissions.service import PermissionResolver
from ..trash.service import parse_resource_type


TOKEN_BYTES = 32


@dataclass
class SharedResource:
    link: ShareLink
    resource_type: ResourceType
    resource: Folder | File

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_type": self.resource_type.value,
            "item": self.resource.to_dict(),
            "share": {
                "expires_at": self.link.to_dict()["expires_at"],
                "max_downloads": self.link.max_downloads,
                "download_count": self.link.download_count,
            },
        }


def _parse_max_downloads(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as error:
        raise InvalidInput("max_downloads must be an integer.", code="INVALID_MAX_DOWNLOADS") from error
    if parsed < 1:
        raise InvalidInput("max_downloads must be at least 1.", code="INVALID_MAX_DOWNLOADS")
    return parsed


class ShareLinkEngine(ServiceBase):
    """Public links to files and folders, with optional password, expiry and download cap."""

    def __init__(
        self,
        session: Session,
        blobs: BlobStore,
        policy: AccessPolicy,
        resolver: PermissionResolver,
        tree: TreeStore,
        activity: ActivityRecorder,
    ) -> None:
        super().__init__(session)
        self.blobs = blobs
        self.policy = policy
        self.resolver = resolver
        self.tree = tree
        self.activity = activity

    def _authorize_resource(self, identity: Identity, resource_type: ResourceType, resource_id: str) -> Folder | File:
        if resource_type == ResourceType.FILE:
            file = self.tree.live_file(resource_id)
            self.resolver.require(identity, file.folder, AccessLevel.EDIT, "You cannot share this file.")
            return file
        folder = self.tree.live_folder(resource_id)
        self.resolver.require(identity, folder, AccessLevel.MANAGE, "You cannot share this folder.")
        return folder

    def create_share_link(
        self,
        identity: Identity,
        resource_type: Any,
        resource_id: str,
        password: str | None = None,
        expires_at: datetime | None = None,
        max_downloads: Any = None,
    ) -> ShareLink:
        parsed_type = parse_resource_type(resource_type)
        cap = _parse_max_downloads(max_downloads)
        expiry = as_utc(expires_at)
        if expiry is not None and expiry <= utc_now():
            raise InvalidInput("expires_at must be in the future.", code="INVALID_EXPIRY")

        with self.atomic():
            resource = self._authorize_resource(identity, parsed_type, resource_id)

            link = ShareLink(
                token=secrets.token_hex(TOKEN_BYTES),
                resource_type=parsed_type,
                resource_id=resource.id,
                created_by=identity.user_id,
                expires_at=expiry,
                max_downloads=cap,
                download_count=0,
                is_active=True,
            )
            link.set_password(password)
            self.session.add(link)
            self.session.flush()
            self.activity.record(
                identity.user_id,
                "shares.create",
                parsed_type.value,
                resource.id,
                resource.name,
                {"share_id": link.id, "has_password": link.requires_password, "max_downloads": cap},
            )
        return link

    def _link_by_token(self, token: str) -> ShareLink:
        link = self.session.query(ShareLink).filter_by(token=token).one_or_none() if token else None
        if link is None:
            raise NotFound("Share link not found.", code="SHARE_NOT_FOUND")
        return link

    def resolve_share_link(self, token: str, password: str | None = None) -> SharedResource:
        link = self._link_by_token(token)
        if not link.is_active:
            raise ShareLinkInactive("This share link has been deactivated.")
        expires_at = as_utc(link.expires_at)
        if expires_at is not None and expires_at <= utc_now():
            raise ShareLinkExpired("This share link has expired.")
        if link.max_downloads is not None and link.download_count >= link.max_downloads:
            raise DownloadLimitReached("This share link has reached its download limit.")
        if link.requires_password:
            if not password:
                raise PasswordRequired("This share link is password protected.")
            if not link.verify_password(password):
                raise InvalidPassword("The password is incorrect.")

        model = File if link.resource_type == ResourceType.FILE else Folder
        resource = self.session.get(model, link.resource_id)
        if resource is None or resource.is_deleted:
            raise NotFound("The shared item is no longer available.", code="SHARED_ITEM_NOT_FOUND")
        return SharedResource(link=link, resource_type=link.resource_type, resource=resource)

    def record_download(self, token: str) -> int:
        """Count one download; the cap is enforced by the UPDATE itself, not by a prior read."""
        with self.atomic():
            result = self.session.execute(
                update(ShareLink)
                .where(
                    ShareLink.token == token,
                    ShareLink.is_active.is_(True),
                    or_(ShareLink.max_downloads.is_(None), ShareLink.download_count < ShareLink.max_downloads),
                )
                .values(download_count=ShareLink.download_count + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise DownloadLimitReached("This share link has reached its download limit.")
            count = self.session.query(ShareLink.download_count).filter(ShareLink.token == token).scalar()
        return int(count)

    def open_download(self, token: str, password: str | None = None) -> tuple[File, bytes]:
        shared = self.resolve_share_link(token, password)
        if shared.resource_type != ResourceType.FILE:
            raise InvalidInput("Shared folders cannot be downloaded directly.", code="FOLDER_DOWNLOAD_UNSUPPORTED")

        file = shared.resource
        data = self.blobs.get(file.storage_path)
        with self.atomic():
            count = self.record_download(token)
            self.activity.record(
                None,
                "shares.download",
                "file",
                file.id,
                file.name,
                {"share_id": shared.link.id, "download_count": count},
            )
        return file, data

    def share_link_info(self, token: str) -> dict[str, Any]:
        link = self._link_by_token(token)
        model = File if link.resource_type == ResourceType.FILE else Folder
        resource = self.session.get(model, link.resource_id)
        available = resource is not None and not resource.is_deleted

        expires_at = as_utc(link.expires_at)
        remaining = None
        if link.max_downloads is not None:
            remaining = max(0, link.max_downloads - link.download_count)
        return {
            "resource_type": link.resource_type.value,
            "name": resource.name if available else None,
            "size": resource.size if available and isinstance(resource, File) else None,
            "available": available,
            "is_active": link.is_active,
            "is_expired": expires_at is not None and expires_at <= utc_now(),
            "expires_at": link.to_dict()["expires_at"],
            "has_password": link.requires_password,
            "max_downloads": link.max_downloads,
            "download_count": link.download_count,
            "downloads_remaining": remaining,
        }

    def list_share_links(self, identity: Identity, resource_type: Any, resource_id: str) -> list[ShareLink]:
        parsed_type = parse_resource_type(resource_type)
        self._authorize_resource(identity, parsed_type, resource_id)
        return (
            self.session.query(ShareLink)
            .filter(ShareLink.resource_type == parsed_type, ShareLink.resource_id == resource_id)
            .order_by(ShareLink.created_at.desc())
            .all()
        )

    def deactivate_share_link(self, identity: Identity, link_id: str) -> ShareLink:
        with self.atomic():
            link = self.session.get(ShareLink, link_id)
            if link is None:
                raise NotFound("Share link not found.", code="SHARE_NOT_FOUND")
            if not self.policy.is_owner_or_admin(identity, link.created_by):
                raise Unauthorized("Only the creator or an administrator can deactivate this link.")
            if link.is_active:
                link.is_active = False
                self.session.flush()
                self.activity.record(
                    identity.user_id,
                    "shares.deactivate",
                    link.resource_type.value,
                    link.resource_id,
                    None,
                    {"share_id": link.id},
                )
        return link
