from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

from .extensions import db


pwd_hasher = PasswordHasher()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def _iso(value: datetime | None) -> str | None:
    normalized = as_utc(value)
    return normalized.isoformat() if normalized else None


class AccessLevel(str, enum.Enum):
    NONE = "none"
    VIEW = "view"
    EDIT = "edit"
    MANAGE = "manage"

    @property
    def rank(self) -> int:
        return _ACCESS_RANKS[self]

    def covers(self, required: "AccessLevel") -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value: str | None) -> "AccessLevel":
        normalized = (value or "").strip().lower()
        for level in cls:
            if level.value == normalized:
                return level
        raise ValueError(f"Unknown access level: {value!r}")


_ACCESS_RANKS = {
    AccessLevel.NONE: -1,
    AccessLevel.VIEW: 0,
    AccessLevel.EDIT: 1,
    AccessLevel.MANAGE: 2,
}


class GrantTargetType(str, enum.Enum):
    USER = "user"
    BRANCH = "branch"
    DEPARTMENT = "department"


class ResourceType(str, enum.Enum):
    FILE = "file"
    FOLDER = "folder"


class Folder(db.Model):
    __tablename__ = "folders"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False, index=True)
    parent_id = db.Column(db.String(32), db.ForeignKey("folders.id"), nullable=True, index=True)
    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship("Folder", remote_side=[id], back_populates="children")
    children = db.relationship("Folder", back_populates="parent", passive_deletes="all")
    files = db.relationship("File", back_populates="folder", passive_deletes="all")
    grants = db.relationship("FolderGrant", back_populates="folder", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": ResourceType.FOLDER.value,
            "name": self.name,
            "parent_id": self.parent_id,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "is_deleted": self.is_deleted,
            "deleted_at": _iso(self.deleted_at),
        }


class File(db.Model):
    __tablename__ = "files"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    folder_id = db.Column(db.String(32), db.ForeignKey("folders.id"), nullable=False, index=True)
    size = db.Column(db.BigInteger, nullable=False, default=0)
    mime = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(32), nullable=False, default="other")
    storage_path = db.Column(db.String(512), unique=True, nullable=False)
    created_by = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    folder = db.relationship("Folder", back_populates="files")
    versions = db.relationship(
        "FileVersion",
        back_populates="file",
        cascade="all, delete-orphan",
        order_by="FileVersion.version_number",
    )

    __table_args__ = (db.CheckConstraint("size >= 0", name="ck_files_size_non_negative"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": ResourceType.FILE.value,
            "name": self.name,
            "folder_id": self.folder_id,
            "size": self.size,
            "mime": self.mime,
            "category": self.category,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "is_deleted": self.is_deleted,
            "deleted_at": _iso(self.deleted_at),
        }


class FolderGrant(db.Model):
    __tablename__ = "folder_grants"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    folder_id = db.Column(db.String(32), db.ForeignKey("folders.id", ondelete="CASCADE"), nullable=False, index=True)
    target_type = db.Column(db.Enum(GrantTargetType), nullable=False)
    target_id = db.Column(db.String(64), nullable=False)
    level = db.Column(db.Enum(AccessLevel), nullable=False, default=AccessLevel.VIEW)
    granted_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    folder = db.relationship("Folder", back_populates="grants")

    __table_args__ = (
        db.UniqueConstraint("folder_id", "target_type", "target_id", name="uq_folder_grant_target"),
        db.Index("ix_folder_grants_target", "target_type", "target_id"),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "folder_id": self.folder_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "level": self.level.value,
            "granted_by": self.granted_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ShareLink(db.Model):
    __tablename__ = "share_links"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    resource_type = db.Column(db.Enum(ResourceType), nullable=False)
    resource_id = db.Column(db.String(32), nullable=False, index=True)
    created_by = db.Column(db.String(64), nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    max_downloads = db.Column(db.Integer, nullable=True)
    download_count = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        db.CheckConstraint(
            "max_downloads IS NULL OR download_count <= max_downloads",
            name="ck_share_links_download_cap",
        ),
    )

    def set_password(self, password: str | None) -> None:
        self.password_hash = pwd_hasher.hash(password) if password else None

    def verify_password(self, password: str) -> bool:
        if not self.password_hash:
            return True
        try:
            return pwd_hasher.verify(self.password_hash, password)
        except (VerifyMismatchError, InvalidHashError):
            return False

    @property
    def requires_password(self) -> bool:
        return bool(self.password_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "token": self.token,
            "resource_type": self.resource_type.value,
            "resource_id": self.resource_id,
            "created_by": self.created_by,
            "has_password": self.requires_password,
            "expires_at": _iso(self.expires_at),
            "max_downloads": self.max_downloads,
            "download_count": self.download_count,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class FileVersion(db.Model):
    __tablename__ = "file_versions"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    file_id = db.Column(db.String(32), db.ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = db.Column(db.Integer, nullable=False)
    size = db.Column(db.BigInteger, nullable=False, default=0)
    storage_path = db.Column(db.String(512), nullable=False)
    comment = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    is_current = db.Column(db.Boolean, nullable=False, default=False)

    file = db.relationship("File", back_populates="versions")

    __table_args__ = (db.UniqueConstraint("file_id", "version_number", name="uq_file_version_number"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "file_id": self.file_id,
            "version_number": self.version_number,
            "size": self.size,
            "comment": self.comment,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "is_current": self.is_current,
        }


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    resource_type = db.Column(db.String(32), nullable=True, index=True)
    resource_id = db.Column(db.String(64), nullable=True)
    resource_name = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": _iso(self.created_at),
        }


class Favorite(db.Model):
    __tablename__ = "favorites"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    resource_type = db.Column(db.Enum(ResourceType), nullable=False)
    resource_id = db.Column(db.String(32), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (db.UniqueConstraint("user_id", "resource_type", "resource_id", name="uq_favorite_resource"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource_type": self.resource_type.value,
            "resource_id": self.resource_id,
            "created_at": _iso(self.created_at),
        }


class RecentFile(db.Model):
    __tablename__ = "recent_files"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    file_id = db.Column(db.String(32), db.ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)
    accessed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    file = db.relationship("File")

    __table_args__ = (db.UniqueConstraint("user_id", "file_id", name="uq_recent_file_user"),)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "file_id": self.file_id, "accessed_at": _iso(self.accessed_at)}
