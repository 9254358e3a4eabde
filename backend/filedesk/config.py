from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parents[2]


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    cleaned = raw.strip()
    return cleaned or default


def env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    values = [value.strip() for value in raw.split(",") if value.strip()]
    return values or list(default)


def env_origins() -> list[str]:
    raw_origins = os.getenv("FRONTEND_ORIGINS")
    if raw_origins:
        origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
        if origins:
            return origins

    raw_origin = os.getenv("FRONTEND_ORIGIN")
    if raw_origin:
        origin = raw_origin.strip()
        if origin:
            return [origin]

    return ["http://localhost:5173", "http://127.0.0.1:5173"]


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'filedesk.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret-key-change-me-at-least-32-bytes")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=env_int("ACCESS_TOKEN_EXPIRES_MINUTES", 15))

    FRONTEND_ORIGINS = env_origins()
    STORAGE_ROOT = os.getenv("STORAGE_ROOT", str(BASE_DIR / "storage"))
    MAX_UPLOAD_SIZE_BYTES = env_int("MAX_UPLOAD_SIZE_BYTES", 50 * 1024 * 1024)

    # Roles that bypass folder grants entirely.
    ADMIN_ROLES = env_list("ADMIN_ROLES", ["super_admin", "branch_admin", "department_admin"])
    # "sibling" rejects duplicates among live folders sharing a parent, "global" among all live folders.
    FOLDER_NAME_SCOPE = env_str("FOLDER_NAME_SCOPE", "sibling")
    FOLDER_RENAME_LEVEL = env_str("FOLDER_RENAME_LEVEL", "edit")
    MAX_TREE_DEPTH = max(1, env_int("MAX_TREE_DEPTH", 50))

    TRASH_RETENTION_DAYS = max(1, env_int("TRASH_RETENTION_DAYS", 30))
    # 0 disables the in-process sweep; use `flask purge-trash` from cron instead.
    TRASH_PURGE_INTERVAL_SECONDS = max(0, env_int("TRASH_PURGE_INTERVAL_SECONDS", 0))

    ACTIVITY_MAX_PER_PAGE = max(1, env_int("ACTIVITY_MAX_PER_PAGE", 100))
    # Newest entries kept per user in the recent-files list.
    RECENT_FILES_KEPT = max(1, env_int("RECENT_FILES_KEPT", 50))

    MAX_CONTENT_LENGTH = env_int("MAX_CONTENT_LENGTH", 1024 * 1024 * 1024)
