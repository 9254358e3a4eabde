from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Protocol
from uuid import uuid4

from flask import current_app

from .errors import InvalidInput, NotFound


INVALID_NAME_PATTERN = re.compile(r'[\\/:*?"<>|\x00]')
MAX_NAME_LENGTH = 255

_CATEGORY_BY_MIME = {
    "application/pdf": "pdf",
    "application/msword": "word",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "word",
    "application/vnd.ms-excel": "excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "excel",
    "application/vnd.ms-powerpoint": "powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "powerpoint",
    "text/plain": "text",
    "text/csv": "text",
    "application/zip": "archive",
    "application/x-zip-compressed": "archive",
}

_CATEGORY_BY_EXTENSION = {
    "pdf": "pdf",
    "doc": "word",
    "docx": "word",
    "xls": "excel",
    "xlsx": "excel",
    "ppt": "powerpoint",
    "pptx": "powerpoint",
    "jpg": "image",
    "jpeg": "image",
    "png": "image",
    "gif": "image",
    "webp": "image",
    "mp4": "video",
    "mov": "video",
    "avi": "video",
    "wmv": "video",
    "flv": "video",
    "mkv": "video",
    "txt": "text",
    "csv": "text",
    "zip": "archive",
}


def validate_node_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidInput("Name cannot be empty.", code="INVALID_NAME")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise InvalidInput(f"Name must be <= {MAX_NAME_LENGTH} characters.", code="INVALID_NAME")
    if INVALID_NAME_PATTERN.search(cleaned):
        raise InvalidInput('Name must not contain any of \\ / : * ? " < > |', code="INVALID_NAME")
    if cleaned in {".", ".."}:
        raise InvalidInput("Reserved name.", code="INVALID_NAME")
    return cleaned


def file_category(mime: str | None, filename: str) -> str:
    normalized = (mime or "").split(";", 1)[0].strip().lower()
    if normalized in _CATEGORY_BY_MIME:
        return _CATEGORY_BY_MIME[normalized]
    if normalized.startswith("image/"):
        return "image"
    if normalized.startswith("video/"):
        return "video"
    extension = Path(filename).suffix.lstrip(".").lower()
    return _CATEGORY_BY_EXTENSION.get(extension, "other")


class BlobStore(Protocol):
    def put(self, data: bytes, suffix: str = "") -> str: ...

    def get(self, path: str) -> bytes: ...

    def delete(self, path: str) -> None: ...


def _safe_resolve(storage_root: Path, relative_path: str) -> Path:
    root = storage_root.resolve()
    candidate = (root / relative_path).resolve()
    if os.path.commonpath([str(root), str(candidate)]) != str(root):
        raise InvalidInput("Invalid storage path.", code="INVALID_PATH")
    return candidate


class LocalBlobStore:
    """Blobs on the local filesystem, bucketed by the first two hex chars of a random name."""

    def __init__(self, storage_root: str | Path) -> None:
        self.root = Path(storage_root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, data: bytes, suffix: str = "") -> str:
        internal_name = f"{uuid4().hex}{suffix}"
        relative_path = f"{internal_name[:2]}/{internal_name}"

        target_path = _safe_resolve(self.root, relative_path)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        with target_path.open("wb") as output:
            output.write(data)
        return relative_path

    def get(self, path: str) -> bytes:
        target_path = _safe_resolve(self.root, path)
        if not target_path.exists():
            raise NotFound("File data not found in storage.", code="FILE_MISSING")
        return target_path.read_bytes()

    def delete(self, path: str) -> None:
        if not path:
            return
        target_path = _safe_resolve(self.root, path)
        if target_path.exists():
            target_path.unlink()


def discard_blobs(blobs: BlobStore, paths: Iterable[str]) -> int:
    """Delete blobs whose rows are already gone; failures are logged, not raised."""
    removed = 0
    for path in paths:
        try:
            blobs.delete(path)
        except OSError:
            current_app.logger.warning("Could not remove blob %s", path, exc_info=True)
            continue
        removed += 1
    return removed
