from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..models import AccessLevel
from .errors import Conflict


_DEPTH_KEY = "filedesk.atomic_depth"


@dataclass(frozen=True)
class ServiceSettings:
    max_tree_depth: int = 50
    folder_name_scope: str = "sibling"
    folder_rename_level: AccessLevel = AccessLevel.EDIT
    trash_retention_days: int = 30
    activity_max_per_page: int = 100
    max_upload_size: int = 50 * 1024 * 1024
    recent_files_kept: int = 50

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ServiceSettings":
        scope = str(config.get("FOLDER_NAME_SCOPE") or "sibling").strip().lower()
        if scope not in {"sibling", "global"}:
            raise RuntimeError(f"FOLDER_NAME_SCOPE must be 'sibling' or 'global', got {scope!r}.")
        rename_level = AccessLevel.parse(str(config.get("FOLDER_RENAME_LEVEL") or "edit"))
        if rename_level == AccessLevel.NONE:
            raise RuntimeError("FOLDER_RENAME_LEVEL must be view, edit or manage.")
        return cls(
            max_tree_depth=int(config.get("MAX_TREE_DEPTH", 50)),
            folder_name_scope=scope,
            folder_rename_level=rename_level,
            trash_retention_days=int(config.get("TRASH_RETENTION_DAYS", 30)),
            activity_max_per_page=int(config.get("ACTIVITY_MAX_PER_PAGE", 100)),
            max_upload_size=int(config.get("MAX_UPLOAD_SIZE_BYTES", 50 * 1024 * 1024)),
            recent_files_kept=int(config.get("RECENT_FILES_KEPT", 50)),
        )


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit once the outermost block exits cleanly, roll everything back otherwise.

    Blocks nest: only the outermost one commits, and an exception anywhere
    discards the whole unit of work.
    """
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except StaleDataError as error:
        session.rollback()
        raise Conflict(
            "The item was changed by another request; reload and try again.",
            code="CONCURRENT_MODIFICATION",
        ) from error
    except BaseException:
        session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth


class ServiceBase:
    def __init__(self, session: Session) -> None:
        self.session = session

    def atomic(self):  # type: ignore[no-untyped-def]
        return atomic(self.session)
