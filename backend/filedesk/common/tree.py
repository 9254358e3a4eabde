from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ..models import File, Folder
from .errors import Conflict, TreeIntegrityError


@dataclass
class Subtree:
    """A folder plus everything below it, as loaded by :func:`collect_subtree`."""

    root: Folder
    folders: list[Folder] = field(default_factory=list)
    files: list[File] = field(default_factory=list)
    depths: dict[str, int] = field(default_factory=dict)


def collect_subtree(session: Session, root: Folder, max_depth: int) -> Subtree:
    subtree = Subtree(root=root)
    stack: list[tuple[Folder, int]] = [(root, 0)]

    while stack:
        folder, depth = stack.pop()
        if folder.id in subtree.depths:
            raise TreeIntegrityError(
                "Folder graph contains a cycle.",
                {"folder_id": folder.id, "root_id": root.id},
            )
        if depth > max_depth:
            raise TreeIntegrityError(
                f"Folder tree is deeper than {max_depth} levels.",
                {"folder_id": folder.id, "root_id": root.id},
            )
        subtree.depths[folder.id] = depth
        subtree.folders.append(folder)

        children = session.query(Folder).filter(Folder.parent_id == folder.id).all()
        stack.extend((child, depth + 1) for child in children)

    folder_ids = list(subtree.depths)
    subtree.files = session.query(File).filter(File.folder_id.in_(folder_ids)).all()
    return subtree


def ancestor_chain(session: Session, folder: Folder, max_depth: int) -> list[Folder]:
    """Ancestors of ``folder`` from its parent up to the root."""
    chain: list[Folder] = []
    seen = {folder.id}
    parent_id = folder.parent_id

    while parent_id is not None:
        if parent_id in seen:
            raise TreeIntegrityError("Folder graph contains a cycle.", {"folder_id": folder.id})
        if len(chain) >= max_depth:
            raise TreeIntegrityError(
                f"Folder ancestry is deeper than {max_depth} levels.",
                {"folder_id": folder.id},
            )
        seen.add(parent_id)
        parent = session.get(Folder, parent_id)
        if parent is None:
            break
        chain.append(parent)
        parent_id = parent.parent_id

    return chain


def assert_not_descendant(session: Session, folder_id: str, destination_id: str | None, max_depth: int) -> None:
    """Fail with Conflict when ``destination_id`` is ``folder_id`` or lies below it.

    Walks up from the destination; running past ``max_depth`` or meeting a
    folder twice fails closed with TreeIntegrityError.
    """
    seen: set[str] = set()
    current_id = destination_id
    steps = 0

    while current_id is not None:
        if current_id == folder_id:
            if steps == 0:
                raise Conflict("A folder cannot be moved into itself.", code="INVALID_MOVE")
            raise Conflict("A folder cannot be moved into one of its descendants.", code="INVALID_MOVE")
        if current_id in seen:
            raise TreeIntegrityError("Folder graph contains a cycle.", {"folder_id": current_id})
        if steps >= max_depth:
            raise TreeIntegrityError(
                f"Destination ancestry is deeper than {max_depth} levels.",
                {"folder_id": destination_id},
            )
        seen.add(current_id)
        steps += 1
        current_id = session.query(Folder.parent_id).filter(Folder.id == current_id).scalar()


def subtree_height(session: Session, root: Folder, max_depth: int) -> int:
    """Levels of folders below ``root``, trashed ones included; 0 for a leaf."""
    seen = {root.id}
    level_ids = [root.id]
    height = 0

    while True:
        child_ids = [child_id for (child_id,) in session.query(Folder.id).filter(Folder.parent_id.in_(level_ids))]
        if not child_ids:
            return height
        if seen.intersection(child_ids):
            raise TreeIntegrityError("Folder graph contains a cycle.", {"root_id": root.id})
        height += 1
        if height > max_depth:
            raise TreeIntegrityError(
                f"Folder tree is deeper than {max_depth} levels.",
                {"root_id": root.id},
            )
        seen.update(child_ids)
        level_ids = child_ids
