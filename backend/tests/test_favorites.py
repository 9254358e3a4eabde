from __future__ import annotations

import pytest

from filedesk.common.errors import Conflict, InvalidInput, NotFound
from filedesk.extensions import db
from filedesk.models import Favorite, RecentFile


def _folder_with_file(services, owner, name: str = "Projects"):
    folder = services.tree.create_folder(owner, name)
    file = services.tree.upload_file(owner, folder.id, "plan.txt", b"plan", "text/plain")
    return folder, file


def test_add_and_list_favorites(services, alice, bob):
    folder, file = _folder_with_file(services, alice)

    services.favorites.add_favorite(alice, "folder", folder.id)
    services.favorites.add_favorite(alice, "file", file.id)

    items = services.favorites.list_favorites(alice)
    assert {(item["resource_type"], item["resource_name"]) for item in items} == {
        ("folder", "Projects"),
        ("file", "plan.txt"),
    }
    file_entry = next(item for item in items if item["resource_type"] == "file")
    assert file_entry["parent_id"] == folder.id
    assert file_entry["size"] == 4

    with pytest.raises(Conflict):
        services.favorites.add_favorite(alice, "file", file.id)
    with pytest.raises(NotFound):
        services.favorites.add_favorite(bob, "file", file.id)
    with pytest.raises(InvalidInput):
        services.favorites.add_favorite(alice, "page", file.id)

    assert services.favorites.list_favorites(bob) == []


def test_trashed_or_hidden_favorites_leave_the_list(services, alice, bob):
    folder, file = _folder_with_file(services, alice)
    services.resolver.grant(alice, folder.id, "user", bob.user_id, "view")
    services.favorites.add_favorite(bob, "folder", folder.id)
    services.favorites.add_favorite(alice, "file", file.id)

    services.resolver.revoke(alice, folder.id, "user", bob.user_id)
    assert services.favorites.list_favorites(bob) == []

    services.lifecycle.soft_delete_file(alice, file.id)
    assert services.favorites.list_favorites(alice) == []

    services.lifecycle.restore_file(alice, file.id)
    assert [item["resource_id"] for item in services.favorites.list_favorites(alice)] == [file.id]


def test_remove_favorite_by_id_or_resource(services, alice, bob):
    folder, file = _folder_with_file(services, alice)
    by_id = services.favorites.add_favorite(alice, "folder", folder.id)
    services.favorites.add_favorite(alice, "file", file.id)

    with pytest.raises(NotFound):
        services.favorites.remove_favorite(bob, favorite_id=by_id.id)
    with pytest.raises(InvalidInput):
        services.favorites.remove_favorite(alice)

    services.favorites.remove_favorite(alice, favorite_id=by_id.id)
    services.favorites.remove_favorite(alice, resource_type="file", resource_id=file.id)

    assert Favorite.query.count() == 0
    with pytest.raises(NotFound):
        services.favorites.remove_favorite(alice, resource_type="file", resource_id=file.id)


def test_track_recent_keeps_one_row_per_file_and_trims_the_oldest(make_services, alice):
    services = make_services(recent_files_kept=2)
    folder = services.tree.create_folder(alice, "Desk")
    a, b, c = (
        services.tree.upload_file(alice, folder.id, name, b"x", "text/plain") for name in ("a.txt", "b.txt", "c.txt")
    )

    services.favorites.track_recent(alice, a.id)
    services.favorites.track_recent(alice, b.id)
    services.favorites.track_recent(alice, a.id)
    services.favorites.track_recent(alice, c.id)

    assert RecentFile.query.count() == 2
    assert [item["name"] for item in services.favorites.list_recent(alice)] == ["c.txt", "a.txt"]
    assert [item["name"] for item in services.favorites.list_recent(alice, 1)] == ["c.txt"]


def test_recent_needs_view_and_skips_trashed_files(services, alice, bob):
    _, file = _folder_with_file(services, alice)

    with pytest.raises(NotFound):
        services.favorites.track_recent(bob, file.id)

    services.favorites.track_recent(alice, file.id)
    entry = services.favorites.list_recent(alice)[0]
    assert entry["file_id"] == file.id
    assert entry["folder_name"] == "Projects"

    services.lifecycle.soft_delete_file(alice, file.id)
    assert services.favorites.list_recent(alice) == []

    with pytest.raises(InvalidInput):
        services.favorites.list_recent(alice, "many")


def test_permanent_delete_drops_favorites_and_recent_rows(services, alice):
    folder, file = _folder_with_file(services, alice)
    folder_id, file_id = folder.id, file.id
    services.favorites.add_favorite(alice, "folder", folder_id)
    services.favorites.add_favorite(alice, "file", file_id)
    services.favorites.track_recent(alice, file_id)

    services.lifecycle.soft_delete_folder(alice, folder_id)
    services.lifecycle.permanently_delete(alice, "folder", folder_id)

    db.session.expire_all()
    assert Favorite.query.count() == 0
    assert RecentFile.query.count() == 0
