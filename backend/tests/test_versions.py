from __future__ import annotations

import pytest

from filedesk.common.errors import NotFound, Unauthorized
from filedesk.extensions import db
from filedesk.models import File


def _uploaded(services, owner, content: bytes = b"first draft"):
    folder = services.tree.create_folder(owner, "Drafts")
    return services.tree.upload_file(owner, folder.id, "draft.txt", content, "text/plain")


def test_first_new_version_keeps_the_original_as_version_one(services, alice):
    file = _uploaded(services, alice)
    original_path = file.storage_path

    version = services.versions.create_version(alice, file.id, b"second draft", "tightened intro")

    history = services.versions.list_versions(alice, file.id)
    assert [item.version_number for item in history] == [2, 1]
    assert history[1].storage_path == original_path
    assert history[0].comment == "tightened intro"
    assert version.is_current and not history[1].is_current

    _, data = services.tree.read_file(alice, file.id)
    assert data == b"second draft"
    assert db.session.get(File, file.id).size == len(b"second draft")


def test_restore_version_points_file_back(services, alice):
    file = _uploaded(services, alice)
    services.versions.create_version(alice, file.id, b"v2")
    services.versions.create_version(alice, file.id, b"v3!")

    first = [item for item in services.versions.list_versions(alice, file.id) if item.version_number == 1][0]
    restored = services.versions.restore_version(alice, first.id)

    assert restored.is_current
    _, data = services.tree.read_file(alice, file.id)
    assert data == b"first draft"
    current = [item.version_number for item in services.versions.list_versions(alice, file.id) if item.is_current]
    assert current == [1]


def test_versions_follow_folder_permissions(services, alice, bob):
    file = _uploaded(services, alice)

    with pytest.raises(NotFound):
        services.versions.list_versions(bob, file.id)

    services.resolver.grant(alice, file.folder_id, "user", bob.user_id, "view")
    assert services.versions.list_versions(bob, file.id) == []
    with pytest.raises(Unauthorized):
        services.versions.create_version(bob, file.id, b"sneaky")

    with pytest.raises(NotFound):
        services.versions.restore_version(alice, "missing")
