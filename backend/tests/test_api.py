from __future__ import annotations

import io


def _create_folder(client, headers, name: str, parent_id: str | None = None) -> str:
    response = client.post("/folders", json={"name": name, "parent_id": parent_id}, headers=headers)
    assert response.status_code == 201
    return response.get_json()["item"]["id"]


def _upload(client, headers, folder_id: str, name: str, content: bytes) -> str:
    response = client.post(
        "/files/upload",
        data={"folder_id": folder_id, "file": (io.BytesIO(content), name)},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    return response.get_json()["item"]["id"]


def test_health_is_public(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_protected_routes_need_a_token(client):
    response = client.get("/folders")
    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "UNAUTHENTICATED"


def test_folder_upload_download_roundtrip(client, auth_headers, alice):
    headers = auth_headers(alice)
    folder_id = _create_folder(client, headers, "docs")
    file_id = _upload(client, headers, folder_id, "note.txt", b"hello filedesk")

    listing = client.get(f"/folders?parent_id={folder_id}", headers=headers)
    assert listing.status_code == 200
    assert [item["name"] for item in listing.get_json()["files"]] == ["note.txt"]

    download = client.get(f"/files/{file_id}/download", headers=headers)
    assert download.status_code == 200
    assert download.data == b"hello filedesk"

    detail = client.get(f"/folders/{folder_id}", headers=headers)
    assert detail.get_json()["item"]["access"] == "manage"


def test_errors_use_the_json_envelope(client, auth_headers, alice, bob):
    folder_id = _create_folder(client, auth_headers(alice), "private")

    hidden = client.get(f"/folders/{folder_id}", headers=auth_headers(bob))
    assert hidden.status_code == 404
    assert hidden.get_json()["error"]["code"] == "FOLDER_NOT_FOUND"

    bad_name = client.post("/folders", json={"name": "a/b"}, headers=auth_headers(alice))
    assert bad_name.status_code == 400
    assert bad_name.get_json()["error"]["code"] == "INVALID_NAME"

    duplicate = client.post("/folders", json={"name": "private"}, headers=auth_headers(alice))
    assert duplicate.status_code == 409


def test_grant_rename_and_restore_over_http(client, auth_headers, alice, bob):
    alice_headers = auth_headers(alice)
    bob_headers = auth_headers(bob)
    folder_id = _create_folder(client, alice_headers, "Reports")

    grant = client.post(
        f"/permissions/folders/{folder_id}",
        json={"target_type": "user", "target_id": bob.user_id, "level": "view"},
        headers=alice_headers,
    )
    assert grant.status_code == 200

    denied = client.patch(f"/folders/{folder_id}", json={"name": "Mine"}, headers=bob_headers)
    assert denied.status_code == 403

    client.post(
        f"/permissions/folders/{folder_id}",
        json={"target_type": "user", "target_id": bob.user_id, "level": "edit"},
        headers=alice_headers,
    )
    renamed = client.patch(f"/folders/{folder_id}", json={"name": "Reports2024"}, headers=bob_headers)
    assert renamed.status_code == 200
    assert renamed.get_json()["item"]["name"] == "Reports2024"

    grants = client.get(f"/permissions/folders/{folder_id}", headers=bob_headers).get_json()
    assert [item["level"] for item in grants["users"] if item["target_id"] == bob.user_id] == ["edit"]

    mine = client.get(f"/permissions/folders/{folder_id}/me", headers=bob_headers).get_json()
    assert mine["level"] == "edit"

    assert client.delete(f"/folders/{folder_id}", headers=alice_headers).status_code == 200
    trashed = client.get(f"/permissions/folders/{folder_id}/me", headers=alice_headers).get_json()
    assert trashed["level"] == "none"
    trash = client.get("/trash", headers=alice_headers).get_json()
    assert [item["id"] for item in trash["items"]] == [folder_id]

    forbidden = client.post("/trash/restore", json={"type": "folder", "id": folder_id}, headers=bob_headers)
    assert forbidden.status_code == 403
    restored = client.post("/trash/restore", json={"type": "folder", "id": folder_id}, headers=alice_headers)
    assert restored.status_code == 200


def test_move_into_descendant_is_a_conflict(client, auth_headers, alice):
    headers = auth_headers(alice)
    parent_id = _create_folder(client, headers, "parent")
    child_id = _create_folder(client, headers, "child", parent_id)

    response = client.post(f"/folders/{parent_id}/move", json={"parent_id": child_id}, headers=headers)
    assert response.status_code == 409
    assert response.get_json()["error"]["code"] == "INVALID_MOVE"

    to_root = client.post(f"/folders/{child_id}/move", json={"parent_id": None}, headers=headers)
    assert to_root.status_code == 200
    assert to_root.get_json()["item"]["parent_id"] is None


def test_public_share_download_with_password_and_cap(client, auth_headers, alice):
    headers = auth_headers(alice)
    folder_id = _create_folder(client, headers, "outbox")
    file_id = _upload(client, headers, folder_id, "offer.txt", b"offer")

    created = client.post(
        "/shares",
        json={"resource_type": "file", "resource_id": file_id, "password": "pw", "max_downloads": 1},
        headers=headers,
    )
    assert created.status_code == 201
    link = created.get_json()["link"]
    assert "password_hash" not in link
    token = link["token"]

    info = client.get(f"/public/shares/{token}")
    assert info.status_code == 200
    assert info.get_json()["has_password"] is True

    missing_password = client.post(f"/public/shares/{token}/download")
    assert missing_password.status_code == 401
    assert missing_password.get_json()["error"]["code"] == "PASSWORD_REQUIRED"

    download = client.post(f"/public/shares/{token}/download", json={"password": "pw"})
    assert download.status_code == 200
    assert download.data == b"offer"

    exhausted = client.post(f"/public/shares/{token}/download", json={"password": "pw"})
    assert exhausted.status_code == 410
    assert exhausted.get_json()["error"]["code"] == "DOWNLOAD_LIMIT_REACHED"


def test_activity_endpoint_paginates(client, auth_headers, alice):
    headers = auth_headers(alice)
    for index in range(3):
        _create_folder(client, headers, f"folder-{index}")

    response = client.get("/activity?per_page=2&action=folders.create", headers=headers)
    assert response.status_code == 200
    payload = response.get_json()
    assert len(payload["items"]) == 2
    assert payload["pagination"]["total"] == 3

    invalid = client.get("/activity?page=abc", headers=headers)
    assert invalid.status_code == 400


def test_trash_purge_is_admin_only(client, auth_headers, alice, admin):
    denied = client.post("/trash/purge", json={"days": 0}, headers=auth_headers(alice))
    assert denied.status_code == 403

    allowed = client.post("/trash/purge", json={"days": 0, "dry_run": True}, headers=auth_headers(admin))
    assert allowed.status_code == 200
    assert allowed.get_json()["report"]["dry_run"] is True


def test_versions_over_http(client, auth_headers, alice):
    headers = auth_headers(alice)
    folder_id = _create_folder(client, headers, "drafts")
    file_id = _upload(client, headers, folder_id, "plan.txt", b"v1")

    created = client.post(
        f"/versions/files/{file_id}",
        data={"file": (io.BytesIO(b"v2"), "plan.txt"), "comment": "second pass"},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert created.status_code == 201

    history = client.get(f"/versions/files/{file_id}", headers=headers).get_json()["items"]
    assert [item["version_number"] for item in history] == [2, 1]

    restored = client.post(f"/versions/{history[1]['id']}/restore", headers=headers)
    assert restored.status_code == 200
    assert client.get(f"/files/{file_id}/download", headers=headers).data == b"v1"


def test_favorites_and_recent_over_http(client, auth_headers, alice):
    headers = auth_headers(alice)
    folder_id = _create_folder(client, headers, "starred")
    file_id = _upload(client, headers, folder_id, "memo.txt", b"memo")

    added = client.post("/favorites", json={"resource_type": "file", "resource_id": file_id}, headers=headers)
    assert added.status_code == 201
    favorite_id = added.get_json()["item"]["id"]

    again = client.post("/favorites", json={"resource_type": "file", "resource_id": file_id}, headers=headers)
    assert again.status_code == 409
    assert again.get_json()["error"]["code"] == "ALREADY_FAVORITE"

    listed = client.get("/favorites", headers=headers).get_json()["items"]
    assert [item["resource_name"] for item in listed] == ["memo.txt"]

    assert client.delete(f"/favorites/{favorite_id}", headers=headers).status_code == 200
    assert client.delete(f"/favorites/file/{file_id}", headers=headers).status_code == 404

    tracked = client.post("/recent", json={"file_id": file_id}, headers=headers)
    assert tracked.status_code == 200
    recent = client.get("/recent?limit=5", headers=headers).get_json()["items"]
    assert [item["file_id"] for item in recent] == [file_id]
