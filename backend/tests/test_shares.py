from __future__ import annotations

import re
import threading
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from filedesk.common.errors import (
    DownloadLimitReached,
    InvalidInput,
    InvalidPassword,
    NotFound,
    PasswordRequired,
    ShareLinkExpired,
    ShareLinkInactive,
    Unauthorized,
)
from filedesk.extensions import db
from filedesk.models import ShareLink, utc_now
from filedesk.services import EXTENSION_KEY, build_services


def _shared_file(services, owner):
    folder = services.tree.create_folder(owner, "Outbox")
    return services.tree.upload_file(owner, folder.id, "contract.pdf", b"%PDF contract", "application/pdf")


def test_create_link_hashes_password_and_uses_long_token(services, alice):
    file = _shared_file(services, alice)

    link = services.shares.create_share_link(alice, "file", file.id, password="s3cret", max_downloads=3)

    assert re.fullmatch(r"[0-9a-f]{64}", link.token)
    assert link.password_hash and link.password_hash != "s3cret"
    assert link.download_count == 0
    assert link.is_active


def test_create_link_validates_input(services, alice, bob):
    file = _shared_file(services, alice)

    with pytest.raises(InvalidInput):
        services.shares.create_share_link(alice, "file", file.id, max_downloads=0)
    with pytest.raises(InvalidInput):
        services.shares.create_share_link(alice, "file", file.id, expires_at=utc_now() - timedelta(minutes=1))
    with pytest.raises(InvalidInput):
        services.shares.create_share_link(alice, "page", file.id)
    with pytest.raises(NotFound):
        services.shares.create_share_link(bob, "file", file.id)


def test_folder_links_need_manage(services, alice, bob):
    folder = services.tree.create_folder(alice, "Team")
    services.resolver.grant(alice, folder.id, "user", bob.user_id, "edit")

    with pytest.raises(Unauthorized):
        services.shares.create_share_link(bob, "folder", folder.id)

    link = services.shares.create_share_link(alice, "folder", folder.id)
    shared = services.shares.resolve_share_link(link.token)
    assert shared.resource.id == folder.id

    with pytest.raises(InvalidInput):
        services.shares.open_download(link.token)


def test_download_cap_allows_exactly_one_of_two_racers(app, services, alice):
    file = _shared_file(services, alice)
    token = services.shares.create_share_link(alice, "file", file.id, max_downloads=1).token
    db.session.commit()

    # Both callers pass validation before either one counts its download.
    services.shares.resolve_share_link(token)
    services.shares.resolve_share_link(token)
    db.session.commit()

    runtime = app.extensions[EXTENSION_KEY]
    engine = db.engine
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def download() -> None:
        session = Session(engine)
        try:
            shares = build_services(session, runtime.blobs, runtime.policy, runtime.settings).shares
            barrier.wait(timeout=5)
            try:
                shares.record_download(token)
                outcome = "ok"
            except DownloadLimitReached:
                outcome = "limit"
            with lock:
                outcomes.append(outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=download) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["limit", "ok"]
    db.session.expire_all()
    link = ShareLink.query.filter_by(token=token).one()
    assert link.download_count == 1

    with pytest.raises(DownloadLimitReached):
        services.shares.resolve_share_link(token)


def test_open_download_counts_and_returns_bytes(services, alice):
    file = _shared_file(services, alice)
    token = services.shares.create_share_link(alice, "file", file.id, password="pw", max_downloads=2).token

    with pytest.raises(PasswordRequired):
        services.shares.open_download(token)
    with pytest.raises(InvalidPassword):
        services.shares.open_download(token, "wrong")

    shared_file, data = services.shares.open_download(token, "pw")

    assert shared_file.name == "contract.pdf"
    assert data == b"%PDF contract"
    assert ShareLink.query.filter_by(token=token).one().download_count == 1


def test_resolution_errors_follow_a_fixed_order(services, alice):
    file = _shared_file(services, alice)
    link = services.shares.create_share_link(alice, "file", file.id, password="pw", max_downloads=1)
    token = link.token

    link.download_count = 1
    link.expires_at = utc_now() - timedelta(days=1)
    link.is_active = False
    db.session.commit()

    with pytest.raises(ShareLinkInactive):
        services.shares.resolve_share_link(token, "wrong")

    link = ShareLink.query.filter_by(token=token).one()
    link.is_active = True
    db.session.commit()
    with pytest.raises(ShareLinkExpired):
        services.shares.resolve_share_link(token, "wrong")

    link = ShareLink.query.filter_by(token=token).one()
    link.expires_at = None
    db.session.commit()
    with pytest.raises(DownloadLimitReached):
        services.shares.resolve_share_link(token, "wrong")

    link = ShareLink.query.filter_by(token=token).one()
    link.max_downloads = 5
    db.session.commit()
    with pytest.raises(PasswordRequired):
        services.shares.resolve_share_link(token)
    with pytest.raises(InvalidPassword):
        services.shares.resolve_share_link(token, "wrong")
    assert services.shares.resolve_share_link(token, "pw").resource.id == file.id


def test_unknown_token_and_trashed_resource_are_not_found(services, alice):
    file = _shared_file(services, alice)
    token = services.shares.create_share_link(alice, "file", file.id).token

    with pytest.raises(NotFound):
        services.shares.resolve_share_link("0" * 64)

    services.lifecycle.soft_delete_file(alice, file.id)
    with pytest.raises(NotFound):
        services.shares.resolve_share_link(token)


def test_share_link_info_needs_no_password(services, alice):
    file = _shared_file(services, alice)
    token = services.shares.create_share_link(alice, "file", file.id, password="pw", max_downloads=4).token

    info = services.shares.share_link_info(token)

    assert info["name"] == "contract.pdf"
    assert info["has_password"] is True
    assert info["downloads_remaining"] == 4
    assert info["is_expired"] is False


def test_list_and_deactivate_links(services, alice, bob, admin):
    file = _shared_file(services, alice)
    first = services.shares.create_share_link(alice, "file", file.id)
    services.shares.create_share_link(alice, "file", file.id, max_downloads=1)

    assert len(services.shares.list_share_links(alice, "file", file.id)) == 2

    with pytest.raises(Unauthorized):
        services.shares.deactivate_share_link(bob, first.id)

    deactivated = services.shares.deactivate_share_link(admin, first.id)
    assert deactivated.is_active is False
    with pytest.raises(ShareLinkInactive):
        services.shares.resolve_share_link(deactivated.token)
