from __future__ import annotations

import pytest

from filedesk.common.errors import InvalidInput, NotFound
from filedesk.common.storage import LocalBlobStore, discard_blobs, file_category, validate_node_name


def test_validate_node_name_trims_and_rejects_separators():
    assert validate_node_name("  Reports 2024 ") == "Reports 2024"

    for bad in ("", "   ", "a/b", "a\\b", "what?", "..", "x" * 256):
        with pytest.raises(InvalidInput):
            validate_node_name(bad)


def test_file_category_prefers_mime_then_extension():
    assert file_category("application/pdf; charset=binary", "scan.bin") == "pdf"
    assert file_category("image/svg+xml", "logo.svg") == "image"
    assert file_category(None, "budget.XLSX") == "excel"
    assert file_category("application/octet-stream", "unknown.dat") == "other"


def test_local_blob_store_roundtrip_and_containment(tmp_path):
    store = LocalBlobStore(tmp_path / "blobs")

    path = store.put(b"payload", ".txt")
    assert path.endswith(".txt")
    assert store.get(path) == b"payload"

    store.delete(path)
    assert not (store.root / path).exists()
    with pytest.raises(NotFound) as missing:
        store.get(path)
    assert missing.value.code == "FILE_MISSING"

    with pytest.raises(InvalidInput):
        store.get("../outside.txt")


def test_discard_blobs_counts_removed_paths(app, tmp_path):
    store = LocalBlobStore(tmp_path / "other")
    paths = [store.put(b"a"), store.put(b"b")]

    with app.app_context():
        assert discard_blobs(store, paths) == 2

    assert not any((store.root / path).exists() for path in paths)
