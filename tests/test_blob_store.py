"""Tests for the filesystem blob store backing vault files."""

import pytest

from clo_core.vault.blob_store import BlobStorageError


def test_upload_returns_public_url(blob_store):
    url = blob_store.upload("cap-1/a.txt", b"hello", "text/plain")
    assert url == "http://localhost:8000/files/cap-1/a.txt"
    assert (blob_store.root / "cap-1" / "a.txt").read_bytes() == b"hello"


def test_never_overwrites(blob_store):
    blob_store.upload("cap-1/a.txt", b"one", "text/plain")
    with pytest.raises(BlobStorageError):
        blob_store.upload("cap-1/a.txt", b"two", "text/plain")
    assert (blob_store.root / "cap-1" / "a.txt").read_bytes() == b"one"


@pytest.mark.parametrize("path", ["../escape.txt", "cap-1/../../x", "/etc/passwd", ""])
def test_rejects_paths_outside_root(blob_store, path):
    with pytest.raises(BlobStorageError):
        blob_store.upload(path, b"x", "text/plain")


def test_remove_reports_deleted(blob_store):
    blob_store.upload("cap-1/a.txt", b"x", "text/plain")
    assert blob_store.remove(["cap-1/a.txt", "cap-1/missing.txt"]) == ["cap-1/a.txt"]
    assert not blob_store.exists("cap-1/a.txt")
