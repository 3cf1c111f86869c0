"""Tests for vault data models: derived status, redaction, row mapping."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from clo_core.exceptions import ValidationError
from clo_core.vault import FileRef, VaultItem, VaultItemStatus, VaultItemType
from clo_core.vault.models import Capsule, utc_now_iso


def _item(**overrides):
    base = dict(
        id="item-1",
        capsule_id="cap-1",
        title="Wifi",
        content_type=VaultItemType.PASSWORD,
        uploaded_by="alice",
        created_at="2025-06-01T12:00:00",
        encrypted_content="hunter2",
    )
    base.update(overrides)
    return VaultItem(**base)


def _row(**values):
    """Build a sqlite3.Row with the vault_items columns."""
    columns = {
        "id": "item-1",
        "capsule_id": "cap-1",
        "created_by": "alice",
        "title": "Lease",
        "item_type": "document",
        "encrypted_content": None,
        "encryption_iv": None,
        "file_url": None,
        "file_name": None,
        "file_size": None,
        "mime_type": None,
        "thumbnail_url": None,
        "approved_by_uploader": 1,
        "approved_by_partner": 0,
        "created_at": "2025-06-01T12:00:00",
    }
    columns.update(values)
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    names = list(columns)
    select = ", ".join(f"? AS {n}" for n in names)
    row = conn.execute(f"SELECT {select}", [columns[n] for n in names]).fetchone()
    conn.close()
    return row


class TestVaultItemType:
    def test_text_and_file_kinds(self):
        assert VaultItemType.NOTE.is_text
        assert VaultItemType.PASSWORD.is_text
        assert VaultItemType.ACCOUNT.is_text
        assert VaultItemType.IMAGE.is_file
        assert VaultItemType.DOCUMENT.is_file
        assert not VaultItemType.NOTE.is_file


class TestStatus:
    def test_new_item_is_pending(self):
        item = _item()
        assert item.approved_by_uploader is True
        assert item.approved_by_partner is False
        assert item.status is VaultItemStatus.PENDING

    def test_visible_only_when_both_flags_true(self):
        assert _item(approved_by_partner=True).status is VaultItemStatus.VISIBLE
        assert _item(approved_by_uploader=False, approved_by_partner=True).status is VaultItemStatus.PENDING
        assert _item(approved_by_uploader=False).status is VaultItemStatus.PENDING

    def test_rejected_is_never_derived(self):
        for uploader in (True, False):
            for partner in (True, False):
                item = _item(approved_by_uploader=uploader, approved_by_partner=partner)
                assert item.status is not VaultItemStatus.REJECTED


class TestRedaction:
    def test_pending_item_hides_content_and_file(self):
        item = _item(
            content_type=VaultItemType.IMAGE,
            encrypted_content=None,
            file_ref=FileRef(url="http://x/cap-1/a.png", name="a.png"),
        )
        view = item.for_viewer()
        assert view.file_ref is None
        assert view.encrypted_content is None
        assert view.title == item.title
        assert view.status is VaultItemStatus.PENDING
        assert view.to_dict()["redacted"] is True

    def test_visible_item_is_returned_whole(self):
        item = _item(approved_by_partner=True)
        view = item.for_viewer()
        assert view.encrypted_content == "hunter2"
        assert view.to_dict()["redacted"] is False

    def test_to_dict_shape(self):
        data = _item().redacted().to_dict()
        assert data["status"] == "pending"
        assert data["content_type"] == "password"
        assert data["encrypted_content"] is None
        assert data["file"] is None
        assert data["uploaded_by"] == "alice"


class TestFromRow:
    def test_maps_columns(self):
        row = _row(
            file_url="http://x/cap-1/lease.pdf",
            file_name="lease.pdf",
            file_size=1024,
            mime_type="application/pdf",
        )
        item = VaultItem.from_row(row)
        assert item.uploaded_by == "alice"
        assert item.content_type is VaultItemType.DOCUMENT
        assert item.file_ref.name == "lease.pdf"
        assert item.file_ref.size == 1024
        assert item.encryption_iv is None

    def test_null_flags_fall_back_to_defaults(self):
        item = VaultItem.from_row(_row(approved_by_uploader=None, approved_by_partner=None))
        assert item.approved_by_uploader is True
        assert item.approved_by_partner is False

    def test_unknown_item_type_rejected(self):
        with pytest.raises(ValidationError):
            VaultItem.from_row(_row(item_type="video"))


class TestCapsule:
    def test_membership(self):
        capsule = Capsule(id="c", user_a_id="alice", user_b_id="bob")
        assert capsule.is_member("alice")
        assert capsule.is_member("bob")
        assert not capsule.is_member("mallory")
        assert capsule.partner_of("alice") == "bob"
        assert capsule.partner_of("mallory") is None

    def test_no_partner_yet(self):
        capsule = Capsule(id="c", user_a_id="alice")
        assert capsule.partner_of("alice") is None
        assert not capsule.is_member(None)

    def test_to_dict(self):
        capsule = Capsule(id="c", user_a_id="alice", created_at="2025-06-01T12:00:00+00:00")
        assert capsule.to_dict() == {
            "id": "c",
            "user_a_id": "alice",
            "user_b_id": None,
            "created_at": "2025-06-01T12:00:00+00:00",
            "invite_token": None,
        }


def test_timestamps_are_utc_aware():
    stamp = datetime.fromisoformat(utc_now_iso())
    assert stamp.tzinfo is not None
    assert stamp.utcoffset() == timedelta(0)


def test_stored_timestamps_carry_offset(vault_store):
    capsule = vault_store.create_capsule("alice", "bob")
    item = vault_store.insert_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, encrypted_content="x")
    assert capsule.created_at.endswith("+00:00")
    assert item.created_at.endswith("+00:00")
