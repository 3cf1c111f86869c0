"""
Tests for the vault approval engine.

Covers the mutual-approval lifecycle, redaction of pending items,
capsule membership checks and best-effort file cleanup on delete.
"""

from unittest.mock import MagicMock

import pytest

from clo_core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from clo_core.vault import FileRef, VaultItemStatus, VaultItemType


@pytest.fixture
def png_ref(vault_manager, capsule):
    return vault_manager.upload_file(capsule.id, "alice", "photo.PNG", b"\x89PNG fake", "image/png")


class TestUpload:
    def test_upload_note_is_pending(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="pw: hunter2")
        assert item.approved_by_uploader is True
        assert item.approved_by_partner is False
        assert item.status is VaultItemStatus.PENDING
        assert item.uploaded_by == "alice"
        assert item.encryption_iv is None

    def test_content_type_accepts_plain_string(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Bank", "account", content="acct 123")
        assert item.content_type is VaultItemType.ACCOUNT

    def test_title_is_stripped(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "  Wifi  ", VaultItemType.NOTE, content="x")
        assert item.title == "Wifi"

    @pytest.mark.parametrize("title", ["", "   ", None])
    def test_empty_title_rejected(self, vault_manager, capsule, vault_store, title):
        with pytest.raises(ValidationError):
            vault_manager.upload_item(capsule.id, "alice", title, VaultItemType.NOTE, content="x")
        assert vault_store.list_items(capsule.id) == []

    @pytest.mark.parametrize("kind", [VaultItemType.NOTE, VaultItemType.PASSWORD, VaultItemType.ACCOUNT])
    def test_text_types_require_content(self, vault_manager, capsule, kind):
        with pytest.raises(ValidationError):
            vault_manager.upload_item(capsule.id, "alice", "Title", kind)
        with pytest.raises(ValidationError):
            vault_manager.upload_item(capsule.id, "alice", "Title", kind, content="")

    @pytest.mark.parametrize("kind", [VaultItemType.IMAGE, VaultItemType.DOCUMENT])
    def test_file_types_require_file(self, vault_manager, capsule, kind):
        with pytest.raises(ValidationError):
            vault_manager.upload_item(capsule.id, "alice", "Title", kind, content="text is not enough")

    def test_unknown_type_rejected(self, vault_manager, capsule):
        with pytest.raises(ValidationError):
            vault_manager.upload_item(capsule.id, "alice", "Title", "video", content="x")

    def test_non_member_cannot_upload(self, vault_manager, capsule, vault_store):
        with pytest.raises(UnauthorizedError):
            vault_manager.upload_item(capsule.id, "mallory", "Title", VaultItemType.NOTE, content="x")
        assert vault_store.list_items(capsule.id) == []

    def test_unknown_capsule(self, vault_manager):
        with pytest.raises(NotFoundError):
            vault_manager.upload_item("nope", "alice", "Title", VaultItemType.NOTE, content="x")

    def test_upload_image_with_file(self, vault_manager, capsule, png_ref, blob_store):
        item = vault_manager.upload_item(capsule.id, "alice", "Photo", VaultItemType.IMAGE, file_ref=png_ref)
        assert item.file_ref.url == png_ref.url
        assert item.encrypted_content is None
        assert blob_store.exists(f"{capsule.id}/{png_ref.url.rsplit('/', 1)[-1]}")


class TestUploadFile:
    def test_stored_under_capsule_with_unique_name(self, vault_manager, capsule, png_ref):
        assert png_ref.url.startswith(f"http://localhost:8000/files/{capsule.id}/")
        stored_name = png_ref.url.rsplit("/", 1)[-1]
        stamp, rest = stored_name.split("_", 1)
        assert stamp.isdigit()
        assert rest.endswith(".png")
        assert png_ref.name == "photo.PNG"
        assert png_ref.size == len(b"\x89PNG fake")

    def test_two_uploads_never_collide(self, vault_manager, capsule):
        a = vault_manager.upload_file(capsule.id, "alice", "a.txt", b"a", "text/plain")
        b = vault_manager.upload_file(capsule.id, "alice", "a.txt", b"b", "text/plain")
        assert a.url != b.url

    def test_empty_file_rejected(self, vault_manager, capsule):
        with pytest.raises(ValidationError):
            vault_manager.upload_file(capsule.id, "alice", "a.txt", b"", "text/plain")

    def test_non_member(self, vault_manager, capsule):
        with pytest.raises(UnauthorizedError):
            vault_manager.upload_file(capsule.id, "mallory", "a.txt", b"a", "text/plain")


class TestApprovalLifecycle:
    def test_partner_approval_makes_visible(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="hunter2")

        approved = vault_manager.approve_item(item.id, "bob")
        assert approved.approved_by_partner is True
        assert approved.status is VaultItemStatus.VISIBLE

        listed = vault_manager.list_items(capsule.id, "alice")
        assert listed[0].encrypted_content == "hunter2"
        assert listed[0].status is VaultItemStatus.VISIBLE

    def test_uploader_reapproval_is_noop(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        again = vault_manager.approve_item(item.id, "alice")
        assert again.approved_by_uploader is True
        assert again.approved_by_partner is False
        assert again.status is VaultItemStatus.PENDING

    def test_partner_approval_is_idempotent(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        vault_manager.approve_item(item.id, "bob")
        twice = vault_manager.approve_item(item.id, "bob")
        assert twice.status is VaultItemStatus.VISIBLE

    def test_approval_sets_only_callers_column(self, vault_manager, capsule, vault_store):
        item = vault_manager.upload_item(capsule.id, "bob", "Lease", VaultItemType.NOTE, content="x")
        vault_manager.approve_item(item.id, "alice")
        stored = vault_store.get_item(item.id)
        assert stored.uploaded_by == "bob"
        assert stored.approved_by_uploader is True
        assert stored.approved_by_partner is True

    def test_missing_item(self, vault_manager, capsule):
        with pytest.raises(NotFoundError):
            vault_manager.approve_item("does-not-exist", "bob")

    def test_non_member_cannot_approve(self, vault_manager, capsule, vault_store):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        with pytest.raises(UnauthorizedError):
            vault_manager.approve_item(item.id, "mallory")
        assert vault_store.get_item(item.id).approved_by_partner is False

    def test_reveal_is_audited(self, vault_manager, capsule):
        audit = MagicMock()
        vault_manager.audit = audit
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        vault_manager.approve_item(item.id, "bob")

        event_types = [c.args[0].value for c in audit.log_vault_event.call_args_list]
        assert event_types == ["vault.item.uploaded", "vault.item.approved", "vault.item.revealed"]
        for call in audit.log_vault_event.call_args_list:
            assert "x" not in (call.kwargs.get("details") or {}).values()


class TestRedactedReads:
    def test_pending_image_hides_file_for_both_parties(self, vault_manager, capsule, png_ref):
        vault_manager.upload_item(capsule.id, "alice", "Photo", VaultItemType.IMAGE, file_ref=png_ref)

        for viewer in ("alice", "bob"):
            [view] = vault_manager.list_items(capsule.id, viewer)
            assert view.title == "Photo"
            assert view.content_type is VaultItemType.IMAGE
            assert view.status is VaultItemStatus.PENDING
            assert view.file_ref is None
            assert view.to_dict()["file"] is None

    def test_get_item_redacts_pending(self, vault_manager, capsule):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.PASSWORD, content="secret")
        view = vault_manager.get_item(item.id, "bob")
        assert view.encrypted_content is None

    def test_get_item_wrong_capsule(self, vault_manager, capsule, vault_store):
        vault_store.create_capsule("alice", "carol", capsule_id="cap-2")
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        with pytest.raises(NotFoundError):
            vault_manager.get_item(item.id, "alice", capsule_id="cap-2")

    def test_list_newest_first(self, vault_manager, capsule):
        for title in ("first", "second", "third"):
            vault_manager.upload_item(capsule.id, "alice", title, VaultItemType.NOTE, content="x")
        titles = [i.title for i in vault_manager.list_items(capsule.id, "bob")]
        assert titles == ["third", "second", "first"]

    def test_non_member_cannot_list(self, vault_manager, capsule):
        with pytest.raises(UnauthorizedError):
            vault_manager.list_items(capsule.id, "mallory")


class TestDelete:
    def test_delete_removes_record_and_file(self, vault_manager, capsule, png_ref, blob_store, vault_store):
        item = vault_manager.upload_item(capsule.id, "alice", "Photo", VaultItemType.IMAGE, file_ref=png_ref)
        blob_path = f"{capsule.id}/{png_ref.url.rsplit('/', 1)[-1]}"
        assert blob_store.exists(blob_path)

        assert vault_manager.delete_item(item.id, capsule.id, caller_id="bob") is True
        assert vault_store.get_item(item.id) is None
        assert not blob_store.exists(blob_path)

    def test_missing_item_returns_false(self, vault_manager, capsule):
        assert vault_manager.delete_item("does-not-exist", capsule.id) is False

    def test_blob_failure_does_not_block_delete(self, vault_manager, capsule, png_ref, vault_store):
        item = vault_manager.upload_item(capsule.id, "alice", "Photo", VaultItemType.IMAGE, file_ref=png_ref)
        vault_manager.blobs = MagicMock()
        vault_manager.blobs.remove.side_effect = OSError("disk gone")

        assert vault_manager.delete_item(item.id, capsule.id) is True
        assert vault_store.get_item(item.id) is None
        vault_manager.blobs.remove.assert_called_once()

    def test_blob_path_uses_capsule_and_basename(self, vault_manager, capsule, vault_store):
        ref = FileRef(url="https://cdn.example.com/anything/deep/1700000000000_abc.pdf", name="lease.pdf")
        item = vault_manager.upload_item(capsule.id, "alice", "Lease", VaultItemType.DOCUMENT, file_ref=ref)
        vault_manager.blobs = MagicMock()
        vault_manager.delete_item(item.id, capsule.id)
        vault_manager.blobs.remove.assert_called_once_with([f"{capsule.id}/1700000000000_abc.pdf"])

    def test_item_from_other_capsule(self, vault_manager, capsule, vault_store):
        vault_store.create_capsule("alice", "carol", capsule_id="cap-2")
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        with pytest.raises(NotFoundError):
            vault_manager.delete_item(item.id, "cap-2", caller_id="carol")
        assert vault_store.get_item(item.id) is not None

    def test_non_member_cannot_delete(self, vault_manager, capsule, vault_store):
        item = vault_manager.upload_item(capsule.id, "alice", "Wifi", VaultItemType.NOTE, content="x")
        with pytest.raises(UnauthorizedError):
            vault_manager.delete_item(item.id, capsule.id, caller_id="mallory")
        assert vault_store.get_item(item.id) is not None


class TestPartnerSetup:
    def test_partner_has_passcode(self, vault_manager, capsule, vault_store):
        assert vault_manager.partner_has_passcode(capsule.id, "alice") is False
        vault_store.record_setup(capsule.id, "bob")
        assert vault_manager.partner_has_passcode(capsule.id, "alice") is True
        assert vault_manager.partner_has_passcode(capsule.id, "bob") is False

    def test_no_partner_yet(self, vault_manager, vault_store):
        solo = vault_store.create_capsule("dana")
        assert vault_manager.partner_has_passcode(solo.id, "dana") is False

    def test_invite_joins_once(self, vault_store):
        solo = vault_store.create_capsule("dana", invite_token="inv-1")
        joined = vault_store.join_by_invite("inv-1", "eve")
        assert joined.user_b_id == "eve"
        assert joined.invite_token is None
        assert vault_store.join_by_invite("inv-1", "frank") is None
        assert vault_store.get_capsule(solo.id).user_b_id == "eve"

    def test_creator_cannot_join_own_capsule(self, vault_store):
        vault_store.create_capsule("dana", invite_token="inv-1")
        assert vault_store.join_by_invite("inv-1", "dana") is None


class TestCapsules:
    def test_create_issues_invite(self, vault_manager, vault_store):
        capsule = vault_manager.create_capsule("dana")
        assert capsule.user_a_id == "dana"
        assert capsule.user_b_id is None
        assert capsule.invite_token
        assert vault_store.get_capsule(capsule.id).invite_token == capsule.invite_token

    def test_invites_are_unique(self, vault_manager):
        first = vault_manager.create_capsule("dana")
        second = vault_manager.create_capsule("dana")
        assert first.invite_token != second.invite_token

    def test_create_requires_user(self, vault_manager):
        with pytest.raises(ValidationError):
            vault_manager.create_capsule("")

    def test_join_makes_member(self, vault_manager):
        capsule = vault_manager.create_capsule("dana")
        joined = vault_manager.join_capsule(capsule.invite_token, "eve")
        assert joined.id == capsule.id
        assert joined.is_member("eve")
        assert vault_manager.require_member(capsule.id, "eve").partner_of("eve") == "dana"

    def test_invite_is_single_use(self, vault_manager):
        capsule = vault_manager.create_capsule("dana")
        vault_manager.join_capsule(capsule.invite_token, "eve")
        with pytest.raises(NotFoundError):
            vault_manager.join_capsule(capsule.invite_token, "frank")
        with pytest.raises(UnauthorizedError):
            vault_manager.require_member(capsule.id, "frank")

    @pytest.mark.parametrize("token", ["", "   ", None])
    def test_join_requires_token(self, vault_manager, token):
        with pytest.raises(ValidationError):
            vault_manager.join_capsule(token, "eve")

    def test_join_unknown_token(self, vault_manager):
        with pytest.raises(NotFoundError):
            vault_manager.join_capsule("no-such-invite", "eve")

    def test_list_for_either_party(self, vault_manager, capsule):
        own = vault_manager.create_capsule("alice")
        assert [c.id for c in vault_manager.list_capsules("alice")] == [capsule.id, own.id]
        assert [c.id for c in vault_manager.list_capsules("bob")] == [capsule.id]
        assert vault_manager.list_capsules("mallory") == []
