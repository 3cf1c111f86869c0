# Vault Manager - Mutual-Approval Item Store
#
# Two parties share a capsule vault. Every uploaded item starts pending
# (uploader approved, partner not) and becomes visible to both once each
# party has approved it. Until then only metadata is returned.
#
# The passcode gate lives in passcode.py; this engine handles items.

import logging
import posixpath
import secrets
import time
from typing import List, Optional
from urllib.parse import urlparse

from ..core import EventSeverity, EventType, get_audit_logger
from ..exceptions import NotFoundError, UnauthorizedError, ValidationError
from .blob_store import LocalBlobStore
from .models import Capsule, FileRef, VaultItem, VaultItemType
from .store import VaultStore

logger = logging.getLogger(__name__)


class VaultManager:
    """
    Upload, approve, list and delete vault items for a capsule.

    Security:
    - Only the capsule's two parties may act on its items
    - A party can only set its own approval flag
    - Pending items never expose content or file references
    - Audit logging for every state change (never content)

    Args:
        store: Persistence for capsules, items and setup markers.
        blobs: Blob storage for image/document files.
        audit: Audit logger (defaults to the process-wide one).
    """

    def __init__(self, store: VaultStore, blobs: LocalBlobStore, audit=None):
        self.store = store
        self.blobs = blobs
        self.audit = audit or get_audit_logger()

    # ------------------------------------------------------------------
    # Capsules
    # ------------------------------------------------------------------

    def create_capsule(self, creator_id: str) -> Capsule:
        """
        Create a capsule with ``creator_id`` as its first party.

        The returned capsule carries a one-time ``invite_token`` for the
        partner to join with.
        """
        if not creator_id:
            raise ValidationError("user_id is required")
        capsule = self.store.create_capsule(creator_id, invite_token=secrets.token_urlsafe(16))
        self.audit.log_vault_event(
            EventType.VAULT_CAPSULE_CREATED,
            "Capsule created",
            details={"capsule_id": capsule.id, "user_id": creator_id},
        )
        return capsule

    def join_capsule(self, invite_token: str, user_id: str) -> Capsule:
        """
        Join a capsule as its second party.

        Raises:
            ValidationError: empty token
            NotFoundError: token unknown, already used, or the caller
                created the capsule
        """
        invite_token = (invite_token or "").strip()
        if not invite_token:
            raise ValidationError("Invite token is required")

        capsule = self.store.join_by_invite(invite_token, user_id)
        if capsule is None:
            self.audit.log_vault_event(
                EventType.VAULT_ACCESS_DENIED,
                "Capsule join with an invalid or used invite",
                details={"user_id": user_id},
                severity=EventSeverity.INVESTIGATE,
            )
            raise NotFoundError("Invite not found or already used")

        self.audit.log_vault_event(
            EventType.VAULT_CAPSULE_JOINED,
            "Partner joined capsule",
            details={"capsule_id": capsule.id, "user_id": user_id},
        )
        return capsule

    def list_capsules(self, user_id: str) -> List[Capsule]:
        return self.store.list_capsules(user_id)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def require_member(self, capsule_id: str, user_id: str) -> Capsule:
        """Return the capsule if ``user_id`` is one of its two parties."""
        capsule = self.store.get_capsule(capsule_id)
        if capsule is None:
            raise NotFoundError(f"Capsule not found: {capsule_id}")
        if not capsule.is_member(user_id):
            self.audit.log_vault_event(
                EventType.VAULT_ACCESS_DENIED,
                "Non-member attempted vault access",
                details={"capsule_id": capsule_id, "user_id": user_id},
                severity=EventSeverity.INVESTIGATE,
            )
            raise UnauthorizedError("You are not a member of this capsule")
        return capsule

    def partner_has_passcode(self, capsule_id: str, user_id: str) -> bool:
        """True once the other party has recorded its vault setup."""
        capsule = self.require_member(capsule_id, user_id)
        partner_id = capsule.partner_of(user_id)
        if not partner_id:
            return False
        return self.store.has_setup(capsule_id, partner_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_items(self, capsule_id: str, viewer_id: str) -> List[VaultItem]:
        """
        List a capsule's items, newest first.

        Pending items come back redacted: title, type, status and approval
        badges only.
        """
        self.require_member(capsule_id, viewer_id)
        return [item.for_viewer() for item in self.store.list_items(capsule_id)]

    def get_item(self, item_id: str, viewer_id: str, capsule_id: Optional[str] = None) -> VaultItem:
        item = self.store.get_item(item_id)
        if item is None or (capsule_id is not None and item.capsule_id != capsule_id):
            raise NotFoundError(f"Vault item not found: {item_id}")
        self.require_member(item.capsule_id, viewer_id)
        return item.for_viewer()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upload_file(
        self,
        capsule_id: str,
        uploader_id: str,
        file_name: str,
        data: bytes,
        mime_type: str,
    ) -> FileRef:
        """
        Store a file in blob storage for a later ``upload_item`` call.

        The stored name is ``<epoch_ms>_<random>.<ext>`` under the capsule's
        folder; the original name is kept on the returned FileRef.
        """
        self.require_member(capsule_id, uploader_id)
        if not file_name or not file_name.strip():
            raise ValidationError("File name is required")
        if not data:
            raise ValidationError("File is empty")

        _, ext = posixpath.splitext(file_name)
        extension = ext.lstrip(".").lower() or "bin"
        unique_name = f"{int(time.time() * 1000)}_{secrets.token_hex(6)}.{extension}"
        url = self.blobs.upload(f"{capsule_id}/{unique_name}", data, mime_type)

        self.audit.log_vault_event(
            EventType.VAULT_FILE_UPLOADED,
            "File stored for vault item",
            details={"capsule_id": capsule_id, "size": len(data), "mime_type": mime_type},
        )
        return FileRef(url=url, name=file_name, size=len(data), mime_type=mime_type)

    def upload_item(
        self,
        capsule_id: str,
        uploader_id: str,
        title: str,
        content_type: VaultItemType,
        content: Optional[str] = None,
        file_ref: Optional[FileRef] = None,
    ) -> VaultItem:
        """
        Create a new vault item, pending the partner's approval.

        Raises:
            ValidationError: empty title, missing text content for
                note/password/account, missing file for image/document
            NotFoundError: unknown capsule
            UnauthorizedError: uploader is not a member
        """
        try:
            content_type = VaultItemType(content_type)
        except ValueError as e:
            raise ValidationError(f"Unknown content type: {content_type}") from e

        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        if content_type.is_text:
            if content is None or content == "":
                raise ValidationError(f"{content_type.value} items require text content")
            file_ref = None
        else:
            if file_ref is None or not file_ref.url:
                raise ValidationError(
                    f"{content_type.value} items require an uploaded file"
                )
            content = None

        self.require_member(capsule_id, uploader_id)

        item = self.store.insert_item(
            capsule_id=capsule_id,
            created_by=uploader_id,
            title=title,
            item_type=content_type,
            encrypted_content=content,
            file_ref=file_ref,
        )

        self.audit.log_vault_event(
            EventType.VAULT_ITEM_UPLOADED,
            f"Item uploaded ({content_type.value})",
            details={"capsule_id": capsule_id, "item_id": item.id, "uploaded_by": uploader_id},
        )
        return item

    def approve_item(self, item_id: str, caller_id: str) -> VaultItem:
        """
        Record the caller's approval of an item.

        The uploader sets ``approved_by_uploader``; the other party sets
        ``approved_by_partner``. Approving twice is a no-op. Once both flags
        are true the item is visible on the next read.

        Raises:
            NotFoundError: item does not exist
            UnauthorizedError: caller is not a member of the item's capsule
        """
        item = self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Vault item not found: {item_id}")
        self.require_member(item.capsule_id, caller_id)

        is_uploader = item.uploaded_by == caller_id
        column = "approved_by_uploader" if is_uploader else "approved_by_partner"
        already = item.approved_by_uploader if is_uploader else item.approved_by_partner

        if not already:
            if not self.store.set_approval(item_id, column):
                # Deleted between read and update
                raise NotFoundError(f"Vault item not found: {item_id}")

        updated = self.store.get_item(item_id)
        if updated is None:
            raise NotFoundError(f"Vault item not found: {item_id}")

        self.audit.log_vault_event(
            EventType.VAULT_ITEM_APPROVED,
            "Item approved by uploader" if is_uploader else "Item approved by partner",
            details={"capsule_id": item.capsule_id, "item_id": item_id, "user_id": caller_id},
        )
        if updated.is_visible and not item.is_visible:
            self.audit.log_vault_event(
                EventType.VAULT_ITEM_REVEALED,
                "Item approved by both parties and now visible",
                details={"capsule_id": item.capsule_id, "item_id": item_id},
            )
        return updated

    def delete_item(self, item_id: str, capsule_id: str, caller_id: Optional[str] = None) -> bool:
        """
        Delete an item and, best-effort, its backing file.

        Returns False if the item did not exist (not an error). A failed
        file removal is logged and does not block record deletion.
        """
        if caller_id is not None:
            self.require_member(capsule_id, caller_id)

        item = self.store.get_item(item_id)
        if item is not None and item.capsule_id != capsule_id:
            raise NotFoundError(f"Vault item not found in capsule: {item_id}")

        if item is not None and item.file_ref is not None:
            blob_path = self._blob_path(capsule_id, item.file_ref.url)
            if blob_path:
                try:
                    self.blobs.remove([blob_path])
                except Exception as e:
                    logger.warning("Could not remove vault file %s: %s", blob_path, e)
                    self.audit.log_vault_event(
                        EventType.VAULT_ERROR,
                        "Backing file could not be removed",
                        details={"capsule_id": capsule_id, "item_id": item_id},
                        severity=EventSeverity.ALERT,
                    )

        deleted = self.store.delete_item(item_id)
        if deleted:
            self.audit.log_vault_event(
                EventType.VAULT_ITEM_DELETED,
                "Item deleted",
                details={"capsule_id": capsule_id, "item_id": item_id, "user_id": caller_id},
            )
        else:
            logger.info("Delete of missing vault item %s ignored", item_id)
        return deleted

    @staticmethod
    def _blob_path(capsule_id: str, file_url: str) -> Optional[str]:
        """Storage path of a file URL: ``<capsule_id>/<last path segment>``."""
        name = posixpath.basename(urlparse(file_url).path)
        if not name:
            return None
        return f"{capsule_id}/{name}"
