# Vault - Data Models
#
# VaultItem is the only record the approval engine reads and writes.
# Its status is derived from the two approval flags and is never stored,
# so it cannot drift from them.

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ValidationError


class VaultItemType(str, Enum):
    """Kinds of content a vault item can hold."""

    NOTE = "note"
    IMAGE = "image"
    DOCUMENT = "document"
    PASSWORD = "password"
    ACCOUNT = "account"

    @property
    def is_text(self) -> bool:
        return self in (VaultItemType.NOTE, VaultItemType.PASSWORD, VaultItemType.ACCOUNT)

    @property
    def is_file(self) -> bool:
        return self in (VaultItemType.IMAGE, VaultItemType.DOCUMENT)


class VaultItemStatus(str, Enum):
    """Externally observable item status.

    REJECTED is reserved: no transition produces it.
    """

    PENDING = "pending"
    VISIBLE = "visible"
    REJECTED = "rejected"


@dataclass(frozen=True)
class FileRef:
    """Reference to a file already persisted in blob storage."""

    url: str
    name: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Capsule:
    """Two-party relationship space. ``user_b_id`` is None until a partner joins."""

    id: str
    user_a_id: str
    user_b_id: Optional[str] = None
    created_at: Optional[str] = None
    invite_token: Optional[str] = None

    def is_member(self, user_id: str) -> bool:
        return user_id is not None and user_id in (self.user_a_id, self.user_b_id)

    def partner_of(self, user_id: str) -> Optional[str]:
        """Return the other party, or None if ``user_id`` is not a member."""
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VaultItem:
    """A piece of shared content subject to mutual-approval visibility.

    ``encrypted_content`` carries the text payload for note, password and
    account items. It is stored as given: the field name matches the
    backing table, no client-side encryption is applied and
    ``encryption_iv`` is always None.
    """

    id: str
    capsule_id: str
    title: str
    content_type: VaultItemType
    uploaded_by: str
    created_at: str
    encrypted_content: Optional[str] = None
    file_ref: Optional[FileRef] = None
    approved_by_uploader: bool = True
    approved_by_partner: bool = False
    encryption_iv: Optional[str] = None
    redacted_view: bool = field(default=False, compare=False)

    @property
    def status(self) -> VaultItemStatus:
        if self.approved_by_uploader and self.approved_by_partner:
            return VaultItemStatus.VISIBLE
        return VaultItemStatus.PENDING

    @property
    def is_visible(self) -> bool:
        return self.status is VaultItemStatus.VISIBLE

    def redacted(self) -> "VaultItem":
        """Copy with content and file reference removed (metadata only)."""
        return replace(self, encrypted_content=None, file_ref=None, redacted_view=True)

    def for_viewer(self) -> "VaultItem":
        """What either party may see: full item once visible, metadata before."""
        return self if self.is_visible else self.redacted()

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VaultItem":
        """Build a VaultItem from a vault_items row, validating its shape."""
        try:
            content_type = VaultItemType(row["item_type"])
        except (KeyError, IndexError, ValueError) as e:
            raise ValidationError(f"Invalid vault item row: {e}") from e

        file_ref = None
        if row["file_url"]:
            file_ref = FileRef(
                url=row["file_url"],
                name=row["file_name"] or "",
                size=row["file_size"],
                mime_type=row["mime_type"],
                thumbnail_url=row["thumbnail_url"],
            )

        # NULL flags fall back to the column defaults
        approved_by_uploader = row["approved_by_uploader"]
        approved_by_partner = row["approved_by_partner"]

        return cls(
            id=row["id"],
            capsule_id=row["capsule_id"],
            title=row["title"],
            content_type=content_type,
            uploaded_by=row["created_by"],
            created_at=row["created_at"],
            encrypted_content=row["encrypted_content"],
            file_ref=file_ref,
            approved_by_uploader=True if approved_by_uploader is None else bool(approved_by_uploader),
            approved_by_partner=False if approved_by_partner is None else bool(approved_by_partner),
            encryption_iv=row["encryption_iv"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "capsule_id": self.capsule_id,
            "title": self.title,
            "content_type": self.content_type.value,
            "encrypted_content": self.encrypted_content,
            "file": self.file_ref.to_dict() if self.file_ref else None,
            "uploaded_by": self.uploaded_by,
            "approved_by_uploader": self.approved_by_uploader,
            "approved_by_partner": self.approved_by_partner,
            "status": self.status.value,
            "redacted": self.redacted_view,
            "created_at": self.created_at,
        }


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
