# Vault - SQLite Storage
#
# Persistent storage for capsules, vault items and per-user setup markers.
# Approval updates touch a single column each, so concurrent approvals by
# the two parties cannot overwrite one another.

import threading
import uuid
from pathlib import Path
from typing import List, Optional, Union

from ..core.db import connect as db_connect
from .models import Capsule, FileRef, VaultItem, VaultItemType, utc_now_iso


APPROVAL_COLUMNS = ("approved_by_uploader", "approved_by_partner")


class VaultStore:
    """SQLite-backed storage for the vault.

    Thread-safe via a reentrant lock on all operations; a single
    connection is shared across threads (``check_same_thread=False``).
    """

    SCHEMA_VERSION = 2

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = db_connect(self.db_path)
        self._create_tables()

    def _create_tables(self) -> None:
        """Create the schema if it doesn't already exist."""
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS relationship_capsules (
                    id          TEXT PRIMARY KEY,
                    user_a_id   TEXT NOT NULL,
                    user_b_id   TEXT,
                    invite_token TEXT,
                    created_at  TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS vault_items (
                    id                   TEXT PRIMARY KEY,
                    capsule_id           TEXT NOT NULL
                        REFERENCES relationship_capsules(id) ON DELETE CASCADE,
                    created_by           TEXT NOT NULL,
                    title                TEXT NOT NULL,
                    item_type            TEXT NOT NULL DEFAULT 'note',
                    encrypted_content    TEXT,
                    encryption_iv        TEXT,
                    file_url             TEXT,
                    file_name            TEXT,
                    file_size            INTEGER,
                    mime_type            TEXT,
                    thumbnail_url        TEXT,
                    approved_by_uploader INTEGER DEFAULT 1,
                    approved_by_partner  INTEGER DEFAULT 0,
                    created_at           TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS vault_user_setup (
                    id          TEXT PRIMARY KEY,
                    capsule_id  TEXT NOT NULL
                        REFERENCES relationship_capsules(id) ON DELETE CASCADE,
                    user_id     TEXT NOT NULL,
                    setup_at    TEXT NOT NULL,
                    UNIQUE(capsule_id, user_id)
                );

                CREATE INDEX IF NOT EXISTS idx_vault_items_capsule
                    ON vault_items(capsule_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_vault_items_approval
                    ON vault_items(approved_by_uploader, approved_by_partner);
                CREATE INDEX IF NOT EXISTS idx_vault_setup_capsule
                    ON vault_user_setup(capsule_id);

                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER NOT NULL
                );
                """
            )
            # Re-assert foreign_keys after executescript
            self._conn.execute("PRAGMA foreign_keys=ON")
            row = self._conn.execute(
                "SELECT version FROM schema_version LIMIT 1"
            ).fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (self.SCHEMA_VERSION,),
                )
            elif row["version"] < 2:
                self._conn.execute(
                    "ALTER TABLE relationship_capsules ADD COLUMN invite_token TEXT"
                )
                self._conn.execute(
                    "UPDATE schema_version SET version = ?", (self.SCHEMA_VERSION,)
                )
            self._conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_capsules_invite "
                "ON relationship_capsules(invite_token)"
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Capsules
    # ------------------------------------------------------------------

    def create_capsule(
        self,
        user_a_id: str,
        user_b_id: Optional[str] = None,
        capsule_id: Optional[str] = None,
        invite_token: Optional[str] = None,
    ) -> Capsule:
        capsule = Capsule(
            id=capsule_id or str(uuid.uuid4()),
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            created_at=utc_now_iso(),
            invite_token=invite_token,
        )
        with self._lock:
            self._conn.execute(
                "INSERT INTO relationship_capsules "
                "(id, user_a_id, user_b_id, invite_token, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    capsule.id,
                    capsule.user_a_id,
                    capsule.user_b_id,
                    capsule.invite_token,
                    capsule.created_at,
                ),
            )
            self._conn.commit()
        return capsule

    def join_by_invite(self, invite_token: str, user_b_id: str) -> Optional[Capsule]:
        """
        Attach the second party through an unused invite token.

        The token is cleared on success, so each invite works once.
        Returns None if the token is unknown, already used, or belongs to
        a capsule created by ``user_b_id``.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT id FROM relationship_capsules "
                "WHERE invite_token = ? AND user_b_id IS NULL AND user_a_id != ?",
                (invite_token, user_b_id),
            ).fetchone()
            if row is None:
                return None
            self._conn.execute(
                "UPDATE relationship_capsules SET user_b_id = ?, invite_token = NULL "
                "WHERE id = ?",
                (user_b_id, row["id"]),
            )
            self._conn.commit()
            return self.get_capsule(row["id"])

    def get_capsule(self, capsule_id: str) -> Optional[Capsule]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM relationship_capsules WHERE id = ?", (capsule_id,)
            ).fetchone()
        return self._capsule_from_row(row) if row else None

    def list_capsules(self, user_id: str) -> List[Capsule]:
        """Capsules where ``user_id`` is either party, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM relationship_capsules "
                "WHERE user_a_id = ? OR user_b_id = ? ORDER BY created_at, rowid",
                (user_id, user_id),
            ).fetchall()
        return [self._capsule_from_row(r) for r in rows]

    @staticmethod
    def _capsule_from_row(row) -> Capsule:
        return Capsule(
            id=row["id"],
            user_a_id=row["user_a_id"],
            user_b_id=row["user_b_id"],
            created_at=row["created_at"],
            invite_token=row["invite_token"],
        )

    # ------------------------------------------------------------------
    # Setup markers
    # ------------------------------------------------------------------

    def record_setup(self, capsule_id: str, user_id: str) -> None:
        """Upsert the "vault setup completed" marker for a party."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO vault_user_setup (id, capsule_id, user_id, setup_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(capsule_id, user_id)
                DO UPDATE SET setup_at = excluded.setup_at
                """,
                (str(uuid.uuid4()), capsule_id, user_id, utc_now_iso()),
            )
            self._conn.commit()

    def has_setup(self, capsule_id: str, user_id: str) -> bool:
        with self._lock:
            row = self._conn.execute(
                "SELECT 1 FROM vault_user_setup WHERE capsule_id = ? AND user_id = ? LIMIT 1",
                (capsule_id, user_id),
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Vault items
    # ------------------------------------------------------------------

    def insert_item(
        self,
        capsule_id: str,
        created_by: str,
        title: str,
        item_type: VaultItemType,
        encrypted_content: Optional[str] = None,
        file_ref: Optional[FileRef] = None,
    ) -> VaultItem:
        """Insert a new item as pending (uploader approved, partner not)."""
        item_id = str(uuid.uuid4())
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO vault_items
                    (id, capsule_id, created_by, title, item_type,
                     encrypted_content, encryption_iv,
                     file_url, file_name, file_size, mime_type, thumbnail_url,
                     approved_by_uploader, approved_by_partner, created_at)
                VALUES (?, ?, ?, ?, ?, ?, NULL, ?, ?, ?, ?, ?, 1, 0, ?)
                """,
                (
                    item_id,
                    capsule_id,
                    created_by,
                    title,
                    item_type.value,
                    encrypted_content,
                    file_ref.url if file_ref else None,
                    file_ref.name if file_ref else None,
                    file_ref.size if file_ref else None,
                    file_ref.mime_type if file_ref else None,
                    file_ref.thumbnail_url if file_ref else None,
                    utc_now_iso(),
                ),
            )
            self._conn.commit()
        return self.get_item(item_id)

    def get_item(self, item_id: str) -> Optional[VaultItem]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM vault_items WHERE id = ?", (item_id,)
            ).fetchone()
        return VaultItem.from_row(row) if row else None

    def list_items(self, capsule_id: str) -> List[VaultItem]:
        """All items of a capsule, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM vault_items WHERE capsule_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (capsule_id,),
            ).fetchall()
        return [VaultItem.from_row(r) for r in rows]

    def set_approval(self, item_id: str, column: str) -> bool:
        """Set one approval flag to true. Returns True if the item exists."""
        if column not in APPROVAL_COLUMNS:
            raise ValueError(f"Unknown approval column: {column}")
        with self._lock:
            cursor = self._conn.execute(
                f"UPDATE vault_items SET {column} = 1 WHERE id = ?", (item_id,)
            )
            self._conn.commit()
            return cursor.rowcount > 0

    def delete_item(self, item_id: str) -> bool:
        """Delete a single item by id. Returns True if deleted."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM vault_items WHERE id = ?", (item_id,)
            )
            self._conn.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
