# Integrations - Credential Storage
#
# One row per (user, provider): OAuth tokens or an API key, sync status
# and provider-specific config (e.g. a saved weather location).

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.db import connect as db_connect
from .models import StoredIntegration


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class IntegrationStore:
    """SQLite-backed storage for per-user provider connections."""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._conn = db_connect(self.db_path)
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS integrations (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id           TEXT    NOT NULL,
                    provider          TEXT    NOT NULL,
                    access_token      TEXT,
                    refresh_token     TEXT,
                    token_expires_at  TEXT,
                    api_key           TEXT,
                    is_active         INTEGER NOT NULL DEFAULT 1,
                    last_synced_at    TEXT,
                    last_error        TEXT,
                    config            TEXT    NOT NULL DEFAULT '{}',
                    created_at        TEXT    NOT NULL DEFAULT (datetime('now')),
                    updated_at        TEXT    NOT NULL DEFAULT (datetime('now')),
                    UNIQUE(user_id, provider)
                );

                CREATE INDEX IF NOT EXISTS idx_integrations_user_provider
                    ON integrations(user_id, provider);
                """
            )
            self._conn.commit()

    @staticmethod
    def _from_row(row) -> StoredIntegration:
        return StoredIntegration(
            id=row["id"],
            user_id=row["user_id"],
            provider=row["provider"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expires_at=_parse_ts(row["token_expires_at"]),
            api_key=row["api_key"],
            is_active=bool(row["is_active"]),
            last_synced_at=row["last_synced_at"],
            last_error=row["last_error"],
            config=json.loads(row["config"] or "{}"),
        )

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def upsert(
        self,
        user_id: str,
        provider: str,
        *,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        api_key: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> StoredIntegration:
        """Connect (or reconnect) a provider for a user."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO integrations
                    (user_id, provider, access_token, refresh_token,
                     token_expires_at, api_key, is_active, config)
                VALUES (?, ?, ?, ?, ?, ?, 1, ?)
                ON CONFLICT(user_id, provider) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    token_expires_at = excluded.token_expires_at,
                    api_key = excluded.api_key,
                    is_active = 1,
                    last_error = NULL,
                    config = excluded.config,
                    updated_at = datetime('now')
                """,
                (
                    user_id,
                    provider,
                    access_token,
                    refresh_token,
                    _format_ts(token_expires_at),
                    api_key,
                    json.dumps(config or {}),
                ),
            )
            self._conn.commit()
        return self.get(user_id, provider)

    def update_tokens(
        self,
        integration_id: int,
        access_token: str,
        token_expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> None:
        """Persist a refreshed access token (and rotated refresh token, if any)."""
        with self._lock:
            if refresh_token:
                self._conn.execute(
                    "UPDATE integrations SET access_token = ?, token_expires_at = ?, "
                    "refresh_token = ?, updated_at = datetime('now') WHERE id = ?",
                    (access_token, _format_ts(token_expires_at), refresh_token, integration_id),
                )
            else:
                self._conn.execute(
                    "UPDATE integrations SET access_token = ?, token_expires_at = ?, "
                    "updated_at = datetime('now') WHERE id = ?",
                    (access_token, _format_ts(token_expires_at), integration_id),
                )
            self._conn.commit()

    def mark_synced(self, integration_id: int, when: datetime) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE integrations SET last_synced_at = ?, last_error = NULL, "
                "updated_at = datetime('now') WHERE id = ?",
                (_format_ts(when), integration_id),
            )
            self._conn.commit()

    def record_error(self, integration_id: int, error: str) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE integrations SET last_error = ?, updated_at = datetime('now') WHERE id = ?",
                (error, integration_id),
            )
            self._conn.commit()

    def deactivate(self, user_id: str, provider: str) -> bool:
        """Disconnect a provider. Returns True if a row was changed."""
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE integrations SET is_active = 0, updated_at = datetime('now') "
                "WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            )
            self._conn.commit()
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, user_id: str, provider: str) -> Optional[StoredIntegration]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM integrations WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            ).fetchone()
        return self._from_row(row) if row else None

    def get_active(self, user_id: str, provider: str) -> Optional[StoredIntegration]:
        integration = self.get(user_id, provider)
        if integration is None or not integration.is_active:
            return None
        return integration

    def list_for_user(self, user_id: str) -> List[StoredIntegration]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM integrations WHERE user_id = ? ORDER BY provider",
                (user_id,),
            ).fetchall()
        return [self._from_row(r) for r in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
