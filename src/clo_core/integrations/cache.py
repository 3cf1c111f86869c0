# Integrations - External-Data Cache
#
# Per-user, per-provider, per-key read-through cache with a hard TTL.
# An entry is returned only while ``now < expires_at``; there is no
# invalidation other than expiry, no eviction and no negative caching.
# Concurrent misses may both reach the remote API; no request coalescing.

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..core.db import connect as db_connect
from ..exceptions import ValidationError
from .models import CacheEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IntegrationCache:
    """SQLite-backed TTL cache for third-party API responses.

    Timestamps are stored as UTC epoch seconds so expiry comparisons are
    exact. The clock is injectable for tests.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:", clock: Optional[Clock] = None):
        self.db_path = str(db_path)
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self._conn = db_connect(self.db_path)
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS integration_cache (
                    user_id     TEXT NOT NULL,
                    provider    TEXT NOT NULL,
                    cache_key   TEXT NOT NULL,
                    data        TEXT NOT NULL,
                    expires_at  REAL NOT NULL,
                    created_at  REAL NOT NULL,
                    PRIMARY KEY (user_id, provider, cache_key)
                );

                CREATE INDEX IF NOT EXISTS idx_cache_expiry
                    ON integration_cache(expires_at);
                """
            )
            self._conn.commit()

    def _now_ts(self) -> float:
        return self.clock().timestamp()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get_entry(self, user_id: str, provider: str, cache_key: str) -> Optional[CacheEntry]:
        """Return the entry if present and not expired, else None."""
        with self._lock:
            row = self._conn.execute(
                """
                SELECT * FROM integration_cache
                WHERE user_id = ? AND provider = ? AND cache_key = ?
                  AND expires_at > ?
                """,
                (user_id, provider, cache_key, self._now_ts()),
            ).fetchone()
        if row is None:
            return None
        try:
            value = json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("Dropping unreadable cache entry %s/%s", provider, cache_key)
            return None
        return CacheEntry(
            user_id=row["user_id"],
            provider=row["provider"],
            cache_key=row["cache_key"],
            value=value,
            expires_at=datetime.fromtimestamp(row["expires_at"], tz=timezone.utc),
            created_at=datetime.fromtimestamp(row["created_at"], tz=timezone.utc),
        )

    def get_cached(self, user_id: str, provider: str, cache_key: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        entry = self.get_entry(user_id, provider, cache_key)
        return entry.value if entry is not None else None

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def set_cached(
        self,
        user_id: str,
        provider: str,
        cache_key: str,
        value: Any,
        ttl_minutes: int,
    ) -> None:
        """Store or overwrite an entry expiring ``ttl_minutes`` from now."""
        if isinstance(ttl_minutes, bool) or not isinstance(ttl_minutes, int) or ttl_minutes <= 0:
            raise ValidationError("ttl_minutes must be a positive integer")
        if value is None:
            raise ValidationError("Cannot cache an empty value")

        now = self.clock()
        expires_at = now + timedelta(minutes=ttl_minutes)
        payload = json.dumps(value)

        with self._lock:
            self._conn.execute(
                """
                INSERT INTO integration_cache
                    (user_id, provider, cache_key, data, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider, cache_key)
                DO UPDATE SET
                    data = excluded.data,
                    expires_at = excluded.expires_at,
                    created_at = excluded.created_at
                """,
                (user_id, provider, cache_key, payload, expires_at.timestamp(), now.timestamp()),
            )
            self._conn.commit()

    def clean_expired(self) -> int:
        """Remove expired entries. Returns count deleted."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM integration_cache WHERE expires_at <= ?",
                (self._now_ts(),),
            )
            self._conn.commit()
            return cursor.rowcount

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM integration_cache").fetchone()
        return row[0]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
