# CLO Core - SQLite Connection Helper
#
# The vault, integration cache and integration credential stores each keep
# one long-lived connection guarded by their own lock. They all open it
# through `connect()` so every database gets the same settings:
#
#   - WAL journal (the cache and credential tables may share one file)
#   - busy_timeout so a second connection waits instead of SQLITE_BUSY
#   - foreign_keys enforced
#   - sqlite3.Row rows, usable from any thread
#
# ":memory:" is accepted for tests; SQLite keeps it in "memory" journal mode.

import sqlite3
from pathlib import Path
from typing import Union

MEMORY_DB = ":memory:"
DEFAULT_BUSY_TIMEOUT_MS = 5000


def connect(db_path: Union[str, Path], busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> sqlite3.Connection:
    """Open ``db_path`` (creating its directory) with the shared PRAGMAs.

    The connection is not bound to the creating thread; callers serialise
    access with their own lock.
    """
    path = str(db_path)
    if path != MEMORY_DB:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn
