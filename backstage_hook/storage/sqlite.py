"""SQLite storage backend for remembered decisions and sessions.

WAL mode for concurrent reads, single writer lock for atomic writes.
Write errors propagate: losing a remembered "Always allow" silently would
defeat the point of remembering it.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from backstage_hook.storage.base import StoredPolicy, StoredSession, is_deletion

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS policies (
    key TEXT PRIMARY KEY,
    policy_id TEXT NOT NULL,
    timestamp TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    secret TEXT NOT NULL,
    created TEXT
);
"""


def _default_db_path() -> str:
    """Return default database path: ~/.backstage-hook/backstage.db"""
    return str(Path.home() / ".backstage-hook" / "backstage.db")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite database manager with WAL mode and thread-safe writes.

    File databases get one connection per thread. ``:memory:`` databases
    are private to a connection, so they share a single connection and
    serialize reads behind the writer lock.

    >>> db = Database(":memory:")
    >>> db.db_path
    ':memory:'
    """

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_path = _default_db_path()

        self.db_path = db_path
        self._write_lock = threading.Lock()
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None

        if db_path != ":memory:" and not Path(db_path).exists():
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            Path(db_path).touch()

        self._init_schema()

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    @property
    def _in_memory(self) -> bool:
        return self.db_path == ":memory:"

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        if self._in_memory:
            if self._shared is None:
                self._shared = self._connect()
            return self._shared
        if getattr(self._local, "connection", None) is None:
            self._local.connection = self._connect()
        return self._local.connection

    @contextmanager
    def _writer(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        if self._in_memory:
            with self._write_lock:
                yield self._get_connection()
        else:
            yield self._get_connection()

    def _init_schema(self) -> None:
        with self._writer() as conn:
            conn.executescript(SCHEMA_SQL)

    def close(self) -> None:
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
        if self._shared is not None:
            self._shared.close()
            self._shared = None

    # ==================================================================
    # Policies
    # ==================================================================

    def get_policy(self, key: str) -> Optional[StoredPolicy]:
        """Get a stored decision by fingerprint.

        >>> db = Database(":memory:")
        >>> db.get_policy("nonexistent") is None
        True
        """
        with self._reader() as conn:
            row = conn.execute(
                "SELECT policy_id, timestamp FROM policies WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return StoredPolicy(policy_id=row["policy_id"], timestamp=_parse_iso(row["timestamp"]))

    def set_policy(self, key: str, value: StoredPolicy) -> None:
        """Upsert a stored decision.

        >>> db = Database(":memory:")
        >>> db.set_policy("k", StoredPolicy(policy_id="ALLOW_ALWAYS"))
        >>> db.get_policy("k").policy_id
        'ALLOW_ALWAYS'
        """
        with self._writer() as conn:
            conn.execute(
                """INSERT INTO policies (key, policy_id, timestamp)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       policy_id = excluded.policy_id,
                       timestamp = excluded.timestamp""",
                (key, value.policy_id, _iso(value.timestamp)),
            )

    def delete_policy(self, key: str) -> bool:
        with self._writer() as conn:
            cursor = conn.execute("DELETE FROM policies WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def count_policies(self) -> int:
        with self._reader() as conn:
            return conn.execute("SELECT COUNT(*) FROM policies").fetchone()[0]

    # ==================================================================
    # Sessions
    # ==================================================================

    def get_session(self, session_id: str) -> Optional[StoredSession]:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT secret, created FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
        if row is None:
            return None
        return StoredSession(secret=row["secret"], created=_parse_iso(row["created"]))

    def set_session(self, session_id: str, value: StoredSession) -> None:
        with self._writer() as conn:
            conn.execute(
                """INSERT INTO sessions (id, secret, created)
                   VALUES (?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       secret = excluded.secret,
                       created = excluded.created""",
                (session_id, value.secret, _iso(value.created)),
            )

    def delete_session(self, session_id: str) -> bool:
        with self._writer() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0


class SqlitePolicyStorage:
    """Decision namespace of a ``Database`` behind the backend contract."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> tuple[StoredPolicy, bool]:
        value = self.db.get_policy(key)
        if value is None:
            return StoredPolicy(), False
        return value, True

    def store(self, key: str, value: Optional[StoredPolicy]) -> None:
        if is_deletion(value):
            if self.db.delete_policy(key):
                logger.debug("Deleted stored policy %s", key)
            return
        self.db.set_policy(key, value)


class SqliteSessionStorage:
    """Session namespace of a ``Database`` behind the backend contract."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, key: str) -> tuple[StoredSession, bool]:
        value = self.db.get_session(key)
        if value is None:
            return StoredSession(), False
        return value, True

    def store(self, key: str, value: Optional[StoredSession]) -> None:
        if is_deletion(value):
            self.db.delete_session(key)
            return
        self.db.set_session(key, value)
