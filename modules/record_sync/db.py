"""
Database layer for Record Sync module.

SQLite with WAL mode. One shared connection per process, opened by
``open()`` and closed by ``close()``; request handlers and reconciliation
workers share it through the module-level ``db`` instance.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import config
from .exceptions import UpstreamFailure
from .models import IdentityRecord, MappingRecord, RecordKind

logger = logging.getLogger(__name__)


SCHEMA = """
-- Bridge table: one row per (kind, fingerprint), links Tracker task and Registry item
CREATE TABLE IF NOT EXISTS record_map (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,  -- 'rfq', 'datasheet', 'order'
    fingerprint TEXT NOT NULL,
    tracker_id TEXT,
    registry_id TEXT,
    salt TEXT DEFAULT 'null',
    iterations INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    UNIQUE (kind, fingerprint)
);

CREATE INDEX IF NOT EXISTS idx_record_map_tracker ON record_map(kind, tracker_id);
CREATE INDEX IF NOT EXISTS idx_record_map_registry ON record_map(kind, registry_id);

-- Identity table: users known to both systems (maintained by identity sync)
CREATE TABLE IF NOT EXISTS identity_map (
    tracker_user_id TEXT PRIMARY KEY,
    registry_user_id TEXT NOT NULL,
    display_name TEXT,
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_identity_registry ON identity_map(registry_user_id);

-- Sync state: cursors, timestamps
CREATE TABLE IF NOT EXISTS sync_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Sync log: audit trail
CREATE TABLE IF NOT EXISTS sync_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT DEFAULT (datetime('now')),
    direction TEXT NOT NULL,  -- 'tracker_to_registry', 'registry_to_tracker', 'internal'
    action TEXT NOT NULL,  -- 'create', 'update', 'link', 'mutate', 'delete', 'upload', 'skip', 'error'
    kind TEXT,
    tracker_id TEXT,
    registry_id TEXT,
    details TEXT,  -- JSON
    status TEXT DEFAULT 'success'
);

CREATE INDEX IF NOT EXISTS idx_sync_log_timestamp ON sync_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_sync_log_status ON sync_log(status);
"""

EXPORTABLE_TABLES = ('record_map', 'identity_map', 'sync_state', 'sync_log')


class Database:
    """Mapping store, identity table and audit log."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else config.DB_PATH
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    def open(self) -> 'Database':
        """Open the shared connection and ensure the schema exists."""
        with self._lock:
            if self._conn is not None:
                return self
            if str(self.db_path) != ':memory:':
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(SCHEMA)
            conn.commit()
            self._conn = conn
            logger.info(f"Opened record store at {self.db_path}")
        return self

    def close(self):
        """Close the shared connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Closed record store")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @contextmanager
    def connection(self):
        """Serialized access to the shared connection, one transaction per block."""
        with self._lock:
            if self._conn is None:
                raise UpstreamFailure("Record store is not open")
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise UpstreamFailure(f"Record store error: {e}") from e
            except Exception:
                self._conn.rollback()
                raise

    # ==========================================================================
    # Record Map (Mapping Store)
    # ==========================================================================

    def find_by_task_id(self, kind: RecordKind, tracker_id: str) -> Optional[MappingRecord]:
        """Get the mapping for a Tracker task."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM record_map WHERE kind = ? AND tracker_id = ? ORDER BY id LIMIT 1",
                (kind.value, tracker_id)
            ).fetchone()
            return MappingRecord.from_row(row) if row else None

    def find_by_fingerprint(self, kind: RecordKind, fingerprint: str) -> Optional[MappingRecord]:
        """Get the mapping for a content fingerprint."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM record_map WHERE kind = ? AND fingerprint = ?",
                (kind.value, fingerprint)
            ).fetchone()
            return MappingRecord.from_row(row) if row else None

    def find_by_registry_id(self, kind: RecordKind, registry_id: str) -> Optional[MappingRecord]:
        """Get the mapping for a Registry item."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM record_map WHERE kind = ? AND registry_id = ? ORDER BY id LIMIT 1",
                (kind.value, registry_id)
            ).fetchone()
            return MappingRecord.from_row(row) if row else None

    def upsert_fingerprint(self, kind: RecordKind, fingerprint: str, tracker_id: str) -> bool:
        """
        Create a mapping for (kind, fingerprint) if none exists.

        Atomic insert-if-absent: concurrent callers with the same arguments all
        succeed, only the first has effect. Returns True if a row was created.
        """
        with self.connection() as conn:
            cursor = conn.execute("""
                INSERT INTO record_map (kind, fingerprint, tracker_id)
                VALUES (?, ?, ?)
                ON CONFLICT(kind, fingerprint) DO NOTHING
            """, (kind.value, fingerprint, tracker_id))
            created = cursor.rowcount == 1

        if created:
            logger.debug(f"Mapped {kind.value} task {tracker_id} to fingerprint {fingerprint[:12]}")
        return created

    def attach_registry_id(self, kind: RecordKind, fingerprint: str, registry_id: str) -> bool:
        """Record the Registry id for a mapping. Returns False if no mapping exists."""
        with self.connection() as conn:
            cursor = conn.execute("""
                UPDATE record_map
                SET registry_id = ?, updated_at = ?
                WHERE kind = ? AND fingerprint = ?
            """, (registry_id, datetime.now().isoformat(), kind.value, fingerprint))
            return cursor.rowcount > 0

    def set_tracker_id(self, kind: RecordKind, fingerprint: str, tracker_id: str) -> bool:
        """Point an existing mapping at a (re)created Tracker task."""
        with self.connection() as conn:
            cursor = conn.execute("""
                UPDATE record_map
                SET tracker_id = ?, updated_at = ?
                WHERE kind = ? AND fingerprint = ?
            """, (tracker_id, datetime.now().isoformat(), kind.value, fingerprint))
            return cursor.rowcount > 0

    def delete_by_task_id(self, kind: RecordKind, tracker_id: str) -> int:
        """Remove every mapping for a Tracker task. Returns rows deleted."""
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM record_map WHERE kind = ? AND tracker_id = ?",
                (kind.value, tracker_id)
            )
            return cursor.rowcount

    def delete_by_fingerprint(self, kind: RecordKind, fingerprint: str) -> int:
        """Remove the mapping for a fingerprint. Returns rows deleted."""
        with self.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM record_map WHERE kind = ? AND fingerprint = ?",
                (kind.value, fingerprint)
            )
            return cursor.rowcount

    def list_mappings(self, kind: Optional[RecordKind] = None, limit: int = 100) -> list[MappingRecord]:
        """List mappings, newest first."""
        with self.connection() as conn:
            if kind:
                rows = conn.execute(
                    "SELECT * FROM record_map WHERE kind = ? ORDER BY id DESC LIMIT ?",
                    (kind.value, limit)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM record_map ORDER BY id DESC LIMIT ?", (limit,)
                ).fetchall()
            return [MappingRecord.from_row(row) for row in rows]

    def count_mappings(self) -> dict:
        """Mapping counts per kind."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT kind, COUNT(*) AS total, COUNT(registry_id) AS linked FROM record_map GROUP BY kind"
            ).fetchall()
            return {row['kind']: {'total': row['total'], 'linked': row['linked']} for row in rows}

    # ==========================================================================
    # Identity Map
    # ==========================================================================

    def get_identity_by_tracker_user(self, tracker_user_id: str) -> Optional[IdentityRecord]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM identity_map WHERE tracker_user_id = ?", (tracker_user_id,)
            ).fetchone()
            return IdentityRecord.from_row(row) if row else None

    def get_identity_by_registry_user(self, registry_user_id: str) -> Optional[IdentityRecord]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM identity_map WHERE registry_user_id = ? LIMIT 1", (registry_user_id,)
            ).fetchone()
            return IdentityRecord.from_row(row) if row else None

    def resolve_identity(self, registry_user_id: Optional[str]) -> Optional[str]:
        """Tracker user id for a Registry user id, or None if unknown."""
        if not registry_user_id:
            return None
        identity = self.get_identity_by_registry_user(str(registry_user_id))
        return identity.tracker_user_id if identity else None

    def upsert_identity(self, tracker_user_id: str, registry_user_id: str, display_name: str = ''):
        """Insert or replace an identity (used by identity sync and the CLI)."""
        with self.connection() as conn:
            conn.execute("""
                INSERT INTO identity_map (tracker_user_id, registry_user_id, display_name, updated_at)
                VALUES (?, ?, ?, datetime('now'))
                ON CONFLICT(tracker_user_id) DO UPDATE SET
                    registry_user_id = excluded.registry_user_id,
                    display_name = excluded.display_name,
                    updated_at = datetime('now')
            """, (tracker_user_id, registry_user_id, display_name))

    # ==========================================================================
    # Sync State
    # ==========================================================================

    def get_state(self, key: str) -> Optional[str]:
        """Get a sync state value."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM sync_state WHERE key = ?", (key,)
            ).fetchone()
            return row['value'] if row else None

    def set_state(self, key: str, value: str):
        """Set a sync state value."""
        with self.connection() as conn:
            conn.execute("""
                INSERT INTO sync_state (key, value, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = datetime('now')
            """, (key, value))

    # ==========================================================================
    # Sync Log
    # ==========================================================================

    def log_sync(
        self,
        direction: str,
        action: str,
        kind: Optional[RecordKind] = None,
        tracker_id: Optional[str] = None,
        registry_id: Optional[str] = None,
        details: Optional[str] = None,
        status: str = 'success'
    ):
        """Log a sync action."""
        with self.connection() as conn:
            conn.execute("""
                INSERT INTO sync_log (
                    direction, action, kind, tracker_id, registry_id, details, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (direction, action, kind.value if kind else None, tracker_id, registry_id, details, status))

    def get_recent_logs(self, limit: int = 50) -> list[dict]:
        """Get recent sync log entries."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [dict(row) for row in rows]

    # ==========================================================================
    # Export
    # ==========================================================================

    def export_table(self, table: str, path: Path) -> int:
        """Write a table to a JSON file. Returns rows written."""
        if table not in EXPORTABLE_TABLES:
            raise ValueError(f"Unknown table: {table}")

        with self.connection() as conn:
            rows = [dict(row) for row in conn.execute(f"SELECT * FROM {table}").fetchall()]

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(rows, indent=2))
        return len(rows)


# Module-level instance (opened by the CLI / app factory)
db = Database()
