"""SQLite draft store for draftsync.

Local-first persistence of in-progress edits:
- one row per record id, holding the latest draft snapshot as JSON
- connections are opened per operation, so autosave timer threads and the
  editing thread never share a connection
- the schema is re-created on demand, so a deleted or evicted database file
  reads as "no drafts" instead of failing
"""

import contextlib
import json
import logging
import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from draftsync.errors import LocalStorageFailure
from draftsync.types import LocalDraft, format_datetime, utc_now
from draftsync.utils import get_draftsync_home

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS local_drafts (
    profile_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    saved_at TEXT NOT NULL,
    written_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_local_drafts_saved_at ON local_drafts(saved_at);
"""


def _sortable(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so SQL text comparison orders by time."""
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteDraftStore:
    """SQLite-backed local draft store.

    Features:
    - Last-write-wins ``put`` per record id
    - ``get`` never raises; unreadable rows are treated as absent and purged
    - Expiry of abandoned drafts via ``purge_expired``
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = self._resolve_db_path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect():
            pass

    def _resolve_db_path(self, db_path: Optional[Path]) -> Path:
        """Resolve the database path, falling back to temp dir if home is not writable."""
        if db_path is not None:
            return self._validate_db_path(Path(db_path))

        default_path = get_draftsync_home() / "drafts.db"
        try:
            default_path.parent.mkdir(parents=True, exist_ok=True)
            return self._validate_db_path(default_path)
        except (OSError, PermissionError) as e:
            # Home dir not writable (sandboxed/container/CI environment)
            fallback_dir = Path(tempfile.gettempdir()) / ".draftsync"
            logger.warning(f"Cannot write to {default_path.parent} ({e}), falling back to {fallback_dir}")
            return self._validate_db_path(fallback_dir / "drafts.db")

    def _validate_db_path(self, db_path: Path) -> Path:
        """Validate database path to prevent path traversal attacks."""
        try:
            resolved_path = db_path.resolve()
            safe_roots = [
                Path.home().resolve(),
                Path("/tmp").resolve(),
                Path(tempfile.gettempdir()).resolve(),
            ]
            if not any(resolved_path.is_relative_to(root) for root in safe_roots):
                raise ValueError("Draft database path must be within user home or temp directory")
            return resolved_path
        except (OSError, ValueError) as e:
            logger.error(f"Invalid draft database path: {e}")
            raise ValueError(f"Invalid draft database path: {e}")

    def _get_conn(self) -> sqlite3.Connection:
        """Open a connection, recreating the schema if the file was evicted."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.executescript(SCHEMA)
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that commits on success, rolls back on error and always closes."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self):
        """Close any resources.

        Connections are per-operation, so this exists for API symmetry.
        """
        pass

    # === Draft Operations ===

    def get(self, record_id: str) -> Optional[LocalDraft]:
        """Get the draft for a record, or None if absent or unreadable."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload FROM local_drafts WHERE profile_id = ?", (record_id,)
                ).fetchone()
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Local draft read failed for {record_id}, treating as absent: {e}")
            return None

        if row is None:
            return None

        try:
            draft = LocalDraft.from_dict(json.loads(row["payload"]))
            if draft.profile_id != record_id:
                raise ValueError(f"payload belongs to {draft.profile_id}")
            return draft
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupted local draft for {record_id}: {e}")
            self._purge_corrupted(record_id)
            return None

    def _purge_corrupted(self, record_id: str) -> None:
        try:
            self._delete(record_id)
        except (sqlite3.Error, OSError) as e:
            logger.debug(f"Could not purge corrupted draft {record_id}: {e}", exc_info=True)

    def put(self, record_id: str, draft: LocalDraft) -> None:
        """Store a draft snapshot, fully replacing any previous one.

        Raises:
            ValueError: if the draft belongs to a different record.
            LocalStorageFailure: if the write could not be persisted.
        """
        if draft.profile_id != record_id:
            raise ValueError(
                f"Draft for {draft.profile_id} cannot be stored under record {record_id}"
            )

        saved_at = draft.saved_at.astimezone(timezone.utc)
        try:
            payload = json.dumps(draft.to_dict())
        except (TypeError, ValueError) as e:
            raise LocalStorageFailure("write", record_id, f"unserializable draft: {e}") from e

        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO local_drafts (profile_id, payload, saved_at, written_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT(profile_id) DO UPDATE SET
                           payload = excluded.payload,
                           saved_at = excluded.saved_at,
                           written_at = excluded.written_at""",
                    (record_id, payload, _sortable(saved_at), format_datetime(utc_now())),
                )
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageFailure("write", record_id, str(e)) from e

        logger.debug(f"Stored local draft for {record_id} ({len(draft.fields)} fields)")

    def clear(self, record_id: str) -> None:
        """Delete the draft for a record. No-op when none exists.

        Raises:
            LocalStorageFailure: if the delete could not be persisted.
        """
        try:
            removed = self._delete(record_id)
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageFailure("clear", record_id, str(e)) from e
        if removed:
            logger.debug(f"Cleared local draft for {record_id}")

    def _delete(self, record_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM local_drafts WHERE profile_id = ?", (record_id,))
            return cursor.rowcount

    # === Housekeeping ===

    def list_profile_ids(self) -> List[str]:
        """List record ids with a stored draft, oldest first."""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT profile_id FROM local_drafts ORDER BY saved_at"
                ).fetchall()
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not list local drafts: {e}")
            return []
        return [row["profile_id"] for row in rows]

    def count(self) -> int:
        return len(self.list_profile_ids())

    def purge_expired(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Delete drafts whose ``saved_at`` is older than ``max_age``."""
        cutoff = (now or utc_now()).astimezone(timezone.utc) - max_age
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM local_drafts WHERE saved_at < ?", (_sortable(cutoff),)
                )
                removed = cursor.rowcount
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not purge expired drafts: {e}")
            return 0

        if removed:
            logger.info(f"Purged {removed} local drafts older than {max_age}")
        return removed
