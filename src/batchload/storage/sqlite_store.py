"""
SQLite-based run store.

Stores run records with an integer version column for optimistic
concurrency, plus one row per stored result.
"""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import FatalSystemError, StaleVersionError
from ..core.run_store import RunStore


logger = logging.getLogger(__name__)


class SqliteRunStore(RunStore):
    """
    SQLite implementation of the run store.

    Safe to call from several worker threads; all access is serialized
    through a lock.
    """

    def __init__(self, db_path: Path, auto_init: bool = True):
        """
        Initialize the SQLite run store.

        Args:
            db_path: Path to the SQLite database file
            auto_init: Whether to create tables automatically
        """
        self.db_path = Path(db_path)
        self.conn = None
        self._lock = threading.Lock()
        self._connect()

        if auto_init:
            self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False
        )
        self.conn.row_factory = sqlite3.Row
        logger.debug(f"Connected to SQLite run store: {self.db_path}")

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._lock:
            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS batch_runs (
                    run_id TEXT PRIMARY KEY,
                    version INTEGER NOT NULL,
                    metadata TEXT NOT NULL,
                    stats TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS batch_results (
                    result_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT,
                    line_number INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    status_code INTEGER,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS ix_batch_results_run
                ON batch_results (run_id, line_number)
            """)

            self.conn.commit()
        logger.debug("Initialized run store schema")

    def create_run(self, metadata: Dict[str, Any]) -> Tuple[str, str]:
        """Create a run record with version 1."""
        run_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        try:
            with self._lock:
                self.conn.execute(
                    """
                    INSERT INTO batch_runs (run_id, version, metadata, stats, created_at, updated_at)
                    VALUES (?, 1, ?, NULL, ?, ?)
                    """,
                    (run_id, json.dumps(metadata, default=str), now, now),
                )
                self.conn.commit()
        except sqlite3.Error as e:
            raise FatalSystemError(f"Could not create run record: {e}") from e

        logger.debug(f"Created run record: {run_id}")
        return run_id, "1"

    def update_run(self, run_id: str, version_token: str, stats: Dict[str, Any]) -> str:
        """Update run stats if version_token is still current."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            current = int(version_token)
        except (TypeError, ValueError):
            raise StaleVersionError(f"Invalid version token for run {run_id}: {version_token!r}")

        try:
            with self._lock:
                cursor = self.conn.execute(
                    """
                    UPDATE batch_runs
                    SET version = version + 1, stats = ?, updated_at = ?
                    WHERE run_id = ? AND version = ?
                    """,
                    (json.dumps(stats, default=str), now, run_id, current),
                )
                self.conn.commit()
                updated = cursor.rowcount
        except sqlite3.Error as e:
            raise FatalSystemError(f"Could not update run {run_id}: {e}") from e

        if updated == 0:
            raise StaleVersionError(
                f"Run {run_id} was not updated: version {version_token} is stale or the run does not exist"
            )
        return str(current + 1)

    def write_result(self, result: Dict[str, Any]) -> None:
        """Store one result row."""
        record = result.get("record") or {}
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO batch_results (run_id, line_number, status, status_code, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    result.get("run_id"),
                    record.get("line_number", 0),
                    result.get("status"),
                    result.get("status_code"),
                    json.dumps(result, default=str),
                    now,
                ),
            )
            self.conn.commit()

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Get a run record with decoded metadata and stats."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM batch_runs WHERE run_id = ?", (run_id,)
            ).fetchone()
        if row is None:
            return None
        return {
            "run_id": row["run_id"],
            "version": str(row["version"]),
            "metadata": json.loads(row["metadata"]),
            "stats": json.loads(row["stats"]) if row["stats"] else None,
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    def list_results(self, run_id: str) -> List[Dict[str, Any]]:
        """Get stored results of a run ordered by line number."""
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT content FROM batch_results
                WHERE run_id = ?
                ORDER BY line_number
                """,
                (run_id,),
            ).fetchall()
        return [json.loads(row["content"]) for row in rows]

    def get_name(self) -> str:
        """Return the store name."""
        return "sqlite"

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite run store")
