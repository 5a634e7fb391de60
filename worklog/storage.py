from __future__ import annotations

import json
import logging
import math
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .models import TimeEntry, WorkCategory
from .utils import aware, ensure_directory, from_storage_time, to_storage_time

_ENTRY_COLUMNS = """
    id, timestamp, app_name, window_title, screenshot_path, task_description,
    project_id, manual_project_id, duration_seconds, is_idle, ai_analysis,
    category, classifier_notes
"""


class EntryRepository:
    """SQLite-backed timeline of captured entries.

    Every operation opens its own short-lived connection. The database runs in
    WAL mode so readers are never blocked by the single writer, and all writes
    go through one lock so back-fill and classification patches never interleave
    inside a statement.
    """

    def __init__(self, db_path: Path, log: logging.Logger | None = None):
        self.db_path = Path(db_path)
        ensure_directory(self.db_path.parent)
        self._logger = log or logging.getLogger(__name__)
        self._write_lock = threading.Lock()
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self._write_lock, self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS time_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    app_name TEXT NOT NULL,
                    window_title TEXT NOT NULL DEFAULT '',
                    screenshot_path TEXT,
                    task_description TEXT,
                    project_id TEXT,
                    manual_project_id TEXT,
                    duration_seconds INTEGER,
                    is_idle INTEGER NOT NULL DEFAULT 0,
                    ai_analysis TEXT,
                    category TEXT,
                    classifier_notes TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_entries_timestamp ON time_entries(timestamp);
                CREATE INDEX IF NOT EXISTS idx_entries_project ON time_entries(project_id);
                CREATE INDEX IF NOT EXISTS idx_entries_app ON time_entries(app_name);
                """
            )
            conn.commit()

    def append(self, entry: TimeEntry) -> int:
        with self._write_lock, self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO time_entries (
                    timestamp, app_name, window_title, screenshot_path,
                    task_description, project_id, manual_project_id,
                    duration_seconds, is_idle, ai_analysis, category, classifier_notes
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    to_storage_time(entry.timestamp),
                    entry.app_name or "",
                    entry.window_title or "",
                    str(entry.screenshot_path) if entry.screenshot_path else None,
                    entry.task_description,
                    entry.project_id,
                    entry.manual_project_id,
                    entry.duration_seconds,
                    1 if entry.is_idle else 0,
                    entry.ai_analysis,
                    entry.category.value if entry.category else None,
                    entry.classifier_notes,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def close_open_duration(self, now: datetime) -> Optional[int]:
        """Set the latest entry's duration to the whole seconds elapsed until ``now``.

        Returns the id of the closed entry, or None when the store is empty.
        Calling it twice simply overwrites the value.
        """
        with self._write_lock, self._connection() as conn:
            row = conn.execute(
                "SELECT id, timestamp FROM time_entries ORDER BY timestamp DESC, id DESC LIMIT 1"
            ).fetchone()
            if row is None:
                return None

            started = from_storage_time(str(row["timestamp"]))
            duration = math.floor((aware(now) - started).total_seconds())
            if duration < 0:
                self._logger.warning(
                    "Negative duration %ss for entry %s (clock skew?); clamping to 0",
                    duration,
                    row["id"],
                )
                duration = 0

            conn.execute(
                "UPDATE time_entries SET duration_seconds = ? WHERE id = ?",
                (duration, int(row["id"])),
            )
            conn.commit()
            return int(row["id"])

    def range(self, start: datetime, end: datetime, project_id: str | None = None) -> List[TimeEntry]:
        query = f"""
            SELECT {_ENTRY_COLUMNS}
            FROM time_entries
            WHERE timestamp >= ? AND timestamp < ?
        """
        params: list = [to_storage_time(start), to_storage_time(end)]
        if project_id:
            query += " AND COALESCE(manual_project_id, project_id, 'unassigned') = ?"
            params.append(project_id)
        query += " ORDER BY timestamp ASC, id ASC"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get(self, entry_id: int) -> Optional[TimeEntry]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM time_entries WHERE id = ?",
                (int(entry_id),),
            ).fetchone()
        return self._row_to_entry(row) if row is not None else None

    def patch_classification(
        self,
        entry_id: int,
        task_description: str,
        project_id: str | None,
        raw_analysis: str,
    ) -> bool:
        """Write classifier output onto an entry in one statement.

        The category and notes columns are derived from ``raw_analysis``; a
        payload that is not a JSON object with a known category leaves the
        category empty. Returns False when no row has ``entry_id``.
        """
        category, notes = _structured_fields(raw_analysis)
        with self._write_lock, self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE time_entries
                SET task_description = ?, project_id = ?, ai_analysis = ?,
                    category = ?, classifier_notes = ?
                WHERE id = ?
                """,
                (
                    task_description,
                    project_id,
                    raw_analysis,
                    category.value if category else None,
                    notes,
                    int(entry_id),
                ),
            )
            conn.commit()
            updated = cursor.rowcount > 0
        if not updated:
            self._logger.debug("Classification for unknown entry %s ignored", entry_id)
        return updated

    def set_manual_project(self, entry_id: int, project_id: str | None) -> bool:
        with self._write_lock, self._connection() as conn:
            cursor = conn.execute(
                "UPDATE time_entries SET manual_project_id = ? WHERE id = ?",
                (project_id, int(entry_id)),
            )
            conn.commit()
            return cursor.rowcount > 0

    def last_entry(self) -> Optional[TimeEntry]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM time_entries ORDER BY timestamp DESC, id DESC LIMIT 1"
            ).fetchone()
        return self._row_to_entry(row) if row is not None else None

    def count_since(self, start: datetime) -> int:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM time_entries WHERE timestamp >= ?",
                (to_storage_time(start),),
            ).fetchone()
        return int(row["count"]) if row is not None else 0

    def unclassified_entries(self, limit: int = 25) -> List[TimeEntry]:
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM time_entries
                WHERE ai_analysis IS NULL AND is_idle = 0
                ORDER BY timestamp ASC, id ASC
                LIMIT ?
                """,
                (int(limit),),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._write_lock, self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM time_entries WHERE timestamp < ?",
                (to_storage_time(cutoff),),
            )
            conn.commit()
            return int(cursor.rowcount)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
        duration = row["duration_seconds"]
        screenshot = row["screenshot_path"]
        return TimeEntry(
            id=int(row["id"]),
            timestamp=from_storage_time(str(row["timestamp"])),
            app_name=str(row["app_name"]),
            window_title=str(row["window_title"]),
            screenshot_path=Path(screenshot) if screenshot else None,
            task_description=row["task_description"],
            project_id=row["project_id"],
            manual_project_id=row["manual_project_id"],
            duration_seconds=int(duration) if duration is not None else None,
            is_idle=bool(row["is_idle"]),
            ai_analysis=row["ai_analysis"],
            category=WorkCategory.parse(row["category"]),
            classifier_notes=row["classifier_notes"],
        )


def _structured_fields(raw_analysis: str | None) -> tuple[WorkCategory | None, str | None]:
    if not raw_analysis:
        return None, None
    try:
        payload = json.loads(raw_analysis)
    except (TypeError, ValueError):
        return None, None
    if not isinstance(payload, dict):
        return None, None
    notes = payload.get("notes")
    return WorkCategory.parse(payload.get("category")), str(notes) if notes is not None else None
