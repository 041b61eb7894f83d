"""SQLite storage for the CV record."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cvsite.cv.models import Section


class CVNotFoundError(Exception):
    """Raised when a section update arrives before any CV exists."""


_COLUMNS = {
    Section.PERSONAL_INFO: "personal_info",
    Section.WORK_EXPERIENCE: "work_experience",
    Section.EDUCATION: "education",
    Section.SKILLS: "skills",
    Section.PROJECTS: "projects",
    Section.COURSES: "courses",
    Section.LANGUAGES: "languages",
}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class CVDatabase:
    """One table, one JSON column per section. The newest row is the live CV."""

    def __init__(self, db_path: str) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_tables()

    def _create_tables(self) -> None:
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS cv (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                personal_info TEXT NOT NULL,
                work_experience TEXT NOT NULL DEFAULT '[]',
                education TEXT NOT NULL DEFAULT '[]',
                skills TEXT NOT NULL DEFAULT '[]',
                projects TEXT NOT NULL DEFAULT '[]',
                courses TEXT NOT NULL DEFAULT '[]',
                languages TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self.conn.commit()

    def _latest_row(self) -> sqlite3.Row | None:
        return self.conn.execute(
            "SELECT * FROM cv ORDER BY updated_at DESC, id DESC LIMIT 1"
        ).fetchone()

    def get_latest(self) -> dict[str, Any] | None:
        """Return the live CV in wire form plus id/timestamps, or None."""
        row = self._latest_row()
        if row is None:
            return None
        record: dict[str, Any] = {
            section.value: json.loads(row[column]) for section, column in _COLUMNS.items()
        }
        record["id"] = row["id"]
        record["createdAt"] = row["created_at"]
        record["updatedAt"] = row["updated_at"]
        return record

    def save(self, cv: dict[str, Any]) -> tuple[int, bool]:
        """Replace the live CV, creating it if absent. Returns (id, created)."""
        values = [json.dumps(cv.get(section.value, [])) for section in _COLUMNS]
        now = _now_iso()
        with self._lock:
            row = self._latest_row()
            if row is None:
                cursor = self.conn.execute(
                    f"""INSERT INTO cv ({", ".join(_COLUMNS.values())}, created_at, updated_at)
                        VALUES ({", ".join("?" * len(_COLUMNS))}, ?, ?)""",
                    (*values, now, now),
                )
                self.conn.commit()
                return int(cursor.lastrowid or 0), True

            assignments = ", ".join(f"{column}=?" for column in _COLUMNS.values())
            self.conn.execute(
                f"UPDATE cv SET {assignments}, updated_at=? WHERE id=?",
                (*values, now, row["id"]),
            )
            self.conn.commit()
            return int(row["id"]), False

    def update_section(self, section: Section, data: Any) -> tuple[int, str]:
        """Overwrite one section of the live CV. Returns (id, updated_at)."""
        column = _COLUMNS[section]
        now = _now_iso()
        with self._lock:
            row = self._latest_row()
            if row is None:
                raise CVNotFoundError("CV not found")
            self.conn.execute(
                f"UPDATE cv SET {column}=?, updated_at=? WHERE id=?",
                (json.dumps(data), now, row["id"]),
            )
            self.conn.commit()
        return int(row["id"]), now

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM cv").fetchone()[0]

    def close(self) -> None:
        self.conn.close()
