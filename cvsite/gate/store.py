"""Rate-limit entry stores.

The limiter owns no state itself; it reads and writes entries through a
store. Callers wrap each read-modify-write in ``store.locked()`` so a
key's count only moves forward within its window.
"""

from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path

from cvsite.gate.models import RateLimitEntry


class RateLimitStore(ABC):
    """Interface for rate-limit entry storage."""

    @abstractmethod
    def get(self, key: str) -> RateLimitEntry | None:
        ...

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def sweep(self, now_ms: int) -> int:
        """Drop entries whose own reset_time is at or before now_ms.

        Returns the number of entries removed.
        """
        ...

    @abstractmethod
    def locked(self) -> AbstractContextManager[None]:
        """Context manager serialising a read-modify-write sequence."""
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local dict store. Default for single-process deployments and tests."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self, now_ms: int) -> int:
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.expired(now_ms)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteRateLimitStore(RateLimitStore):
    """SQLite-backed store so several worker processes on one host share counters."""

    def __init__(self, db_path: str) -> None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            db_path, check_same_thread=False, isolation_level=None, timeout=5.0,
        )
        self._lock = threading.RLock()
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS rate_limits (
                key TEXT PRIMARY KEY,
                count INTEGER NOT NULL,
                reset_time INTEGER NOT NULL
            )"""
        )

    def get(self, key: str) -> RateLimitEntry | None:
        row = self._conn.execute(
            "SELECT count, reset_time FROM rate_limits WHERE key = ?", (key,)
        ).fetchone()
        return RateLimitEntry(count=row[0], reset_time=row[1]) if row else None

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._conn.execute(
            """INSERT INTO rate_limits (key, count, reset_time) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                 count=excluded.count, reset_time=excluded.reset_time""",
            (key, entry.count, entry.reset_time),
        )

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM rate_limits WHERE key = ?", (key,))

    def sweep(self, now_ms: int) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM rate_limits WHERE reset_time <= ?", (now_ms,)
            )
        return cursor.rowcount

    @contextmanager
    def locked(self) -> Iterator[None]:
        # BEGIN IMMEDIATE takes the database write lock, which other
        # processes sharing the file also honour.
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def __len__(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM rate_limits").fetchone()[0]

    def close(self) -> None:
        self._conn.close()
