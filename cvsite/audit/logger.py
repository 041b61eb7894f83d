"""Gate audit trail: JSON Lines, size-rotated and SHA-256 hash chained.

Each line carries ``prev_hash``: the SHA-256 of the previous raw line in the
same file (``None`` for the first line). Rotation starts a fresh chain.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from cvsite.models import AuditEvent


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None
    lines_checked: int = 0


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Walk an audit file and report the first line whose prev_hash is wrong."""
    text = log_path.read_text().strip()
    if not text:
        return ChainValidationResult(valid=True)

    lines = text.split("\n")
    previous: str | None = None
    for number, line in enumerate(lines, start=1):
        try:
            recorded = json.loads(line).get("prev_hash")
        except (json.JSONDecodeError, AttributeError):
            return ChainValidationResult(
                valid=False, broken_at_line=number, lines_checked=number,
            )
        expected = _line_hash(previous) if previous is not None else None
        if recorded != expected:
            return ChainValidationResult(
                valid=False, broken_at_line=number, lines_checked=number,
            )
        previous = line

    return ChainValidationResult(valid=True, lines_checked=len(lines))


class AuditLogger:
    """Append-only audit log for admission and authentication decisions."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 5_242_880,
        backup_count: int = 3,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        return cls(
            log_path=log_path,
            max_bytes=int(os.environ.get("AUDIT_LOG_MAX_BYTES", "5242880")),
            backup_count=int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "3")),
        )

    def _read_tail(self) -> str | None:
        """Last complete line on disk, read backwards from the end of the file."""
        if not self.log_path.exists():
            return None
        with open(self.log_path, "rb") as handle:
            position = handle.seek(0, os.SEEK_END)
            chunk = b""
            while position > 0 and chunk.rstrip(b"\n").count(b"\n") == 0:
                step = min(4096, position)
                position -= step
                handle.seek(position)
                chunk = handle.read(step) + chunk
        data = chunk.strip()
        return data.rsplit(b"\n", 1)[-1].decode() if data else None

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate_if_needed(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for index in range(self._backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).rename(self._backup(index + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        lock_path = self.log_path.with_name(f".{self.log_path.name}.lock")
        with open(lock_path, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                self._rotate_if_needed()
                # Other writers may have appended or rotated since our last line
                tail = self._read_tail()
                record = event.model_dump(mode="json")
                record["prev_hash"] = _line_hash(tail) if tail is not None else None
                line = json.dumps(record, separators=(",", ":"))
                with open(self.log_path, "a") as handle:
                    handle.write(line + "\n")
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)
