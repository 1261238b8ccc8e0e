"""NDJSON event log for a gridcalc project.

Each event is one JSON object per line in ``<project>/logs/events.ndjson``,
serialized with sorted keys.

Appends take an exclusive ``fcntl.flock`` and queries take a shared one,
each held for a single system call.  Where ``fcntl`` is unavailable the
log is used unlocked.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from gridcalc.logging.events import GridcalcEvent

try:
    import fcntl
except ImportError:  # pragma: no cover - Windows
    fcntl = None  # type: ignore[assignment]

LOG_DIRNAME = "logs"
LOG_FILENAME = "events.ndjson"

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
_MAX_LIMIT = 2000


@contextmanager
def _locked(path: Path, flags: int, shared: bool) -> Iterator[int]:
    """Open *path* with *flags* and hold an flock on it for the block."""
    fd = os.open(str(path), flags, 0o644)
    try:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
        yield fd
    finally:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


class EventSink:
    """Append-only writer and reader for a project's event log.

    Args:
        project_dir: Project root; the log lives under ``logs/``.
        fsync: Flush each append to disk before releasing the lock.
        tail_bytes: Upper bound on how much of the log a query reads.
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / LOG_DIRNAME
        self.path = self.logs_dir / LOG_FILENAME
        self._fsync = fsync
        self._tail_bytes = _DEFAULT_TAIL_BYTES if tail_bytes is None else tail_bytes
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def write(self, event: GridcalcEvent) -> None:
        """Append *event* as one line."""
        data = (json.dumps(event.model_dump(), sort_keys=True, default=str) + "\n").encode("utf-8")
        with _locked(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, shared=False) as fd:
            os.write(fd, data)
            if self._fsync:
                os.fsync(fd)

    def read_events(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        cell: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Return logged events matching every given filter, newest first.

        Only the last ``tail_bytes`` of the log are considered.  *limit* is
        capped at 2000.
        """
        limit = min(limit, _MAX_LIMIT)
        found: list[dict[str, Any]] = []
        for event in reversed(self._load()):
            if level and event.get("level") != level:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if cell and (event.get("context") or {}).get("cell") != cell:
                continue
            found.append(event)
            if len(found) >= limit:
                break
        return found

    def _load(self) -> list[dict[str, Any]]:
        """Parse the tail of the log, skipping lines that are not JSON objects."""
        if not self.path.exists():
            return []
        events: list[dict[str, Any]] = []
        for line in self._tail().splitlines():
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(event, dict):
                events.append(event)
        return events

    def _tail(self) -> str:
        with _locked(self.path, os.O_RDONLY, shared=True) as fd:
            size = os.fstat(fd).st_size
            start = max(0, size - self._tail_bytes)
            os.lseek(fd, start, os.SEEK_SET)
            data = os.read(fd, size - start)
        if start > 0:
            # first line is probably cut in half
            data = data.partition(b"\n")[2]
        return data.decode("utf-8", errors="replace")
