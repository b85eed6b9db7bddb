"""NDJSON event log for a sheet project.

Each event is one JSON line (keys sorted) in ``<project>/logs/events.ndjson``.
Appends hold an exclusive ``fcntl.flock`` and reads a shared one, so
several ``sheetcalc`` processes can share a project.  Without ``fcntl``
(Windows) the lock is skipped.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator

from sheetcalc.logging.events import SheetEvent

try:
    import fcntl
except ImportError:
    fcntl = None  # type: ignore[assignment]

LOG_FILENAME = "events.ndjson"

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
_MAX_READ_LIMIT = 2000


@contextmanager
def _locked(f: IO[bytes], exclusive: bool) -> Iterator[IO[bytes]]:
    if fcntl is None:
        yield f
        return
    fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield f
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class EventSink:
    """Append-only event log of one project."""

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self._fsync = fsync
        self._tail_bytes = tail_bytes if tail_bytes is not None else _DEFAULT_TAIL_BYTES

    @property
    def path(self) -> Path:
        return self.logs_dir / LOG_FILENAME

    def write(self, event: SheetEvent) -> None:
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True) + "\n"
        with open(self.path, "ab") as f, _locked(f, exclusive=True):
            f.write(line.encode("utf-8"))
            f.flush()
            if self._fsync:
                os.fsync(f.fileno())

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        label: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Return logged events, most recent first.

        Only the last ``tail_bytes`` of the log are read.  *label* matches
        events about that cell and cycles that include it.
        """
        selected = []
        for event in reversed(self._read_events()):
            context = event.get("context", {})
            if level and event.get("level") != level:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if label and context.get("label") != label and label not in context.get("labels", []):
                continue
            selected.append(event)
            if len(selected) >= min(limit, _MAX_READ_LIMIT):
                break
        return selected

    def _read_events(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "rb") as f, _locked(f, exclusive=False):
            size = os.fstat(f.fileno()).st_size
            start = max(0, size - self._tail_bytes)
            f.seek(start)
            data = f.read()
        lines = data.decode("utf-8", errors="replace").splitlines()
        if start > 0 and lines:
            # first line is cut by the seek
            lines = lines[1:]

        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events
