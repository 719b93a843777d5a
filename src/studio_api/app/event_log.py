"""Append-only JSON-lines logs for generated, edited, and varied images.

Beginner terms:
- JSONL: one complete JSON object per text line.
- O_APPEND: the OS positions every write at the current end of file, so one
  write call never interleaves with another writer's line.
- Protocol: the interface callers depend on, so a database-backed log can
  replace the file-backed one without touching routes.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from .models import LogCategory

logger = logging.getLogger(__name__)


class EventLog(Protocol):
    def append(self, entry: dict[str, Any]) -> None: ...

    def list_all(self) -> list[dict[str, Any]]: ...


class JsonlEventLog:
    """Thread-safe append-only log stored as one JSON object per line."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        # Serializes appends made through this instance; O_APPEND covers other processes.
        self._lock = threading.Lock()

    def append(self, entry: dict[str, Any]) -> None:
        """Write ``entry`` as one line, creating the file on first use."""
        line = (json.dumps(entry, ensure_ascii=False) + "\n").encode("utf-8")
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                os.write(fd, line)
            finally:
                os.close(fd)
        logger.info("event_log event=append path=%s bytes=%d", self.path, len(line))

    def list_all(self) -> list[dict[str, Any]]:
        """Return every entry, most recently appended first.

        A missing file is an empty log. A malformed line fails the whole call.
        """
        if not self.path.exists():
            return []
        content = self.path.read_text(encoding="utf-8")
        entries = [json.loads(line) for line in content.split("\n") if line.strip()]
        entries.reverse()
        return entries


class CategoryLogs:
    """The three category logs, keyed by category name."""

    def __init__(self, generation: EventLog, edit: EventLog, variation: EventLog) -> None:
        self._logs: dict[str, EventLog] = {
            "generation": generation,
            "edit": edit,
            "variation": variation,
        }

    @classmethod
    def from_directory(cls, data_dir: Path) -> CategoryLogs:
        return cls(
            generation=JsonlEventLog(data_dir / "image_generations.jsonl"),
            edit=JsonlEventLog(data_dir / "image_edits.jsonl"),
            variation=JsonlEventLog(data_dir / "image_variations.jsonl"),
        )

    def get(self, category: LogCategory) -> EventLog:
        return self._logs[category]


def new_entry(response: dict[str, Any], **fields: Any) -> dict[str, Any]:
    """Build a log entry: write-time timestamp, caller fields, then the upstream response.

    Fields whose value is ``None`` are omitted.
    """
    entry: dict[str, Any] = {"timestamp": _utc_timestamp()}
    entry.update({key: value for key, value in fields.items() if value is not None})
    entry.update(response)
    return entry


def _utc_timestamp() -> str:
    now = datetime.now(tz=UTC)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
