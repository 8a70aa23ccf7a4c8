"""Append-only human readable record of breach ticks."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .logging_setup import get_logger


_log = get_logger("alert_log")

ENTRY_SEPARATOR = "---"


@dataclass(frozen=True)
class AlertLogEntry:
    timestamp: datetime
    lines: tuple[str, ...]

    def render(self) -> str:
        body = "\n".join(self.lines)
        return f"Alert at {self.timestamp.isoformat()}:\n{body}\n{ENTRY_SEPARATOR}\n"


class AlertLogger:
    """Writes every entry as soon as it is appended; failures are reported, never retried."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, entry: AlertLogEntry) -> bool:
        text = entry.render()
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(text)
                    fh.flush()
                    os.fsync(fh.fileno())
            except OSError as exc:
                _log.error(f"failed to append alert log {self.path}: {exc}", extra={"event": "alert_log_failed"})
                return False
        return True
