"""Append-only, timestamped loop log with size-based archive rotation.

Lines look like ``[2026-01-01T00:00:00.000000+00:00] Loop started ...``.
Writing is best-effort: failures are reported through ``logging`` and never
reach the caller.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections import deque
from pathlib import Path


logger = logging.getLogger(__name__)

_DEFAULT_MAX_BYTES = 1_000_000
_DEFAULT_MAX_ARCHIVES = 8


class LoopLogbook:
    """Durable log sink for loop lifecycle messages."""

    def __init__(
        self,
        path: str | Path,
        *,
        max_bytes: int = _DEFAULT_MAX_BYTES,
        max_archives: int = _DEFAULT_MAX_ARCHIVES,
    ) -> None:
        self.path = Path(path)
        self.archive_dir = self.path.parent / "archive"
        self.max_bytes = max(1024, int(max_bytes))
        self.max_archives = max(1, int(max_archives))
        self._lock = threading.Lock()

    def record(self, message: str) -> None:
        timestamp = dt.datetime.now(dt.timezone.utc).isoformat()
        line = f"[{timestamp}] {message}\n"
        try:
            with self._lock:
                self._rotate_if_needed()
                self._append(line)
        except Exception as exc:  # pragma: no cover - defensive
            logger.warning("Could not append loop log entry to %s: %s", self.path, exc)

    def tail(self, lines: int = 20) -> list[str]:
        """Return the last *lines* entries of the active log file."""
        if lines <= 0 or not self.path.exists():
            return []
        with self.path.open(encoding="utf-8", errors="replace") as handle:
            return [ln.rstrip("\n") for ln in deque(handle, maxlen=lines)]

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line)

    def _rotate_if_needed(self) -> None:
        if not self.path.exists() or self.path.stat().st_size < self.max_bytes:
            return
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        target = self.archive_dir / f"{self.path.stem}-{stamp}{self.path.suffix}"
        idx = 1
        while target.exists():
            idx += 1
            target = self.archive_dir / f"{self.path.stem}-{stamp}-{idx}{self.path.suffix}"
        self.path.replace(target)
        self._prune_archives()

    def _prune_archives(self) -> None:
        files = sorted(
            self.archive_dir.glob(f"{self.path.stem}-*{self.path.suffix}"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for old in files[self.max_archives :]:
            try:
                old.unlink(missing_ok=True)
            except OSError:
                continue
