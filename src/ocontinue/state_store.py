"""Durable session-id -> loop-state mapping.

Every mutation runs as a read-modify-write of the whole table under the
store's lock, so ``update_if_present`` and ``delete(expected=...)`` are
atomic per session id. The controller relies on them for its
exactly-once transitions.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager, suppress
from pathlib import Path

from pydantic import ValidationError

from ocontinue.schemas import SessionLoopState

logger = logging.getLogger(__name__)

# One lock per resolved state file, shared by every store instance in the process.
_FILE_LOCKS_GUARD = threading.Lock()
_FILE_LOCKS: dict[str, threading.RLock] = {}


def _file_lock(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _FILE_LOCKS_GUARD:
        return _FILE_LOCKS.setdefault(key, threading.RLock())

Mutator = Callable[[SessionLoopState], "SessionLoopState | None"]


class StateStoreError(RuntimeError):
    """Raised when loop state cannot be persisted."""


class StateStore(abc.ABC):
    """Keyed store of active loops; an entry exists only while its loop runs."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @abc.abstractmethod
    def _read_table(self) -> dict[str, SessionLoopState]:
        """Return a private copy of every stored entry."""

    @abc.abstractmethod
    def _write_table(self, table: dict[str, SessionLoopState]) -> None:
        """Replace the stored table with *table*."""

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def get(self, session_id: str) -> SessionLoopState | None:
        with self._locked():
            return self._read_table().get(session_id)

    def sessions(self) -> dict[str, SessionLoopState]:
        with self._locked():
            return self._read_table()

    def put(self, session_id: str, state: SessionLoopState) -> None:
        """Store *state*, replacing whatever the session had before."""
        if not state.active:
            raise ValueError("only active loops can be stored")
        with self._locked():
            table = self._read_table()
            table[session_id] = state.model_copy()
            self._write_table(table)

    def delete(
        self,
        session_id: str,
        *,
        expected: SessionLoopState | None = None,
    ) -> SessionLoopState | None:
        """Remove and return the session's entry.

        With *expected*, the entry is removed only while it is still the same
        loop at the same iteration; otherwise nothing changes and ``None`` is
        returned.
        """
        with self._locked():
            table = self._read_table()
            current = table.get(session_id)
            if current is None:
                return None
            if expected is not None and not (
                current.is_same_loop(expected) and current.iteration == expected.iteration
            ):
                return None
            del table[session_id]
            self._write_table(table)
            return current

    def update_if_present(self, session_id: str, mutate: Mutator) -> SessionLoopState | None:
        """Atomically replace the entry with ``mutate(entry)``.

        Returns the stored result, or ``None`` when the session has no entry or
        *mutate* returned ``None`` (which leaves the entry untouched).
        """
        with self._locked():
            table = self._read_table()
            current = table.get(session_id)
            if current is None:
                return None
            updated = mutate(current.model_copy())
            if updated is None:
                return None
            table[session_id] = updated
            self._write_table(table)
            return updated.model_copy()

    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        with self._locked():
            table = self._read_table()
            if table:
                self._write_table({})
            return len(table)


class InMemoryStateStore(StateStore):
    """Process-local store, used by tests and hosts without a project directory."""

    def __init__(self, initial: dict[str, SessionLoopState] | None = None) -> None:
        super().__init__()
        self._table: dict[str, SessionLoopState] = {
            key: value.model_copy() for key, value in (initial or {}).items()
        }

    def _read_table(self) -> dict[str, SessionLoopState]:
        return {key: value.model_copy() for key, value in self._table.items()}

    def _write_table(self, table: dict[str, SessionLoopState]) -> None:
        self._table = {key: value.model_copy() for key, value in table.items()}


class JsonFileStateStore(StateStore):
    """Store backed by ``{"sessions": {...}}`` JSON, replaced atomically on write.

    Unreadable or corrupt files are treated as empty. Individual entries that
    fail validation are skipped so one bad record does not hide the others.
    Stores opened on the same file share one lock, so a CLI command and a
    running controller in one process never interleave their updates.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock, _file_lock(self.path):
            yield

    def _read_table(self) -> dict[str, SessionLoopState]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Could not read loop state %s; treating as empty: %s", self.path, exc)
            return {}
        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("Loop state %s is not valid JSON; treating as empty: %s", self.path, exc)
            return {}

        sessions = payload.get("sessions") if isinstance(payload, dict) else None
        if not isinstance(sessions, dict):
            logger.warning("Loop state %s has no sessions table; treating as empty", self.path)
            return {}

        table: dict[str, SessionLoopState] = {}
        for session_id, entry in sessions.items():
            try:
                state = SessionLoopState.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping invalid loop state for session %s: %s", session_id, exc)
                continue
            if state.active:
                table[str(session_id)] = state
        return table

    def _write_table(self, table: dict[str, SessionLoopState]) -> None:
        payload = {"sessions": {key: value.to_json_dict() for key, value in table.items()}}
        text = json.dumps(payload, indent=2) + "\n"
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f"{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(text)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise StateStoreError(f"Could not write loop state {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                with suppress(OSError):
                    os.unlink(tmp_name)
