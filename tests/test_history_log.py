"""Tests for the durable loop logbook."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

import ocontinue.history_log as history_log
from ocontinue.history_log import LoopLogbook

_LINE_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T[^\]]+\] (?P<message>.*)$")


def test_record_appends_timestamped_lines(tmp_path: Path):
    logbook = LoopLogbook(tmp_path / ".opencode" / "ocontinue.log")
    logbook.record("Controller loaded")
    logbook.record("Loop started for session s1 - Max: 3, Promise: \"DONE\"")

    lines = (tmp_path / ".opencode" / "ocontinue.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = _LINE_RE.match(lines[0])
    assert first is not None
    assert first.group("message") == "Controller loaded"
    assert lines[1].endswith('Promise: "DONE"')


def test_tail_returns_last_entries(tmp_path: Path):
    logbook = LoopLogbook(tmp_path / "ocontinue.log")
    for i in range(5):
        logbook.record(f"entry {i}")

    tail = logbook.tail(2)
    assert len(tail) == 2
    assert tail[0].endswith("entry 3")
    assert tail[1].endswith("entry 4")
    assert LoopLogbook(tmp_path / "missing.log").tail() == []


def test_rotates_and_prunes_archives(tmp_path: Path):
    path = tmp_path / "ocontinue.log"
    logbook = LoopLogbook(path, max_bytes=1024, max_archives=2)
    for i in range(60):
        logbook.record(f"entry {i} " + "x" * 100)

    archives = list((tmp_path / "archive").glob("ocontinue-*.log"))
    assert 1 <= len(archives) <= 2
    assert path.exists()
    assert path.stat().st_size < 1024 + 200


def test_record_failure_is_swallowed(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    def fail_append(_self: LoopLogbook, _line: str) -> None:
        raise OSError(30, "read-only file system")

    monkeypatch.setattr(history_log.LoopLogbook, "_append", fail_append)
    LoopLogbook(tmp_path / "ocontinue.log").record("ignored")
    assert not (tmp_path / "ocontinue.log").exists()
