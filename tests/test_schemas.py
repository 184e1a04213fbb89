"""Unit tests for schemas module."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ocontinue.schemas import (
    LoopOutcome,
    MessagePart,
    MessageReceived,
    SessionError,
    SessionIdle,
    SessionLoopState,
    parse_event,
)


class TestSessionLoopState:
    def test_begin_defaults(self):
        state = SessionLoopState.begin("do the thing")
        assert state.active is True
        assert state.iteration == 1
        assert state.max_iterations == 20
        assert state.completion_promise == "DONE"
        assert state.prompt == "do the thing"
        assert len(state.loop_id) == 12
        assert state.started_at

    def test_each_begin_gets_new_loop_id(self):
        assert SessionLoopState.begin("a").loop_id != SessionLoopState.begin("a").loop_id

    def test_serializes_with_camel_case_keys(self):
        data = SessionLoopState.begin("p", max_iterations=3, completion_promise="OK").to_json_dict()
        assert data["maxIterations"] == 3
        assert data["completionPromise"] == "OK"
        assert "startedAt" in data
        assert "loopId" in data

    def test_loads_camel_case_without_loop_id(self):
        raw = {
            "active": True,
            "iteration": 2,
            "maxIterations": 5,
            "completionPromise": "DONE",
            "startedAt": "2026-01-01T00:00:00.000Z",
            "prompt": "task",
        }
        first = SessionLoopState.model_validate(raw)
        second = SessionLoopState.model_validate(raw)
        assert first.iteration == 2
        assert first.max_iterations == 5
        assert first.loop_id
        assert first.loop_id == second.loop_id

    def test_rejects_iteration_beyond_budget(self):
        with pytest.raises(ValidationError):
            SessionLoopState(iteration=4, max_iterations=3)

    def test_rejects_non_positive_budget(self):
        with pytest.raises(ValidationError):
            SessionLoopState(max_iterations=0)

    def test_is_same_loop(self):
        state = SessionLoopState.begin("p")
        advanced = state.model_copy(update={"iteration": 2})
        assert state.is_same_loop(advanced)
        assert not state.is_same_loop(SessionLoopState.begin("p"))
        assert not state.is_same_loop(None)


class TestMessagePart:
    def test_body_prefers_content(self):
        assert MessagePart(type="text", content="c", text="t").body == "c"
        assert MessagePart(type="text", text="t").body == "t"

    def test_non_text_part_has_no_body(self):
        assert MessagePart(type="tool", text="t").body == ""


class TestParseEvent:
    def test_dispatches_on_kind(self):
        assert isinstance(parse_event({"kind": "session.idle", "session_id": "s"}), SessionIdle)
        err = parse_event(
            {"kind": "session.error", "session_id": "s", "error_name": "MessageAbortedError"}
        )
        assert isinstance(err, SessionError)
        assert err.error_name == "MessageAbortedError"
        msg = parse_event(
            {"kind": "message.received", "session_id": "s", "parts": [{"type": "text", "text": "hi"}]}
        )
        assert isinstance(msg, MessageReceived)
        assert msg.parts[0].body == "hi"

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_event({"kind": "session.compacted", "session_id": "s"})


def test_loop_outcome_values():
    assert LoopOutcome.COMPLETED.value == "completed"
    assert LoopOutcome("exhausted") is LoopOutcome.EXHAUSTED
