"""Tests for converting host event payloads into controller events."""

from __future__ import annotations

from ocontinue.schemas import MessageReceived, SessionError, SessionIdle
from ocontinue.transport import ABORT_ERROR_NAME, event_from_host_payload


def test_idle_payload():
    event = event_from_host_payload({"type": "session.idle", "properties": {"sessionID": "s1"}})
    assert isinstance(event, SessionIdle)
    assert event.session_id == "s1"


def test_error_payload_carries_error_name():
    event = event_from_host_payload(
        {
            "type": "session.error",
            "properties": {"sessionID": "s1", "error": {"name": ABORT_ERROR_NAME, "data": {}}},
        }
    )
    assert isinstance(event, SessionError)
    assert event.error_name == "MessageAbortedError"


def test_error_payload_without_error_object():
    event = event_from_host_payload({"type": "session.error", "properties": {"sessionID": "s1"}})
    assert isinstance(event, SessionError)
    assert event.error_name is None


def test_message_payload_parses_parts():
    event = event_from_host_payload(
        {
            "type": "chat.message",
            "properties": {
                "sessionID": "s1",
                "parts": [{"type": "text", "text": "hi", "id": "prt_1"}, {"type": "file"}],
            },
        }
    )
    assert isinstance(event, MessageReceived)
    assert [p.type for p in event.parts] == ["text", "file"]
    assert event.parts[0].body == "hi"


def test_unrelated_or_incomplete_payloads_are_dropped():
    assert event_from_host_payload({"type": "file.edited", "properties": {"sessionID": "s1"}}) is None
    assert event_from_host_payload({"type": "session.idle", "properties": {}}) is None
    assert event_from_host_payload({"type": "session.idle"}) is None
