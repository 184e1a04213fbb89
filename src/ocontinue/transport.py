"""Interfaces for the chat host the controller talks to.

Hosts implement :class:`ChatTransport` (history fetch and message send) and,
optionally, :class:`Notifier` (toast-style UI notices). Raw host events are
converted into the controller's tagged event models by
:func:`event_from_host_payload`.
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from pydantic import ValidationError

from ocontinue.schemas import (
    ChatTurn,
    ControllerEvent,
    MessagePart,
    MessageReceived,
    SessionError,
    SessionIdle,
    ToastVariant,
)

logger = logging.getLogger(__name__)

ABORT_ERROR_NAME = "MessageAbortedError"
"""Error name the host uses when the user cancels an in-flight turn."""


class ChatTransport(abc.ABC):
    """Message history and outbound messages for chat sessions."""

    @abc.abstractmethod
    async def fetch_messages(self, session_id: str) -> list[ChatTurn]:
        """Return the session's messages, oldest first."""

    @abc.abstractmethod
    async def send_message(self, session_id: str, text: str) -> None:
        """Submit *text* as a new user message in the session."""


class Notifier(abc.ABC):
    """Best-effort user-visible notifications."""

    @abc.abstractmethod
    async def show_toast(
        self,
        title: str,
        message: str,
        variant: ToastVariant = "info",
        duration_ms: int = 3000,
    ) -> None:
        """Display a short notification."""


def _session_id(properties: dict[str, Any]) -> str:
    return str(properties.get("sessionID") or properties.get("session_id") or "").strip()


def event_from_host_payload(payload: dict[str, Any]) -> ControllerEvent | None:
    """Convert a host ``{"type", "properties"}`` event into a controller event.

    Returns ``None`` for event types the controller does not handle and for
    payloads without a session id.
    """
    if not isinstance(payload, dict):
        return None
    event_type = str(payload.get("type") or "")
    properties = payload.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    session_id = _session_id(properties)
    if not session_id:
        return None

    if event_type == "session.idle":
        return SessionIdle(session_id=session_id)

    if event_type == "session.error":
        error = properties.get("error")
        name = error.get("name") if isinstance(error, dict) else None
        return SessionError(session_id=session_id, error_name=str(name) if name else None)

    if event_type in {"chat.message", "message.received"}:
        try:
            parts = [MessagePart.model_validate(p) for p in properties.get("parts") or []]
        except ValidationError as exc:
            logger.warning("Dropping malformed message parts for session %s: %s", session_id, exc)
            parts = []
        return MessageReceived(session_id=session_id, parts=parts)

    return None
