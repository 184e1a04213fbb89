"""Continuation controller.

The :class:`ContinuationController` reacts to three host signals for a chat
session:

* a user message, which may carry a start or stop directive;
* an idle signal after each assistant turn, which either declares success,
  declares the budget exhausted, or re-sends the task prompt;
* a session error, of which only user aborts end the loop.

All state changes go through the store's atomic per-session operations, so a
handler that lost a race (a restart, an abort, a duplicate idle signal)
finds nothing to do and returns :attr:`LoopOutcome.IGNORED`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, assert_never

from ocontinue.agent_signals import assistant_text, contains_completion_signal, last_assistant_turn
from ocontinue.config import ControllerConfig
from ocontinue.directives import (
    StartDirective,
    StopDirective,
    find_start_block,
    message_text,
    parse_directive,
)
from ocontinue.history_log import LoopLogbook
from ocontinue.notify import safe_notify
from ocontinue.prompt_logging import format_prompt_log_line
from ocontinue.prompt_rewrite import render_state_message, render_task_message
from ocontinue.schemas import (
    ChatTurn,
    ControllerEvent,
    LoopOutcome,
    MessagePart,
    MessageReceived,
    SessionError,
    SessionIdle,
    SessionLoopState,
    ToastVariant,
    text_part,
)
from ocontinue.state_store import JsonFileStateStore, StateStore, StateStoreError
from ocontinue.transport import ABORT_ERROR_NAME, ChatTransport, Notifier, event_from_host_payload

logger = logging.getLogger(__name__)

NO_ACTIVE_LOOP_MESSAGE = "No active OContinue loop for this session."

_REWRITING_OUTCOMES = frozenset({LoopOutcome.STARTED, LoopOutcome.STOPPED, LoopOutcome.NOT_ACTIVE})


def stopped_message(state: SessionLoopState) -> str:
    return f"OContinue loop stopped at iteration {state.iteration} of {state.max_iterations}."


@dataclass(frozen=True, slots=True)
class MessageResult:
    """Outcome of inspecting a user message.

    ``parts`` is the replacement content for the message, or ``None`` when the
    message should pass through unchanged.
    """

    outcome: LoopOutcome
    parts: list[MessagePart] | None = None


def _advance(current: SessionLoopState, observed: SessionLoopState) -> SessionLoopState | None:
    """Next-iteration state, or ``None`` if the entry moved on since *observed*."""
    if not current.is_same_loop(observed) or current.iteration != observed.iteration:
        return None
    return current.model_copy(update={"iteration": current.iteration + 1})


class ContinuationController:
    """Drives per-session continuation loops.

    Parameters
    ----------
    transport:
        Host adapter used to read session history and send messages.
    store:
        Durable session-id -> :class:`SessionLoopState` mapping.
    notifier:
        Optional toast sink; failures are swallowed.
    logbook:
        Optional durable log sink.
    config:
        Defaults for directives and notifications.
    """

    def __init__(
        self,
        transport: ChatTransport,
        store: StateStore,
        *,
        notifier: Notifier | None = None,
        logbook: LoopLogbook | None = None,
        config: ControllerConfig | None = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.notifier = notifier
        self.logbook = logbook
        self.config = config or ControllerConfig()

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    async def handle_event(self, event: ControllerEvent) -> LoopOutcome:
        """Route one event to its handler.

        A start or stop directive replaces ``event.parts`` with the message the
        transcript should show. Persistence failures are logged and reported
        as ``IGNORED``; they never propagate to the host.
        """
        try:
            match event:
                case MessageReceived(session_id=session_id, parts=parts):
                    result = await self.on_chat_message(session_id, parts)
                    if result.parts is not None:
                        event.parts = result.parts
                    return result.outcome
                case SessionIdle(session_id=session_id):
                    return await self.on_idle(session_id)
                case SessionError(session_id=session_id, error_name=error_name):
                    return await self.on_session_error(session_id, error_name)
                case _:
                    assert_never(event)
        except StateStoreError:
            logger.exception("Loop state update failed for %s event", event.kind)
            return LoopOutcome.IGNORED

    async def handle_host_event(self, payload: dict[str, Any]) -> LoopOutcome:
        """Accept a raw host ``{"type", "properties"}`` event.

        For message events the rewritten parts are written back to
        ``payload["properties"]["parts"]``.
        """
        event = event_from_host_payload(payload)
        if event is None:
            return LoopOutcome.IGNORED
        outcome = await self.handle_event(event)
        if isinstance(event, MessageReceived) and outcome in _REWRITING_OUTCOMES:
            payload["properties"]["parts"] = [
                part.model_dump(exclude_none=True) for part in event.parts
            ]
        return outcome

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    async def on_chat_message(self, session_id: str, parts: Sequence[MessagePart]) -> MessageResult:
        """Apply a start/stop directive found in a user message."""
        directive = parse_directive(
            message_text(parts),
            default_max_iterations=self.config.default_max_iterations,
            default_promise=self.config.default_promise,
        )
        match directive:
            case StartDirective():
                return await self._start(session_id, directive)
            case StopDirective():
                return await self._stop(session_id)
            case None:
                return MessageResult(LoopOutcome.IGNORED)
            case _:
                assert_never(directive)

    async def _start(self, session_id: str, directive: StartDirective) -> MessageResult:
        state = SessionLoopState.begin(
            directive.prompt,
            max_iterations=directive.max_iterations,
            completion_promise=directive.completion_promise,
        )
        self.store.put(session_id, state)
        self._record(
            f"Loop started for session {session_id} - Max: {state.max_iterations}, "
            f'Promise: "{state.completion_promise}"'
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", format_prompt_log_line(state.prompt, label="Loop prompt"))
        await self._notify(f"Loop started (max {state.max_iterations} iterations)", "info")
        return MessageResult(LoopOutcome.STARTED, [text_part(render_state_message(state))])

    async def _stop(self, session_id: str) -> MessageResult:
        removed = self.store.delete(session_id)
        if removed is None:
            logger.info("Stop requested for session %s with no active loop", session_id)
            return MessageResult(LoopOutcome.NOT_ACTIVE, [text_part(NO_ACTIVE_LOOP_MESSAGE)])
        self._record(
            f"Loop manually stopped for session {session_id} at iteration "
            f"{removed.iteration}/{removed.max_iterations}"
        )
        await self._notify(f"Loop stopped at iteration {removed.iteration}", "warning")
        return MessageResult(LoopOutcome.STOPPED, [text_part(stopped_message(removed))])

    def transform_messages(self, messages: Sequence[ChatTurn]) -> int:
        """Rewrite start blocks in outgoing user messages, in place.

        The marker comes from the session's stored loop when there is one, so
        the model is told the same marker the driver checks for. Returns the
        number of parts rewritten.
        """
        rewritten = 0
        for message in messages:
            if message.role != "user":
                continue
            for part in message.parts:
                if part.type != "text" or not part.body:
                    continue
                directive = find_start_block(
                    part.body,
                    default_max_iterations=self.config.default_max_iterations,
                    default_promise=self.config.default_promise,
                )
                if directive is None:
                    continue
                state = self.store.get(message.session_id) if message.session_id else None
                promise = state.completion_promise if state is not None else directive.completion_promise
                new_text = render_task_message(directive.prompt, promise)
                if part.content is not None:
                    part.content = new_text
                else:
                    part.text = new_text
                rewritten += 1
        return rewritten

    # ------------------------------------------------------------------
    # Turn completion
    # ------------------------------------------------------------------

    async def on_idle(self, session_id: str) -> LoopOutcome:
        """Evaluate the assistant's last turn and complete, exhaust or continue."""
        observed = self.store.get(session_id)
        if observed is None:
            return LoopOutcome.IGNORED

        history = await self.transport.fetch_messages(session_id)
        response = assistant_text(last_assistant_turn(history))

        if contains_completion_signal(response, observed.completion_promise):
            if self.store.delete(session_id, expected=observed) is None:
                return LoopOutcome.IGNORED
            self._record(
                f"Session {session_id} completed! Promise fulfilled at iteration "
                f"{observed.iteration}"
            )
            await self._notify(f"Completed at iteration {observed.iteration}", "success")
            return LoopOutcome.COMPLETED

        if observed.iteration >= observed.max_iterations:
            if self.store.delete(session_id, expected=observed) is None:
                return LoopOutcome.IGNORED
            self._record(f"Session {session_id} reached max iterations ({observed.max_iterations})")
            await self._notify(f"Max iterations reached ({observed.max_iterations})", "warning")
            return LoopOutcome.EXHAUSTED

        advanced = self.store.update_if_present(
            session_id, lambda current: _advance(current, observed)
        )
        if advanced is None:
            return LoopOutcome.IGNORED
        self._record(
            f"Continuing session {session_id}: iteration "
            f"{advanced.iteration}/{advanced.max_iterations}"
        )
        await self.transport.send_message(session_id, render_state_message(advanced))
        return LoopOutcome.CONTINUED

    # ------------------------------------------------------------------
    # Aborts
    # ------------------------------------------------------------------

    async def on_session_error(self, session_id: str, error_name: str | None) -> LoopOutcome:
        """End the loop when the user aborted the turn; ignore other errors."""
        if error_name != ABORT_ERROR_NAME:
            return LoopOutcome.IGNORED
        removed = self.store.delete(session_id)
        if removed is None:
            return LoopOutcome.IGNORED
        self._record(
            f"Loop aborted by user for session {session_id} at iteration "
            f"{removed.iteration}/{removed.max_iterations}"
        )
        await self._notify("Loop aborted by user", "warning")
        return LoopOutcome.ABORTED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, message: str) -> None:
        logger.info("%s", message)
        if self.logbook is not None:
            self.logbook.record(message)

    async def _notify(self, message: str, variant: ToastVariant) -> None:
        await safe_notify(
            self.notifier,
            self.config.toast_title,
            message,
            variant,
            duration_ms=self.config.toast_duration_ms,
        )


def build_controller(
    root: str | Path,
    transport: ChatTransport,
    *,
    notifier: Notifier | None = None,
    config: ControllerConfig | None = None,
) -> ContinuationController:
    """Wire a controller to the JSON state file and logbook under *root*."""
    cfg = config or ControllerConfig.from_env()
    logbook = LoopLogbook(
        cfg.log_path(root),
        max_bytes=cfg.log_max_bytes,
        max_archives=cfg.log_max_archives,
    )
    controller = ContinuationController(
        transport,
        JsonFileStateStore(cfg.state_path(root)),
        notifier=notifier,
        logbook=logbook,
        config=cfg,
    )
    logbook.record("Controller loaded")
    return controller
