"""Completion-marker tags shared by the rewriter and the continuation driver."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ocontinue.schemas import ChatTurn

PROMISE_OPEN = "<promise>"
PROMISE_CLOSE = "</promise>"
INSTRUCTION_SEPARATOR = "---"


def promise_tag(promise: str) -> str:
    """Return the delimiter-wrapped marker the assistant must emit."""
    return f"{PROMISE_OPEN}{promise}{PROMISE_CLOSE}"


def completion_instruction(promise: str) -> str:
    """Return the instruction appended to every task prompt."""
    return (
        f"Signal completion by including {promise_tag(promise)} "
        "when the task is fully complete."
    )


def contains_completion_signal(text: str, promise: str) -> bool:
    """Return True when *text* contains ``<promise>{promise}</promise>``.

    Matching is case-insensitive and unanchored; the marker itself is taken
    literally, so regex metacharacters in it carry no special meaning.
    """
    if not text or not promise:
        return False
    pattern = re.compile(re.escape(promise_tag(promise)), re.IGNORECASE)
    return pattern.search(text) is not None


def last_assistant_turn(history: Sequence[ChatTurn]) -> ChatTurn | None:
    for turn in reversed(history):
        if turn.role == "assistant":
            return turn
    return None


def assistant_text(turn: ChatTurn | None) -> str:
    """Newline-join the text parts of *turn*; empty when there are none."""
    if turn is None:
        return ""
    return "\n".join(part.body for part in turn.parts if part.type == "text")
