"""Start/stop directive parsing for user-authored messages.

Directive grammar::

    <ocontinue-start max="20" promise="DONE">task prompt</ocontinue-start>
    <ocontinue-stop/>

Attribute problems never raise: a blank, missing, non-numeric or
non-positive ``max`` falls back to the default budget, and a blank or
missing ``promise`` falls back to the default marker.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from ocontinue.schemas import DEFAULT_COMPLETION_PROMISE, DEFAULT_MAX_ITERATIONS, MessagePart

logger = logging.getLogger(__name__)

START_TAG = "ocontinue-start"
STOP_TAG = "ocontinue-stop"

_START_BLOCK_RE = re.compile(
    rf"<{START_TAG}(?P<attrs>(?:\s+[\w-]+=\"[^\"]*\")*)\s*>(?P<body>.*?)</{START_TAG}>",
    re.DOTALL,
)
_ATTR_RE = re.compile(r"([\w-]+)=\"([^\"]*)\"")
_STOP_MARKER = f"<{STOP_TAG}"


@dataclass(frozen=True, slots=True)
class StartDirective:
    """A parsed start block."""

    prompt: str
    max_iterations: int
    completion_promise: str
    block: str


@dataclass(frozen=True, slots=True)
class StopDirective:
    """Manual stop request; carries no payload."""


Directive = StartDirective | StopDirective


def message_text(parts: Iterable[MessagePart]) -> str:
    """Join the text-bearing parts of a message with newlines, in order."""
    return "\n".join(part.body for part in parts if part.body)


def parse_max_iterations(raw: str | None, default: int = DEFAULT_MAX_ITERATIONS) -> int:
    value = (raw or "").strip()
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.debug("Non-numeric max=%r; using default %d", value, default)
        return default
    if parsed < 1:
        logger.debug("Non-positive max=%r; using default %d", value, default)
        return default
    return parsed


def parse_promise(raw: str | None, default: str = DEFAULT_COMPLETION_PROMISE) -> str:
    value = (raw or "").strip()
    return value or default


def find_start_block(
    text: str,
    *,
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    default_promise: str = DEFAULT_COMPLETION_PROMISE,
) -> StartDirective | None:
    """Return the first well-formed start block in *text*, if any."""
    match = _START_BLOCK_RE.search(text or "")
    if match is None:
        return None
    attrs = dict(_ATTR_RE.findall(match.group("attrs")))
    return StartDirective(
        prompt=match.group("body").strip(),
        max_iterations=parse_max_iterations(attrs.get("max"), default_max_iterations),
        completion_promise=parse_promise(attrs.get("promise"), default_promise),
        block=match.group(0),
    )


def contains_stop_directive(text: str) -> bool:
    return _STOP_MARKER in (text or "")


def parse_directive(
    text: str,
    *,
    default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    default_promise: str = DEFAULT_COMPLETION_PROMISE,
) -> Directive | None:
    """Classify *text* as a start directive, a stop directive, or neither.

    A start block wins over a stop marker in the same message.
    """
    start = find_start_block(
        text,
        default_max_iterations=default_max_iterations,
        default_promise=default_promise,
    )
    if start is not None:
        return start
    if contains_stop_directive(text):
        return StopDirective()
    return None
