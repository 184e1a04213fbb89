"""Turn a directive-bearing message into the task prompt the model sees.

The same rewrite runs at two points (the stored transcript and the payload
sent to the model), possibly over text that was already rewritten, so
:func:`render_task_message` is idempotent: an existing instruction suffix is
replaced rather than appended to.
"""

from __future__ import annotations

import re

from ocontinue.agent_signals import INSTRUCTION_SEPARATOR, completion_instruction
from ocontinue.directives import find_start_block
from ocontinue.schemas import SessionLoopState

_INSTRUCTION_SUFFIX_RE = re.compile(
    r"\s*-{3}[ \t]*\nSignal completion by including <promise>[^\n]*?</promise> "
    r"when the task is fully complete\.\s*\Z"
)


def has_completion_instruction(text: str) -> bool:
    return _INSTRUCTION_SUFFIX_RE.search(text or "") is not None


def strip_completion_instruction(text: str) -> str:
    return _INSTRUCTION_SUFFIX_RE.sub("", text or "")


def render_task_message(prompt: str, promise: str) -> str:
    """Return *prompt* followed by the completion instruction for *promise*."""
    body = strip_completion_instruction(prompt.strip()).rstrip()
    return f"{body}\n\n{INSTRUCTION_SEPARATOR}\n{completion_instruction(promise)}"


def render_state_message(state: SessionLoopState) -> str:
    """Return the message re-injected on each continuation."""
    return render_task_message(state.prompt, state.completion_promise)


def rewrite_directive_text(text: str, promise: str) -> str | None:
    """Rewrite *text* when it carries a start block; ``None`` otherwise."""
    directive = find_start_block(text)
    if directive is None:
        return None
    return render_task_message(directive.prompt, promise)
