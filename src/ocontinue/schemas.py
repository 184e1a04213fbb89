"""Pydantic models for loop state, chat messages and controller events."""

from __future__ import annotations

import datetime as dt
import hashlib
import uuid
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAX_ITERATIONS: int = 20
"""Iteration ceiling used when a start directive omits ``max``."""

DEFAULT_COMPLETION_PROMISE: str = "DONE"
"""Completion marker used when a start directive omits ``promise``."""

ToastVariant = Literal["info", "success", "warning", "error"]


def utc_now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def new_loop_id() -> str:
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Loop state
# ---------------------------------------------------------------------------

class SessionLoopState(BaseModel):
    """Persisted state of one session's continuation loop.

    Serialized with camelCase keys (``maxIterations``, ``completionPromise``,
    ``startedAt``) so state files stay readable by other OContinue hosts.
    Only ``iteration`` changes during a loop's life; everything else is fixed
    when the start directive is applied.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    active: bool = True
    iteration: int = Field(default=1, ge=1)
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    completion_promise: str = DEFAULT_COMPLETION_PROMISE
    started_at: str = Field(default_factory=utc_now_iso)
    prompt: str = ""
    loop_id: str = ""

    @model_validator(mode="after")
    def _check_invariants(self) -> SessionLoopState:
        if self.iteration > self.max_iterations:
            raise ValueError(
                f"iteration {self.iteration} exceeds max_iterations {self.max_iterations}"
            )
        if not self.loop_id:
            # Entries written without a loop id get a stable one derived from
            # their immutable fields, so every load yields the same value.
            seed = f"{self.started_at}|{self.completion_promise}|{self.prompt}"
            self.loop_id = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:12]
        return self

    @classmethod
    def begin(
        cls,
        prompt: str,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        completion_promise: str = DEFAULT_COMPLETION_PROMISE,
    ) -> SessionLoopState:
        """Return a fresh loop at iteration 1 with a new loop id."""
        return cls(
            iteration=1,
            max_iterations=max_iterations,
            completion_promise=completion_promise,
            prompt=prompt,
            loop_id=new_loop_id(),
        )

    def is_same_loop(self, other: SessionLoopState | None) -> bool:
        return other is not None and other.loop_id == self.loop_id

    def to_json_dict(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


class LoopOutcome(str, Enum):
    """Result of one controller transition."""

    STARTED = "started"
    STOPPED = "stopped"
    NOT_ACTIVE = "not_active"
    CONTINUED = "continued"
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"
    IGNORED = "ignored"


# ---------------------------------------------------------------------------
# Chat messages
# ---------------------------------------------------------------------------

class MessagePart(BaseModel):
    """One segment of a chat message. Only ``type == "text"`` carries text."""

    type: str = "text"
    text: str | None = None
    content: str | None = None

    @property
    def body(self) -> str:
        if self.type != "text":
            return ""
        if self.content is not None:
            return self.content
        return self.text or ""


class ChatTurn(BaseModel):
    """A message in a session's history."""

    role: str
    session_id: str | None = None
    parts: list[MessagePart] = Field(default_factory=list)


def text_part(text: str) -> MessagePart:
    return MessagePart(type="text", text=text)


# ---------------------------------------------------------------------------
# Controller events
# ---------------------------------------------------------------------------

class MessageReceived(BaseModel):
    """A user-authored message arrived for a session."""

    kind: Literal["message.received"] = "message.received"
    session_id: str
    parts: list[MessagePart] = Field(default_factory=list)


class SessionIdle(BaseModel):
    """The assistant finished producing its current turn."""

    kind: Literal["session.idle"] = "session.idle"
    session_id: str


class SessionError(BaseModel):
    """The host reported an error for a session."""

    kind: Literal["session.error"] = "session.error"
    session_id: str
    error_name: str | None = None


ControllerEvent = Annotated[
    Union[MessageReceived, SessionIdle, SessionError],
    Field(discriminator="kind"),
]

_EVENT_ADAPTER: TypeAdapter[ControllerEvent] = TypeAdapter(ControllerEvent)


def parse_event(payload: dict[str, object]) -> ControllerEvent:
    """Validate a ``kind``-tagged mapping into one of the event models."""
    return _EVENT_ADAPTER.validate_python(payload)
