"""OContinue - keep re-submitting a chat task until the assistant signals completion."""

from importlib.metadata import PackageNotFoundError, version

from ocontinue.controller import ContinuationController, build_controller
from ocontinue.schemas import LoopOutcome, SessionLoopState
from ocontinue.state_store import InMemoryStateStore, JsonFileStateStore

__all__ = [
    "ContinuationController",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "LoopOutcome",
    "SessionLoopState",
    "build_controller",
]

try:
    __version__ = version("ocontinue")
except PackageNotFoundError:
    __version__ = "0.0.0"
