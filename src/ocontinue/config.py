"""Controller configuration and environment overrides."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from ocontinue.schemas import DEFAULT_COMPLETION_PROMISE, DEFAULT_MAX_ITERATIONS

logger = logging.getLogger(__name__)

ENV_STATE_DIR = "OCONTINUE_STATE_DIR"
ENV_DEFAULT_MAX_ITERATIONS = "OCONTINUE_DEFAULT_MAX_ITERATIONS"
ENV_DEFAULT_PROMISE = "OCONTINUE_DEFAULT_PROMISE"
ENV_TOAST_DURATION_MS = "OCONTINUE_TOAST_DURATION_MS"


class ControllerConfig(BaseModel):
    """Settings shared by the controller, the state store and the logbook."""

    state_dir: str = ".opencode"
    state_file: str = "ocontinue-state.json"
    log_file: str = "ocontinue.log"
    default_max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    default_promise: str = DEFAULT_COMPLETION_PROMISE
    toast_title: str = "OContinue"
    toast_duration_ms: int = Field(default=3000, ge=0)
    log_max_bytes: int = 1_000_000
    log_max_archives: int = 8

    def state_path(self, root: str | Path) -> Path:
        """Return the JSON state file path for a project root."""
        return self._base_dir(root) / self.state_file

    def log_path(self, root: str | Path) -> Path:
        """Return the durable log path for a project root."""
        return self._base_dir(root) / self.log_file

    def _base_dir(self, root: str | Path) -> Path:
        base = Path(self.state_dir).expanduser()
        if base.is_absolute():
            return base
        return Path(root).resolve() / base

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ControllerConfig:
        """Build a config from ``OCONTINUE_*`` variables, ignoring bad values."""
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        state_dir = env.get(ENV_STATE_DIR, "").strip()
        if state_dir:
            overrides["state_dir"] = state_dir

        promise = env.get(ENV_DEFAULT_PROMISE, "").strip()
        if promise:
            overrides["default_promise"] = promise

        max_iterations = _env_int(env, ENV_DEFAULT_MAX_ITERATIONS, minimum=1)
        if max_iterations is not None:
            overrides["default_max_iterations"] = max_iterations

        duration = _env_int(env, ENV_TOAST_DURATION_MS, minimum=0)
        if duration is not None:
            overrides["toast_duration_ms"] = duration

        return cls(**overrides)


def _env_int(env: Mapping[str, str], name: str, *, minimum: int) -> int | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None
    if value < minimum:
        logger.warning("Ignoring %s=%r: must be >= %d", name, raw, minimum)
        return None
    return value
