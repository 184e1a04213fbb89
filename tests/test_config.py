"""Tests for controller configuration."""

from __future__ import annotations

from pathlib import Path

from ocontinue.config import ControllerConfig


def test_defaults():
    config = ControllerConfig()
    assert config.default_max_iterations == 20
    assert config.default_promise == "DONE"
    assert config.toast_title == "OContinue"
    assert config.toast_duration_ms == 3000


def test_paths_resolve_under_root(tmp_path: Path):
    config = ControllerConfig()
    assert config.state_path(tmp_path) == tmp_path.resolve() / ".opencode" / "ocontinue-state.json"
    assert config.log_path(tmp_path) == tmp_path.resolve() / ".opencode" / "ocontinue.log"


def test_absolute_state_dir_ignores_root(tmp_path: Path):
    config = ControllerConfig(state_dir=str(tmp_path / "shared"))
    assert config.state_path("/somewhere/else") == tmp_path / "shared" / "ocontinue-state.json"


def test_from_env_reads_overrides(tmp_path: Path):
    config = ControllerConfig.from_env(
        {
            "OCONTINUE_STATE_DIR": str(tmp_path),
            "OCONTINUE_DEFAULT_MAX_ITERATIONS": "7",
            "OCONTINUE_DEFAULT_PROMISE": "SHIPPED",
            "OCONTINUE_TOAST_DURATION_MS": "0",
        }
    )
    assert config.state_dir == str(tmp_path)
    assert config.default_max_iterations == 7
    assert config.default_promise == "SHIPPED"
    assert config.toast_duration_ms == 0


def test_from_env_ignores_invalid_values(caplog):
    config = ControllerConfig.from_env(
        {
            "OCONTINUE_DEFAULT_MAX_ITERATIONS": "lots",
            "OCONTINUE_TOAST_DURATION_MS": "-5",
            "OCONTINUE_DEFAULT_PROMISE": "   ",
        }
    )
    assert config.default_max_iterations == 20
    assert config.toast_duration_ms == 3000
    assert config.default_promise == "DONE"
    assert "OCONTINUE_DEFAULT_MAX_ITERATIONS" in caplog.text
