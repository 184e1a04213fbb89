"""CLI entrypoint for inspecting and managing OContinue loops."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from ocontinue.config import ControllerConfig
from ocontinue.directives import StartDirective, StopDirective, parse_directive
from ocontinue.history_log import LoopLogbook
from ocontinue.prompt_rewrite import render_task_message
from ocontinue.state_store import JsonFileStateStore


def _load_dotenv() -> None:
    """Load .env from cwd or its parent so OCONTINUE_* settings apply."""
    for dir_ in (Path.cwd(), Path.cwd().parent):
        env_file = dir_ / ".env"
        if env_file.is_file():
            load_dotenv(env_file)
            return


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the command-line parser."""
    p = argparse.ArgumentParser(
        prog="ocontinue",
        description="OContinue - inspect and manage session continuation loops.",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging.",
    )
    sub = p.add_subparsers(dest="command")

    status_p = sub.add_parser("status", help="List active loops.")
    status_p.add_argument("--root", type=str, default=".", help="Project directory (default: cwd).")
    status_p.add_argument("--json", action="store_true", help="Print machine-readable JSON.")

    stop_p = sub.add_parser("stop", help="Stop one session's loop.")
    stop_p.add_argument("session_id", help="Session identifier.")
    stop_p.add_argument("--root", type=str, default=".", help="Project directory (default: cwd).")

    clear_p = sub.add_parser("clear", help="Stop every active loop.")
    clear_p.add_argument("--root", type=str, default=".", help="Project directory (default: cwd).")

    log_p = sub.add_parser("log", help="Show the most recent loop log entries.")
    log_p.add_argument("--root", type=str, default=".", help="Project directory (default: cwd).")
    log_p.add_argument("--lines", "-n", type=int, default=20, help="Entries to show (default: 20).")

    preview_p = sub.add_parser("preview", help="Show how a directive message is rewritten.")
    preview_p.add_argument("text", help="Message text containing a directive.")
    return p


def _store(root: str, config: ControllerConfig) -> JsonFileStateStore:
    return JsonFileStateStore(config.state_path(root))


def _status(args: argparse.Namespace, config: ControllerConfig) -> int:
    sessions = _store(args.root, config).sessions()
    if args.json:
        payload = {sid: state.to_json_dict() for sid, state in sorted(sessions.items())}
        print(json.dumps(payload, indent=2))
        return 0
    if not sessions:
        print("No active OContinue loops.")
        return 0
    for sid, state in sorted(sessions.items()):
        print(
            f"{sid}  iteration {state.iteration}/{state.max_iterations}  "
            f'promise="{state.completion_promise}"  started {state.started_at}'
        )
    return 0


def _stop(args: argparse.Namespace, config: ControllerConfig) -> int:
    removed = _store(args.root, config).delete(args.session_id)
    if removed is None:
        print(f"No active OContinue loop for session {args.session_id}.", file=sys.stderr)
        return 1
    LoopLogbook(config.log_path(args.root)).record(
        f"Loop stopped from CLI for session {args.session_id} at iteration "
        f"{removed.iteration}/{removed.max_iterations}"
    )
    print(
        f"Stopped loop for session {args.session_id} at iteration "
        f"{removed.iteration} of {removed.max_iterations}."
    )
    return 0


def _clear(args: argparse.Namespace, config: ControllerConfig) -> int:
    count = _store(args.root, config).clear()
    if count:
        LoopLogbook(config.log_path(args.root)).record(f"Cleared {count} loop(s) from CLI")
    print(f"Cleared {count} active loop(s).")
    return 0


def _log(args: argparse.Namespace, config: ControllerConfig) -> int:
    for line in LoopLogbook(config.log_path(args.root)).tail(args.lines):
        print(line)
    return 0


def _preview(args: argparse.Namespace, config: ControllerConfig) -> int:
    directive = parse_directive(
        args.text,
        default_max_iterations=config.default_max_iterations,
        default_promise=config.default_promise,
    )
    if isinstance(directive, StartDirective):
        print(f"max_iterations: {directive.max_iterations}")
        print(f"promise: {directive.completion_promise}")
        print()
        print(render_task_message(directive.prompt, directive.completion_promise))
        return 0
    if isinstance(directive, StopDirective):
        print("stop directive")
        return 0
    print("No OContinue directive found.", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the selected command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    _load_dotenv()
    config = ControllerConfig.from_env()

    if args.command == "status":
        return _status(args, config)
    if args.command == "stop":
        return _stop(args, config)
    if args.command == "clear":
        return _clear(args, config)
    if args.command == "log":
        return _log(args, config)
    if args.command == "preview":
        return _preview(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
