#!/usr/bin/env python3
"""Example: drive a continuation loop against a scripted assistant.

Usage:
    python examples/simulate_loop.py "Make the tests pass" --max 5 --finish-on 3
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from the repo root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from ocontinue.controller import ContinuationController
from ocontinue.notify import LoggingNotifier
from ocontinue.schemas import ChatTurn, LoopOutcome, MessagePart, SessionIdle, text_part
from ocontinue.state_store import InMemoryStateStore
from ocontinue.transport import ChatTransport


class ScriptedTransport(ChatTransport):
    """Answers every prompt; emits the marker on turn ``finish_on``."""

    def __init__(self, promise: str, finish_on: int) -> None:
        self.promise = promise
        self.finish_on = finish_on
        self.turns: list[ChatTurn] = []

    def answer(self) -> None:
        turn_number = sum(1 for t in self.turns if t.role == "assistant") + 1
        text = f"Turn {turn_number}: still working."
        if turn_number == self.finish_on:
            text = f"Turn {turn_number}: finished. <promise>{self.promise}</promise>"
        self.turns.append(ChatTurn(role="assistant", parts=[text_part(text)]))

    async def fetch_messages(self, session_id: str) -> list[ChatTurn]:
        return list(self.turns)

    async def send_message(self, session_id: str, text: str) -> None:
        self.turns.append(ChatTurn(role="user", parts=[text_part(text)]))


async def _simulate(prompt: str, max_iterations: int, promise: str, finish_on: int) -> LoopOutcome:
    transport = ScriptedTransport(promise, finish_on)
    controller = ContinuationController(transport, InMemoryStateStore(), notifier=LoggingNotifier())
    directive = f'<ocontinue-start max="{max_iterations}" promise="{promise}">{prompt}</ocontinue-start>'
    result = await controller.on_chat_message("demo", [MessagePart(type="text", text=directive)])
    print(result.parts[0].text if result.parts else "")

    outcome = result.outcome
    while outcome in {LoopOutcome.STARTED, LoopOutcome.CONTINUED}:
        transport.answer()
        outcome = await controller.handle_event(SessionIdle(session_id="demo"))
    return outcome


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate an OContinue loop.")
    parser.add_argument("prompt", help="Task prompt")
    parser.add_argument("--max", type=int, default=5, help="Max iterations (default 5)")
    parser.add_argument("--promise", default="DONE", help="Completion marker (default DONE)")
    parser.add_argument(
        "--finish-on",
        type=int,
        default=0,
        help="Assistant turn that emits the marker; 0 never finishes (default 0)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(message)s",
        datefmt="%H:%M:%S",
    )

    outcome = asyncio.run(_simulate(args.prompt, args.max, args.promise, args.finish_on))
    print(f"\nLoop finished: {outcome.value}")


if __name__ == "__main__":
    main()
