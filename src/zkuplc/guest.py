"""Guest entrypoint: the statement the zkVM proves.

    START -> DECODED -> EVALUATED -> COMMITTED -> REVEALED
                 \\__________\\___________\\_____-> FAILED

The guest reads the program bytes from the host input channel, evaluates them,
commits to (program, result) and reveals only the 32-byte commitment. Any
failure aborts the guest; a proof of an aborted run proves nothing about the
program and callers must treat it as a failed proving attempt.

The host runs this same state machine for fast execution so the commitment it
reports early is the one the guest will reveal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .commitment import commit
from .errors import EvalError, ZkUplcError
from .evaluator.base import EvaluationResult, Evaluator

LOGGER = logging.getLogger(__name__)

# `cargo openvm run/prove` input documents are lists of hex strings; the 0x01
# prefix tags the entry as raw bytes for `openvm::io::read_vec`.
GUEST_INPUT_PREFIX = "0x01"


def encode_guest_input(program: bytes) -> dict[str, list[str]]:
    return {"input": [GUEST_INPUT_PREFIX + program.hex()]}


class GuestState(Enum):
    START = "start"
    DECODED = "decoded"
    EVALUATED = "evaluated"
    COMMITTED = "committed"
    REVEALED = "revealed"
    FAILED = "failed"


class GuestAbort(ZkUplcError):
    """The guest panicked; no meaningful statement was produced."""

    run: "GuestRun | None" = None


@dataclass
class GuestRun:
    state: GuestState = GuestState.START
    trail: list[GuestState] = field(default_factory=lambda: [GuestState.START])
    program: bytes = b""
    evaluation: Optional[EvaluationResult] = None
    commitment: Optional[bytes] = None

    def advance(self, state: GuestState) -> None:
        self.state = state
        self.trail.append(state)


class Guest:
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator

    def run(
        self,
        read_input: Callable[[], bytes],
        reveal: Callable[[bytes], None],
    ) -> GuestRun:
        run = GuestRun()
        try:
            program = bytes(read_input())
            if not program:
                raise GuestAbort("No program provided")
            run.program = program
            run.advance(GuestState.DECODED)

            try:
                run.evaluation = self.evaluator.evaluate(program.hex())
            except EvalError as exc:
                raise GuestAbort(f"UPLC evaluation failed: {exc}") from exc
            run.advance(GuestState.EVALUATED)

            run.commitment = commit(program, run.evaluation.result)
            run.advance(GuestState.COMMITTED)

            reveal(run.commitment)
            run.advance(GuestState.REVEALED)
        except GuestAbort as abort:
            run.advance(GuestState.FAILED)
            abort.run = run
            raise
        LOGGER.debug("guest revealed commitment %s", run.commitment.hex())
        return run


def run_guest(evaluator: Evaluator, program: bytes) -> GuestRun:
    """Run the guest over in-memory bytes, discarding the reveal channel."""
    revealed: list[bytes] = []
    return Guest(evaluator).run(lambda: program, revealed.append)


__all__ = [
    "GUEST_INPUT_PREFIX",
    "Guest",
    "GuestAbort",
    "GuestRun",
    "GuestState",
    "encode_guest_input",
    "run_guest",
]
