"""In-process evaluator backed by the ``uplc`` library."""
from __future__ import annotations

import logging

import cbor2
from uplc import tools as uplc_tools

from zkuplc.errors import DecodeError, EvaluationError

from .base import EvaluationResult, Evaluator, decode_program_hex, format_budget
from .canonical import render_result

LOGGER = logging.getLogger(__name__)


class PyUplcEvaluator(Evaluator):
    """Decode flat bytes with ``uplc.tools.unflatten`` and run its CEK machine.

    Requests carry raw flat bytes; ``unflatten`` reads the CBOR bytestring
    envelope used for on-chain scripts, so the program is wrapped first.
    """

    name = "uplc"

    def evaluate(self, program_hex: str) -> EvaluationResult:
        program_bytes = decode_program_hex(program_hex)
        try:
            program = uplc_tools.unflatten(cbor2.dumps(program_bytes))
        except Exception as exc:  # the flat reader raises assorted error types
            raise DecodeError(f"Program decode error: {exc!r}") from exc

        try:
            computation = uplc_tools.eval(program)
        except Exception as exc:
            raise EvaluationError(f"Evaluation error: {exc!r}") from exc

        term = computation.result
        if isinstance(term, Exception):
            raise EvaluationError(f"Evaluation error: {term!r}")

        cost = getattr(computation, "cost", None)
        cost_text = None
        if cost is not None:
            cost_text = format_budget(getattr(cost, "cpu", 0), getattr(cost, "memory", 0))

        result = render_result(term)
        LOGGER.debug("uplc evaluated %d-byte program to %s", len(program_bytes), result)
        return EvaluationResult(result=result, cost=cost_text)


__all__ = ["PyUplcEvaluator"]
