"""Evaluator that shells out to ``aiken uplc eval``.

The aiken CLI prints a JSON document whose ``result`` is the final term in
textual UPLC (``(con integer 42)``). That text is parsed back with the
``uplc`` parser and rendered canonically, so commitments computed with this
engine match the in-process engine byte for byte.
"""
from __future__ import annotations

import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from uplc import tools as uplc_tools

from zkuplc.errors import DecodeError, EvaluationError, ResultError

from .base import EvaluationResult, Evaluator, decode_program_hex, format_budget
from .canonical import render_result

LOGGER = logging.getLogger(__name__)

_DECODE_MARKERS = ("decode", "flat", "unexpected end", "deserializ")


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else text.strip()


def _budget(payload: dict[str, Any]) -> str | None:
    budget = payload.get("budget") or payload.get("cost")
    if isinstance(budget, dict):
        return format_budget(int(budget.get("cpu", 0)), int(budget.get("mem", 0)))
    if "cpu" in payload or "mem" in payload:
        return format_budget(int(payload.get("cpu", 0)), int(payload.get("mem", 0)))
    return None


def parse_term(term_text: str) -> Any:
    """Parse a textual UPLC term by wrapping it in a program envelope."""
    try:
        program = uplc_tools.parse(f"(program 1.0.0 {term_text})")
    except Exception as exc:
        raise ResultError(f"Unparseable result term {term_text!r}: {exc}") from exc
    return program.term


class AikenCliEvaluator(Evaluator):
    name = "aiken"

    def __init__(self, aiken_bin: str = "aiken", timeout: float | None = 120.0):
        self.aiken_bin = aiken_bin
        self.timeout = timeout

    def evaluate(self, program_hex: str) -> EvaluationResult:
        program_bytes = decode_program_hex(program_hex)
        with tempfile.TemporaryDirectory(prefix="zkuplc-aiken-") as tmp:
            script = Path(tmp) / "program.flat"
            script.write_bytes(program_bytes)
            cmd = [self.aiken_bin, "uplc", "eval", "--flat", str(script)]
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except FileNotFoundError as exc:
                raise EvaluationError(f"aiken executable not found: {self.aiken_bin}") from exc
            except subprocess.TimeoutExpired as exc:
                raise EvaluationError(f"aiken uplc eval timed out after {self.timeout}s") from exc

        if proc.returncode != 0:
            detail = _last_line(proc.stderr or proc.stdout)
            if any(marker in detail.lower() for marker in _DECODE_MARKERS):
                raise DecodeError(f"Program decode error: {detail}")
            raise EvaluationError(f"Evaluation error: {detail}")

        try:
            payload = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise EvaluationError(f"Unexpected aiken output: {_last_line(proc.stdout)}") from exc
        if not isinstance(payload, dict):
            raise EvaluationError("Unexpected aiken output: not a JSON object")
        if payload.get("error"):
            raise EvaluationError(f"Evaluation error: {payload['error']}")
        term_text = payload.get("result")
        if not isinstance(term_text, str):
            raise EvaluationError("Unexpected aiken output: missing result")

        result = render_result(parse_term(term_text))
        LOGGER.debug("aiken evaluated %d-byte program to %s", len(program_bytes), result)
        return EvaluationResult(result=result, cost=_budget(payload))


__all__ = ["AikenCliEvaluator", "parse_term"]
