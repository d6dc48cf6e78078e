"""UPLC evaluation engines and registry."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .aiken import AikenCliEvaluator
from .base import EvaluationResult, Evaluator, decode_program_hex
from .pyuplc import PyUplcEvaluator

if TYPE_CHECKING:  # pragma: no cover
    from zkuplc.config import Settings

EVALUATORS = {
    PyUplcEvaluator.name: PyUplcEvaluator,
    AikenCliEvaluator.name: AikenCliEvaluator,
}


def get_evaluator(name: str = "uplc", settings: "Settings | None" = None) -> Evaluator:
    """Build the configured engine. Unknown names are a configuration error."""
    cls = EVALUATORS.get(name)
    if cls is None:
        raise ValueError(f"Unknown evaluator {name!r}; expected one of {sorted(EVALUATORS)}")
    if cls is AikenCliEvaluator and settings is not None:
        return AikenCliEvaluator(aiken_bin=settings.aiken_bin)
    return cls()


__all__ = [
    "EVALUATORS",
    "AikenCliEvaluator",
    "EvaluationResult",
    "Evaluator",
    "PyUplcEvaluator",
    "decode_program_hex",
    "get_evaluator",
]
