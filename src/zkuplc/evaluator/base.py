"""Evaluator interface shared by every UPLC engine."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from zkuplc.errors import DecodeError


@dataclass(frozen=True)
class EvaluationResult:
    """Canonical result string plus the engine's consumed budget."""

    result: str
    cost: Optional[str] = None

    def __str__(self) -> str:
        return self.result


def decode_program_hex(program_hex: str) -> bytes:
    """Decode caller-supplied program hex into raw flat bytes.

    Surrounding whitespace and a ``0x`` prefix are tolerated. Empty input and
    malformed hex both raise :class:`DecodeError`.
    """
    if not isinstance(program_hex, str):
        raise DecodeError("Hex decode error: program must be a hex string")
    text = program_hex.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    if not text:
        raise DecodeError("Empty program")
    try:
        program = bytes.fromhex(text)
    except ValueError as exc:
        raise DecodeError(f"Hex decode error: {exc}") from exc
    return program


def format_budget(cpu: int, mem: int) -> str:
    return f"ExBudget {{ mem: {mem}, cpu: {cpu} }}"


class Evaluator(ABC):
    """Evaluates a hex-encoded flat UPLC program to a constant.

    Implementations raise ``DecodeError`` for bad hex or bad flat bytes,
    ``EvaluationError`` for runtime failures and ``ResultError`` when the
    final term is not a constant.
    """

    name: str = "abstract"

    @property
    def engine_id(self) -> str:
        return self.name

    @abstractmethod
    def evaluate(self, program_hex: str) -> EvaluationResult:
        ...
