"""Error taxonomy shared by the evaluator, prover and verifiers."""
from __future__ import annotations


class ZkUplcError(Exception):
    """Base class for every error raised by zkuplc."""


class EvalError(ZkUplcError):
    """Evaluation of a UPLC program did not produce a displayable constant."""


class DecodeError(EvalError):
    """Malformed hex, or bytes that are not a valid flat-encoded program."""


class EvaluationError(EvalError):
    """The evaluation engine reported a runtime failure."""


class ResultError(EvalError):
    """The program reduced to something other than a constant."""


class ProvisioningError(ZkUplcError):
    """A proving artifact is missing, unreadable or could not be generated."""


class ProvingError(ZkUplcError):
    """The proving engine failed while executing or proving."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message


class VerificationError(ZkUplcError):
    """A proof could not be checked at all (distinct from a rejected proof)."""


class VerificationFormatError(VerificationError):
    """Proof or verifying key bytes could not be deserialized."""


__all__ = [
    "DecodeError",
    "EvalError",
    "EvaluationError",
    "ProvingError",
    "ProvisioningError",
    "ResultError",
    "VerificationError",
    "VerificationFormatError",
    "ZkUplcError",
]
