"""Offline commitment check: recompute SHA256(program || result) and compare."""
from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Union

from zkuplc.bundle import strip_0x
from zkuplc.commitment import COMMITMENT_SIZE, commit
from zkuplc.errors import DecodeError


@dataclass(frozen=True)
class CommitmentCheck:
    matches: bool
    expected_hex: str

    def to_dict(self) -> dict:
        return {"match": self.matches, "expected": self.expected_hex}


def parse_commitment(commitment: Union[bytes, str]) -> bytes:
    if isinstance(commitment, (bytes, bytearray)):
        return bytes(commitment)
    try:
        return bytes.fromhex(strip_0x(commitment.strip()))
    except ValueError as exc:
        raise DecodeError(f"Invalid commitment hex: {exc}") from exc


def check_commitment(program: bytes, result: str, commitment: Union[bytes, str]) -> CommitmentCheck:
    """Compare ``commitment`` against the one recomputed from (program, result).

    A well-formed commitment of the wrong length simply does not match.
    """
    claimed = parse_commitment(commitment)
    expected = commit(program, result)
    matches = len(claimed) == COMMITMENT_SIZE and hmac.compare_digest(claimed, expected)
    return CommitmentCheck(matches=matches, expected_hex=expected.hex())


__all__ = ["CommitmentCheck", "check_commitment", "parse_commitment"]
