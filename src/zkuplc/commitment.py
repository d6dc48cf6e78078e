"""Commitment binding a UPLC program to its evaluation result.

    commitment = SHA256(program_bytes || UTF8(result))

No separator and no length prefix. The guest reveals this value as the proof's
public output; the prover and both verifiers recompute it the same way, so the
result string must always come from ``evaluator.canonical.render_constant``.
"""
from __future__ import annotations

import hashlib

COMMITMENT_SIZE = 32


def commit(program: bytes, result: str) -> bytes:
    """Return the 32-byte commitment for ``program`` evaluating to ``result``."""
    h = hashlib.sha256()
    h.update(program)
    h.update(result.encode("utf-8"))
    return h.digest()


def commit_hex(program: bytes, result: str) -> str:
    return commit(program, result).hex()


__all__ = ["COMMITMENT_SIZE", "commit", "commit_hex"]
