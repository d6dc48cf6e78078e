"""Pydantic models that define the HTTP API contract."""
from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, Field


class ProveRequest(BaseModel):
    program_hex: str = Field(description="Hex-encoded flat UPLC program, optional 0x prefix")


class VerifyCommitmentRequest(BaseModel):
    program_hex: str
    result: str = Field(description="Canonical result string, e.g. Integer(42)")
    commitment: str = Field(description="64-char hex commitment to check")


class VerifyStarkRequest(BaseModel):
    stark_proof_json: Dict[str, Any] = Field(description='{"proof": "0x..", "user_public_values": "0x.."}')
    app_exe_commit: str
    app_vm_commit: str


__all__ = ["ProveRequest", "VerifyCommitmentRequest", "VerifyStarkRequest"]
