"""ProofBundle: everything a verifier needs besides the aggregation key."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from .errors import VerificationFormatError


def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


@dataclass(frozen=True)
class ProofBundle:
    """STARK proof JSON plus the commits that pin executable and VM config."""

    proof_payload: Dict[str, Any]
    app_exe_commit: str
    app_vm_commit: str
    public_values: bytes

    @property
    def commitment_hex(self) -> str:
        return self.public_values.hex()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stark_proof_json": self.proof_payload,
            "app_exe_commit": self.app_exe_commit,
            "app_vm_commit": self.app_vm_commit,
            "public_values": self.public_values.hex(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProofBundle":
        try:
            payload = data["stark_proof_json"]
            exe_commit = data["app_exe_commit"]
            vm_commit = data["app_vm_commit"]
        except (KeyError, TypeError) as exc:
            raise VerificationFormatError(f"Proof bundle missing field: {exc}") from exc
        if not isinstance(payload, dict):
            raise VerificationFormatError("stark_proof_json must be an object")
        upv = data.get("public_values") or payload.get("user_public_values") or ""
        try:
            public_values = bytes.fromhex(strip_0x(str(upv)))
        except ValueError as exc:
            raise VerificationFormatError(f"Invalid public values hex: {exc}") from exc
        return cls(
            proof_payload=payload,
            app_exe_commit=str(exe_commit),
            app_vm_commit=str(vm_commit),
            public_values=public_values,
        )


__all__ = ["ProofBundle", "strip_0x"]
