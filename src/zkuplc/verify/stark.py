"""STARK proof verification against a VM verifying key.

Verification itself is done by the OpenVM verifier, reached either through a
command-line tool or the embeddable engine binding. Both report the same
three outcomes: valid, invalid, or malformed input. A proof that fails to
verify is a normal ``False``; only inputs that cannot be checked at all raise.
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from zkuplc.bundle import ProofBundle
from zkuplc.errors import VerificationError, VerificationFormatError

from .encoding import build_proof_bytes, compress_proof, construct_vm_stark_vk, decompress_proof

if TYPE_CHECKING:  # pragma: no cover
    from zkuplc.config import Settings

LOGGER = logging.getLogger(__name__)

EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_MALFORMED = 2


class StarkBackend(ABC):
    name: str = "abstract"

    @abstractmethod
    def verify(self, vk_bytes: bytes, proof_bytes: bytes) -> bool:
        """Return True for a valid proof, False for an invalid one."""


class SubprocessStarkBackend(StarkBackend):
    """Run ``<command> <vk file> <proof file>`` and read the verdict from the exit code.

    The default ``openvm-stark-verify`` is not part of the OpenVM toolchain; it
    must be installed by the operator (for example a thin wrapper around the
    SDK's ``verify_vm_stark_proof``) or replaced via ``ZKUPLC_STARK_VERIFIER``.
    """

    name = "subprocess"

    def __init__(self, command: Union[str, Sequence[str]] = "openvm-stark-verify", timeout: Optional[float] = None):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.timeout = timeout

    def verify(self, vk_bytes: bytes, proof_bytes: bytes) -> bool:
        with tempfile.TemporaryDirectory(prefix="zkuplc-verify-") as tmp:
            vk_path = Path(tmp) / "vm_stark.vk"
            proof_path = Path(tmp) / "proof.bin"
            vk_path.write_bytes(vk_bytes)
            proof_path.write_bytes(proof_bytes)
            cmd = [*self.command, str(vk_path), str(proof_path)]
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except (OSError, subprocess.TimeoutExpired) as exc:
                raise VerificationError(f"Could not run STARK verifier {self.command[0]!r}: {exc}") from exc

        detail = (proc.stderr or proc.stdout).strip()
        if proc.returncode == EXIT_VALID:
            return True
        if proc.returncode == EXIT_INVALID:
            LOGGER.info("STARK proof rejected: %s", detail)
            return False
        if proc.returncode == EXIT_MALFORMED:
            raise VerificationFormatError(detail or "Verifier rejected the proof or key encoding")
        raise VerificationError(f"STARK verifier exited with status {proc.returncode}: {detail}")


class BindingStarkBackend(StarkBackend):
    """Call ``verify_vm_stark_proof(vk, proof)`` on the engine binding."""

    name = "binding"

    def __init__(self, binding: Any):
        self.binding = binding

    def verify(self, vk_bytes: bytes, proof_bytes: bytes) -> bool:
        try:
            return bool(self.binding.verify_vm_stark_proof(vk_bytes, proof_bytes))
        except ValueError as exc:
            raise VerificationFormatError(str(exc)) from exc
        except Exception as exc:
            raise VerificationError(f"STARK verification could not run: {exc}") from exc


def verify_stark(proof_bytes: bytes, vk_bytes: bytes, backend: StarkBackend) -> bool:
    """Check a zstd-compressed proof blob against VM verifying key bytes."""
    if not vk_bytes:
        raise VerificationFormatError("Verifying key is empty")
    if not proof_bytes:
        raise VerificationFormatError("Proof is empty")
    decompress_proof(proof_bytes)
    return backend.verify(bytes(vk_bytes), bytes(proof_bytes))


def verify_bundle(bundle: ProofBundle, agg_vk: bytes, backend: StarkBackend) -> bool:
    """Rebuild the VM key from ``agg_vk`` plus the bundle commits and verify."""
    vk = construct_vm_stark_vk(agg_vk, bundle.app_exe_commit, bundle.app_vm_commit)
    proof = compress_proof(build_proof_bytes(bundle.proof_payload))
    return verify_stark(proof, vk, backend)


def get_stark_backend(settings: "Settings") -> StarkBackend:
    if settings.pipeline == "inprocess" and settings.engine_binding:
        from zkuplc.pipeline.inprocess import load_binding

        return BindingStarkBackend(load_binding(settings.engine_binding))
    return SubprocessStarkBackend(settings.stark_verifier)


__all__ = [
    "BindingStarkBackend",
    "StarkBackend",
    "SubprocessStarkBackend",
    "get_stark_backend",
    "verify_bundle",
    "verify_stark",
]
