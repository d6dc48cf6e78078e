"""Proving service: decode, fast execute, then prove on a bounded worker pool.

One request flows through

    decode_request -> fast_execute [-> vm_execute] -> prove_bundle [-> prove_evm]

Decode and fast execution run on the request thread and answer bad input in
well under a second. Proving is CPU and memory heavy (seconds to minutes) and
is handed to a ``ThreadPoolExecutor`` sized by ``ZKUPLC_PROVE_WORKERS`` so it
never runs on the thread that serves health checks.

The optional in-VM run (``vm_precheck``) catches a guest that disagrees with
the host evaluator before any proving time is spent. The optional EVM wrap
(``evm_proof``) adds ``evm_proof_json`` to successful responses.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from .artifacts import ProvingArtifacts
from .bundle import ProofBundle
from .errors import DecodeError, ProvingError
from .evaluator.base import EvaluationResult, Evaluator, decode_program_hex
from .guest import GuestAbort, run_guest
from .pipeline.base import ProofPipeline

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FastExecution:
    evaluation: EvaluationResult
    commitment: bytes

    @property
    def commitment_hex(self) -> str:
        return self.commitment.hex()


@dataclass
class ProveOutcome:
    """Result of one prove request; ``status_code`` is the HTTP status to send."""

    success: bool
    status_code: int
    commitment: Optional[str] = None
    stark_proof_json: Optional[dict[str, Any]] = None
    evm_proof_json: Optional[dict[str, Any]] = None
    app_exe_commit: Optional[str] = None
    app_vm_commit: Optional[str] = None
    error: Optional[str] = None
    duration_secs: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success}
        for key in (
            "commitment",
            "stark_proof_json",
            "evm_proof_json",
            "app_exe_commit",
            "app_vm_commit",
            "error",
            "duration_secs",
        ):
            value = getattr(self, key)
            if value is not None:
                body[key] = value
        return body


class ProvingService:
    def __init__(
        self,
        artifacts: ProvingArtifacts,
        pipeline: ProofPipeline,
        evaluator: Evaluator,
        workers: int = 1,
        vm_precheck: bool = False,
        evm_proof: bool = False,
    ):
        self.artifacts = artifacts
        self.pipeline = pipeline
        self.evaluator = evaluator
        self.vm_precheck = vm_precheck
        self.evm_proof = evm_proof
        self.workers = max(1, int(workers))
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="zkuplc-prove")

    def decode_request(self, program_hex: str) -> bytes:
        return decode_program_hex(program_hex)

    def fast_execute(self, program: bytes) -> FastExecution:
        """Run the guest statement outside the zkVM for an early commitment."""
        run = run_guest(self.evaluator, program)
        return FastExecution(evaluation=run.evaluation, commitment=run.commitment)

    def vm_execute(self, program: bytes, expected_commitment: bytes) -> None:
        """Run the guest inside the VM and check it reveals ``expected_commitment``."""
        revealed = self._executor.submit(self.pipeline.execute, self.artifacts, program).result()
        if revealed != expected_commitment:
            raise ProvingError(
                "execute",
                f"guest revealed {revealed.hex() or '<nothing>'}, "
                f"expected commitment {expected_commitment.hex()}",
            )

    def prove_bundle(self, program: bytes, expected_commitment: Optional[bytes] = None) -> ProofBundle:
        future = self._executor.submit(self.pipeline.run_pipeline, self.artifacts, program)
        bundle = future.result()
        if expected_commitment is not None and bundle.public_values != expected_commitment:
            raise ProvingError(
                "prove",
                f"guest revealed {bundle.public_values.hex() or '<nothing>'}, "
                f"expected commitment {expected_commitment.hex()}",
            )
        return bundle

    def prove_evm(self, program: bytes) -> dict[str, Any]:
        return self._executor.submit(self.pipeline.prove_evm, self.artifacts, program).result()

    def prove(self, program_hex: str) -> ProveOutcome:
        """Run the whole pipeline; failures become ``success=False`` outcomes."""
        start = time.perf_counter()

        def elapsed() -> float:
            return round(time.perf_counter() - start, 3)

        try:
            program = self.decode_request(program_hex)
        except DecodeError as exc:
            return ProveOutcome(success=False, status_code=400, error=str(exc))

        LOGGER.info("Starting proof generation for program: %s...", program.hex()[:20])
        try:
            fast = self.fast_execute(program)
        except GuestAbort as exc:
            status = 400 if isinstance(exc.__cause__, DecodeError) else 500
            LOGGER.warning("Fast execution failed: %s", exc)
            return ProveOutcome(success=False, status_code=status, error=str(exc), duration_secs=elapsed())
        LOGGER.info("Evaluated to %s, commitment %s", fast.evaluation.result, fast.commitment_hex)

        evm_proof_json = None
        try:
            if self.vm_precheck:
                self.vm_execute(program, fast.commitment)
            bundle = self.prove_bundle(program, fast.commitment)
            if self.evm_proof:
                evm_proof_json = self.prove_evm(program)
        except ProvingError as exc:
            LOGGER.error("Proving failed at %s: %s", exc.stage, exc.message)
            return ProveOutcome(
                success=False,
                status_code=500,
                commitment=fast.commitment_hex,
                error=str(exc),
                duration_secs=elapsed(),
            )
        except Exception as exc:
            LOGGER.exception("Unexpected proving failure")
            return ProveOutcome(
                success=False,
                status_code=500,
                commitment=fast.commitment_hex,
                error=f"prove: {exc}",
                duration_secs=elapsed(),
            )

        duration = elapsed()
        LOGGER.info("Proof generation complete in %.1fs", duration)
        return ProveOutcome(
            success=True,
            status_code=200,
            commitment=fast.commitment_hex,
            stark_proof_json=bundle.proof_payload,
            evm_proof_json=evm_proof_json,
            app_exe_commit=bundle.app_exe_commit,
            app_vm_commit=bundle.app_vm_commit,
            duration_secs=duration,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["FastExecution", "ProveOutcome", "ProvingService"]
