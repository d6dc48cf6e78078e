"""Drive ``cargo openvm`` as one subprocess per stage.

Stages exchange well-defined files: the input document written for
``run``/``prove stark``, the proof JSON written by ``prove stark`` and the
commit JSON written by ``commit``. Every artifact is reloaded by the toolchain
per stage, so the handles in ``ProvingArtifacts`` are paths.
"""
from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from zkuplc.artifacts import ArtifactLayout, ProvingArtifacts
from zkuplc.bundle import ProofBundle, strip_0x
from zkuplc.errors import ProvingError, ProvisioningError
from zkuplc.guest import encode_guest_input

from .base import ProofPipeline

LOGGER = logging.getLogger(__name__)

EXECUTION_OUTPUT_MARKER = "Execution output: ["


@dataclass
class CommandResult:
    """Outcome of one toolchain invocation."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    def ok(self) -> bool:
        return self.returncode == 0

    def last_error_line(self) -> str:
        text = self.stderr.strip() or self.stdout.strip()
        lines = [line for line in text.splitlines() if line.strip()]
        return lines[-1] if lines else f"exit status {self.returncode}"


def extract_execution_output(output: str) -> Optional[bytes]:
    """Parse ``Execution output: [145, 130, ...]`` into 32 bytes."""
    for line in output.splitlines():
        start = line.find(EXECUTION_OUTPUT_MARKER)
        if start < 0:
            continue
        body_start = start + len(EXECUTION_OUTPUT_MARKER)
        end = line.find("]", body_start)
        if end < 0:
            continue
        values = []
        for token in line[body_start:end].split(","):
            token = token.strip()
            if not token:
                continue
            try:
                value = int(token)
            except ValueError:
                values = []
                break
            if not 0 <= value <= 255:
                values = []
                break
            values.append(value)
        if len(values) == 32:
            return bytes(values)
    return None


def read_commit_json(path: Path) -> tuple[str, str]:
    data = json.loads(path.read_text())
    exe_commit = data.get("app_exe_commit")
    vm_commit = data.get("app_vm_commit")
    if not isinstance(exe_commit, str) or not isinstance(vm_commit, str):
        raise ValueError(f"commit JSON lacks app_exe_commit/app_vm_commit: {path}")
    return exe_commit, vm_commit


class CliPipeline(ProofPipeline):
    name = "cli"
    supports_evm = True

    def __init__(self, cargo_bin: str = "cargo", env: Mapping[str, str] | None = None):
        self.cargo_bin = cargo_bin
        self.env = dict(env) if env is not None else None

    def _openvm(self, layout: ArtifactLayout, stage: str, *args: str) -> CommandResult:
        cmd = [self.cargo_bin, "openvm", *args]
        env = dict(os.environ)
        if self.env:
            env.update(self.env)
        LOGGER.debug("[%s] %s (cwd=%s)", stage, " ".join(cmd), layout.guest_dir)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=str(layout.guest_dir),
                env=env,
            )
        except OSError as exc:
            raise ProvingError(stage, f"failed to start {' '.join(cmd)}: {exc}") from exc
        return CommandResult(cmd, proc.returncode, proc.stdout, proc.stderr)

    def _require(self, result: CommandResult, stage: str, what: str) -> CommandResult:
        if not result.ok():
            LOGGER.error("%s failed: %s", " ".join(result.command), result.stderr.strip())
            raise ProvingError(stage, f"{what}: {result.last_error_line()}")
        return result

    # Loading -----------------------------------------------------------

    def load(self, layout: ArtifactLayout) -> ProvingArtifacts:
        commit_path = layout.commit_json
        fresh = (
            commit_path.exists()
            and commit_path.stat().st_mtime >= layout.executable.stat().st_mtime
        )
        if not fresh:
            LOGGER.info("Computing app commits with cargo openvm commit")
            try:
                self._require(self._openvm(layout, "commit", "commit"), "commit", "cargo openvm commit failed")
            except ProvingError as exc:
                raise ProvisioningError(str(exc)) from exc
        try:
            exe_commit, vm_commit = read_commit_json(commit_path)
        except (OSError, ValueError) as exc:
            raise ProvisioningError(f"Cannot read app commits: {exc}") from exc
        return ProvingArtifacts(
            layout=layout,
            config=layout.config,
            executable=layout.executable,
            app_proving_key=layout.app_pk,
            agg_proving_key=layout.agg_pk,
            app_exe_commit=exe_commit,
            app_vm_commit=vm_commit,
        )

    # Per request -------------------------------------------------------

    def _write_input(self, workdir: Path, program: bytes) -> Path:
        input_path = workdir / "input.json"
        input_path.write_text(json.dumps(encode_guest_input(program)))
        return input_path

    def execute(self, artifacts: ProvingArtifacts, program: bytes) -> bytes:
        layout = artifacts.layout
        with tempfile.TemporaryDirectory(prefix="zkuplc-run-") as tmp:
            input_path = self._write_input(Path(tmp), program)
            result = self._require(
                self._openvm(layout, "execute", "run", "--input", str(input_path)),
                "execute",
                "Guest execution failed",
            )
        output = extract_execution_output(result.stdout) or extract_execution_output(result.stderr)
        if output is None:
            raise ProvingError("execute", "guest run produced no 32-byte execution output")
        return output

    def _prove_json(self, layout: ArtifactLayout, program: bytes, kind: str, stage: str) -> Any:
        """Run ``cargo openvm prove <kind>`` and return the proof JSON it writes."""
        start = time.perf_counter()
        with tempfile.TemporaryDirectory(prefix="zkuplc-prove-") as tmp:
            workdir = Path(tmp)
            input_path = self._write_input(workdir, program)
            proof_path = workdir / "proof.json"
            self._require(
                self._openvm(
                    layout,
                    stage,
                    "prove",
                    kind,
                    "--input",
                    str(input_path),
                    "--proof",
                    str(proof_path),
                ),
                stage,
                f"{kind.upper()} proof generation failed",
            )
            try:
                payload = json.loads(proof_path.read_text())
            except (OSError, json.JSONDecodeError) as exc:
                raise ProvingError(stage, f"cannot read {kind.upper()} proof: {exc}") from exc
        LOGGER.info("%s proof generated in %.1fs", kind.upper(), time.perf_counter() - start)
        return payload

    def prove(self, artifacts: ProvingArtifacts, program: bytes) -> ProofBundle:
        payload = self._prove_json(artifacts.layout, program, "stark", "prove")
        if not isinstance(payload, dict) or "user_public_values" not in payload:
            raise ProvingError("prove", "STARK proof JSON lacks user_public_values")
        try:
            public_values = bytes.fromhex(strip_0x(str(payload["user_public_values"])))
        except ValueError as exc:
            raise ProvingError("prove", f"invalid user_public_values: {exc}") from exc
        return ProofBundle(
            proof_payload=payload,
            app_exe_commit=artifacts.app_exe_commit,
            app_vm_commit=artifacts.app_vm_commit,
            public_values=public_values,
        )

    def prove_evm(self, artifacts: ProvingArtifacts, program: bytes) -> dict[str, Any]:
        payload = self._prove_json(artifacts.layout, program, "evm", "evm-prove")
        if not isinstance(payload, dict):
            raise ProvingError("evm-prove", "EVM proof JSON is not an object")
        return payload

    # Provisioning ------------------------------------------------------

    def _provision(self, layout: ArtifactLayout, what: str, *args: str) -> None:
        try:
            self._require(self._openvm(layout, what, *args), what, f"cargo openvm {args[0]} failed")
        except ProvingError as exc:
            raise ProvisioningError(str(exc)) from exc

    def build_guest(self, layout: ArtifactLayout) -> None:
        if not layout.manifest.exists():
            raise ProvisioningError(f"Guest crate not found: {layout.manifest}")
        self._provision(layout, "build", "build")

    def app_keygen(self, layout: ArtifactLayout) -> None:
        self._provision(layout, "app-keygen", "keygen")

    def agg_keygen(self, layout: ArtifactLayout) -> None:
        self._provision(layout, "agg-keygen", "setup")

    def halo2_keygen(self, layout: ArtifactLayout) -> None:
        self._provision(layout, "halo2-keygen", "setup", "--evm")


__all__ = ["CliPipeline", "CommandResult", "extract_execution_output", "read_commit_json"]
