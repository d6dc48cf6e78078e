"""Call an embeddable OpenVM engine binding directly, holding artifacts in memory.

The binding is any importable object (module or attribute, ``pkg.mod`` or
``pkg.mod:obj``) exposing:

    load_config(path) -> config
    load_exe(path) -> exe
    load_app_pk(path) -> app_pk
    load_agg_pk(path) -> agg_pk
    compute_app_commit(config, exe, app_pk) -> (app_exe_commit, app_vm_commit)
    execute(config, exe, program_bytes) -> bytes
    prove_stark(config, exe, app_pk, agg_pk, program_bytes)
        -> {"proof_json", "app_exe_commit", "app_vm_commit", "public_values"}
    build_guest(manifest_path, config_path, target_dir)
    generate_app_pk(config_path, target_dir)
    generate_agg_keys(openvm_home)
    verify_vm_stark_proof(vk_bytes, proof_bytes) -> bool

and, for EVM wrapping (optional; ``ZKUPLC_EVM_PROOF``):

    load_halo2_pk(path) -> halo2_pk
    generate_halo2_pk(config, app_pk, agg_pk) -> halo2_pk
    save_halo2_pk(halo2_pk, path)
    prove_evm(config, exe, app_pk, agg_pk, halo2_pk, program_bytes) -> proof JSON

Loading the keys is paid once at startup instead of once per request.
"""
from __future__ import annotations

import importlib
import json
import logging
import time
from typing import Any, Mapping

from zkuplc.artifacts import ArtifactLayout, ProvingArtifacts
from zkuplc.bundle import ProofBundle
from zkuplc.errors import ProvingError, ProvisioningError

from .base import ProofPipeline

LOGGER = logging.getLogger(__name__)


def load_binding(path: str) -> Any:
    """Resolve ``pkg.mod`` or ``pkg.mod:attr`` to the engine binding object."""
    module_name, _, attr = path.partition(":")
    if not module_name:
        raise ProvisioningError(f"Invalid engine binding path: {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ProvisioningError(f"Cannot import engine binding {module_name!r}: {exc}") from exc
    if not attr:
        return module
    binding = getattr(module, attr, None)
    if binding is None:
        raise ProvisioningError(f"Engine binding not found: {path}")
    return binding


def _public_values(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


class InProcessPipeline(ProofPipeline):
    name = "inprocess"
    supports_staging = True
    supports_evm = True

    def __init__(self, binding: Any):
        self.binding = binding

    def load(self, layout: ArtifactLayout) -> ProvingArtifacts:
        b = self.binding
        try:
            config = b.load_config(layout.config)
            exe = b.load_exe(layout.executable)
            app_pk = b.load_app_pk(layout.app_pk)
            agg_pk = b.load_agg_pk(layout.agg_pk)
            exe_commit, vm_commit = b.compute_app_commit(config, exe, app_pk)
        except Exception as exc:
            raise ProvisioningError(f"Failed to load proving artifacts: {exc}") from exc
        return ProvingArtifacts(
            layout=layout,
            config=config,
            executable=exe,
            app_proving_key=app_pk,
            agg_proving_key=agg_pk,
            app_exe_commit=str(exe_commit),
            app_vm_commit=str(vm_commit),
        )

    def execute(self, artifacts: ProvingArtifacts, program: bytes) -> bytes:
        try:
            output = self.binding.execute(artifacts.config, artifacts.executable, program)
        except Exception as exc:
            raise ProvingError("execute", f"Guest execution failed: {exc}") from exc
        return _public_values(output)

    def prove(self, artifacts: ProvingArtifacts, program: bytes) -> ProofBundle:
        start = time.perf_counter()
        try:
            result: Mapping[str, Any] = self.binding.prove_stark(
                artifacts.config,
                artifacts.executable,
                artifacts.app_proving_key,
                artifacts.agg_proving_key,
                program,
            )
            payload = dict(result["proof_json"])
            public_values = _public_values(result["public_values"])
        except ProvingError:
            raise
        except Exception as exc:
            raise ProvingError("prove", f"STARK proof generation failed: {exc}") from exc
        LOGGER.info("STARK proof generated in %.1fs", time.perf_counter() - start)
        return ProofBundle(
            proof_payload=payload,
            app_exe_commit=str(result.get("app_exe_commit") or artifacts.app_exe_commit),
            app_vm_commit=str(result.get("app_vm_commit") or artifacts.app_vm_commit),
            public_values=public_values,
        )

    def load_halo2_pk(self, layout: ArtifactLayout) -> Any:
        try:
            return self.binding.load_halo2_pk(layout.halo2_pk)
        except Exception as exc:
            raise ProvisioningError(f"Failed to load Halo2 proving key: {exc}") from exc

    def prove_evm(self, artifacts: ProvingArtifacts, program: bytes) -> dict[str, Any]:
        if artifacts.halo2_proving_key is None:
            raise ProvingError("evm-prove", "Halo2 proving key is not loaded")
        start = time.perf_counter()
        try:
            proof = self.binding.prove_evm(
                artifacts.config,
                artifacts.executable,
                artifacts.app_proving_key,
                artifacts.agg_proving_key,
                artifacts.halo2_proving_key,
                program,
            )
            payload = json.loads(proof) if isinstance(proof, (str, bytes)) else dict(proof)
        except Exception as exc:
            raise ProvingError("evm-prove", f"EVM proof generation failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise ProvingError("evm-prove", "EVM proof JSON is not an object")
        LOGGER.info("EVM proof generated in %.1fs", time.perf_counter() - start)
        return payload

    def _provision(self, what: str, fn_name: str, *args: Any) -> None:
        try:
            getattr(self.binding, fn_name)(*args)
        except Exception as exc:
            raise ProvisioningError(f"{what}: {exc}") from exc

    def build_guest(self, layout: ArtifactLayout) -> None:
        if not layout.manifest.exists():
            raise ProvisioningError(f"Guest crate not found: {layout.manifest}")
        layout.target_dir.mkdir(parents=True, exist_ok=True)
        self._provision("build", "build_guest", layout.manifest, layout.config, layout.target_dir)

    def app_keygen(self, layout: ArtifactLayout) -> None:
        layout.target_dir.mkdir(parents=True, exist_ok=True)
        self._provision("app-keygen", "generate_app_pk", layout.config, layout.target_dir)

    def agg_keygen(self, layout: ArtifactLayout) -> None:
        layout.openvm_home.mkdir(parents=True, exist_ok=True)
        self._provision("agg-keygen", "generate_agg_keys", layout.openvm_home)

    def halo2_keygen(self, layout: ArtifactLayout) -> None:
        b = self.binding
        try:
            config = b.load_config(layout.config)
            halo2_pk = b.generate_halo2_pk(config, b.load_app_pk(layout.app_pk), b.load_agg_pk(layout.agg_pk))
            b.save_halo2_pk(halo2_pk, layout.halo2_pk)
        except Exception as exc:
            raise ProvisioningError(f"halo2-keygen: {exc}") from exc


__all__ = ["InProcessPipeline", "load_binding"]
