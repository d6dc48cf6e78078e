"""Shared fixtures: a fake proving engine that exercises the real key and proof encodings."""
from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from zkuplc.artifacts import ArtifactLayout, ProvingArtifacts, load_artifacts
from zkuplc.bundle import ProofBundle
from zkuplc.config import Settings
from zkuplc.errors import DecodeError, EvaluationError, ProvingError, ProvisioningError, VerificationFormatError
from zkuplc.evaluator.base import EvaluationResult, Evaluator, decode_program_hex
from zkuplc.guest import run_guest
from zkuplc.pipeline.base import ProofPipeline
from zkuplc.provision import Provisioner
from zkuplc.prover import ProvingService
from zkuplc.verify import StarkBackend, construct_vm_stark_vk, decompress_proof

AGG_VK = b"AGGVK" + bytes(range(64))
EXE_COMMIT = "0x" + "1a" * 32
VM_COMMIT = "0x" + "2b" * 32

# 0x0100004815 01: (program 1.0.0 (con integer 42))
ANSWER_HEX = "010000481501"


def fake_proof(vk: bytes, public_values: bytes) -> bytes:
    return hashlib.sha256(vk + public_values).digest() * 4


class FakeEvaluator(Evaluator):
    """Renders Integer(<len>) for any program; two byte patterns fail on purpose."""

    name = "fake"

    def evaluate(self, program_hex: str) -> EvaluationResult:
        program = decode_program_hex(program_hex)
        if program.startswith(b"\xff"):
            raise DecodeError("Program decode error: bad flat")
        if program == b"\xde\xad":
            raise EvaluationError("Evaluation error: boom")
        return EvaluationResult(result=f"Integer({len(program)})", cost="ExBudget { mem: 1, cpu: 2 }")


class FakePipeline(ProofPipeline):
    name = "fake"
    supports_evm = True

    def __init__(self, evaluator: Evaluator | None = None, supports_staging: bool = False):
        self.evaluator = evaluator or FakeEvaluator()
        self.supports_staging = supports_staging
        self.calls: list[str] = []
        self.fail_step: str | None = None
        self.public_values_override: bytes | None = None
        self.vm_public_values_override: bytes | None = None

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _maybe_fail(self, step: str, written: list[Path]) -> None:
        if self.fail_step == step:
            raise ProvisioningError(f"{step} exploded after writing {len(written)} files")

    def build_guest(self, layout: ArtifactLayout) -> None:
        self.calls.append("build")
        self._write(layout.executable, b"vmexe-bytes")
        self._maybe_fail("build", [layout.executable])

    def app_keygen(self, layout: ArtifactLayout) -> None:
        self.calls.append("app-keygen")
        self._write(layout.app_pk, b"app-pk-bytes")
        self._maybe_fail("app-keygen", [layout.app_pk])

    def agg_keygen(self, layout: ArtifactLayout) -> None:
        self.calls.append("agg-keygen")
        self._write(layout.agg_pk, b"agg-pk-bytes")
        self._maybe_fail("agg-keygen", [layout.agg_pk])
        self._write(layout.agg_vk, AGG_VK)

    def halo2_keygen(self, layout: ArtifactLayout) -> None:
        self.calls.append("halo2-keygen")
        assert layout.app_pk.exists() and layout.agg_pk.exists()
        self._write(layout.halo2_pk, b"halo2-pk-bytes")
        self._maybe_fail("halo2-keygen", [layout.halo2_pk])

    def load_halo2_pk(self, layout: ArtifactLayout) -> bytes:
        return layout.halo2_pk.read_bytes()

    def load(self, layout: ArtifactLayout) -> ProvingArtifacts:
        self.calls.append("load")
        return ProvingArtifacts(
            layout=layout,
            config=layout.config,
            executable=layout.executable.read_bytes(),
            app_proving_key=layout.app_pk.read_bytes(),
            agg_proving_key=layout.agg_pk.read_bytes(),
            app_exe_commit=EXE_COMMIT,
            app_vm_commit=VM_COMMIT,
        )

    def execute(self, artifacts: ProvingArtifacts, program: bytes) -> bytes:
        self.calls.append("execute")
        return self.vm_public_values_override or run_guest(self.evaluator, program).commitment

    def prove(self, artifacts: ProvingArtifacts, program: bytes) -> ProofBundle:
        self.calls.append("prove")
        public_values = self.public_values_override or run_guest(self.evaluator, program).commitment
        vk = construct_vm_stark_vk(AGG_VK, artifacts.app_exe_commit, artifacts.app_vm_commit)
        payload = {
            "proof": "0x" + fake_proof(vk, public_values).hex(),
            "user_public_values": "0x" + public_values.hex(),
        }
        return ProofBundle(payload, artifacts.app_exe_commit, artifacts.app_vm_commit, public_values)

    def prove_evm(self, artifacts: ProvingArtifacts, program: bytes) -> dict:
        self.calls.append("evm-prove")
        if artifacts.halo2_proving_key is None:
            raise ProvingError("evm-prove", "Halo2 proving key is not loaded")
        public_values = run_guest(self.evaluator, program).commitment
        digest = hashlib.sha256(artifacts.halo2_proving_key + public_values).hexdigest()
        return {"proof_data": {"proof": "0x" + digest}, "user_public_values": "0x" + public_values.hex()}


class FakeStarkBackend(StarkBackend):
    name = "fake"

    def verify(self, vk_bytes: bytes, proof_bytes: bytes) -> bool:
        if not vk_bytes.startswith(b"AGGVK"):
            raise VerificationFormatError("Failed to deserialize verification key")
        raw = decompress_proof(proof_bytes)
        proof, public_values = raw[:-32], raw[-32:]
        return proof == fake_proof(vk_bytes, public_values)


@pytest.fixture
def layout(tmp_path: Path) -> ArtifactLayout:
    guest = tmp_path / "guest"
    guest.mkdir()
    (guest / "Cargo.toml").write_text('[package]\nname = "openvm-guest"\n')
    (guest / "openvm.toml").write_text("[app_vm_config.rv32i]\n")
    return ArtifactLayout(guest_dir=guest, target_dir=guest / "target", openvm_home=tmp_path / "openvm-home")


@pytest.fixture
def pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def provisioned(layout: ArtifactLayout, pipeline: FakePipeline) -> ArtifactLayout:
    Provisioner(layout, pipeline).run()
    pipeline.calls.clear()
    return layout


@pytest.fixture
def service(provisioned: ArtifactLayout, pipeline: FakePipeline):
    svc = ProvingService(load_artifacts(provisioned, pipeline), pipeline, FakeEvaluator(), workers=1)
    pipeline.calls.clear()
    yield svc
    svc.shutdown()


@pytest.fixture
def settings(tmp_path: Path, provisioned: ArtifactLayout) -> Settings:
    return Settings(
        guest_dir=provisioned.guest_dir,
        static_dir=tmp_path / "static",
        openvm_home=provisioned.openvm_home,
        target_dir=provisioned.target_dir,
    )


@pytest.fixture
def app(settings: Settings, service: ProvingService):
    from zkuplc.server import create_app

    return create_app({"TESTING": True}, settings=settings, service=service, stark_backend=FakeStarkBackend())


@pytest.fixture
def client(app):
    return app.test_client()
