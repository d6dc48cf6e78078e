from __future__ import annotations

import hashlib
import threading

import pytest

from zkuplc.artifacts import load_artifacts
from zkuplc.commitment import commit_hex
from zkuplc.errors import ProvisioningError
from zkuplc.evaluator.pyuplc import PyUplcEvaluator
from zkuplc.provision import Provisioner
from zkuplc.prover import ProvingService
from zkuplc.verify import check_commitment, process_proof

from conftest import ANSWER_HEX, EXE_COMMIT, VM_COMMIT, FakeEvaluator, FakePipeline


def test_prove_success(service: ProvingService, pipeline: FakePipeline) -> None:
    outcome = service.prove("0x0a0b0c")

    assert outcome.success and outcome.status_code == 200
    assert outcome.commitment == commit_hex(b"\x0a\x0b\x0c", "Integer(3)")
    assert outcome.app_exe_commit == EXE_COMMIT
    assert outcome.app_vm_commit == VM_COMMIT
    assert outcome.stark_proof_json["user_public_values"] == "0x" + outcome.commitment
    assert outcome.duration_secs is not None
    assert pipeline.calls == ["prove"]

    body = outcome.to_dict()
    assert body["success"] is True
    assert "error" not in body


def test_empty_and_malformed_hex_never_reach_evaluation(service: ProvingService, pipeline: FakePipeline) -> None:
    for bad in ("", "   ", "xyz"):
        outcome = service.prove(bad)
        assert outcome.status_code == 400
        assert not outcome.success and outcome.error
        assert outcome.commitment is None
    assert pipeline.calls == []


def test_flat_decode_failure_is_client_error(service: ProvingService, pipeline: FakePipeline) -> None:
    outcome = service.prove("ff00")
    assert outcome.status_code == 400
    assert "UPLC evaluation failed" in outcome.error
    assert pipeline.calls == []


def test_evaluation_failure_skips_proving(service: ProvingService, pipeline: FakePipeline) -> None:
    outcome = service.prove("dead")
    assert outcome.status_code == 500
    assert not outcome.success
    assert pipeline.calls == []


def test_mismatched_public_values_fail_with_commitment_kept(service: ProvingService, pipeline: FakePipeline) -> None:
    pipeline.public_values_override = b"\x00" * 32
    outcome = service.prove("0102")
    assert outcome.status_code == 500
    assert outcome.error.startswith("prove:")
    assert outcome.commitment == commit_hex(b"\x01\x02", "Integer(2)")
    assert outcome.stark_proof_json is None


def test_proving_runs_off_the_request_thread(service: ProvingService, pipeline: FakePipeline) -> None:
    threads = []
    original = pipeline.prove

    def record(artifacts, program):
        threads.append(threading.current_thread().name)
        return original(artifacts, program)

    pipeline.prove = record  # type: ignore[method-assign]
    assert service.prove("01").success
    assert threads and threads[0].startswith("zkuplc-prove")


def test_concurrent_requests_are_independent(service: ProvingService) -> None:
    results = {}

    def worker(hex_program: str) -> None:
        results[hex_program] = service.prove(hex_program)

    programs = ["01", "0102", "010203", "01020304"]
    threads = [threading.Thread(target=worker, args=(p,)) for p in programs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for p in programs:
        outcome = results[p]
        assert outcome.success
        assert outcome.commitment == commit_hex(bytes.fromhex(p), f"Integer({len(p) // 2})")
        _, upv = process_proof(outcome.stark_proof_json)
        assert upv == outcome.commitment


def test_constant_program_end_to_end_with_uplc_engine(provisioned, pipeline: FakePipeline) -> None:
    engine = PyUplcEvaluator()
    pipeline.evaluator = engine
    service = ProvingService(load_artifacts(provisioned, pipeline), pipeline, engine)
    try:
        outcome = service.prove(ANSWER_HEX)
    finally:
        service.shutdown()

    program = bytes.fromhex(ANSWER_HEX)
    assert outcome.success, outcome.error
    assert outcome.commitment == hashlib.sha256(program + b"Integer(42)").hexdigest()
    _, upv = process_proof(outcome.stark_proof_json)
    assert upv == outcome.commitment
    assert check_commitment(program, "Integer(42)", outcome.commitment).matches
    assert not check_commitment(program, "Integer(43)", outcome.commitment).matches


def _service(provisioned, pipeline, evm=False, **kwargs) -> ProvingService:
    artifacts = load_artifacts(provisioned, pipeline, evm=evm)
    pipeline.calls.clear()
    return ProvingService(artifacts, pipeline, FakeEvaluator(), evm_proof=evm, **kwargs)


def test_vm_precheck_runs_guest_before_proving(provisioned, pipeline: FakePipeline) -> None:
    service = _service(provisioned, pipeline, vm_precheck=True)
    try:
        assert service.prove("0a0b").success
        assert pipeline.calls == ["execute", "prove"]
    finally:
        service.shutdown()


def test_vm_precheck_mismatch_skips_proving(provisioned, pipeline: FakePipeline) -> None:
    pipeline.vm_public_values_override = b"\x07" * 32
    service = _service(provisioned, pipeline, vm_precheck=True)
    try:
        outcome = service.prove("0a0b")
    finally:
        service.shutdown()
    assert outcome.status_code == 500
    assert outcome.error.startswith("execute:")
    assert outcome.commitment == commit_hex(b"\x0a\x0b", "Integer(2)")
    assert pipeline.calls == ["execute"]


def test_evm_wrap_adds_proof_json(provisioned, pipeline: FakePipeline) -> None:
    Provisioner(provisioned, pipeline, evm=True).run()
    service = _service(provisioned, pipeline, evm=True)
    try:
        outcome = service.prove("0a0b")
    finally:
        service.shutdown()
    assert outcome.success, outcome.error
    assert pipeline.calls == ["prove", "evm-prove"]
    assert outcome.evm_proof_json["user_public_values"] == "0x" + outcome.commitment
    assert "evm_proof_json" in outcome.to_dict()


def test_evm_wrap_is_off_by_default(service: ProvingService) -> None:
    assert "evm_proof_json" not in service.prove("0a0b").to_dict()


def test_evm_wrap_requires_halo2_key(provisioned, pipeline: FakePipeline) -> None:
    with pytest.raises(ProvisioningError, match="halo2 proving key missing"):
        load_artifacts(provisioned, pipeline, evm=True)
