from __future__ import annotations

import subprocess

import pytest

from zkuplc.bundle import ProofBundle
from zkuplc.errors import VerificationError, VerificationFormatError
from zkuplc.verify import (
    SubprocessStarkBackend,
    build_proof_bytes,
    compress_proof,
    construct_vm_stark_vk,
    decompress_proof,
    encode_commit_as_bitcode,
    verify_bundle,
    verify_stark,
)
from zkuplc.verify.encoding import (
    BABYBEAR_P,
    bitcode_encode_u32,
    commit_hex_to_canonical_u32s,
    to_monty,
)

from conftest import AGG_VK, EXE_COMMIT, VM_COMMIT, FakeStarkBackend, fake_proof


def test_canonical_limbs_are_base_p_little_endian() -> None:
    assert commit_hex_to_canonical_u32s("0x" + "00" * 31 + "05") == [5, 0, 0, 0, 0, 0, 0, 0]
    value = BABYBEAR_P + 3
    limbs = commit_hex_to_canonical_u32s(value.to_bytes(32, "big").hex())
    assert limbs[:2] == [3, 1]


def test_montgomery_form() -> None:
    assert to_monty(0) == 0
    assert to_monty(1) == (1 << 32) % BABYBEAR_P == 268435454


def test_bitcode_u32_packing() -> None:
    assert bitcode_encode_u32(5) == b"\x04\x05"
    assert bitcode_encode_u32(300) == b"\x02\x2c\x01"
    assert bitcode_encode_u32(70000) == b"\x00\x70\x11\x01\x00"


def test_vk_is_agg_vk_plus_both_commits() -> None:
    zero = "00" * 32
    assert encode_commit_as_bitcode(zero) == b"\x04\x00" * 8
    vk = construct_vm_stark_vk(AGG_VK, EXE_COMMIT, VM_COMMIT)
    exe = encode_commit_as_bitcode(EXE_COMMIT)
    vm = encode_commit_as_bitcode(VM_COMMIT)
    assert vk == AGG_VK + exe + vm
    assert exe != vm


def test_proof_bytes_round_trip_through_zstd() -> None:
    raw = build_proof_bytes({"proof": "0xdead", "user_public_values": "beef"})
    assert raw == b"\xde\xad\xbe\xef"
    assert decompress_proof(compress_proof(raw)) == raw


def test_proof_bytes_require_both_fields() -> None:
    with pytest.raises(VerificationFormatError):
        build_proof_bytes({"proof": "0x00"})


def _signed_proof(public_values: bytes = b"\x07" * 32) -> tuple[bytes, bytes]:
    vk = construct_vm_stark_vk(AGG_VK, EXE_COMMIT, VM_COMMIT)
    return compress_proof(fake_proof(vk, public_values) + public_values), vk


def test_verify_accepts_valid_proof() -> None:
    proof, vk = _signed_proof()
    assert verify_stark(proof, vk, FakeStarkBackend()) is True


def test_flipped_byte_is_false_not_error() -> None:
    proof, vk = _signed_proof()
    raw = bytearray(decompress_proof(proof))
    raw[3] ^= 0x01
    assert verify_stark(compress_proof(bytes(raw)), vk, FakeStarkBackend()) is False


def test_wrong_commit_is_false() -> None:
    proof, _ = _signed_proof()
    other_vk = construct_vm_stark_vk(AGG_VK, VM_COMMIT, EXE_COMMIT)
    assert verify_stark(proof, other_vk, FakeStarkBackend()) is False


@pytest.mark.parametrize(
    "proof, vk",
    [
        (b"", b"AGGVK"),
        (compress_proof(b"x"), b""),
        (b"not zstd at all", b"AGGVK"),
    ],
)
def test_malformed_inputs_raise(proof: bytes, vk: bytes) -> None:
    with pytest.raises(VerificationFormatError):
        verify_stark(proof, vk, FakeStarkBackend())


def test_malformed_vk_raises_format_error() -> None:
    proof, _ = _signed_proof()
    with pytest.raises(VerificationFormatError):
        verify_stark(proof, b"\x00garbage", FakeStarkBackend())


def test_verify_bundle_rebuilds_vk() -> None:
    upv = b"\x09" * 32
    vk = construct_vm_stark_vk(AGG_VK, EXE_COMMIT, VM_COMMIT)
    payload = {"proof": "0x" + fake_proof(vk, upv).hex(), "user_public_values": "0x" + upv.hex()}
    bundle = ProofBundle.from_dict(
        {"stark_proof_json": payload, "app_exe_commit": EXE_COMMIT, "app_vm_commit": VM_COMMIT}
    )
    assert bundle.public_values == upv
    assert verify_bundle(bundle, AGG_VK, FakeStarkBackend()) is True


def _exit_with(code: int, stderr: str = ""):
    def run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, code, stdout="", stderr=stderr)

    return run


@pytest.mark.parametrize("code, expected", [(0, True), (1, False)])
def test_subprocess_backend_verdicts(monkeypatch, code: int, expected: bool) -> None:
    monkeypatch.setattr("zkuplc.verify.stark.subprocess.run", _exit_with(code))
    assert SubprocessStarkBackend("verifier --quiet").verify(b"vk", b"proof") is expected


def test_subprocess_backend_passes_files(monkeypatch) -> None:
    seen = {}

    def run(cmd, **kwargs):
        with open(cmd[-2], "rb") as vk_file, open(cmd[-1], "rb") as proof_file:
            seen["vk"], seen["proof"] = vk_file.read(), proof_file.read()
        seen["cmd"] = cmd[:2]
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr("zkuplc.verify.stark.subprocess.run", run)
    SubprocessStarkBackend("verifier --quiet").verify(b"vk-bytes", b"proof-bytes")
    assert seen == {"vk": b"vk-bytes", "proof": b"proof-bytes", "cmd": ["verifier", "--quiet"]}


def test_subprocess_backend_errors(monkeypatch) -> None:
    monkeypatch.setattr("zkuplc.verify.stark.subprocess.run", _exit_with(2, "bad vk"))
    with pytest.raises(VerificationFormatError, match="bad vk"):
        SubprocessStarkBackend().verify(b"vk", b"proof")

    def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("zkuplc.verify.stark.subprocess.run", missing)
    with pytest.raises(VerificationError) as info:
        SubprocessStarkBackend().verify(b"vk", b"proof")
    assert not isinstance(info.value, VerificationFormatError)
