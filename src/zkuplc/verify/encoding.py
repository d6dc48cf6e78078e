"""Byte-level encodings shared by the server and offline verifiers.

The aggregation verifying key (``agg_stark.vk``) is generated once per
toolchain version by ``cargo openvm setup`` and is identical for every
program. The VM verifying key for one program appends the two app commits:

    VmStarkVerifyingKey = agg_stark.vk || bitcode(exe_commit) || bitcode(vm_commit)

Each commit is a 32-byte digest decomposed into 8 BabyBear limbs (base-p,
least significant limb first), converted to Montgomery form and serialized
with bitcode's u32 packing. The proof blob the verifier consumes is
``proof || user_public_values`` compressed with zstd (level 3).
"""
from __future__ import annotations

from typing import Any, Mapping

import zstandard as zstd

from zkuplc.bundle import strip_0x
from zkuplc.errors import VerificationFormatError

BABYBEAR_P = 2013265921  # 2^31 - 2^27 + 1
MONTY_R = 1 << 32
DIGEST_LIMBS = 8
ZSTD_LEVEL = 3
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


def hex_to_bytes(value: str) -> bytes:
    try:
        return bytes.fromhex(strip_0x(value.strip()))
    except (AttributeError, ValueError) as exc:
        raise VerificationFormatError(f"Invalid hex: {exc}") from exc


def commit_hex_to_canonical_u32s(commit_hex: str) -> list[int]:
    """Split a big-endian digest into 8 canonical BabyBear limbs."""
    value = int.from_bytes(hex_to_bytes(commit_hex), "big")
    limbs = []
    for _ in range(DIGEST_LIMBS):
        value, limb = divmod(value, BABYBEAR_P)
        limbs.append(limb)
    return limbs


def to_monty(canonical: int) -> int:
    return (canonical * MONTY_R) % BABYBEAR_P


def bitcode_encode_u32(value: int) -> bytes:
    if value > 0xFFFF:
        return b"\x00" + value.to_bytes(4, "little")
    if value > 0xFF:
        return b"\x02" + value.to_bytes(2, "little")
    return b"\x04" + value.to_bytes(1, "little")


def encode_commit_as_bitcode(commit_hex: str) -> bytes:
    return b"".join(
        bitcode_encode_u32(to_monty(limb)) for limb in commit_hex_to_canonical_u32s(commit_hex)
    )


def construct_vm_stark_vk(agg_vk: bytes, exe_commit_hex: str, vm_commit_hex: str) -> bytes:
    """Build the per-program VM verifying key from the aggregation key."""
    return bytes(agg_vk) + encode_commit_as_bitcode(exe_commit_hex) + encode_commit_as_bitcode(vm_commit_hex)


def build_proof_bytes(proof_json: Mapping[str, Any]) -> bytes:
    """Concatenate ``proof`` and ``user_public_values`` from the proof JSON."""
    try:
        proof_hex = proof_json["proof"]
        upv_hex = proof_json["user_public_values"]
    except (KeyError, TypeError) as exc:
        raise VerificationFormatError(f"STARK proof JSON missing field: {exc}") from exc
    return hex_to_bytes(proof_hex) + hex_to_bytes(upv_hex)


def compress_proof(data: bytes) -> bytes:
    cctx = zstd.ZstdCompressor(level=ZSTD_LEVEL)
    return cctx.compress(data)


def decompress_proof(data: bytes) -> bytes:
    if data[:4] != ZSTD_MAGIC:
        raise VerificationFormatError("Proof is not zstd-compressed")
    try:
        return zstd.ZstdDecompressor().decompressobj().decompress(data)
    except zstd.ZstdError as exc:
        raise VerificationFormatError(f"Corrupt zstd proof: {exc}") from exc


def process_proof(proof_json: Mapping[str, Any]) -> tuple[bytes, str]:
    """Return the compressed proof blob and the public values hex."""
    proof_bytes = build_proof_bytes(proof_json)
    return compress_proof(proof_bytes), strip_0x(str(proof_json["user_public_values"]))


__all__ = [
    "BABYBEAR_P",
    "bitcode_encode_u32",
    "build_proof_bytes",
    "commit_hex_to_canonical_u32s",
    "compress_proof",
    "construct_vm_stark_vk",
    "decompress_proof",
    "encode_commit_as_bitcode",
    "hex_to_bytes",
    "process_proof",
    "to_monty",
]
