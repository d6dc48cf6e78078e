"""Two independent verification paths: commitment recomputation and STARK proof check."""
from .commitment import CommitmentCheck, check_commitment, parse_commitment
from .encoding import (
    build_proof_bytes,
    compress_proof,
    construct_vm_stark_vk,
    decompress_proof,
    encode_commit_as_bitcode,
    process_proof,
)
from .stark import (
    BindingStarkBackend,
    StarkBackend,
    SubprocessStarkBackend,
    get_stark_backend,
    verify_bundle,
    verify_stark,
)

__all__ = [
    "BindingStarkBackend",
    "CommitmentCheck",
    "StarkBackend",
    "SubprocessStarkBackend",
    "build_proof_bytes",
    "check_commitment",
    "compress_proof",
    "construct_vm_stark_vk",
    "decompress_proof",
    "encode_commit_as_bitcode",
    "get_stark_backend",
    "parse_commitment",
    "process_proof",
    "verify_bundle",
    "verify_stark",
]
