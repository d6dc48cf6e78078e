"""Client-side bindings: evaluate, commit and verify without trusting the server.

These mirror what a browser client does with a prove response:

    1. fetch ``/data/agg_stark.vk`` once (program independent)
    2. rebuild the VM verifying key from it plus the response's two commits
    3. turn ``stark_proof_json`` into the zstd proof blob and verify it
    4. check the proof's public values equal the returned commitment
    5. optionally re-evaluate the program locally and recompute the commitment
"""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .bundle import strip_0x
from .commitment import commit_hex
from .errors import VerificationFormatError, ZkUplcError
from .evaluator import get_evaluator
from .evaluator.base import Evaluator, decode_program_hex
from .verify import stark as _stark
from .verify.encoding import construct_vm_stark_vk, process_proof

LOGGER = logging.getLogger(__name__)


def evaluate(program_hex: str, evaluator: Optional[Evaluator] = None) -> str:
    """Evaluate locally and return the canonical result string."""
    engine = evaluator or get_evaluator()
    return engine.evaluate(program_hex).result


def compute_commitment(program_hex: str, result: str) -> str:
    return commit_hex(decode_program_hex(program_hex), result)


def verify_stark(proof_bytes: bytes, vk_bytes: bytes, backend: Optional[_stark.StarkBackend] = None) -> bool:
    """Verify a compressed proof; raises ``VerificationFormatError`` on bad encodings.

    Without ``backend`` this shells out to ``openvm-stark-verify``, which the
    operator has to provide on ``PATH``.
    """
    return _stark.verify_stark(proof_bytes, vk_bytes, backend or _stark.SubprocessStarkBackend())


@dataclass(frozen=True)
class ResponseVerification:
    proof_valid: bool
    public_values_match: bool
    local_commitment_match: Optional[bool] = None
    local_result: Optional[str] = None

    @property
    def ok(self) -> bool:
        return (
            self.proof_valid
            and self.public_values_match
            and self.local_commitment_match is not False
        )


def verify_prove_response(
    response: Mapping[str, Any],
    agg_vk: bytes,
    backend: Optional[_stark.StarkBackend] = None,
    program_hex: Optional[str] = None,
    evaluator: Optional[Evaluator] = None,
) -> ResponseVerification:
    """Check a successful ``/api/prove`` response end to end.

    Passing ``program_hex`` also re-evaluates the program locally and compares
    the recomputed commitment with the one the server returned.
    """
    if not response.get("success"):
        raise VerificationFormatError(f"Prove response is not successful: {response.get('error')}")
    try:
        proof_json = response["stark_proof_json"]
        exe_commit = response["app_exe_commit"]
        vm_commit = response["app_vm_commit"]
        commitment = str(response["commitment"])
    except KeyError as exc:
        raise VerificationFormatError(f"Prove response missing field: {exc}") from exc

    vk = construct_vm_stark_vk(agg_vk, exe_commit, vm_commit)
    compressed, upv_hex = process_proof(proof_json)
    valid = verify_stark(compressed, vk, backend)
    upv_match = upv_hex.lower() == strip_0x(commitment).lower()

    local_match = None
    local_result = None
    if program_hex is not None:
        local_result = evaluate(program_hex, evaluator)
        local_match = compute_commitment(program_hex, local_result) == strip_0x(commitment).lower()
    return ResponseVerification(
        proof_valid=valid,
        public_values_match=upv_match,
        local_commitment_match=local_match,
        local_result=local_result,
    )


class ServiceError(ZkUplcError):
    def __init__(self, status: int, message: str):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.message = message


class ProverClient:
    """Thin HTTP client for a running zkuplc server."""

    def __init__(self, base_url: str, timeout: float = 3600.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, data: Any = None) -> bytes:
        body = json.dumps(data).encode() if data is not None else None
        headers = {"Content-Type": "application/json"} if body is not None else {}
        req = urllib.request.Request(f"{self.base_url}{path}", data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            error_body = e.read().decode() if e.fp else str(e)
            try:
                payload = json.loads(error_body)
            except json.JSONDecodeError:
                raise ServiceError(e.code, error_body) from e
            if isinstance(payload, dict) and "success" in payload and path == "/api/prove":
                # failed prove responses still carry the ProveResponse shape
                return error_body.encode()
            msg = payload.get("error", error_body) if isinstance(payload, dict) else error_body
            raise ServiceError(e.code, msg) from e
        except urllib.error.URLError as e:
            raise ServiceError(0, f"Network error: {e.reason}") from e

    def health(self) -> dict[str, Any]:
        return json.loads(self._request("GET", "/api/health"))

    def prove(self, program_hex: str) -> dict[str, Any]:
        return json.loads(self._request("POST", "/api/prove", {"program_hex": program_hex}))

    def agg_vk(self) -> bytes:
        return self._request("GET", "/data/agg_stark.vk")


__all__ = [
    "ProverClient",
    "ResponseVerification",
    "ServiceError",
    "compute_commitment",
    "evaluate",
    "verify_prove_response",
    "verify_stark",
]
