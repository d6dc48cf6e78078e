"""
zkuplc configuration

Settings are read once from the environment when the process starts:
  * OPENVM_GUEST_DIR   guest crate (Cargo.toml + openvm.toml)
  * OPENVM_STATIC_DIR  static assets served at / (optional)
  * PORT               HTTP port
  * OPENVM_HOME        aggregation keys (agg_stark.pk, agg_stark.vk, agg_halo2.pk)
and the ZKUPLC_* options below. Engine and pipeline selection happen here,
never per request.

ZKUPLC_STARK_VERIFIER names an external verifier command run as
``<command> <vk file> <proof file>`` (exit 0 valid, 1 invalid, 2 malformed).
OpenVM ships no such binary; operators install or wrap their own.

ZKUPLC_VM_PRECHECK runs the guest inside the VM before proving and checks it
reveals the host commitment. ZKUPLC_EVM_PROOF additionally wraps every STARK
proof in a Halo2 proof for EVM verification (needs agg_halo2.pk).
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

DEFAULT_GUEST_DIR = "crates/zkvms/openvm"
DEFAULT_STATIC_DIR = "web/dist"
DEFAULT_PORT = 8080
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, default))
    except (TypeError, ValueError):
        return default


def _bool_env(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _path_env(env: Mapping[str, str], name: str, default: str | Path) -> Path:
    value = env.get(name) or str(default)
    return Path(value).expanduser()


@dataclass(frozen=True)
class Settings:
    guest_dir: Path = Path(DEFAULT_GUEST_DIR)
    static_dir: Path = Path(DEFAULT_STATIC_DIR)
    port: int = DEFAULT_PORT
    host: str = "0.0.0.0"
    openvm_home: Path = field(default_factory=lambda: Path.home() / ".openvm")
    target_dir: Path | None = None

    evaluator: str = "uplc"
    aiken_bin: str = "aiken"

    pipeline: str = "cli"
    cargo_bin: str = "cargo"
    engine_binding: str | None = None
    stark_verifier: str = "openvm-stark-verify"
    vm_precheck: bool = False
    evm_proof: bool = False

    prove_workers: int = 1
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    job_history: int = 200
    cors_allow_origins: str = "*"
    service_name: str = "zkuplc-backend"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        target = env.get("ZKUPLC_TARGET_DIR")
        return cls(
            guest_dir=_path_env(env, "OPENVM_GUEST_DIR", DEFAULT_GUEST_DIR),
            static_dir=_path_env(env, "OPENVM_STATIC_DIR", DEFAULT_STATIC_DIR),
            port=_int_env(env, "PORT", DEFAULT_PORT),
            host=env.get("ZKUPLC_HOST", "0.0.0.0"),
            openvm_home=_path_env(env, "OPENVM_HOME", Path.home() / ".openvm"),
            target_dir=Path(target).expanduser() if target else None,
            evaluator=env.get("ZKUPLC_EVALUATOR", "uplc").strip().lower(),
            aiken_bin=env.get("ZKUPLC_AIKEN_BIN", "aiken"),
            pipeline=env.get("ZKUPLC_PIPELINE", "cli").strip().lower(),
            cargo_bin=env.get("ZKUPLC_CARGO_BIN", "cargo"),
            engine_binding=env.get("ZKUPLC_ENGINE_BINDING") or None,
            stark_verifier=env.get("ZKUPLC_STARK_VERIFIER", "openvm-stark-verify"),
            vm_precheck=_bool_env(env, "ZKUPLC_VM_PRECHECK"),
            evm_proof=_bool_env(env, "ZKUPLC_EVM_PROOF"),
            prove_workers=max(1, _int_env(env, "ZKUPLC_PROVE_WORKERS", 1)),
            max_body_bytes=_int_env(env, "ZKUPLC_MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
            job_history=max(1, _int_env(env, "ZKUPLC_JOB_HISTORY", 200)),
            cors_allow_origins=env.get("CORS_ALLOW_ORIGINS", "*"),
            service_name=env.get("ZKUPLC_SERVICE_NAME", "zkuplc-backend"),
            log_level=env.get("ZKUPLC_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def resolved_target_dir(self) -> Path:
        return self.target_dir if self.target_dir is not None else self.guest_dir / "target"

    def with_overrides(self, **overrides: Any) -> "Settings":
        return replace(self, **overrides)


__all__ = ["DEFAULT_MAX_BODY_BYTES", "Settings"]
