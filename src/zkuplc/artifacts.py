"""On-disk proving artifacts and the in-memory handle shared by all requests.

Layout (mirrors what ``cargo openvm`` writes):

    <guest>/openvm.toml
    <target>/openvm/release/openvm-guest.vmexe
    <target>/openvm/release/openvm-guest.commit.json
    <target>/openvm/app.pk
    $OPENVM_HOME/agg_stark.pk
    $OPENVM_HOME/agg_stark.vk
    $OPENVM_HOME/agg_halo2.pk      (only with EVM wrapping)

Each generated artifact gets a ``<name>.done`` marker once the step that wrote
it finished; an artifact without a matching marker is a partial write.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .errors import ProvisioningError

if TYPE_CHECKING:  # pragma: no cover
    from .config import Settings
    from .pipeline.base import ProofPipeline

LOGGER = logging.getLogger(__name__)

MARKER_SUFFIX = ".done"
GUEST_NAME = "openvm-guest"


@dataclass(frozen=True)
class ArtifactLayout:
    guest_dir: Path
    target_dir: Path
    openvm_home: Path

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ArtifactLayout":
        return cls(
            guest_dir=settings.guest_dir,
            target_dir=settings.resolved_target_dir,
            openvm_home=settings.openvm_home,
        )

    @property
    def manifest(self) -> Path:
        return self.guest_dir / "Cargo.toml"

    @property
    def config(self) -> Path:
        return self.guest_dir / "openvm.toml"

    @property
    def release_dir(self) -> Path:
        return self.target_dir / "openvm" / "release"

    @property
    def executable(self) -> Path:
        return self.release_dir / f"{GUEST_NAME}.vmexe"

    @property
    def commit_json(self) -> Path:
        return self.release_dir / f"{GUEST_NAME}.commit.json"

    @property
    def app_pk(self) -> Path:
        return self.target_dir / "openvm" / "app.pk"

    @property
    def agg_pk(self) -> Path:
        return self.openvm_home / "agg_stark.pk"

    @property
    def agg_vk(self) -> Path:
        return self.openvm_home / "agg_stark.vk"

    @property
    def halo2_pk(self) -> Path:
        return self.openvm_home / "agg_halo2.pk"


@dataclass(frozen=True)
class ProvingArtifacts:
    """Read-only handles loaded once at startup.

    For the CLI pipeline the handles are paths (the toolchain reloads them per
    stage); for the in-process pipeline they are engine objects held in memory.
    """

    layout: ArtifactLayout
    config: Any
    executable: Any
    app_proving_key: Any
    agg_proving_key: Any
    app_exe_commit: str
    app_vm_commit: str
    halo2_proving_key: Any = None


def marker_path(artifact: Path) -> Path:
    return artifact.with_name(artifact.name + MARKER_SUFFIX)


def write_marker(artifact: Path) -> None:
    marker = marker_path(artifact)
    payload = {"size": artifact.stat().st_size, "completed_at": time.time()}
    tmp = marker.with_name(marker.name + ".tmp")
    tmp.write_text(json.dumps(payload))
    tmp.replace(marker)


def artifact_state(artifact: Path) -> str:
    """Return ``complete``, ``missing`` or ``partial`` for one artifact."""
    if not artifact.exists():
        return "missing"
    size = artifact.stat().st_size
    if size == 0:
        return "partial"
    try:
        marker = json.loads(marker_path(artifact).read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return "partial"
    if not isinstance(marker, dict) or marker.get("size") != size:
        return "partial"
    return "complete"


def remove_artifact(artifact: Path) -> None:
    for path in (artifact, marker_path(artifact)):
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def required_for_proving(layout: ArtifactLayout, evm: bool = False) -> dict[str, Path]:
    required = {
        "guest executable": layout.executable,
        "app proving key": layout.app_pk,
        "aggregation proving key": layout.agg_pk,
    }
    if evm:
        required["halo2 proving key"] = layout.halo2_pk
    return required


def load_artifacts(layout: ArtifactLayout, pipeline: "ProofPipeline", evm: bool = False) -> ProvingArtifacts:
    """Load every artifact the prover needs or fail before serving anything."""
    problems = []
    if not layout.config.exists():
        problems.append(f"VM config missing: {layout.config}")
    for label, path in required_for_proving(layout, evm).items():
        state = artifact_state(path)
        if state != "complete":
            problems.append(f"{label} {state}: {path}")
    if problems:
        raise ProvisioningError(
            "Proving artifacts are not provisioned ("
            + "; ".join(problems)
            + "). Run `zkuplc setup` first."
        )

    start = time.perf_counter()
    artifacts = pipeline.load(layout)
    if evm:
        artifacts = replace(artifacts, halo2_proving_key=pipeline.load_halo2_pk(layout))
    LOGGER.info(
        "Loaded proving artifacts in %.1fs (app_exe_commit=%s, app_vm_commit=%s)",
        time.perf_counter() - start,
        artifacts.app_exe_commit,
        artifacts.app_vm_commit,
    )
    return artifacts


__all__ = [
    "ArtifactLayout",
    "MARKER_SUFFIX",
    "ProvingArtifacts",
    "artifact_state",
    "load_artifacts",
    "marker_path",
    "remove_artifact",
    "required_for_proving",
    "write_marker",
]
