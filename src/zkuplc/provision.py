"""One-time, idempotent provisioning of the guest executable and proving keys.

Steps run in order and each is skipped when its outputs are already complete:

    1. build        guest crate -> openvm-guest.vmexe
    2. app-keygen   app.pk (the paired app verifying key is not kept;
                    verifiers rebuild the VM verifying key from agg_stark.vk
                    plus the per-program commits)
    3. agg-keygen   agg_stark.pk + agg_stark.vk (heavy: tens of minutes and
                    double-digit GB of RAM; program independent)
    4. halo2-keygen agg_halo2.pk, only when EVM wrapping is enabled (over
                    64 GB of RAM)

A derived step reads the outputs of earlier steps: it runs against the real
layout instead of a staging one, and it is redone whenever an earlier step ran.

Interrupting a step leaves outputs without completion markers; the next run
treats them as partial, removes them and runs the step again.
"""
from __future__ import annotations

import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .artifacts import ArtifactLayout, artifact_state, remove_artifact, write_marker
from .errors import ProvisioningError
from .pipeline.base import ProofPipeline

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisionStep:
    name: str
    description: str
    outputs_for: Callable[[ArtifactLayout], tuple[Path, ...]]
    action: Callable[[ArtifactLayout], None]
    derived: bool = False


@dataclass
class StepReport:
    name: str
    skipped: bool
    outputs: list[str] = field(default_factory=list)
    duration_secs: float = 0.0
    regenerated_partial: bool = False

    def to_dict(self) -> dict:
        return {
            "step": self.name,
            "skipped": self.skipped,
            "outputs": self.outputs,
            "durationSecs": round(self.duration_secs, 3),
            "regeneratedPartial": self.regenerated_partial,
        }


class Provisioner:
    def __init__(self, layout: ArtifactLayout, pipeline: ProofPipeline, evm: bool = False):
        self.layout = layout
        self.pipeline = pipeline
        self.evm = evm

    def steps(self) -> list[ProvisionStep]:
        p = self.pipeline
        steps = [
            ProvisionStep("build", "Build guest executable", lambda lay: (lay.executable,), p.build_guest),
            ProvisionStep("app-keygen", "Generate app proving key", lambda lay: (lay.app_pk,), p.app_keygen),
            ProvisionStep(
                "agg-keygen",
                "Generate aggregation proving and verifying keys",
                lambda lay: (lay.agg_pk, lay.agg_vk),
                p.agg_keygen,
            ),
        ]
        if self.evm:
            if not p.supports_evm:
                raise ProvisioningError(f"the {p.name} pipeline cannot generate Halo2 keys")
            steps.append(
                ProvisionStep(
                    "halo2-keygen",
                    "Generate Halo2 proving key for EVM proofs",
                    lambda lay: (lay.halo2_pk,),
                    p.halo2_keygen,
                    derived=True,
                )
            )
        return steps

    def run(self, force: bool = False, on_step: Callable[[ProvisionStep], None] | None = None) -> list[StepReport]:
        reports: list[StepReport] = []
        for step in self.steps():
            if on_step is not None:
                on_step(step)
            upstream_changed = any(not r.skipped for r in reports)
            reports.append(self._run_step(step, force or (step.derived and upstream_changed)))
        return reports

    def _run_step(self, step: ProvisionStep, force: bool) -> StepReport:
        outputs = step.outputs_for(self.layout)
        states = {path: artifact_state(path) for path in outputs}
        if not force and all(state == "complete" for state in states.values()):
            LOGGER.info("[%s] already complete, skipping", step.name)
            return StepReport(step.name, skipped=True, outputs=[str(p) for p in outputs])

        partial = any(state == "partial" for state in states.values())
        for path, state in states.items():
            if state == "partial":
                LOGGER.warning("[%s] removing partial artifact %s", step.name, path)
            elif state == "complete":
                LOGGER.info("[%s] regenerating %s", step.name, path)
            remove_artifact(path)

        LOGGER.info("[%s] %s", step.name, step.description)
        start = time.perf_counter()
        try:
            if self.pipeline.supports_staging and not step.derived:
                self._run_staged(step)
            else:
                step.action(self.layout)
            missing = [str(p) for p in outputs if not p.exists() or p.stat().st_size == 0]
            if missing:
                raise ProvisioningError(f"{step.name} did not produce: {', '.join(missing)}")
        except Exception as exc:
            for path in outputs:
                remove_artifact(path)
            if isinstance(exc, ProvisioningError):
                raise
            raise ProvisioningError(f"{step.name} failed: {exc}") from exc

        for path in outputs:
            write_marker(path)
        elapsed = time.perf_counter() - start
        LOGGER.info("[%s] done in %.1fs", step.name, elapsed)
        return StepReport(
            step.name,
            skipped=False,
            outputs=[str(p) for p in outputs],
            duration_secs=elapsed,
            regenerated_partial=partial,
        )

    def _run_staged(self, step: ProvisionStep) -> None:
        """Run ``step`` against scratch directories and rename outputs into place."""
        layout = self.layout
        layout.target_dir.parent.mkdir(parents=True, exist_ok=True)
        layout.openvm_home.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(dir=layout.target_dir.parent, prefix=".zkuplc-stage-") as t_tmp, \
                tempfile.TemporaryDirectory(dir=layout.openvm_home.parent, prefix=".zkuplc-stage-") as h_tmp:
            staged = ArtifactLayout(
                guest_dir=layout.guest_dir,
                target_dir=Path(t_tmp) / "target",
                openvm_home=Path(h_tmp) / "home",
            )
            step.action(staged)
            for staged_path, final in zip(step.outputs_for(staged), step.outputs_for(layout)):
                if not staged_path.exists():
                    raise ProvisioningError(f"{step.name} did not produce {final.name}")
                final.parent.mkdir(parents=True, exist_ok=True)
                os.replace(staged_path, final)


__all__ = ["ProvisionStep", "Provisioner", "StepReport"]
