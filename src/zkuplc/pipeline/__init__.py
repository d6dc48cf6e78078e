"""Proving pipeline strategies and registry."""
from __future__ import annotations

from typing import TYPE_CHECKING

from .base import ProofPipeline
from .cli import CliPipeline
from .inprocess import InProcessPipeline, load_binding

if TYPE_CHECKING:  # pragma: no cover
    from zkuplc.config import Settings

PIPELINES = {
    CliPipeline.name: CliPipeline,
    InProcessPipeline.name: InProcessPipeline,
}


def get_pipeline(settings: "Settings") -> ProofPipeline:
    """Build the strategy named by ``settings.pipeline``."""
    if settings.pipeline == CliPipeline.name:
        return CliPipeline(cargo_bin=settings.cargo_bin)
    if settings.pipeline == InProcessPipeline.name:
        if not settings.engine_binding:
            raise ValueError("ZKUPLC_ENGINE_BINDING must be set for the inprocess pipeline")
        return InProcessPipeline(load_binding(settings.engine_binding))
    raise ValueError(f"Unknown pipeline {settings.pipeline!r}; expected one of {sorted(PIPELINES)}")


__all__ = ["PIPELINES", "CliPipeline", "InProcessPipeline", "ProofPipeline", "get_pipeline", "load_binding"]
