"""Abstraction over the two ways of driving the OpenVM toolchain."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from zkuplc.artifacts import ArtifactLayout, ProvingArtifacts
from zkuplc.bundle import ProofBundle
from zkuplc.errors import ProvingError, ProvisioningError


class ProofPipeline(ABC):
    """Stages of the commit-and-prove pipeline behind one interface.

    Callers never learn which strategy is active. ``prove`` must be a pure
    function of (artifacts, program): it may not mutate the shared artifacts.
    """

    name: str = "abstract"

    # When True, provisioning steps may be pointed at a staging layout and the
    # outputs renamed into place afterwards.
    supports_staging: bool = False

    # When True, STARK proofs can be wrapped in a Halo2 proof for EVM verifiers.
    supports_evm: bool = False

    @abstractmethod
    def load(self, layout: ArtifactLayout) -> ProvingArtifacts:
        """Load provisioned artifacts and compute the app commits."""

    @abstractmethod
    def execute(self, artifacts: ProvingArtifacts, program: bytes) -> bytes:
        """Run the guest in the VM without proving; return the revealed public values."""

    @abstractmethod
    def prove(self, artifacts: ProvingArtifacts, program: bytes) -> ProofBundle:
        """Generate the aggregated STARK proof for ``program``."""

    def run_pipeline(self, artifacts: ProvingArtifacts, program: bytes) -> ProofBundle:
        return self.prove(artifacts, program)

    def load_halo2_pk(self, layout: ArtifactLayout) -> Any:
        return layout.halo2_pk

    def prove_evm(self, artifacts: ProvingArtifacts, program: bytes) -> dict[str, Any]:
        """Wrap the proof of ``program`` for an EVM verifier; returns the proof JSON."""
        raise ProvingError("evm-prove", f"the {self.name} pipeline cannot produce EVM proofs")

    # Provisioning ------------------------------------------------------

    @abstractmethod
    def build_guest(self, layout: ArtifactLayout) -> None:
        """Build the guest crate into ``layout.executable``."""

    @abstractmethod
    def app_keygen(self, layout: ArtifactLayout) -> None:
        """Write the app proving key to ``layout.app_pk``."""

    @abstractmethod
    def agg_keygen(self, layout: ArtifactLayout) -> None:
        """Write ``layout.agg_pk`` and ``layout.agg_vk``."""

    def halo2_keygen(self, layout: ArtifactLayout) -> None:
        """Write ``layout.halo2_pk``; reads the app and aggregation keys of ``layout``."""
        raise ProvisioningError(f"the {self.name} pipeline cannot generate Halo2 keys")


__all__ = ["ProofPipeline"]
