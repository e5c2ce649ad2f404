"""
Proof backend interface.

A backend turns a membership path plus public signals into a
``ProofEnvelope`` and checks the proof-specific relation of an envelope.
Structural checks shared by every backend live in ``verifier``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from ..field import FieldElement
from ..merkle import MerkleProof
from ..types import ProofEnvelope

if TYPE_CHECKING:
    from ..identity import Identity


class ProofBackend(ABC):
    """Abstract proof system."""

    name: str = "abstract"

    @abstractmethod
    def generate(
        self,
        merkle_proof: MerkleProof,
        epoch: int,
        nullifier: FieldElement,
        signal_hash: FieldElement,
        *,
        identity: Optional["Identity"] = None,
    ) -> ProofEnvelope:
        """
        Produce a proof envelope.

        Args:
            merkle_proof: Membership path; its root becomes a public signal
            epoch: Epoch the nullifier is scoped to
            nullifier: H([secret, epoch])
            signal_hash: Payload binding
            identity: Private witness; when given the backend checks it
                satisfies the membership and nullifier constraints

        Raises:
            ProofGenerationError: If inputs are invalid or the witness does
                not satisfy the constraints
        """

    @abstractmethod
    def verify(self, envelope: ProofEnvelope) -> bool:
        """Proof-specific check on a structurally valid envelope."""
