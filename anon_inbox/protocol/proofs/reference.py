"""
⚠️ DRAFT — NOT A REAL PROOF SYSTEM

Reference proof backend.

Proof elements are deterministic hashes of the public signals. The envelope
has the exact shape of a Groth16 proof over bn254, and verification checks
the hash relation between elements and signals, but anyone who knows the
public signals can forge a proof. A pairing-based prover must replace this
before deployment.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..exceptions import InvalidEpochError, ProofGenerationError
from ..field import FieldElement
from ..hashing import HashFunction, default_hasher
from ..identity import Identity
from ..merkle import MerkleProof, compute_root
from ..nullifier import derive_nullifier, validate_epoch
from ..security import constant_time_compare
from ..types import ProofEnvelope
from .interfaces import ProofBackend

logger = logging.getLogger(__name__)


class ReferenceProofBackend(ProofBackend):
    """Hash-derived stand-in for a Groth16 prover."""

    name = "reference"

    def __init__(self, hasher: Optional[HashFunction] = None):
        self._hasher = hasher or default_hasher()

    @property
    def hasher(self) -> HashFunction:
        return self._hasher

    def _derive_elements(
        self,
        root: FieldElement,
        epoch: int,
        nullifier: FieldElement,
        signal_hash: FieldElement,
    ) -> Dict[str, List]:
        h = self._hasher.hash
        a0 = h([root, FieldElement.reduce(epoch)])
        a1 = h([nullifier, signal_hash])
        b = h([a0, a1])
        return {
            "pi_a": [a0.to_hex(), a1.to_hex()],
            "pi_b": [
                [b.to_hex(), h([a0, b]).to_hex()],
                [h([a1, b]).to_hex(), h([b, b]).to_hex()],
            ],
            "pi_c": [h([b, root]).to_hex(), h([b, signal_hash]).to_hex()],
        }

    def _check_witness(
        self,
        identity: Identity,
        merkle_proof: MerkleProof,
        epoch: int,
        nullifier: FieldElement,
    ) -> None:
        if not identity.matches(self._hasher):
            raise ProofGenerationError("identity commitment does not match its secret")
        try:
            folded = compute_root(identity.commitment, merkle_proof, self._hasher)
        except ValueError as exc:
            raise ProofGenerationError(f"malformed membership path: {exc}") from exc
        if folded != merkle_proof.root:
            raise ProofGenerationError("identity is not a member under this root")
        if derive_nullifier(identity.secret, epoch, self._hasher) != nullifier:
            raise ProofGenerationError("nullifier does not match identity and epoch")

    def generate(
        self,
        merkle_proof: MerkleProof,
        epoch: int,
        nullifier: FieldElement,
        signal_hash: FieldElement,
        *,
        identity: Optional[Identity] = None,
    ) -> ProofEnvelope:
        if not isinstance(merkle_proof, MerkleProof):
            raise ProofGenerationError("merkle_proof must be a MerkleProof")
        if not isinstance(nullifier, FieldElement) or not isinstance(
            signal_hash, FieldElement
        ):
            raise ProofGenerationError("nullifier and signal_hash must be FieldElement")
        try:
            validate_epoch(epoch)
        except InvalidEpochError as exc:
            raise ProofGenerationError(str(exc)) from exc

        if identity is not None:
            self._check_witness(identity, merkle_proof, epoch, nullifier)

        root = merkle_proof.root
        elements = self._derive_elements(root, epoch, nullifier, signal_hash)
        return ProofEnvelope(
            pi_a=elements["pi_a"],
            pi_b=elements["pi_b"],
            pi_c=elements["pi_c"],
            public_signals=ProofEnvelope.signals_for(
                root, epoch, nullifier, signal_hash
            ),
        )

    def verify(self, envelope: ProofEnvelope) -> bool:
        try:
            expected = self._derive_elements(
                envelope.root, envelope.epoch, envelope.nullifier, envelope.signal_hash
            )
            actual = "".join(
                list(envelope.pi_a)
                + [value for row in envelope.pi_b for value in row]
                + list(envelope.pi_c)
            ).lower()
            actual_bytes = actual.encode("ascii")
        except (TypeError, ValueError, IndexError) as exc:
            logger.debug("Reference verification could not read envelope: %s", exc)
            return False

        wanted = "".join(
            expected["pi_a"]
            + [value for row in expected["pi_b"] for value in row]
            + expected["pi_c"]
        )
        return constant_time_compare(actual_bytes, wanted.encode("ascii"))
