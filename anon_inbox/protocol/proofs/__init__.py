"""Proof generation and verification."""

from .interfaces import ProofBackend
from .reference import ReferenceProofBackend
from .verifier import (
    check_elements,
    check_freshness,
    check_signals,
    check_structure,
    verify_envelope,
)

__all__ = [
    "ProofBackend",
    "ReferenceProofBackend",
    "check_elements",
    "check_freshness",
    "check_signals",
    "check_structure",
    "verify_envelope",
]
