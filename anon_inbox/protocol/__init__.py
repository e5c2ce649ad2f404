"""Public API for the anonymous inbox protocol."""

from __future__ import annotations

from .collaborators import (
    GroupManager,
    InMemoryGroup,
    InMemoryRecordStore,
    ModerationSink,
    RecordSink,
)
from .encryption import HybridCodec, KeyPair, generate_key_pair, validate_public_key
from .exceptions import (
    DecryptionError,
    DuplicateNullifierError,
    EncryptionError,
    InboxProtocolError,
    InvalidEpochError,
    InvalidRecipientKeyError,
    PersistenceError,
    ProofGenerationError,
    ProofVerificationError,
)
from .factory import get_hash_function, get_proof_backend
from .feature_flags import (
    get_hash_backend_type,
    get_proof_backend_type,
    set_hash_backend_type,
    set_proof_backend_type,
)
from .field import FieldElement
from .hashing import HashFunction, compute_signal_hash, hash_message
from .identity import Identity, generate_identity
from .merkle import MerkleProof, MerkleTree, build_tree, prove_membership, verify_membership
from .nullifier import (
    InMemoryNullifierStore,
    NullifierStore,
    current_epoch,
    derive_nullifier,
    format_epoch,
)
from .pipeline import (
    RejectionReason,
    SubmissionPipeline,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
)
from .proofs import ProofBackend, ReferenceProofBackend, check_freshness, verify_envelope
from .report import ReportData, Urgency, sanitize_text
from .settings import PipelineConfig
from .types import EncryptedEnvelope, ProofEnvelope, SubmissionRecord, SubmissionStatus

__all__ = [
    "DecryptionError",
    "DuplicateNullifierError",
    "EncryptedEnvelope",
    "EncryptionError",
    "FieldElement",
    "GroupManager",
    "HashFunction",
    "HybridCodec",
    "Identity",
    "InMemoryGroup",
    "InMemoryNullifierStore",
    "InMemoryRecordStore",
    "InboxProtocolError",
    "InvalidEpochError",
    "InvalidRecipientKeyError",
    "KeyPair",
    "MerkleProof",
    "MerkleTree",
    "ModerationSink",
    "NullifierStore",
    "PersistenceError",
    "PipelineConfig",
    "ProofBackend",
    "ProofEnvelope",
    "ProofGenerationError",
    "ProofVerificationError",
    "RecordSink",
    "ReferenceProofBackend",
    "RejectionReason",
    "ReportData",
    "SubmissionPipeline",
    "SubmissionRecord",
    "SubmissionRequest",
    "SubmissionResult",
    "SubmissionState",
    "SubmissionStatus",
    "Urgency",
    "build_tree",
    "check_freshness",
    "compute_signal_hash",
    "current_epoch",
    "derive_nullifier",
    "format_epoch",
    "generate_identity",
    "generate_key_pair",
    "get_hash_backend_type",
    "get_hash_function",
    "get_proof_backend",
    "get_proof_backend_type",
    "hash_message",
    "prove_membership",
    "sanitize_text",
    "set_hash_backend_type",
    "set_proof_backend_type",
    "validate_public_key",
    "verify_envelope",
    "verify_membership",
]
