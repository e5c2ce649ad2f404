"""
⚠️ DRAFT — requires crypto review before production use

Submission pipeline.

A submission moves through

    BUILDING -> PROOF_READY -> ENCRYPTED -> NULLIFIER_CHECKED -> ACCEPTED

and stops in REJECTED at the first failing step. Rejections are returned as
values, logged with full detail, and exposed to the submitter only as a
generic message, except for the duplicate-nullifier rate-limit signal.

The nullifier store is the only shared mutable state. Once a nullifier is
registered the record is either handed to the sink or the registration is
released, including when the surrounding task is cancelled.
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

import trio

from .collaborators import GroupManager, ModerationSink, RecordSink
from .encryption import HybridCodec, PublicKeyLike
from .exceptions import (
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
from .hashing import HashFunction, compute_signal_hash
from .identity import Identity
from .merkle import MerkleProof
from .nullifier import NullifierStore, current_epoch, derive_nullifier, short_nullifier
from .proofs.interfaces import ProofBackend
from .proofs.verifier import check_freshness, verify_envelope
from .settings import PipelineConfig
from .types import (
    EncryptedEnvelope,
    ProofEnvelope,
    SubmissionRecord,
    SubmissionStatus,
    new_submission_id,
)

logger = logging.getLogger(__name__)


class SubmissionState(Enum):
    BUILDING = "building"
    PROOF_READY = "proof_ready"
    ENCRYPTED = "encrypted"
    NULLIFIER_CHECKED = "nullifier_checked"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectionReason(Enum):
    INVALID_EPOCH = "InvalidEpoch"
    PROOF_GENERATION_FAILED = "ProofGenerationFailed"
    PROOF_VERIFICATION_FAILED = "ProofVerificationFailed"
    ENCRYPTION_FAILED = "EncryptionFailed"
    DUPLICATE_NULLIFIER = "DuplicateNullifier"
    PERSISTENCE_FAILED = "PersistenceFailed"


ACCEPTED_MESSAGE = "Your submission was received."
DUPLICATE_MESSAGE = (
    "You have already submitted during this epoch. "
    "Please wait for the next epoch before submitting again."
)
GENERIC_FAILURE_MESSAGE = "Submission failed. Please try again later."


@dataclass(frozen=True)
class SubmissionRequest:
    """
    Input to the pipeline.

    Either ``identity`` (the pipeline proves on the submitter's behalf) or a
    pre-built ``proof`` with its ``issued_at`` time must be given.

    Attributes:
        recipient_public_key: base64 JWK the payload is encrypted to
        payload: Opaque payload bytes
        identity: Submitter identity (private witness)
        merkle_proof: Membership path; asked from the group when omitted
        epoch: Epoch to submit in; defaults to the current epoch
        proof: Envelope generated by the submitter
        issued_at: Unix seconds the envelope was generated
    """

    recipient_public_key: PublicKeyLike
    payload: bytes
    identity: Optional[Identity] = field(default=None, repr=False)
    merkle_proof: Optional[MerkleProof] = None
    epoch: Optional[int] = None
    proof: Optional[ProofEnvelope] = None
    issued_at: Optional[float] = None


@dataclass(frozen=True)
class SubmissionResult:
    """
    Terminal outcome of one submission.

    ``detail`` is for server-side logs only; show ``user_message`` to users.
    """

    state: SubmissionState
    trace: Tuple[SubmissionState, ...]
    record: Optional[SubmissionRecord] = None
    reason: Optional[RejectionReason] = None
    detail: str = ""
    epoch: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.state is SubmissionState.ACCEPTED

    @property
    def user_message(self) -> str:
        if self.accepted:
            return ACCEPTED_MESSAGE
        if self.reason is RejectionReason.DUPLICATE_NULLIFIER:
            return DUPLICATE_MESSAGE
        return GENERIC_FAILURE_MESSAGE

    def raise_for_rejection(self) -> None:
        """
        Raise the exception matching a rejection; do nothing if accepted.

        Raises:
            InboxProtocolError: Subclass selected by ``reason``, carrying
                the server-side detail
        """
        if self.accepted:
            return
        if self.reason is RejectionReason.DUPLICATE_NULLIFIER:
            raise DuplicateNullifierError(self.epoch, self.detail)
        raise _REASON_ERRORS.get(self.reason, InboxProtocolError)(self.detail)


_REASON_ERRORS = {
    RejectionReason.INVALID_EPOCH: InvalidEpochError,
    RejectionReason.PROOF_GENERATION_FAILED: ProofGenerationError,
    RejectionReason.PROOF_VERIFICATION_FAILED: ProofVerificationError,
    RejectionReason.ENCRYPTION_FAILED: EncryptionError,
    RejectionReason.PERSISTENCE_FAILED: PersistenceError,
}


class _Rejection(Exception):
    def __init__(
        self, reason: RejectionReason, detail: str, epoch: Optional[int] = None
    ):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail
        self.epoch = epoch


class SubmissionPipeline:
    """
    Runs submissions against explicit collaborators.

    Example:
        >>> pipeline = SubmissionPipeline(InMemoryNullifierStore(), store, group=group)
        >>> result = await pipeline.submit(SubmissionRequest(pub, b"hello", identity=me))
        >>> result.accepted
        True
    """

    def __init__(
        self,
        nullifier_store: NullifierStore,
        record_sink: RecordSink,
        *,
        group: Optional[GroupManager] = None,
        moderation_sink: Optional[ModerationSink] = None,
        config: Optional[PipelineConfig] = None,
        hasher: Optional[HashFunction] = None,
        proof_backend: Optional[ProofBackend] = None,
        codec: Optional[HybridCodec] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or PipelineConfig()
        self._nullifiers = nullifier_store
        self._sink = record_sink
        self._group = group
        self._moderation = moderation_sink
        self._hasher = hasher or get_hash_function(prefer=self._config.hash_backend)
        self._backend = proof_backend or get_proof_backend(
            prefer=self._config.proof_backend, hasher=self._hasher
        )
        self._codec = codec or HybridCodec()
        self._clock = clock

    @property
    def config(self) -> PipelineConfig:
        return self._config

    def current_epoch(self) -> int:
        return current_epoch(self._clock(), self._config.epoch_duration_seconds)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_epoch(self, request: SubmissionRequest, current: int) -> int:
        epoch = current if request.epoch is None else request.epoch
        if isinstance(epoch, bool) or not isinstance(epoch, int) or epoch < 0:
            raise _Rejection(RejectionReason.INVALID_EPOCH, f"malformed epoch {epoch!r}")
        if abs(epoch - current) > self._config.epoch_tolerance:
            raise _Rejection(
                RejectionReason.INVALID_EPOCH,
                f"epoch {epoch} outside tolerance of current epoch {current}",
            )
        return epoch

    def _resolve_path(self, request: SubmissionRequest) -> MerkleProof:
        if request.merkle_proof is not None:
            return request.merkle_proof
        if self._group is None:
            raise _Rejection(
                RejectionReason.PROOF_GENERATION_FAILED,
                "no membership path and no group configured",
            )
        try:
            return self._group.prove_membership(request.identity.commitment)
        except (ValueError, IndexError) as exc:
            raise _Rejection(
                RejectionReason.PROOF_GENERATION_FAILED, f"membership lookup failed: {exc}"
            ) from exc

    async def _generate(
        self, request: SubmissionRequest, current: int
    ) -> ProofEnvelope:
        if request.identity is None:
            raise _Rejection(
                RejectionReason.PROOF_GENERATION_FAILED,
                "request carries neither identity nor proof",
            )
        epoch = self._resolve_epoch(request, current)
        merkle_proof = self._resolve_path(request)
        await trio.lowlevel.checkpoint()

        try:
            signal_hash = compute_signal_hash(request.payload, self._hasher)
            nullifier = derive_nullifier(request.identity.secret, epoch, self._hasher)
            generate = functools.partial(
                self._backend.generate,
                merkle_proof,
                epoch,
                nullifier,
                signal_hash,
                identity=request.identity,
            )
            return await trio.to_thread.run_sync(generate)
        except (ProofGenerationError, InvalidEpochError, TypeError) as exc:
            raise _Rejection(RejectionReason.PROOF_GENERATION_FAILED, str(exc)) from exc

    @staticmethod
    def _received_envelope(proof) -> ProofEnvelope:
        if isinstance(proof, ProofEnvelope):
            return proof
        try:
            return ProofEnvelope.from_dict(proof)
        except ValueError as exc:
            raise _Rejection(
                RejectionReason.PROOF_VERIFICATION_FAILED, str(exc)
            ) from exc

    def _verify(
        self,
        request: SubmissionRequest,
        envelope: ProofEnvelope,
        issued_at: Optional[float],
        now: float,
    ) -> None:
        problem = None
        if not verify_envelope(envelope, self._backend):
            problem = "envelope failed verification"
        elif issued_at is not None and not check_freshness(
            envelope, issued_at, now, self._config.epoch_duration_seconds
        ):
            problem = "proof is stale or future-dated"
        elif envelope.signal_hash != compute_signal_hash(request.payload, self._hasher):
            problem = "proof is not bound to this payload"
        elif (
            self._group is not None
            and envelope.root != self._group.current_merkle_root()
        ):
            problem = "proof root does not match the current group root"

        if problem is not None:
            raise _Rejection(RejectionReason.PROOF_VERIFICATION_FAILED, problem)

    async def _encrypt(self, request: SubmissionRequest) -> EncryptedEnvelope:
        try:
            return await trio.to_thread.run_sync(
                self._codec.encrypt, request.payload, request.recipient_public_key
            )
        except (InvalidRecipientKeyError, EncryptionError, TypeError) as exc:
            raise _Rejection(RejectionReason.ENCRYPTION_FAILED, str(exc)) from exc

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def submit(self, request: SubmissionRequest) -> SubmissionResult:
        """
        Run one submission to a terminal state.

        Cancellation before the nullifier is registered leaves no trace;
        after registration the nullifier is released unless the record
        was persisted.
        """
        trace: List[SubmissionState] = [SubmissionState.BUILDING]

        def reject(rejection: _Rejection) -> SubmissionResult:
            trace.append(SubmissionState.REJECTED)
            logger.warning(
                "Submission rejected (%s) after %s: %s",
                rejection.reason.value,
                trace[-2].value,
                rejection.detail,
            )
            return SubmissionResult(
                state=SubmissionState.REJECTED,
                trace=tuple(trace),
                reason=rejection.reason,
                detail=rejection.detail,
                epoch=rejection.epoch,
            )

        try:
            now = self._clock()
            current = current_epoch(now, self._config.epoch_duration_seconds)
        except InvalidEpochError as exc:
            return reject(_Rejection(RejectionReason.INVALID_EPOCH, str(exc)))
        self._nullifiers.prune(current, self._config.retention_epochs)

        try:
            if request.proof is None:
                # epoch window already enforced by the tolerance check
                envelope = await self._generate(request, current)
                issued_at = None
            else:
                envelope = self._received_envelope(request.proof)
                issued_at = now if request.issued_at is None else request.issued_at
            trace.append(SubmissionState.PROOF_READY)
            self._verify(request, envelope, issued_at, now)

            encrypted = await self._encrypt(request)
            trace.append(SubmissionState.ENCRYPTED)
        except _Rejection as rejection:
            return reject(rejection)

        nullifier = envelope.nullifier
        epoch = envelope.epoch
        if not self._nullifiers.register_if_unused(nullifier, epoch):
            return reject(
                _Rejection(
                    RejectionReason.DUPLICATE_NULLIFIER,
                    f"nullifier {short_nullifier(nullifier)} already used in epoch {epoch}",
                    epoch,
                )
            )
        trace.append(SubmissionState.NULLIFIER_CHECKED)

        record = SubmissionRecord(
            id=new_submission_id(now),
            encrypted_data=encrypted,
            proof=envelope,
            timestamp=now,
            status=SubmissionStatus.PENDING,
        )

        committed = False
        try:
            with trio.fail_after(self._config.persist_timeout):
                await self._sink.persist(record)
            committed = True
        except Exception as exc:
            return reject(
                _Rejection(
                    RejectionReason.PERSISTENCE_FAILED,
                    f"record sink failed: {type(exc).__name__}: {exc}",
                )
            )
        finally:
            if not committed:
                self._nullifiers.release(nullifier, epoch)

        trace.append(SubmissionState.ACCEPTED)
        logger.info(
            "Submission %s accepted in epoch %d (nullifier %s)",
            record.id,
            epoch,
            short_nullifier(nullifier),
        )
        return SubmissionResult(
            state=SubmissionState.ACCEPTED, trace=tuple(trace), record=record
        )

    def update_status(self, record_id: str, status: SubmissionStatus) -> None:
        """
        Forward a moderation decision to the moderation sink.

        Raises:
            RuntimeError: If no moderation sink is configured
        """
        if self._moderation is None:
            raise RuntimeError("no moderation sink configured")
        self._moderation.update_status(record_id, SubmissionStatus(status))
