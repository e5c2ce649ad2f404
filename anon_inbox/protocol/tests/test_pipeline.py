"""
Tests for the trio submission pipeline.
"""

import logging

import pytest
import trio

from anon_inbox.protocol.collaborators import InMemoryGroup, InMemoryRecordStore
from anon_inbox.protocol.encryption import decrypt, generate_key_pair
from anon_inbox.protocol.exceptions import (
    DuplicateNullifierError,
    EncryptionError,
    InvalidEpochError,
    PersistenceError,
    ProofGenerationError,
    ProofVerificationError,
)
from anon_inbox.protocol.field import FieldElement
from anon_inbox.protocol.hashing import MixingHash, compute_signal_hash
from anon_inbox.protocol.identity import Identity
from anon_inbox.protocol.merkle import build_tree, prove_membership
from anon_inbox.protocol.nullifier import InMemoryNullifierStore, derive_nullifier
from anon_inbox.protocol.pipeline import (
    DUPLICATE_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    RejectionReason,
    SubmissionPipeline,
    SubmissionRequest,
    SubmissionState,
)
from anon_inbox.protocol.proofs import ReferenceProofBackend
from anon_inbox.protocol.settings import PipelineConfig
from anon_inbox.protocol.types import SubmissionStatus

HASHER = MixingHash()
EPOCH = 19876
NOW = EPOCH * 86400 + 100

FULL_TRACE = (
    SubmissionState.BUILDING,
    SubmissionState.PROOF_READY,
    SubmissionState.ENCRYPTED,
    SubmissionState.NULLIFIER_CHECKED,
    SubmissionState.ACCEPTED,
)


@pytest.fixture(scope="module")
def pair():
    return generate_key_pair()


@pytest.fixture
def members():
    return [Identity.from_secret(1000 + i, hasher=HASHER) for i in range(5)]


@pytest.fixture
def group(members):
    return InMemoryGroup([m.commitment for m in members], hasher=HASHER)


@pytest.fixture
def nullifiers():
    return InMemoryNullifierStore()


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def backend():
    return ReferenceProofBackend(HASHER)


def _pipeline(nullifiers, sink, group, backend, **kwargs):
    kwargs.setdefault("moderation_sink", sink)
    return SubmissionPipeline(
        nullifiers,
        sink,
        group=group,
        hasher=HASHER,
        proof_backend=backend,
        clock=lambda: NOW,
        **kwargs,
    )


@pytest.fixture
def pipeline(nullifiers, store, group, backend):
    return _pipeline(nullifiers, store, group, backend)


def _prebuilt(backend, group, member, payload, epoch=EPOCH):
    return backend.generate(
        group.prove_membership(member.commitment),
        epoch,
        derive_nullifier(member.secret, epoch, HASHER),
        compute_signal_hash(payload, HASHER),
    )


class _FailingSink:
    async def persist(self, record):
        raise RuntimeError("disk full")


class _BlockingSink:
    def __init__(self):
        self.entered = trio.Event()

    async def persist(self, record):
        self.entered.set()
        await trio.sleep_forever()


class TestAcceptance:
    @pytest.mark.trio
    async def test_happy_path(self, pipeline, store, nullifiers, members, pair):
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )

        assert result.accepted
        assert result.trace == FULL_TRACE
        assert result.reason is None
        record = result.record
        assert store.get(record.id) == record
        assert record.status is SubmissionStatus.PENDING
        assert record.epoch == EPOCH
        assert record.timestamp == NOW
        assert decrypt(record.encrypted_data, pair.private_key) == b"hello"
        assert nullifiers.is_used(derive_nullifier(members[0].secret, EPOCH, HASHER), EPOCH)
        assert result.user_message == "Your submission was received."

    @pytest.mark.trio
    async def test_explicit_merkle_proof_without_group(
        self, nullifiers, store, backend, members, pair
    ):
        tree = build_tree([m.commitment for m in members], HASHER)
        pipeline = _pipeline(nullifiers, store, None, backend)
        result = await pipeline.submit(
            SubmissionRequest(
                pair.public_key,
                b"hello",
                identity=members[2],
                merkle_proof=prove_membership(tree, 2),
            )
        )
        assert result.accepted

    @pytest.mark.trio
    async def test_previous_epoch_within_tolerance(
        self, nullifiers, store, group, backend, members, pair
    ):
        pipeline = _pipeline(
            nullifiers, store, group, backend, config=PipelineConfig(epoch_tolerance=1)
        )
        result = await pipeline.submit(
            SubmissionRequest(
                pair.public_key, b"hello", identity=members[0], epoch=EPOCH - 1
            )
        )
        assert result.accepted
        assert result.record.epoch == EPOCH - 1

    @pytest.mark.trio
    async def test_prebuilt_proof_accepted(self, pipeline, backend, group, members, pair):
        proof = _prebuilt(backend, group, members[1], b"report")
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"report", proof=proof, issued_at=NOW - 60)
        )
        assert result.accepted
        assert result.record.proof == proof

    @pytest.mark.trio
    async def test_prebuilt_proof_as_mapping(self, pipeline, backend, group, members, pair):
        proof = _prebuilt(backend, group, members[1], b"report")
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"report", proof=proof.to_dict())
        )
        assert result.accepted

    @pytest.mark.trio
    async def test_old_nullifiers_pruned(self, pipeline, nullifiers, members, pair):
        nullifiers.register_if_unused(FieldElement(5), EPOCH - 10)
        await pipeline.submit(SubmissionRequest(pair.public_key, b"x", identity=members[0]))
        assert not nullifiers.is_used(FieldElement(5), EPOCH - 10)


class TestRateLimit:
    @pytest.mark.trio
    async def test_duplicate_in_same_epoch(self, pipeline, store, members, pair):
        first = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )
        second = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"different payload", identity=members[0])
        )

        assert first.accepted
        assert second.reason is RejectionReason.DUPLICATE_NULLIFIER
        assert second.trace == (
            SubmissionState.BUILDING,
            SubmissionState.PROOF_READY,
            SubmissionState.ENCRYPTED,
            SubmissionState.REJECTED,
        )
        assert second.user_message == DUPLICATE_MESSAGE
        assert len(store) == 1

    @pytest.mark.trio
    async def test_other_members_unaffected(self, pipeline, members, pair):
        for member in members:
            result = await pipeline.submit(
                SubmissionRequest(pair.public_key, b"hello", identity=member)
            )
            assert result.accepted

    @pytest.mark.trio
    async def test_concurrent_duplicates_single_winner(self, pipeline, store, members, pair):
        results = []

        async def _submit():
            results.append(
                await pipeline.submit(
                    SubmissionRequest(pair.public_key, b"hello", identity=members[3])
                )
            )

        async with trio.open_nursery() as nursery:
            for _ in range(8):
                nursery.start_soon(_submit)

        assert sum(r.accepted for r in results) == 1
        assert all(
            r.reason is RejectionReason.DUPLICATE_NULLIFIER
            for r in results
            if not r.accepted
        )
        assert len(store) == 1

    @pytest.mark.trio
    async def test_duplicate_is_logged_without_secret(self, pipeline, members, pair, caplog):
        request = SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        await pipeline.submit(request)
        with caplog.at_level(logging.WARNING, logger="anon_inbox.protocol.pipeline"):
            await pipeline.submit(request)

        assert "DuplicateNullifier" in caplog.text
        assert members[0].secret.to_hex() not in caplog.text


class TestRejections:
    @pytest.mark.trio
    async def test_epoch_outside_tolerance(self, pipeline, nullifiers, members, pair):
        result = await pipeline.submit(
            SubmissionRequest(
                pair.public_key, b"hello", identity=members[0], epoch=EPOCH - 1
            )
        )
        assert result.reason is RejectionReason.INVALID_EPOCH
        assert result.trace == (SubmissionState.BUILDING, SubmissionState.REJECTED)
        assert result.user_message == GENERIC_FAILURE_MESSAGE
        assert len(nullifiers) == 0

    @pytest.mark.trio
    @pytest.mark.parametrize("epoch", [-1, "19876", True])
    async def test_malformed_epoch(self, pipeline, members, pair, epoch):
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0], epoch=epoch)
        )
        assert result.reason is RejectionReason.INVALID_EPOCH

    @pytest.mark.trio
    async def test_non_member(self, pipeline, pair):
        outsider = Identity.from_secret(99999, hasher=HASHER)
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=outsider)
        )
        assert result.reason is RejectionReason.PROOF_GENERATION_FAILED

    @pytest.mark.trio
    async def test_neither_identity_nor_proof(self, pipeline, pair):
        result = await pipeline.submit(SubmissionRequest(pair.public_key, b"hello"))
        assert result.reason is RejectionReason.PROOF_GENERATION_FAILED

    @pytest.mark.trio
    async def test_invalid_recipient_key(self, pipeline, nullifiers, members):
        result = await pipeline.submit(
            SubmissionRequest("not-a-key", b"hello", identity=members[0])
        )
        assert result.reason is RejectionReason.ENCRYPTION_FAILED
        assert result.trace[-2] is SubmissionState.PROOF_READY
        assert len(nullifiers) == 0

    @pytest.mark.trio
    async def test_stale_prebuilt_proof(self, pipeline, backend, group, members, pair):
        proof = _prebuilt(backend, group, members[0], b"hello", epoch=EPOCH - 2)
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof=proof, issued_at=NOW - 60)
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED

    @pytest.mark.trio
    async def test_future_dated_prebuilt_proof(self, pipeline, backend, group, members, pair):
        proof = _prebuilt(backend, group, members[0], b"hello")
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof=proof, issued_at=NOW + 60)
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED

    @pytest.mark.trio
    async def test_proof_bound_to_other_payload(self, pipeline, backend, group, members, pair):
        proof = _prebuilt(backend, group, members[0], b"hello")
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"tampered", proof=proof)
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED

    @pytest.mark.trio
    async def test_root_mismatch(self, pipeline, backend, members, pair):
        other_group = InMemoryGroup(
            [members[0].commitment, FieldElement(424242)], hasher=HASHER
        )
        proof = _prebuilt(backend, other_group, members[0], b"hello")
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof=proof)
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED
        assert "root" in result.detail

    @pytest.mark.trio
    async def test_forged_prebuilt_proof(self, pipeline, backend, group, members, pair):
        data = _prebuilt(backend, group, members[0], b"hello").to_dict()
        data["pi_c"] = list(reversed(data["pi_c"]))
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof=data)
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED

    @pytest.mark.trio
    async def test_unreadable_prebuilt_proof(self, pipeline, pair):
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof={"pi_a": []})
        )
        assert result.reason is RejectionReason.PROOF_VERIFICATION_FAILED


class TestPersistence:
    @pytest.mark.trio
    async def test_sink_failure_releases_nullifier(
        self, nullifiers, group, backend, members, pair
    ):
        pipeline = _pipeline(nullifiers, _FailingSink(), group, backend, moderation_sink=None)
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )

        assert result.reason is RejectionReason.PERSISTENCE_FAILED
        assert SubmissionState.NULLIFIER_CHECKED in result.trace
        assert "disk full" in result.detail
        assert len(nullifiers) == 0

    @pytest.mark.trio
    async def test_retry_after_sink_failure(
        self, nullifiers, store, group, backend, members, pair
    ):
        request = SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        failing = _pipeline(nullifiers, _FailingSink(), group, backend, moderation_sink=None)
        assert not (await failing.submit(request)).accepted

        working = _pipeline(nullifiers, store, group, backend)
        assert (await working.submit(request)).accepted

    @pytest.mark.trio
    async def test_sink_timeout(self, nullifiers, group, backend, members, pair):
        pipeline = _pipeline(
            nullifiers,
            _BlockingSink(),
            group,
            backend,
            moderation_sink=None,
            config=PipelineConfig(persist_timeout=0.05),
        )
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )
        assert result.reason is RejectionReason.PERSISTENCE_FAILED
        assert len(nullifiers) == 0

    @pytest.mark.trio
    async def test_cancellation_during_persist_releases_nullifier(
        self, nullifiers, group, backend, members, pair
    ):
        sink = _BlockingSink()
        pipeline = _pipeline(nullifiers, sink, group, backend, moderation_sink=None)
        nullifier = derive_nullifier(members[0].secret, EPOCH, HASHER)

        async with trio.open_nursery() as nursery:
            nursery.start_soon(
                pipeline.submit,
                SubmissionRequest(pair.public_key, b"hello", identity=members[0]),
            )
            await sink.entered.wait()
            assert nullifiers.is_used(nullifier, EPOCH)
            nursery.cancel_scope.cancel()

        assert not nullifiers.is_used(nullifier, EPOCH)


class TestRaiseForRejection:
    """Test mapping rejections back to exceptions."""

    @pytest.mark.trio
    async def test_accepted_does_not_raise(self, pipeline, members, pair):
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )
        result.raise_for_rejection()

    @pytest.mark.trio
    async def test_duplicate_carries_epoch(self, pipeline, members, pair):
        request = SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        await pipeline.submit(request)
        second = await pipeline.submit(request)

        assert second.epoch == EPOCH
        with pytest.raises(DuplicateNullifierError) as excinfo:
            second.raise_for_rejection()
        assert excinfo.value.epoch == EPOCH

    @pytest.mark.trio
    async def test_reason_selects_exception(self, pipeline, backend, group, members, pair):
        outside = await pipeline.submit(
            SubmissionRequest(
                pair.public_key, b"hello", identity=members[0], epoch=EPOCH + 3
            )
        )
        with pytest.raises(InvalidEpochError, match="outside tolerance"):
            outside.raise_for_rejection()

        outsider = Identity.from_secret(99999, hasher=HASHER)
        non_member = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=outsider)
        )
        with pytest.raises(ProofGenerationError):
            non_member.raise_for_rejection()

        proof = _prebuilt(backend, group, members[1], b"other payload")
        mismatch = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", proof=proof, issued_at=NOW)
        )
        with pytest.raises(ProofVerificationError):
            mismatch.raise_for_rejection()

        bad_key = await pipeline.submit(
            SubmissionRequest("not-a-key", b"hello", identity=members[2])
        )
        with pytest.raises(EncryptionError):
            bad_key.raise_for_rejection()

    @pytest.mark.trio
    async def test_persistence_failure(self, nullifiers, group, backend, members, pair):
        pipeline = _pipeline(nullifiers, _FailingSink(), group, backend, moderation_sink=None)
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )
        with pytest.raises(PersistenceError, match="disk full"):
            result.raise_for_rejection()


class TestModeration:
    @pytest.mark.trio
    async def test_update_status(self, pipeline, store, members, pair):
        result = await pipeline.submit(
            SubmissionRequest(pair.public_key, b"hello", identity=members[0])
        )
        pipeline.update_status(result.record.id, SubmissionStatus.REVIEWED)
        assert store.get(result.record.id).status is SubmissionStatus.REVIEWED

    def test_update_status_without_sink(self, nullifiers, store, group, backend):
        pipeline = _pipeline(nullifiers, store, group, backend, moderation_sink=None)
        with pytest.raises(RuntimeError):
            pipeline.update_status("report_1_abc", SubmissionStatus.ARCHIVED)
