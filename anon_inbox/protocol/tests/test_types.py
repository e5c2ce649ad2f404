"""
Unit tests for envelope and record types.
"""

import json

import cbor2
import pytest

from anon_inbox.protocol.config import PROOF_VERSION
from anon_inbox.protocol.exceptions import SerializationError
from anon_inbox.protocol.field import FieldElement
from anon_inbox.protocol.types import (
    EncryptedEnvelope,
    ProofEnvelope,
    SubmissionRecord,
    SubmissionStatus,
    new_submission_id,
)

HEX = "0x" + "ab" * 32


def _proof():
    return ProofEnvelope(
        pi_a=[HEX, HEX],
        pi_b=[[HEX, HEX], [HEX, HEX]],
        pi_c=[HEX, HEX],
        public_signals=ProofEnvelope.signals_for(
            FieldElement(11), 19876, FieldElement(22), FieldElement(33)
        ),
    )


def _encrypted():
    return EncryptedEnvelope(
        ciphertext=b"\x00\x01ciphertext", ephemeral_public_key="ZXBoZW1lcmFs", iv=b"\x07" * 12
    )


class TestProofEnvelope:
    """Test proof envelope accessors and wire forms."""

    def test_signal_order(self):
        proof = _proof()
        assert proof.public_signals == ["11", "19876", "22", "33"]
        assert proof.root == FieldElement(11)
        assert proof.epoch == 19876
        assert proof.nullifier == FieldElement(22)
        assert proof.signal_hash == FieldElement(33)

    def test_json_shape(self):
        data = _proof().to_dict()
        assert set(data) == {"pi_a", "pi_b", "pi_c", "protocol", "curve", "publicSignals"}
        assert data["protocol"] == "groth16"
        assert data["curve"] == "bn254"
        assert ProofEnvelope.from_dict(data) == _proof()
        assert ProofEnvelope.from_json(_proof().to_json()) == _proof()

    def test_from_dict_missing_field(self):
        data = _proof().to_dict()
        del data["publicSignals"]
        with pytest.raises(ValueError, match="Invalid proof format"):
            ProofEnvelope.from_dict(data)

    def test_from_json_garbage(self):
        with pytest.raises(ValueError):
            ProofEnvelope.from_json("{not json")

    def test_cbor_round_trip(self):
        data = _proof().serialize()
        assert cbor2.loads(data)["v"] == PROOF_VERSION
        assert ProofEnvelope.deserialize(data) == _proof()

    def test_cbor_wrong_version(self):
        obj = cbor2.loads(_proof().serialize())
        obj["v"] = PROOF_VERSION + 1
        with pytest.raises(ValueError, match="Unsupported proof version"):
            ProofEnvelope.deserialize(cbor2.dumps(obj))

    def test_cbor_garbage(self):
        with pytest.raises(SerializationError):
            ProofEnvelope.deserialize(b"\xff\xff\xff")

    def test_cbor_string_signals_rejected(self):
        obj = cbor2.loads(_proof().serialize())
        obj["s"] = "11198762233"
        with pytest.raises(ValueError, match="publicSignals must be an array"):
            ProofEnvelope.deserialize(cbor2.dumps(obj))

    def test_cbor_not_a_map(self):
        with pytest.raises(ValueError):
            ProofEnvelope.deserialize(cbor2.dumps([1, 2, 3]))


class TestEncryptedEnvelope:
    """Test encrypted envelope wire form."""

    def test_json_shape(self):
        data = _encrypted().to_dict()
        assert set(data) == {"ciphertext", "ephemeralPublicKey", "iv"}
        assert EncryptedEnvelope.from_dict(data) == _encrypted()

    def test_rejects_bad_base64(self):
        data = _encrypted().to_dict()
        data["iv"] = "***"
        with pytest.raises(ValueError):
            EncryptedEnvelope.from_dict(data)

    def test_rejects_missing_field(self):
        data = _encrypted().to_dict()
        del data["ciphertext"]
        with pytest.raises(ValueError):
            EncryptedEnvelope.from_dict(data)


class TestSubmissionRecord:
    """Test record creation, status transitions and persisted shape."""

    def test_created_pending(self):
        record = SubmissionRecord(id="r1", encrypted_data=_encrypted(), proof=_proof())
        assert record.status is SubmissionStatus.PENDING
        assert record.epoch == 19876
        assert record.nullifier == FieldElement(22)

    def test_with_status_returns_copy(self):
        record = SubmissionRecord(id="r1", encrypted_data=_encrypted(), proof=_proof())
        reviewed = record.with_status(SubmissionStatus.REVIEWED)
        assert reviewed.status is SubmissionStatus.REVIEWED
        assert record.status is SubmissionStatus.PENDING
        assert record.with_status("archived").status is SubmissionStatus.ARCHIVED

    def test_persisted_shape(self):
        record = SubmissionRecord(
            id="r1", encrypted_data=_encrypted(), proof=_proof(), timestamp=1700000000.5
        )
        persisted = record.to_persisted()
        assert set(persisted) == {
            "id",
            "encryptedData",
            "proofPublicSignals",
            "timestamp",
            "status",
        }
        assert json.loads(persisted["encryptedData"]) == _encrypted().to_dict()
        assert persisted["proofPublicSignals"] == ["11", "19876", "22", "33"]
        assert persisted["timestamp"] == 1700000000500
        assert persisted["status"] == "pending"

    def test_cbor_round_trip(self):
        record = SubmissionRecord(
            id="r1",
            encrypted_data=_encrypted(),
            proof=_proof(),
            timestamp=1700000000.0,
            status=SubmissionStatus.ARCHIVED,
        )
        assert SubmissionRecord.deserialize(record.serialize()) == record

    def test_submission_id_format(self):
        record_id = new_submission_id(now=1700000000.5)
        prefix, millis, suffix = record_id.split("_")
        assert prefix == "report"
        assert millis == "1700000000500"
        assert len(suffix) == 9
        assert new_submission_id() != new_submission_id()
