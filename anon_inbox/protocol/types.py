"""
⚠️ DRAFT — requires crypto review before production use

Common types for anonymous submissions.

This module provides:
1. ProofEnvelope - Groth16-shaped proof with fixed-order public signals
2. EncryptedEnvelope - hybrid-encrypted payload
3. SubmissionStatus / SubmissionRecord - what a successful submission becomes

Serialization:
- Wire: JSON via to_dict() / from_dict()
- Binary: CBOR with version field ("v")
"""

import base64
import binascii
import json
import secrets
import string
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

import cbor2

from .config import PROOF_CURVE, PROOF_PROTOCOL, PROOF_VERSION, RECORD_VERSION
from .exceptions import SerializationError
from .field import FieldElement

# ============================================================================
# PROOF ENVELOPE
# ============================================================================


def _require_list(value: Any, name: str) -> list:
    if not isinstance(value, list):
        raise ValueError(
            f"Invalid proof format: {name} must be an array, got {type(value).__name__}"
        )
    return value


@dataclass(frozen=True)
class ProofEnvelope:
    """
    Groth16-shaped proof over bn254.

    ⚠️ REQUIRES CRYPTO REVIEW

    Attributes:
        pi_a: Two hex scalars
        pi_b: 2x2 hex scalars
        pi_c: Two hex scalars
        public_signals: [root, epoch, nullifier, signal_hash] as decimal strings
        protocol: Always "groth16"
        curve: Always "bn254"

    Elements are kept as strings so a malformed envelope received from the
    wire can still be represented and rejected by the verifier.
    """

    pi_a: List[str]
    pi_b: List[List[str]]
    pi_c: List[str]
    public_signals: List[str]
    protocol: str = PROOF_PROTOCOL
    curve: str = PROOF_CURVE

    # ------------------------------------------------------------------
    # Public signal accessors
    # ------------------------------------------------------------------

    @classmethod
    def signals_for(
        cls,
        root: FieldElement,
        epoch: int,
        nullifier: FieldElement,
        signal_hash: FieldElement,
    ) -> List[str]:
        """Public signals in verifier order."""
        return [
            root.to_decimal(),
            str(epoch),
            nullifier.to_decimal(),
            signal_hash.to_decimal(),
        ]

    @property
    def root(self) -> FieldElement:
        return FieldElement.from_decimal(self.public_signals[0])

    @property
    def epoch(self) -> int:
        return int(self.public_signals[1])

    @property
    def nullifier(self) -> FieldElement:
        return FieldElement.from_decimal(self.public_signals[2])

    @property
    def signal_hash(self) -> FieldElement:
        return FieldElement.from_decimal(self.public_signals[3])

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pi_a": list(self.pi_a),
            "pi_b": [list(row) for row in self.pi_b],
            "pi_c": list(self.pi_c),
            "protocol": self.protocol,
            "curve": self.curve,
            "publicSignals": list(self.public_signals),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProofEnvelope":
        """
        Build an envelope from its JSON form.

        Only presence and container types are checked here; value checks
        belong to the verifier.

        Raises:
            ValueError: If required fields are missing or a container
                field is not a JSON array
        """
        if not isinstance(data, dict):
            raise ValueError("Invalid proof format: expected an object")
        try:
            pi_b = _require_list(data["pi_b"], "pi_b")
            return cls(
                pi_a=list(_require_list(data["pi_a"], "pi_a")),
                pi_b=[list(_require_list(row, "pi_b row")) for row in pi_b],
                pi_c=list(_require_list(data["pi_c"], "pi_c")),
                public_signals=list(
                    _require_list(data["publicSignals"], "publicSignals")
                ),
                protocol=data["protocol"],
                curve=data["curve"],
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid proof format: {exc}") from exc

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "ProofEnvelope":
        try:
            return cls.from_dict(json.loads(text))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid proof JSON: {exc}") from exc

    # ------------------------------------------------------------------
    # CBOR
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        """
        Serialize the envelope to CBOR.

        Raises:
            SerializationError: If encoding fails
        """
        try:
            data = {
                "v": PROOF_VERSION,
                "a": self.pi_a,
                "b": self.pi_b,
                "c": self.pi_c,
                "s": self.public_signals,
                "p": self.protocol,
                "cv": self.curve,
            }
            return cbor2.dumps(data)
        except Exception as e:
            raise SerializationError(f"Failed to serialize proof: {e}")

    @classmethod
    def deserialize(cls, data: bytes) -> "ProofEnvelope":
        """
        Deserialize an envelope from CBOR bytes.

        Raises:
            ValueError: If version is unsupported or fields are missing
            SerializationError: If decoding fails
        """
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise SerializationError(f"Failed to deserialize proof: {e}")

        if not isinstance(obj, dict):
            raise ValueError("Invalid proof format: missing required fields")

        version = obj.get("v", 1)
        if version != PROOF_VERSION:
            raise ValueError(
                f"Unsupported proof version: {version} (expected {PROOF_VERSION})"
            )

        if not {"a", "b", "c", "s"} <= obj.keys():
            raise ValueError("Invalid proof format: missing required fields")

        pi_b = _require_list(obj["b"], "pi_b")
        return cls(
            pi_a=_require_list(obj["a"], "pi_a"),
            pi_b=[_require_list(row, "pi_b row") for row in pi_b],
            pi_c=_require_list(obj["c"], "pi_c"),
            public_signals=_require_list(obj["s"], "publicSignals"),
            protocol=obj.get("p", PROOF_PROTOCOL),
            curve=obj.get("cv", PROOF_CURVE),
        )


# ============================================================================
# ENCRYPTED ENVELOPE
# ============================================================================


def _b64decode(value: Any, name: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"{name} is not valid base64") from exc


@dataclass(frozen=True)
class EncryptedEnvelope:
    """
    Hybrid-encrypted payload.

    Attributes:
        ciphertext: AES-GCM ciphertext with the tag appended
        ephemeral_public_key: base64 JWK of the sender's one-time key
        iv: 12-byte nonce
    """

    ciphertext: bytes
    ephemeral_public_key: str
    iv: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "ephemeralPublicKey": self.ephemeral_public_key,
            "iv": base64.b64encode(self.iv).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedEnvelope":
        """
        Raises:
            ValueError: If a field is missing or not base64
        """
        if not isinstance(data, dict):
            raise ValueError("Invalid envelope format: expected an object")
        ephemeral = data.get("ephemeralPublicKey")
        _b64decode(ephemeral, "ephemeralPublicKey")
        return cls(
            ciphertext=_b64decode(data.get("ciphertext"), "ciphertext"),
            ephemeral_public_key=ephemeral,
            iv=_b64decode(data.get("iv"), "iv"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: str) -> "EncryptedEnvelope":
        try:
            return cls.from_dict(json.loads(text))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid envelope JSON: {exc}") from exc


# ============================================================================
# SUBMISSION RECORDS
# ============================================================================


class SubmissionStatus(Enum):
    """Moderation status of a stored submission."""

    PENDING = "pending"
    REVIEWED = "reviewed"
    ARCHIVED = "archived"


_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_submission_id(now: Optional[float] = None) -> str:
    """Record id of the form ``report_<unix-ms>_<random>``."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"report_{millis}_{suffix}"


@dataclass(frozen=True)
class SubmissionRecord:
    """
    Accepted submission.

    Attributes:
        id: Record identifier
        encrypted_data: Payload only the recipient can read
        proof: Proof envelope the submission was accepted with
        timestamp: Unix seconds when the record was created
        status: Moderation status (always created as PENDING)
    """

    id: str
    encrypted_data: EncryptedEnvelope
    proof: ProofEnvelope
    timestamp: float = field(default_factory=time.time)
    status: SubmissionStatus = SubmissionStatus.PENDING

    @property
    def epoch(self) -> int:
        return self.proof.epoch

    @property
    def nullifier(self) -> FieldElement:
        return self.proof.nullifier

    def with_status(self, status: SubmissionStatus) -> "SubmissionRecord":
        return replace(self, status=SubmissionStatus(status))

    def to_persisted(self) -> Dict[str, Any]:
        """Storage shape handed to persistence backends."""
        return {
            "id": self.id,
            "encryptedData": self.encrypted_data.to_json(),
            "proofPublicSignals": list(self.proof.public_signals),
            "timestamp": int(self.timestamp * 1000),
            "status": self.status.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "encryptedData": self.encrypted_data.to_dict(),
            "proof": self.proof.to_dict(),
            "timestamp": self.timestamp,
            "status": self.status.value,
        }

    def serialize(self) -> bytes:
        """
        Serialize the record to CBOR.

        Raises:
            SerializationError: If encoding fails
        """
        try:
            data = {
                "v": RECORD_VERSION,
                "id": self.id,
                "e": self.encrypted_data.to_dict(),
                "p": self.proof.serialize(),
                "ts": self.timestamp,
                "st": self.status.value,
            }
            return cbor2.dumps(data)
        except SerializationError:
            raise
        except Exception as e:
            raise SerializationError(f"Failed to serialize record: {e}")

    @classmethod
    def deserialize(cls, data: bytes) -> "SubmissionRecord":
        """
        Raises:
            ValueError: If version is unsupported or fields are missing
            SerializationError: If decoding fails
        """
        try:
            obj = cbor2.loads(data)
        except Exception as e:
            raise SerializationError(f"Failed to deserialize record: {e}")

        if not isinstance(obj, dict):
            raise ValueError("Invalid record format: missing required fields")

        version = obj.get("v", 1)
        if version != RECORD_VERSION:
            raise ValueError(
                f"Unsupported record version: {version} (expected {RECORD_VERSION})"
            )

        if not {"id", "e", "p"} <= obj.keys():
            raise ValueError("Invalid record format: missing required fields")

        return cls(
            id=obj["id"],
            encrypted_data=EncryptedEnvelope.from_dict(obj["e"]),
            proof=ProofEnvelope.deserialize(obj["p"]),
            timestamp=obj.get("ts", time.time()),
            status=SubmissionStatus(obj.get("st", SubmissionStatus.PENDING.value)),
        )
