"""
⚠️ DRAFT — requires crypto review before production use

Field hash primitive.

Every commitment, Merkle node, nullifier and proof element is produced by a
``HashFunction``: a deterministic, order-sensitive map from a sequence of
field elements to one field element.

Two implementations are registered:

- ``mixing``: arithmetic stand-in with the circuit-friendly shape of
  Poseidon (x^5 S-box, weighted absorption, linear mixing rounds).
  It is NOT collision resistant and must be replaced by a real Poseidon
  before any deployment.
- ``sha3``: SHA3-256 over length-prefixed field encodings, reduced into
  the field. Collision resistant, but not circuit friendly.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from .config import (
    DOMAIN_SEPARATORS,
    MESSAGE_HASH_BYTES,
    MIXING_ROUND_MULTIPLIER,
    MIXING_ROUNDS,
    MIXING_SBOX_EXPONENT,
)
from .field import FieldElement, IntLike, to_field
from .security import hash_to_field


class HashFunction(ABC):
    """Abstract field hash."""

    name: str = "abstract"

    @abstractmethod
    def hash(self, inputs: Sequence[FieldElement]) -> FieldElement:
        """Hash an ordered sequence of field elements."""

    def __call__(self, inputs: Iterable[IntLike]) -> FieldElement:
        return self.hash([to_field(value) for value in inputs])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class MixingHash(HashFunction):
    """
    Reference arithmetic hash.

    Each input is weighted by its 1-based position and absorbed through the
    x^5 S-box; the state then runs through linear mixing rounds. The input
    count seeds the state so ``[0]`` and ``[0, 0]`` differ.
    """

    name = "mixing"

    def hash(self, inputs: Sequence[FieldElement]) -> FieldElement:
        state = FieldElement.reduce(len(inputs))
        for position, value in enumerate(inputs, start=1):
            state = state + value * position
            state = state**MIXING_SBOX_EXPONENT

        for round_index in range(MIXING_ROUNDS):
            state = state * MIXING_ROUND_MULTIPLIER + round_index

        return state


class Sha3FieldHash(HashFunction):
    """SHA3-256 field hash with domain separation."""

    name = "sha3"

    def hash(self, inputs: Sequence[FieldElement]) -> FieldElement:
        encoded = len(inputs).to_bytes(4, "big") + b"".join(
            value.to_bytes() for value in inputs
        )
        return FieldElement(
            hash_to_field(encoded, domain_sep=DOMAIN_SEPARATORS["field_hash"])
        )


HASH_REGISTRY: dict[str, type[HashFunction]] = {
    MixingHash.name: MixingHash,
    Sha3FieldHash.name: Sha3FieldHash,
}

DEFAULT_HASH = MixingHash.name


def default_hasher() -> HashFunction:
    """Return the hash function selected by feature flags."""
    from .factory import get_hash_function

    return get_hash_function()


# ============================================================================
# MESSAGE BINDING
# ============================================================================


def hash_message(message: bytes | str) -> FieldElement:
    """
    Map an arbitrary message to a field element.

    SHA-256 digest truncated to 31 bytes so the integer always fits the field.
    """
    if isinstance(message, str):
        message = message.encode("utf-8")
    if not isinstance(message, (bytes, bytearray)):
        raise TypeError(f"message must be bytes or str, got {type(message)}")
    digest = hashlib.sha256(message).digest()
    return FieldElement(int.from_bytes(digest[:MESSAGE_HASH_BYTES], "big"))


def compute_signal_hash(
    payload: bytes | str, hasher: HashFunction | None = None
) -> FieldElement:
    """Signal hash binding a proof to its payload: ``H([hash_message(payload)])``."""
    hasher = hasher or default_hasher()
    return hasher.hash([hash_message(payload)])
