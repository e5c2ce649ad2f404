"""
⚠️ DRAFT — requires crypto review before production use

Submitter identities and their public commitments.

The secret never leaves the submitter; only ``commitment = H([secret])``
is registered with the group.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .field import FieldElement, IntLike, to_field
from .hashing import HashFunction, default_hasher
from .security import RandomnessSource, default_randomness


@dataclass(frozen=True)
class Identity:
    """
    Anonymous identity.

    Attributes:
        secret: Private scalar in [1, p)
        commitment: Public commitment H([secret])
    """

    secret: FieldElement = field(repr=False)
    commitment: FieldElement

    def __post_init__(self) -> None:
        if not isinstance(self.secret, FieldElement) or not isinstance(
            self.commitment, FieldElement
        ):
            raise TypeError("secret and commitment must be FieldElement")
        if self.secret.value == 0:
            raise ValueError("identity secret must be non-zero")

    @classmethod
    def from_secret(
        cls, secret: IntLike, hasher: Optional[HashFunction] = None
    ) -> "Identity":
        """Rebuild an identity from a stored secret."""
        hasher = hasher or default_hasher()
        secret_fe = to_field(secret)
        return cls(secret=secret_fe, commitment=hasher.hash([secret_fe]))

    def matches(self, hasher: Optional[HashFunction] = None) -> bool:
        """Check that the commitment was derived from the secret."""
        hasher = hasher or default_hasher()
        return hasher.hash([self.secret]) == self.commitment

    def to_dict(self) -> Dict[str, Any]:
        """Public view; the secret is never included."""
        return {"commitment": self.commitment.to_hex()}


def generate_identity(
    hasher: Optional[HashFunction] = None,
    rng: Optional[RandomnessSource] = None,
) -> Identity:
    """
    Create a fresh identity.

    Args:
        hasher: Hash used for the commitment (defaults to the flagged backend)
        rng: Randomness source (defaults to the process-wide source)

    Returns:
        Identity with a random non-zero secret

    Raises:
        EntropySourceError: If secure randomness is unavailable
    """
    rng = rng or default_randomness()
    secret = FieldElement(rng.get_random_field_scalar())
    return Identity.from_secret(secret, hasher=hasher)
