"""
⚠️ DRAFT — requires crypto review before production use

Security utilities for cryptographic operations.

This is a PROTOTYPE implementation for testing and validation.
DO NOT use in production without security audit.
"""

import hashlib
import hmac
import os
import secrets
from typing import Optional

from .config import FIELD_MODULUS
from .exceptions import EntropySourceError


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    Prevents catastrophic randomness reuse if process forks.

    Example:
        >>> rng = RandomnessSource()
        >>> scalar = rng.get_random_field_scalar()
        >>> # After fork, RNG automatically reinitializes
    """

    def __init__(self):
        """Initialize randomness source with fork detection."""
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def _check_fork(self) -> None:
        if os.getpid() != self._pid:
            self.__init__()

    def get_random_scalar(self, low: int, high: int) -> int:
        """
        Get random scalar in [low, high).

        Raises:
            ValueError: If the range is empty
            EntropySourceError: If the OS randomness source fails
        """
        if high <= low:
            raise ValueError(f"empty range [{low}, {high})")
        self._check_fork()
        try:
            return self._rng.randrange(low, high)
        except (OSError, NotImplementedError) as exc:
            raise EntropySourceError("secure randomness unavailable") from exc

    def get_random_bytes(self, n: int) -> bytes:
        """
        Get n cryptographically secure random bytes.

        Raises:
            EntropySourceError: If the OS randomness source fails
        """
        self._check_fork()
        try:
            return secrets.token_bytes(n)
        except (OSError, NotImplementedError) as exc:
            raise EntropySourceError("secure randomness unavailable") from exc

    def get_random_field_scalar(self) -> int:
        """
        Get a non-zero random field scalar.

        Returns:
            Random scalar in [1, FIELD_MODULUS)
        """
        return self.get_random_scalar(1, FIELD_MODULUS)


_default_source: Optional[RandomnessSource] = None


def default_randomness() -> RandomnessSource:
    """Return the process-wide randomness source."""
    global _default_source
    if _default_source is None:
        _default_source = RandomnessSource()
    return _default_source


# ============================================================================
# HASH FUNCTIONS
# ============================================================================


def hash_to_field(data: bytes, domain_sep: Optional[bytes] = None) -> int:
    """
    Hash data to a field scalar with SHA3-256 and domain separation.

    Args:
        data: Data to hash (must be non-empty)
        domain_sep: Optional domain separator

    Returns:
        Scalar in [0, FIELD_MODULUS)

    Raises:
        ValueError: If data is empty
        TypeError: If inputs are wrong type

    Security Note:
        Uses modulo reduction which introduces slight bias.
    """
    if not isinstance(data, bytes):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if not data:
        raise ValueError("Data cannot be empty")

    h = hashlib.sha3_256()
    if domain_sep:
        if not isinstance(domain_sep, bytes):
            raise TypeError(f"domain_sep must be bytes, got {type(domain_sep)}")
        h.update(len(domain_sep).to_bytes(4, "big"))
        h.update(domain_sep)
    h.update(data)

    return int.from_bytes(h.digest(), "big") % FIELD_MODULUS


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if a == b, False otherwise
    """
    return hmac.compare_digest(a, b)
