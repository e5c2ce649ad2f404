"""
⚠️ DRAFT — requires crypto review before production use

Epoch-scoped nullifiers and replay detection.

A nullifier ``H([secret, epoch])`` is unique per (identity, epoch) and
unlinkable across epochs. The store accepts a nullifier at most once per
epoch; the check and the insert happen under a single lock.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from .config import DEFAULT_EPOCH_DURATION_SECONDS, DEFAULT_NULLIFIER_RETENTION_EPOCHS
from .exceptions import InvalidEpochError
from .field import FieldElement, IntLike, to_field
from .hashing import HashFunction, default_hasher

logger = logging.getLogger(__name__)


# ============================================================================
# EPOCHS
# ============================================================================


def current_epoch(
    now: Optional[float] = None,
    epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS,
) -> int:
    """
    Epoch index for a wall-clock time.

    Args:
        now: Unix timestamp in seconds (defaults to the current time)
        epoch_duration_seconds: Epoch length

    Returns:
        floor(now / epoch_duration_seconds)

    Raises:
        InvalidEpochError: If the duration is not positive or now is negative
    """
    if isinstance(epoch_duration_seconds, bool) or not isinstance(
        epoch_duration_seconds, int
    ):
        raise InvalidEpochError("epoch duration must be an integer")
    if epoch_duration_seconds <= 0:
        raise InvalidEpochError(
            f"epoch duration must be positive, got {epoch_duration_seconds}"
        )
    if now is None:
        now = time.time()
    if now < 0:
        raise InvalidEpochError(f"timestamp must be non-negative, got {now}")
    return int(now // epoch_duration_seconds)


def epoch_bounds(
    epoch: int, epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS
) -> tuple[int, int]:
    """Start (inclusive) and end (exclusive) Unix seconds of an epoch."""
    validate_epoch(epoch)
    start = epoch * epoch_duration_seconds
    return start, start + epoch_duration_seconds


def format_epoch(
    epoch: int, epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS
) -> str:
    """Human-readable epoch label, e.g. ``Epoch 19876 (2024-06-02)``."""
    start, _ = epoch_bounds(epoch, epoch_duration_seconds)
    day = datetime.fromtimestamp(start, tz=timezone.utc).strftime("%Y-%m-%d")
    return f"Epoch {epoch} ({day})"


def validate_epoch(epoch: int) -> int:
    """
    Check an epoch value.

    Raises:
        InvalidEpochError: If epoch is not a non-negative integer
    """
    if isinstance(epoch, bool) or not isinstance(epoch, int):
        raise InvalidEpochError(f"epoch must be an integer, got {type(epoch).__name__}")
    if epoch < 0:
        raise InvalidEpochError(f"epoch must be non-negative, got {epoch}")
    return epoch


# ============================================================================
# NULLIFIERS
# ============================================================================


def derive_nullifier(
    secret: IntLike, epoch: int, hasher: Optional[HashFunction] = None
) -> FieldElement:
    """
    Nullifier for an identity secret in an epoch.

    Raises:
        InvalidEpochError: If the epoch is invalid
    """
    hasher = hasher or default_hasher()
    validate_epoch(epoch)
    return hasher.hash([to_field(secret), FieldElement.reduce(epoch)])


def short_nullifier(nullifier: FieldElement) -> str:
    """Truncated form for log lines."""
    return nullifier.to_hex()[:12] + "..."


class NullifierStore(ABC):
    """Replay registry keyed on (epoch, nullifier)."""

    @abstractmethod
    def register_if_unused(self, nullifier: FieldElement, epoch: int) -> bool:
        """
        Atomically record a nullifier.

        Returns:
            True if the nullifier was unused and is now registered,
            False if it was already present for the epoch
        """

    @abstractmethod
    def is_used(self, nullifier: FieldElement, epoch: int) -> bool:
        """Whether the nullifier is registered for the epoch."""

    @abstractmethod
    def release(self, nullifier: FieldElement, epoch: int) -> None:
        """Undo a registration whose submission was not committed."""

    @abstractmethod
    def prune(self, current: int, retention_epochs: Optional[int] = None) -> int:
        """
        Drop epochs at or before ``current - retention_epochs``.

        Returns:
            Number of entries removed
        """


class InMemoryNullifierStore(NullifierStore):
    """
    Process-local nullifier store.

    Safe to share between threads and trio tasks: every operation holds the
    same lock, so concurrent registrations of one nullifier see exactly one
    winner.
    """

    def __init__(self, retention_epochs: int = DEFAULT_NULLIFIER_RETENTION_EPOCHS):
        if retention_epochs < 1:
            raise ValueError("retention_epochs must be >= 1")
        self._retention_epochs = retention_epochs
        self._lock = threading.Lock()
        self._entries: Dict[int, Set[int]] = {}

    def register_if_unused(self, nullifier: FieldElement, epoch: int) -> bool:
        validate_epoch(epoch)
        key = to_field(nullifier).value
        with self._lock:
            used = self._entries.setdefault(epoch, set())
            if key in used:
                logger.debug(
                    "Duplicate nullifier %s in epoch %d", short_nullifier(nullifier), epoch
                )
                return False
            used.add(key)
        return True

    def is_used(self, nullifier: FieldElement, epoch: int) -> bool:
        key = to_field(nullifier).value
        with self._lock:
            return key in self._entries.get(epoch, ())

    def release(self, nullifier: FieldElement, epoch: int) -> None:
        key = to_field(nullifier).value
        with self._lock:
            used = self._entries.get(epoch)
            if used is not None:
                used.discard(key)
                if not used:
                    del self._entries[epoch]
        logger.debug(
            "Released nullifier %s in epoch %d", short_nullifier(nullifier), epoch
        )

    def prune(self, current: int, retention_epochs: Optional[int] = None) -> int:
        cutoff = current - (retention_epochs or self._retention_epochs)
        removed = 0
        with self._lock:
            for epoch in [e for e in self._entries if e <= cutoff]:
                removed += len(self._entries.pop(epoch))
        if removed:
            logger.info("Pruned %d nullifiers at or before epoch %d", removed, cutoff)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return sum(len(used) for used in self._entries.values())
