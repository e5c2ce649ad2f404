"""Proof envelope verification facade."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Mapping, Optional, Union

from ..config import (
    DEFAULT_EPOCH_DURATION_SECONDS,
    FIELD_HEX_DIGITS,
    FIELD_MODULUS,
    PROOF_CURVE,
    PROOF_PROTOCOL,
    PUBLIC_SIGNAL_COUNT,
)
from ..exceptions import InvalidEpochError
from ..nullifier import current_epoch
from ..types import ProofEnvelope
from .interfaces import ProofBackend

logger = logging.getLogger(__name__)

_HEX_SCALAR = re.compile(rf"^0x[0-9a-fA-F]{{{FIELD_HEX_DIGITS}}}$")

EnvelopeLike = Union[ProofEnvelope, Mapping[str, Any]]


def _coerce(envelope: EnvelopeLike) -> ProofEnvelope | None:
    if isinstance(envelope, ProofEnvelope):
        return envelope
    if isinstance(envelope, Mapping):
        try:
            return ProofEnvelope.from_dict(dict(envelope))
        except ValueError:
            return None
    return None


def _is_pair(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 2


def check_structure(envelope: ProofEnvelope) -> bool:
    """(a) Element counts and protocol/curve tags."""
    if not (_is_pair(envelope.pi_a) and _is_pair(envelope.pi_c)):
        return False
    if not _is_pair(envelope.pi_b) or not all(_is_pair(row) for row in envelope.pi_b):
        return False
    signals = envelope.public_signals
    if not isinstance(signals, (list, tuple)) or len(signals) != PUBLIC_SIGNAL_COUNT:
        return False
    return envelope.protocol == PROOF_PROTOCOL and envelope.curve == PROOF_CURVE


def _is_hex_scalar(value: Any) -> bool:
    if not isinstance(value, str) or not _HEX_SCALAR.match(value):
        return False
    return int(value, 16) < FIELD_MODULUS


def check_elements(envelope: ProofEnvelope) -> bool:
    """(b) Every proof element is a fixed-length hex scalar in the field."""
    elements = list(envelope.pi_a) + [v for row in envelope.pi_b for v in row]
    elements += list(envelope.pi_c)
    return all(_is_hex_scalar(value) for value in elements)


def _is_decimal_scalar(value: Any) -> bool:
    return (
        isinstance(value, str)
        and value.isascii()
        and value.isdigit()
        and int(value) < FIELD_MODULUS
    )


def check_signals(envelope: ProofEnvelope) -> bool:
    """(c) Epoch is a non-negative integer; root, nullifier, signal hash present."""
    root, epoch, nullifier, signal_hash = envelope.public_signals
    if not (isinstance(epoch, str) and epoch.isascii() and epoch.isdigit()):
        return False
    return all(_is_decimal_scalar(value) for value in (root, nullifier, signal_hash))


def verify_envelope(
    envelope: EnvelopeLike, backend: Optional[ProofBackend] = None
) -> bool:
    """
    Verify a proof envelope.

    Checks run in order: structure, element encoding, signal sanity, then
    the backend's proof relation. Malformed input of any kind yields False.

    Args:
        envelope: ProofEnvelope or its JSON mapping
        backend: Proof backend (defaults to the flagged backend)

    Returns:
        True if every check passes
    """
    proof = _coerce(envelope)
    if proof is None:
        logger.debug("Proof rejected: unreadable envelope")
        return False

    for step, check in (
        ("structure", check_structure),
        ("elements", check_elements),
        ("signals", check_signals),
    ):
        if not check(proof):
            logger.debug("Proof rejected at %s check", step)
            return False

    try:
        if backend is None:
            from ..factory import get_proof_backend

            backend = get_proof_backend()
        result = bool(backend.verify(proof))
    except Exception as exc:
        logger.debug("Proof rejected by backend: %s", exc)
        return False

    if not result:
        logger.debug("Proof rejected at relation check")
    return result


def check_freshness(
    envelope: EnvelopeLike,
    issued_at: float,
    now: Optional[float] = None,
    epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS,
) -> bool:
    """
    Reject stale or future-dated proofs.

    A proof is fresh when its issue time is neither in the future nor more
    than one epoch-duration old, and its epoch is the current or previous
    epoch.
    """
    proof = _coerce(envelope)
    if proof is None:
        return False
    if now is None:
        now = time.time()

    try:
        if issued_at > now or now - issued_at > epoch_duration_seconds:
            return False
        epoch = proof.epoch
        current = current_epoch(now, epoch_duration_seconds)
    except (TypeError, ValueError, IndexError, InvalidEpochError):
        return False

    return current - 1 <= epoch <= current
