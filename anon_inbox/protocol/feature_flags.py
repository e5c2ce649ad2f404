"""
Prototype feature flags for selecting the proof and hash backends.

WARNING: This is prototype code and backend selection affects security assumptions.
"""

from __future__ import annotations

import os
from typing import Final

_VALID_PROOF_BACKENDS: Final[tuple[str, ...]] = ("reference",)
_DEFAULT_PROOF_BACKEND: Final[str] = "reference"
PROOF_BACKEND_ENV_VAR: Final[str] = "ANON_INBOX_PROOF_BACKEND"

_VALID_HASH_BACKENDS: Final[tuple[str, ...]] = ("mixing", "sha3")
_DEFAULT_HASH_BACKEND: Final[str] = "mixing"
HASH_BACKEND_ENV_VAR: Final[str] = "ANON_INBOX_HASH_BACKEND"

_proof_backend_override: str | None = None
_hash_backend_override: str | None = None


def _normalize(value: str | None, valid: tuple[str, ...], kind: str) -> str | None:
    if value is None:
        return None

    if not isinstance(value, str) or (value and value not in valid):
        raise ValueError(
            f"Invalid {kind} backend: {value!r}. Valid options: {', '.join(valid)}"
        )

    if value == "":
        return None

    return value


def _resolve(
    prefer: str | None,
    override: str | None,
    env_var: str,
    valid: tuple[str, ...],
    default: str,
    kind: str,
) -> str:
    preferred = _normalize(prefer, valid, kind)
    if preferred is not None:
        return preferred

    if override is not None:
        return override

    env_backend = _normalize(os.getenv(env_var), valid, kind)
    if env_backend is not None:
        return env_backend

    return default


def get_proof_backend_type(prefer: str | None = None) -> str:
    """
    Resolve the proof backend in precedence order.

    Args:
        prefer: Optional preferred backend type.

    Returns:
        Backend type string.

    Raises:
        ValueError: If a provided backend value is invalid.
    """
    return _resolve(
        prefer,
        _proof_backend_override,
        PROOF_BACKEND_ENV_VAR,
        _VALID_PROOF_BACKENDS,
        _DEFAULT_PROOF_BACKEND,
        "proof",
    )


def get_hash_backend_type(prefer: str | None = None) -> str:
    """Resolve the hash backend in precedence order."""
    return _resolve(
        prefer,
        _hash_backend_override,
        HASH_BACKEND_ENV_VAR,
        _VALID_HASH_BACKENDS,
        _DEFAULT_HASH_BACKEND,
        "hash",
    )


def set_proof_backend_type(value: str | None) -> None:
    """
    Set in-memory proof backend override (testing only).

    Args:
        value: Backend type to force, or None to clear the override.

    Raises:
        ValueError: If the value is invalid.
    """
    global _proof_backend_override
    _proof_backend_override = _normalize(value, _VALID_PROOF_BACKENDS, "proof")


def set_hash_backend_type(value: str | None) -> None:
    """Set in-memory hash backend override (testing only)."""
    global _hash_backend_override
    _hash_backend_override = _normalize(value, _VALID_HASH_BACKENDS, "hash")
