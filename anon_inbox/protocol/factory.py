"""
Prototype backend factory for proof systems and field hashes.

WARNING: This is prototype infrastructure. Backend choice affects security
assumptions and does not provide any security guarantee. The reference
backends are for testing only and must not be used in production.
"""

from __future__ import annotations

import importlib
from typing import Final

from .feature_flags import get_hash_backend_type, get_proof_backend_type
from .hashing import HASH_REGISTRY, HashFunction
from .proofs.interfaces import ProofBackend

BACKEND_REGISTRY: Final[dict[str, str]] = {
    "reference": "anon_inbox.protocol.proofs.reference.ReferenceProofBackend",
    # future:
    # "groth16": "anon_inbox.protocol.proofs.groth16.Groth16Backend",
}


def _format_valid_options(registry) -> str:
    return ", ".join(sorted(registry.keys()))


def _normalize_name(value: str | None, registry, *, source: str) -> str | None:
    if value is None or value == "":
        return None

    if not isinstance(value, str) or value not in registry:
        raise ValueError(
            f"Invalid backend name from {source}: {value!r}. "
            f"Valid options: {_format_valid_options(registry)}"
        )

    return value


def _load_backend_class(backend_name: str) -> type[ProofBackend]:
    import_path = BACKEND_REGISTRY[backend_name]
    module_path, _, class_name = import_path.rpartition(".")
    if not module_path or not class_name:
        raise ValueError(
            f"Invalid backend import path for {backend_name!r}: {import_path!r}"
        )

    try:
        module = importlib.import_module(module_path)
    except ModuleNotFoundError as exc:
        raise ImportError(
            f"Unable to import backend module {module_path!r} for {backend_name!r}"
        ) from exc

    try:
        backend_cls = getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(
            f"Backend class {class_name!r} not found in module {module_path!r}"
        ) from exc

    if not isinstance(backend_cls, type) or not issubclass(backend_cls, ProofBackend):
        raise TypeError(
            f"Backend reference {import_path!r} does not implement ProofBackend"
        )

    return backend_cls


def get_hash_function(
    *, prefer: str | None = None, override: str | None = None
) -> HashFunction:
    """
    Return a hash function instance based on feature flags.

    Raises:
        ValueError: If a hash name is invalid.
    """
    name = _normalize_name(override, HASH_REGISTRY, source="override")
    if name is None:
        name = _normalize_name(prefer, HASH_REGISTRY, source="prefer")
    if name is None:
        name = get_hash_backend_type()
    return HASH_REGISTRY[name]()


def get_proof_backend(
    *,
    prefer: str | None = None,
    override: str | None = None,
    hasher: HashFunction | None = None,
) -> ProofBackend:
    """
    Return a proof backend instance based on feature flags.

    Args:
        prefer: Optional backend name hint.
        override: Optional backend name override (testing only).
        hasher: Hash function the backend derives proof elements with.

    Returns:
        ProofBackend: New backend instance.

    Raises:
        ValueError: If a backend name is invalid.
        ImportError: If the backend class cannot be imported.
        TypeError: If the backend class does not implement ProofBackend.
    """
    name = _normalize_name(override, BACKEND_REGISTRY, source="override")
    if name is None:
        name = _normalize_name(prefer, BACKEND_REGISTRY, source="prefer")
    if name is None:
        name = get_proof_backend_type()

    backend_cls = _load_backend_class(name)
    return backend_cls(hasher=hasher)
