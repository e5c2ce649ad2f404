"""Runtime configuration for the submission pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .config import (
    DEFAULT_EPOCH_DURATION_SECONDS,
    DEFAULT_EPOCH_TOLERANCE,
    DEFAULT_NULLIFIER_RETENTION_EPOCHS,
)
from .exceptions import ConfigurationError
from .feature_flags import get_hash_backend_type, get_proof_backend_type

ENV_PREFIX = "ANON_INBOX_"
DEFAULT_PERSIST_TIMEOUT = 10.0


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class PipelineConfig:
    """
    Pipeline settings.

    Attributes:
        epoch_duration_seconds: Epoch length
        epoch_tolerance: Accepted distance between request and current epoch
        retention_epochs: Nullifier retention horizon
        persist_timeout: Seconds allowed for the record sink
        proof_backend: Proof backend name (None = feature flag)
        hash_backend: Hash backend name (None = feature flag)
    """

    epoch_duration_seconds: int = DEFAULT_EPOCH_DURATION_SECONDS
    epoch_tolerance: int = DEFAULT_EPOCH_TOLERANCE
    retention_epochs: int = DEFAULT_NULLIFIER_RETENTION_EPOCHS
    persist_timeout: float = DEFAULT_PERSIST_TIMEOUT
    proof_backend: Optional[str] = None
    hash_backend: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not _is_int(self.epoch_duration_seconds) or self.epoch_duration_seconds <= 0:
            raise ConfigurationError("epoch_duration_seconds must be a positive integer")
        if not _is_int(self.epoch_tolerance) or self.epoch_tolerance < 0:
            raise ConfigurationError("epoch_tolerance must be a non-negative integer")
        if not _is_int(self.retention_epochs) or self.retention_epochs < 1:
            raise ConfigurationError("retention_epochs must be >= 1")
        # nullifiers must outlive every epoch a proof can still be accepted in
        if self.retention_epochs < max(2, self.epoch_tolerance + 1):
            raise ConfigurationError(
                "retention_epochs must cover the previous epoch and the epoch tolerance"
            )
        if not _is_number(self.persist_timeout) or self.persist_timeout <= 0:
            raise ConfigurationError("persist_timeout must be positive")
        try:
            get_proof_backend_type(self.proof_backend)
            get_hash_backend_type(self.hash_backend)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """
        Build a config from a mapping, ignoring nothing silently.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PipelineConfig":
        """
        Load a config from a YAML file.

        An optional top-level ``pipeline`` section is unwrapped.
        """
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except OSError as exc:
            raise ConfigurationError(f"cannot read config {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML in {path}: {exc}") from exc
        if isinstance(data, Mapping) and "pipeline" in data:
            data = data["pipeline"]
        return cls.from_mapping(data)

    def with_env_overrides(
        self, environ: Optional[Mapping[str, str]] = None
    ) -> "PipelineConfig":
        """Apply ``ANON_INBOX_<FIELD>`` environment overrides."""
        environ = os.environ if environ is None else environ
        updates: dict[str, Any] = {}
        for f in fields(self):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            current = getattr(self, f.name)
            try:
                if f.name == "persist_timeout":
                    updates[f.name] = float(raw)
                elif isinstance(current, int) and not isinstance(current, bool):
                    updates[f.name] = int(raw)
                else:
                    updates[f.name] = raw
            except ValueError as exc:
                raise ConfigurationError(
                    f"invalid value for {ENV_PREFIX + f.name.upper()}: {raw!r}"
                ) from exc
        return replace(self, **updates) if updates else self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        return cls().with_env_overrides(environ)
