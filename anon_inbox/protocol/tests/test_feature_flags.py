"""
Unit tests for feature flag backend selection.
"""

import pytest

from anon_inbox.protocol import feature_flags


@pytest.fixture(autouse=True)
def reset_feature_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    feature_flags.set_proof_backend_type(None)
    feature_flags.set_hash_backend_type(None)
    monkeypatch.delenv(feature_flags.PROOF_BACKEND_ENV_VAR, raising=False)
    monkeypatch.delenv(feature_flags.HASH_BACKEND_ENV_VAR, raising=False)
    yield
    feature_flags.set_proof_backend_type(None)
    feature_flags.set_hash_backend_type(None)


def test_defaults() -> None:
    assert feature_flags.get_proof_backend_type() == "reference"
    assert feature_flags.get_hash_backend_type() == "mixing"


def test_env_var_controls_hash_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANON_INBOX_HASH_BACKEND", "sha3")
    assert feature_flags.get_hash_backend_type() == "sha3"


def test_prefer_overrides_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANON_INBOX_HASH_BACKEND", "sha3")
    assert feature_flags.get_hash_backend_type(prefer="mixing") == "mixing"


def test_override_beats_env_and_clears(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANON_INBOX_HASH_BACKEND", "mixing")
    feature_flags.set_hash_backend_type("sha3")
    assert feature_flags.get_hash_backend_type() == "sha3"
    feature_flags.set_hash_backend_type(None)
    assert feature_flags.get_hash_backend_type() == "mixing"


def test_empty_string_clears_override() -> None:
    feature_flags.set_hash_backend_type("sha3")
    feature_flags.set_hash_backend_type("")
    assert feature_flags.get_hash_backend_type() == "mixing"


def test_empty_env_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANON_INBOX_PROOF_BACKEND", "")
    assert feature_flags.get_proof_backend_type() == "reference"


def test_invalid_prefer_raises_value_error() -> None:
    with pytest.raises(ValueError, match="Invalid proof backend"):
        feature_flags.get_proof_backend_type(prefer="groth16")


def test_invalid_env_raises_value_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANON_INBOX_HASH_BACKEND", "poseidon")
    with pytest.raises(ValueError, match="Invalid hash backend"):
        feature_flags.get_hash_backend_type()


def test_invalid_override_raises_value_error() -> None:
    with pytest.raises(ValueError, match="Invalid hash backend"):
        feature_flags.set_hash_backend_type("md5")
