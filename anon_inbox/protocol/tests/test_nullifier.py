"""
Unit tests for epochs, nullifiers and the nullifier store.
"""

import threading

import pytest
import trio

from anon_inbox.protocol.exceptions import InvalidEpochError
from anon_inbox.protocol.field import FieldElement
from anon_inbox.protocol.hashing import MixingHash
from anon_inbox.protocol.nullifier import (
    InMemoryNullifierStore,
    NullifierStore,
    current_epoch,
    derive_nullifier,
    epoch_bounds,
    format_epoch,
)

HASHER = MixingHash()


class TestEpochs:
    """Test epoch arithmetic."""

    def test_floor_division(self):
        assert current_epoch(0) == 0
        assert current_epoch(86399) == 0
        assert current_epoch(86400) == 1
        assert current_epoch(19876 * 86400 + 5) == 19876

    def test_custom_duration(self):
        assert current_epoch(3600 * 5 + 1, epoch_duration_seconds=3600) == 5

    def test_defaults_to_now(self):
        assert current_epoch() > 19000

    @pytest.mark.parametrize("duration", [0, -5, 1.5])
    def test_invalid_duration(self, duration):
        with pytest.raises(InvalidEpochError):
            current_epoch(100, epoch_duration_seconds=duration)

    def test_negative_time(self):
        with pytest.raises(InvalidEpochError):
            current_epoch(-1)

    def test_bounds_and_format(self):
        assert epoch_bounds(2, 100) == (200, 300)
        assert format_epoch(19876) == "Epoch 19876 (2024-06-02)"


class TestDeriveNullifier:
    """Test nullifier derivation."""

    def test_deterministic(self):
        secret = FieldElement(123)
        assert derive_nullifier(secret, 7, HASHER) == derive_nullifier(secret, 7, HASHER)

    def test_is_hash_of_secret_and_epoch(self):
        secret = FieldElement(123)
        expected = HASHER.hash([secret, FieldElement(7)])
        assert derive_nullifier(secret, 7, HASHER) == expected

    def test_differs_across_epochs_and_identities(self):
        secret = FieldElement(123)
        assert derive_nullifier(secret, 7, HASHER) != derive_nullifier(secret, 8, HASHER)
        assert derive_nullifier(secret, 7, HASHER) != derive_nullifier(124, 7, HASHER)

    @pytest.mark.parametrize("epoch", [-1, "7", True])
    def test_invalid_epoch(self, epoch):
        with pytest.raises(InvalidEpochError):
            derive_nullifier(123, epoch, HASHER)


class TestInMemoryNullifierStore:
    """Test registration, release and pruning."""

    def test_implements_interface(self):
        assert isinstance(InMemoryNullifierStore(), NullifierStore)

    def test_register_once(self):
        store = InMemoryNullifierStore()
        nullifier = FieldElement(99)
        assert store.register_if_unused(nullifier, 5) is True
        assert store.register_if_unused(nullifier, 5) is False
        assert store.is_used(nullifier, 5)

    def test_keyed_on_epoch(self):
        store = InMemoryNullifierStore()
        nullifier = FieldElement(99)
        assert store.register_if_unused(nullifier, 5)
        assert store.register_if_unused(nullifier, 6)
        assert len(store) == 2

    def test_release_allows_reuse(self):
        store = InMemoryNullifierStore()
        nullifier = FieldElement(99)
        store.register_if_unused(nullifier, 5)
        store.release(nullifier, 5)
        assert not store.is_used(nullifier, 5)
        assert store.register_if_unused(nullifier, 5)

    def test_release_unknown_is_noop(self):
        store = InMemoryNullifierStore()
        store.release(FieldElement(1), 3)
        assert len(store) == 0

    def test_prune_respects_retention(self):
        store = InMemoryNullifierStore(retention_epochs=2)
        for epoch in (1, 2, 3, 4):
            store.register_if_unused(FieldElement(epoch), epoch)
        assert store.prune(4) == 2
        assert not store.is_used(FieldElement(2), 2)
        assert store.is_used(FieldElement(3), 3)
        assert store.is_used(FieldElement(4), 4)

    def test_prune_with_explicit_retention(self):
        store = InMemoryNullifierStore(retention_epochs=2)
        for epoch in (1, 2, 3, 4):
            store.register_if_unused(FieldElement(epoch), epoch)
        assert store.prune(4, retention_epochs=3) == 1
        assert store.is_used(FieldElement(2), 2)

    def test_invalid_retention(self):
        with pytest.raises(ValueError):
            InMemoryNullifierStore(retention_epochs=0)

    def test_concurrent_threads_single_winner(self):
        store = InMemoryNullifierStore()
        nullifier = FieldElement(2024)
        results = []
        barrier = threading.Barrier(16)

        def _register():
            barrier.wait()
            results.append(store.register_if_unused(nullifier, 1))

        threads = [threading.Thread(target=_register) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert results.count(False) == 15

    @pytest.mark.trio
    async def test_concurrent_tasks_single_winner(self):
        store = InMemoryNullifierStore()
        nullifier = FieldElement(77)
        results = []

        async def _register():
            await trio.sleep(0)
            results.append(
                await trio.to_thread.run_sync(store.register_if_unused, nullifier, 9)
            )

        async with trio.open_nursery() as nursery:
            for _ in range(10):
                nursery.start_soon(_register)

        assert sorted(results) == [False] * 9 + [True]
