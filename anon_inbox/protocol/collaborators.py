"""External collaborators consumed by the submission pipeline."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol, runtime_checkable

import trio

from .field import FieldElement, IntLike, to_field
from .hashing import HashFunction, default_hasher
from .merkle import MerkleProof, MerkleTree, build_tree, prove_membership
from .nullifier import short_nullifier
from .types import SubmissionRecord, SubmissionStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class GroupManager(Protocol):
    def current_merkle_root(self) -> FieldElement:
        ...

    def prove_membership(self, commitment: FieldElement) -> MerkleProof:
        ...


@runtime_checkable
class RecordSink(Protocol):
    async def persist(self, record: SubmissionRecord) -> None:
        ...


@runtime_checkable
class ModerationSink(Protocol):
    def update_status(self, record_id: str, status: SubmissionStatus) -> None:
        ...


class InMemoryGroup:
    """
    Membership set kept in process memory.

    The tree is rebuilt lazily after membership changes.
    """

    def __init__(
        self,
        commitments: Optional[List[IntLike]] = None,
        hasher: Optional[HashFunction] = None,
    ) -> None:
        self._hasher = hasher or default_hasher()
        self._members: List[FieldElement] = [to_field(c) for c in commitments or []]
        self._tree: Optional[MerkleTree] = None

    def add_member(self, commitment: IntLike) -> int:
        """
        Append a commitment.

        Returns:
            Leaf index of the new member

        Raises:
            ValueError: If the commitment is already a member
        """
        value = to_field(commitment)
        if value in self._members:
            raise ValueError("commitment already registered")
        self._members.append(value)
        self._tree = None
        return len(self._members) - 1

    @property
    def members(self) -> tuple[FieldElement, ...]:
        return tuple(self._members)

    @property
    def tree(self) -> MerkleTree:
        if self._tree is None:
            self._tree = build_tree(self._members, self._hasher)
        return self._tree

    def current_merkle_root(self) -> FieldElement:
        return self.tree.root

    def prove_membership(self, commitment: FieldElement) -> MerkleProof:
        """
        Raises:
            ValueError: If the commitment is not a member
        """
        tree = self.tree
        return prove_membership(tree, tree.index_of(commitment))

    def __len__(self) -> int:
        return len(self._members)


class InMemoryRecordStore:
    """Record sink and moderation sink backed by a dict."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, SubmissionRecord] = {}

    async def persist(self, record: SubmissionRecord) -> None:
        await trio.lowlevel.checkpoint()
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"record {record.id} already stored")
            self._records[record.id] = record
        logger.debug(
            "Stored record %s (nullifier %s)", record.id, short_nullifier(record.nullifier)
        )

    def update_status(self, record_id: str, status: SubmissionStatus) -> None:
        status = SubmissionStatus(status)
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                logger.warning("Status update for unknown record %s", record_id)
                return
            self._records[record_id] = record.with_status(status)
        logger.info("Record %s marked %s", record_id, status.value)

    def get(self, record_id: str) -> Optional[SubmissionRecord]:
        with self._lock:
            return self._records.get(record_id)

    def list_records(
        self, status: Optional[SubmissionStatus] = None
    ) -> List[SubmissionRecord]:
        with self._lock:
            records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status == SubmissionStatus(status)]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
