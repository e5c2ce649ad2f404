"""
Merkle tree utilities for group membership.

Leaves are identity commitments. Level 0 is padded with the zero element up
to the next power of two, so every level has an even length and every node
below the root has a sibling. Nodes are ``H([left, right])`` with fixed
left/right ordering (no sorting).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .field import FieldElement, IntLike, to_field
from .hashing import HashFunction, default_hasher


def _depth_for(n_leaves: int) -> int:
    # ceil(log2(max(n, 1))) without floats
    return max(n_leaves - 1, 0).bit_length()


@dataclass(frozen=True)
class MerkleProof:
    """
    Authentication path for one leaf.

    Attributes:
        root: Root the path folds to
        path_elements: Sibling at each level, leaf level first
        path_indices: 0 if the running node is the left child, 1 if right
    """

    root: FieldElement
    path_elements: Tuple[FieldElement, ...]
    path_indices: Tuple[int, ...]

    @property
    def depth(self) -> int:
        return len(self.path_elements)

    @property
    def leaf_index(self) -> int:
        """Leaf position encoded by the index bits."""
        return sum(bit << level for level, bit in enumerate(self.path_indices))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root.to_hex(),
            "pathElements": [element.to_hex() for element in self.path_elements],
            "pathIndices": list(self.path_indices),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MerkleProof":
        """
        Rebuild a proof from its JSON form.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        try:
            return cls(
                root=FieldElement.from_hex(data["root"]),
                path_elements=tuple(
                    FieldElement.from_hex(element) for element in data["pathElements"]
                ),
                path_indices=tuple(int(bit) for bit in data["pathIndices"]),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed Merkle proof: {exc}") from exc


class MerkleTree:
    """
    Complete binary Merkle tree over field elements.

    Example:
        >>> tree = build_tree([c1, c2, c3])
        >>> proof = prove_membership(tree, 1)
        >>> verify_membership(c2, proof)
        True
    """

    def __init__(self, levels: List[List[FieldElement]], leaf_count: int):
        self._levels = levels
        self._leaf_count = leaf_count

    @property
    def root(self) -> FieldElement:
        return self._levels[-1][0]

    @property
    def depth(self) -> int:
        return len(self._levels) - 1

    @property
    def leaf_count(self) -> int:
        """Number of leaves before padding."""
        return self._leaf_count

    @property
    def leaves(self) -> Tuple[FieldElement, ...]:
        return tuple(self._levels[0][: self._leaf_count])

    @property
    def levels(self) -> Tuple[Tuple[FieldElement, ...], ...]:
        return tuple(tuple(level) for level in self._levels)

    def index_of(self, leaf: IntLike) -> int:
        """
        Position of a leaf.

        Raises:
            ValueError: If the leaf is not in the tree
        """
        target = to_field(leaf)
        for index, value in enumerate(self.leaves):
            if value == target:
                return index
        raise ValueError("leaf not in tree")

    def __len__(self) -> int:
        return self._leaf_count

    def __repr__(self) -> str:
        return (
            f"MerkleTree(leaves={self._leaf_count}, depth={self.depth}, "
            f"root={self.root.to_hex()[:18]}...)"
        )


def build_tree(
    leaves: Sequence[IntLike], hasher: Optional[HashFunction] = None
) -> MerkleTree:
    """
    Build a Merkle tree over the given leaves.

    Args:
        leaves: Ordered leaf values (commitments)
        hasher: Node hash (defaults to the flagged backend)

    Returns:
        MerkleTree with depth ceil(log2(max(n, 1)))

    Note:
        An empty leaf set is represented by one zero leaf paired with a zero
        sibling, so its root is H([0, 0]) at depth 1.
    """
    hasher = hasher or default_hasher()
    level = [to_field(leaf) for leaf in leaves]
    leaf_count = len(level)

    if leaf_count == 0:
        level = [FieldElement.zero(), FieldElement.zero()]
    else:
        width = 1 << _depth_for(leaf_count)
        level.extend(FieldElement.zero() for _ in range(width - leaf_count))

    levels = [level]
    while len(level) > 1:
        level = [
            hasher.hash([level[i], level[i + 1]]) for i in range(0, len(level), 2)
        ]
        levels.append(level)

    return MerkleTree(levels, leaf_count)


def prove_membership(tree: MerkleTree, leaf_index: int) -> MerkleProof:
    """
    Collect the authentication path for a leaf.

    Raises:
        IndexError: If leaf_index is outside the populated leaves
    """
    if not isinstance(leaf_index, int) or not 0 <= leaf_index < tree.leaf_count:
        raise IndexError(
            f"leaf index {leaf_index} out of range for {tree.leaf_count} leaves"
        )

    elements: List[FieldElement] = []
    indices: List[int] = []
    index = leaf_index
    for level in tree.levels[:-1]:
        bit = index & 1
        elements.append(level[index ^ 1])
        indices.append(bit)
        index >>= 1

    return MerkleProof(
        root=tree.root, path_elements=tuple(elements), path_indices=tuple(indices)
    )


def compute_root(
    leaf: IntLike, proof: MerkleProof, hasher: Optional[HashFunction] = None
) -> FieldElement:
    """
    Fold a leaf up its authentication path.

    Raises:
        ValueError: If the path is malformed
    """
    hasher = hasher or default_hasher()
    if len(proof.path_elements) != len(proof.path_indices):
        raise ValueError("path elements and indices differ in length")

    node = to_field(leaf)
    for sibling, bit in zip(proof.path_elements, proof.path_indices):
        if bit == 0:
            node = hasher.hash([node, sibling])
        elif bit == 1:
            node = hasher.hash([sibling, node])
        else:
            raise ValueError(f"path index must be 0 or 1, got {bit!r}")
    return node


def verify_membership(
    leaf: IntLike, proof: MerkleProof, hasher: Optional[HashFunction] = None
) -> bool:
    """
    Verify a Merkle authentication path without access to the tree.

    Returns:
        True if the path folds to proof.root, False otherwise
    """
    if not isinstance(proof, MerkleProof):
        return False
    try:
        return compute_root(leaf, proof, hasher) == proof.root
    except (TypeError, ValueError):
        return False
