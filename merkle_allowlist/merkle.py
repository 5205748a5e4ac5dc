"""Immutable binary Merkle tree with inclusion proofs.

Tree format (for third-party verifiers)
=======================================

**Hash algorithm:** pluggable (see ``hashers``); SHA-256 by default.  The
same hasher is used for leaves and internal nodes.

**Hashing:**

- Leaf nodes:     H(item)
- Internal nodes: H(left || right)

There is no domain-separation prefix, so a leaf digest is exactly the hash
of the item a caller would compute on its own.

**Odd layers:** when a layer has an odd number of entries, the last entry
is paired with itself, i.e. its parent is H(last || last).  The
duplicated digest is emitted as an explicit sibling in inclusion proofs,
so verifiers never need to know the tree size.

**Special cases:**

- 0 leaves: the root is H(b"") and no proofs exist.
- 1 leaf:   the root is the leaf itself and its proof is empty.

**Proofs:** an ordered list of (sibling, side) steps from the leaf layer up
to, but not including, the root.  ``side`` says where the sibling sits
relative to the running hash: ``left`` means H(sibling || running),
``right`` means H(running || sibling).

**Thread safety:** a tree is an immutable snapshot.  Any number of threads
may read roots and generate proofs concurrently without locking.  To
change the committed items, build a new tree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import NamedTuple, Union

from merkle_allowlist.exceptions import InvalidInputError, LeafNotFoundError
from merkle_allowlist.hashers import Hasher, get_hasher

logger = logging.getLogger(__name__)


class Side(str, Enum):
    """Position of a sibling digest relative to the running hash."""

    LEFT = "left"
    RIGHT = "right"


class ProofStep(NamedTuple):
    sibling: bytes
    side: Side


Proof = tuple[ProofStep, ...]
Target = Union[int, bytes]


def _is_digest(value, size: int) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview)) and len(value) == size


class MerkleTree:
    """Merkle tree over an ordered sequence of items.

    Build with ``MerkleTree.build(items)`` from raw items or
    ``MerkleTree.from_leaves(digests)`` from pre-hashed leaves.  Order
    matters: the same items in a different order commit to a different root.

    Each layer is stored as one contiguous buffer; entry ``k`` of a layer
    lives at ``[k * digest_size:(k + 1) * digest_size]``.
    """

    __slots__ = ("_hasher", "_layers", "_leaf_count", "_root")

    def __init__(self, layers: tuple[bytes, ...], leaf_count: int, root: bytes, hasher: Hasher) -> None:
        self._hasher = hasher
        self._layers = layers
        self._leaf_count = leaf_count
        self._root = root

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, items: Iterable[bytes], hasher: Hasher | None = None) -> MerkleTree:
        """Hash every item into a leaf, in order, and build the tree."""
        hasher = hasher or get_hasher()
        leaves = [hasher.hash(item) for item in items]
        return cls._from_digests(leaves, hasher)

    @classmethod
    def from_leaves(cls, leaves: Iterable[bytes], hasher: Hasher | None = None) -> MerkleTree:
        """Build a tree from leaf digests that were already hashed by *hasher*."""
        hasher = hasher or get_hasher()
        digests: list[bytes] = []
        for i, leaf in enumerate(leaves):
            if not _is_digest(leaf, hasher.digest_size):
                raise InvalidInputError(
                    f"leaf {i} is not a {hasher.digest_size}-byte {hasher.name} digest"
                )
            digests.append(bytes(leaf))
        return cls._from_digests(digests, hasher)

    @classmethod
    def _from_digests(cls, leaves: list[bytes], hasher: Hasher) -> MerkleTree:
        if not leaves:
            root = hasher.hash(b"")
            logger.debug("Built empty Merkle tree (%s), root %s", hasher.name, root.hex())
            return cls((root,), 0, root, hasher)

        size = hasher.digest_size
        level = b"".join(leaves)
        width = len(leaves)
        layers = [level]
        while width > 1:
            parents: list[bytes] = []
            for i in range(0, width, 2):
                left = level[i * size : (i + 1) * size]
                if i + 1 < width:
                    right = level[(i + 1) * size : (i + 2) * size]
                else:
                    right = left
                parents.append(hasher.hash_pair(left, right))
            level = b"".join(parents)
            width = len(parents)
            layers.append(level)

        root = layers[-1]
        logger.debug(
            "Built Merkle tree (%s): %d leaves, height %d, root %s",
            hasher.name,
            len(leaves),
            len(layers) - 1,
            root.hex(),
        )
        return cls(tuple(layers), len(leaves), root, hasher)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def hasher(self) -> Hasher:
        return self._hasher

    @property
    def root(self) -> bytes:
        return self._root

    @property
    def hex_root(self) -> str:
        return self._root.hex()

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def height(self) -> int:
        """Number of hashing rounds between the leaves and the root."""
        return len(self._layers) - 1

    @property
    def leaves(self) -> tuple[bytes, ...]:
        if self._leaf_count == 0:
            return ()
        return self._split(self._layers[0])

    @property
    def layers(self) -> tuple[tuple[bytes, ...], ...]:
        """All layers, leaves first, root last.

        An empty tree has a single layer holding only the empty-set root.
        """
        return tuple(self._split(layer) for layer in self._layers)

    def leaf(self, index: int) -> bytes:
        return self._node(0, self._check_index(index))

    def index_of(self, leaf: bytes) -> int:
        """Return the index of the first leaf equal to *leaf*.

        Duplicate items produce duplicate leaves; lookups by digest always
        resolve to the lowest index.
        """
        if not isinstance(leaf, (bytes, bytearray, memoryview)):
            raise InvalidInputError(f"leaf must be bytes, got {type(leaf).__name__}")
        leaf = bytes(leaf)
        if len(leaf) == self._hasher.digest_size:
            for i in range(self._leaf_count):
                if self._node(0, i) == leaf:
                    return i
        raise LeafNotFoundError(f"leaf {leaf.hex()} is not in the tree")

    def __len__(self) -> int:
        return self._leaf_count

    def __contains__(self, leaf: object) -> bool:
        try:
            self.index_of(leaf)  # type: ignore[arg-type]
        except (LeafNotFoundError, InvalidInputError):
            return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MerkleTree):
            return NotImplemented
        return (
            self._hasher.name == other._hasher.name
            and self._leaf_count == other._leaf_count
            and self._root == other._root
            and self._layers[0] == other._layers[0]
        )

    def __hash__(self) -> int:
        return hash((self._hasher.name, self._root))

    def __repr__(self) -> str:
        return (
            f"MerkleTree(leaves={self._leaf_count}, height={self.height}, "
            f"hasher={self._hasher.name!r}, root={self.hex_root})"
        )

    def __str__(self) -> str:
        """Root-first listing of every layer, one digest per line."""
        lines: list[str] = []
        if self._leaf_count == 0:
            return f"{self.hex_root} (empty)"
        for depth, layer in enumerate(reversed(self.layers)):
            indent = "  " * depth
            for digest in layer:
                lines.append(f"{indent}{digest.hex()}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Proofs
    # ------------------------------------------------------------------

    def get_proof(self, target: Target) -> Proof:
        """Return the inclusion proof for a leaf given by index or digest.

        Raises:
            LeafNotFoundError: the index is out of range or the digest is absent.
            InvalidInputError: *target* is neither an int nor a digest.
        """
        index = self._resolve(target)
        leaf_index = index
        steps: list[ProofStep] = []
        for depth in range(self.height):
            width = self._width(depth)
            sibling_index = index ^ 1
            if sibling_index >= width:
                sibling_index = index
            side = Side.LEFT if sibling_index < index else Side.RIGHT
            steps.append(ProofStep(self._node(depth, sibling_index), side))
            index //= 2

        logger.debug("Generated %d-step proof for leaf %d", len(steps), leaf_index)
        return tuple(steps)

    def get_hex_proof(self, target: Target) -> list[dict[str, str]]:
        """Return the proof as ``[{"hash": <hex>, "side": "left"|"right"}]``."""
        return [
            {"hash": step.sibling.hex(), "side": step.side.value}
            for step in self.get_proof(target)
        ]

    def verify(self, proof: Iterable[ProofStep], leaf: bytes, root: bytes | None = None) -> bool:
        """Verify *proof* for *leaf* with this tree's hasher (and root by default)."""
        return verify_proof(leaf, proof, self._root if root is None else root, self._hasher)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _width(self, depth: int) -> int:
        return len(self._layers[depth]) // self._hasher.digest_size

    def _node(self, depth: int, index: int) -> bytes:
        size = self._hasher.digest_size
        return self._layers[depth][index * size : (index + 1) * size]

    def _split(self, layer: bytes) -> tuple[bytes, ...]:
        size = self._hasher.digest_size
        return tuple(layer[i : i + size] for i in range(0, len(layer), size))

    def _check_index(self, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidInputError(f"leaf index must be an int, got {type(index).__name__}")
        if index < 0 or index >= self._leaf_count:
            raise LeafNotFoundError(
                f"leaf index {index} out of range [0, {self._leaf_count})"
            )
        return index

    def _resolve(self, target: Target) -> int:
        if isinstance(target, (bytes, bytearray, memoryview)):
            return self.index_of(bytes(target))
        return self._check_index(target)


def verify_proof(
    leaf: bytes,
    proof: Iterable[ProofStep],
    root: bytes,
    hasher: Hasher | None = None,
) -> bool:
    """Recompute the root from *leaf* and *proof* and compare it to *root*.

    Never raises for a bad proof.  Wrong-length digests, unknown sides and
    malformed steps all fail closed and return False.  An empty proof is
    valid only when *leaf* is itself the root.

    The caller must use the hasher the tree was built with; a proof checked
    with a different hasher simply does not verify.
    """
    hasher = hasher or get_hasher()
    size = hasher.digest_size
    if not _is_digest(leaf, size) or not _is_digest(root, size):
        return False

    try:
        steps = list(proof)
    except TypeError:
        return False

    running = bytes(leaf)
    for step in steps:
        try:
            sibling, side = step
            side = Side(side)
        except (TypeError, ValueError):
            return False
        if not _is_digest(sibling, size):
            return False
        if side is Side.LEFT:
            running = hasher.hash_pair(bytes(sibling), running)
        else:
            running = hasher.hash_pair(running, bytes(sibling))

    return running == bytes(root)
