"""Email allowlist committed to a single Merkle root.

Entries are normalized strings (typically email addresses).  Normalization
happens here, before hashing, because it decides which entries compare
equal; the Merkle engine itself only ever sees opaque bytes.

An ``Allowlist`` owns one immutable ``MerkleTree`` snapshot.  ``replace``
builds a new tree off to the side and swaps it in under a lock, so a
concurrent reader always works against either the complete old tree or
the complete new one.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from merkle_allowlist.config import settings
from merkle_allowlist.exceptions import InvalidInputError, LeafNotFoundError
from merkle_allowlist.hashers import Hasher, get_hasher
from merkle_allowlist.merkle import MerkleTree, verify_proof
from merkle_allowlist.schemas import InclusionProof, VerificationResult

logger = logging.getLogger(__name__)


def normalize_entry(value: str, casefold: bool = True, strip: bool = True) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(f"allowlist entries must be str, got {type(value).__name__}")
    if strip:
        value = value.strip()
    if casefold:
        value = value.casefold()
    return value


def encode_entry(value: str) -> bytes:
    return value.encode("utf-8")


def load_entries(path: str | Path) -> list[str]:
    """Read one entry per line, skipping blank lines and ``#`` comments."""
    entries: list[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        entries.append(line)
    return entries


class Allowlist:
    """Ordered set of entries with Merkle membership proofs."""

    def __init__(
        self,
        entries: Iterable[str] = (),
        hasher: Hasher | None = None,
        casefold: bool | None = None,
        strip: bool | None = None,
    ) -> None:
        self._hasher = hasher or get_hasher(settings.hash_algorithm)
        self._casefold = settings.casefold if casefold is None else casefold
        self._strip = settings.strip if strip is None else strip
        self._lock = threading.Lock()
        self._tree = self._build(entries)

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> Allowlist:
        return cls(load_entries(path), **kwargs)

    # ------------------------------------------------------------------
    # Snapshot accessors
    # ------------------------------------------------------------------

    @property
    def tree(self) -> MerkleTree:
        with self._lock:
            return self._tree

    @property
    def hasher(self) -> Hasher:
        return self._hasher

    @property
    def root(self) -> bytes:
        return self.tree.root

    @property
    def hex_root(self) -> str:
        return self.tree.hex_root

    @property
    def size(self) -> int:
        return self.tree.leaf_count

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def normalize(self, entry: str) -> str:
        return normalize_entry(entry, casefold=self._casefold, strip=self._strip)

    def leaf_hash(self, entry: str) -> bytes:
        return self._hasher.hash(encode_entry(self.normalize(entry)))

    def prove(self, entry: str) -> InclusionProof:
        """Return the inclusion proof for *entry*.

        Raises:
            LeafNotFoundError: *entry* is not on the allowlist.
        """
        return InclusionProof.from_tree(self.tree, self.leaf_hash(entry))

    def is_allowed(self, entry: str) -> bool:
        """Prove and verify *entry* against the current root."""
        tree = self.tree
        return self._is_allowed(tree, self.leaf_hash(entry))

    def check(self, entry: str) -> VerificationResult:
        """Like ``is_allowed``, reporting the root the verdict was reached against."""
        tree = self.tree
        leaf = self.leaf_hash(entry)
        return VerificationResult(
            entry=entry,
            leaf_hash=leaf.hex(),
            root_hash=tree.hex_root,
            verified=self._is_allowed(tree, leaf),
        )

    @staticmethod
    def _is_allowed(tree: MerkleTree, leaf: bytes) -> bool:
        try:
            proof = tree.get_proof(leaf)
        except LeafNotFoundError:
            return False
        return verify_proof(leaf, proof, tree.root, tree.hasher)

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def replace(self, entries: Iterable[str]) -> MerkleTree:
        """Rebuild from *entries* and atomically swap the new tree in."""
        tree = self._build(entries)
        with self._lock:
            previous, self._tree = self._tree, tree
        logger.info(
            "Allowlist replaced: %d -> %d entries, root %s -> %s",
            previous.leaf_count,
            tree.leaf_count,
            previous.hex_root,
            tree.hex_root,
        )
        return tree

    def _build(self, entries: Iterable[str]) -> MerkleTree:
        normalized = [self.normalize(e) for e in entries]
        if len(normalized) > settings.max_entries:
            raise InvalidInputError(
                f"allowlist has {len(normalized)} entries, limit is {settings.max_entries}"
            )
        tree = MerkleTree.build((encode_entry(e) for e in normalized), self._hasher)
        logger.info(
            "Built allowlist tree (%s): %d entries, height %d, root %s",
            self._hasher.name,
            tree.leaf_count,
            tree.height,
            tree.hex_root,
        )
        return tree
