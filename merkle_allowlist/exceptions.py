"""Exception hierarchy for the Merkle engine and allowlist."""

from __future__ import annotations


class MerkleError(Exception):
    """Base class for all errors raised by merkle_allowlist."""


class InvalidInputError(MerkleError, ValueError):
    """Raised when items, leaves or proof targets have the wrong shape."""


class LeafNotFoundError(MerkleError, LookupError):
    """Raised when a proof is requested for a leaf the tree does not hold."""


class UnsupportedHashAlgorithm(MerkleError, ValueError):
    """Raised when a hasher is requested by an unknown or rejected name."""
