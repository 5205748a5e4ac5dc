"""Hash function capability used by the Merkle tree and its verifier.

A hasher plays two roles that must never be conflated:

- **Leaf hashing:**  ``hash(item)`` turns one raw item into its leaf digest.
- **Node hashing:**  ``hash_pair(left, right)`` computes ``hash(left || right)``.
  The concatenation order is always *left then right*; swapping it yields an
  incompatible tree and every previously issued proof stops verifying.

The tree and the verifier must agree on the hasher out of band.  Nothing at
runtime can detect a proof built with SHA-256 being checked with SHA3-256;
it simply fails to verify.  Serialized proofs therefore carry the
algorithm name (see ``schemas.InclusionProof``).
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod

from merkle_allowlist.exceptions import InvalidInputError, UnsupportedHashAlgorithm

DEFAULT_ALGORITHM = "sha256"

# Fixed-length, collision-resistant algorithms guaranteed by hashlib.
_SUPPORTED_ALGORITHMS = (
    "sha256",
    "sha384",
    "sha512",
    "sha3_256",
    "sha3_384",
    "sha3_512",
    "blake2b",
    "blake2s",
)

# Spelling-insensitive lookup: "SHA-256", "sha_256" and "sha256" are one algorithm.
_ALIASES = {name.replace("_", ""): name for name in _SUPPORTED_ALGORITHMS}


def canonical_algorithm(name: str) -> str:
    """Return the hashlib name for *name*, ignoring case, dashes and underscores."""
    key = name.lower().replace("-", "").replace("_", "")
    try:
        return _ALIASES[key]
    except KeyError:
        raise UnsupportedHashAlgorithm(
            f"unsupported hash algorithm {name!r}; "
            f"choose one of {', '.join(_SUPPORTED_ALGORITHMS)}"
        ) from None


def _as_bytes(data) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise InvalidInputError(
        f"expected bytes, got {type(data).__name__}; encode items before hashing"
    )


class Hasher(ABC):
    """A deterministic hash function with a fixed output length."""

    name: str
    digest_size: int

    @abstractmethod
    def hash(self, data: bytes) -> bytes:
        """Return the digest of *data*."""

    def hash_pair(self, left: bytes, right: bytes) -> bytes:
        """Return the parent digest ``hash(left || right)``."""
        return self.hash(left + right)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class HashlibHasher(Hasher):
    """Hasher backed by a ``hashlib`` constructor."""

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM) -> None:
        algorithm = canonical_algorithm(algorithm)
        self.name = algorithm
        self.digest_size = hashlib.new(algorithm).digest_size

    def hash(self, data: bytes) -> bytes:
        return hashlib.new(self.name, _as_bytes(data)).digest()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Hasher):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


_registry: dict[str, Hasher] = {}


def get_hasher(name: str | None = None) -> Hasher:
    """Return the shared hasher for *name* (default: SHA-256)."""
    key = canonical_algorithm(name or DEFAULT_ALGORITHM)
    hasher = _registry.get(key)
    if hasher is None:
        hasher = HashlibHasher(key)
        _registry[key] = hasher
    return hasher


def available_algorithms() -> list[str]:
    return list(_SUPPORTED_ALGORITHMS)
