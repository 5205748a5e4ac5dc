"""Merkle Allowlist: Merkle-root commitments and inclusion proofs for ordered item sets."""

__version__ = "0.1.0"

from merkle_allowlist.allowlist import Allowlist, encode_entry, load_entries, normalize_entry
from merkle_allowlist.config import AllowlistSettings, settings
from merkle_allowlist.exceptions import (
    InvalidInputError,
    LeafNotFoundError,
    MerkleError,
    UnsupportedHashAlgorithm,
)
from merkle_allowlist.hashers import (
    DEFAULT_ALGORITHM,
    HashlibHasher,
    Hasher,
    available_algorithms,
    get_hasher,
)
from merkle_allowlist.merkle import MerkleTree, Proof, ProofStep, Side, verify_proof
from merkle_allowlist.schemas import (
    SCHEMA_VERSION,
    InclusionProof,
    ProofStepRecord,
    TreeSummary,
    VerificationResult,
    export_json_schemas,
)

__all__ = [
    # Engine
    "Hasher",
    "HashlibHasher",
    "DEFAULT_ALGORITHM",
    "available_algorithms",
    "get_hasher",
    "MerkleTree",
    "Proof",
    "ProofStep",
    "Side",
    "verify_proof",
    # Errors
    "MerkleError",
    "InvalidInputError",
    "LeafNotFoundError",
    "UnsupportedHashAlgorithm",
    # JSON schemas
    "SCHEMA_VERSION",
    "InclusionProof",
    "ProofStepRecord",
    "TreeSummary",
    "VerificationResult",
    "export_json_schemas",
    # Allowlist
    "Allowlist",
    "encode_entry",
    "load_entries",
    "normalize_entry",
    "settings",
    "AllowlistSettings",
]
