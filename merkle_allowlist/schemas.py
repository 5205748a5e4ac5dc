"""Pydantic models for exchanging roots and inclusion proofs as JSON.

A remote verifier holds only a root.  It receives an ``InclusionProof``,
hashes the entry it cares about, and replays the proof steps.  Digests are
lowercase hex strings on the wire; ``hash_algorithm`` names the hasher the
proof was built with so both sides agree on it.

Every payload model carries ``schema_version`` so records can be parsed
regardless of which software version produced them.  Use
``export_json_schemas()`` to emit versioned JSON Schema definitions.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from merkle_allowlist.hashers import DEFAULT_ALGORITHM, get_hasher
from merkle_allowlist.merkle import MerkleTree, Proof, ProofStep, Side, Target, verify_proof

SCHEMA_VERSION = "1.0"


def check_hex(value: str) -> str:
    """Normalize a hex digest (lowercase, no 0x) or raise ValueError."""
    value = value.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    bytes.fromhex(value)
    return value


# ---------------------------------------------------------------------------
# Proofs
# ---------------------------------------------------------------------------


class ProofStepRecord(BaseModel):
    """One proof step: a sibling digest and the side it is concatenated on."""

    hash: str = Field(..., description="Hex-encoded sibling digest")
    side: Side = Field(..., description="'left' or 'right' of the running hash")

    @field_validator("hash")
    @classmethod
    def _validate_hash(cls, v: str) -> str:
        return check_hex(v)

    @classmethod
    def from_step(cls, step: ProofStep) -> ProofStepRecord:
        return cls(hash=step.sibling.hex(), side=step.side)

    def to_step(self) -> ProofStep:
        return ProofStep(bytes.fromhex(self.hash), self.side)


class InclusionProof(BaseModel):
    """Inclusion proof for one leaf, self-describing enough to verify remotely."""

    schema_version: str = SCHEMA_VERSION
    hash_algorithm: str = DEFAULT_ALGORITHM
    leaf_index: int = Field(..., ge=0)
    leaf_hash: str = Field(..., description="Hex-encoded leaf digest")
    steps: list[ProofStepRecord] = Field(
        default_factory=list, description="Sibling steps from leaf to root"
    )
    root_hash: str = Field(..., description="Hex-encoded root the proof commits to")
    tree_size: int = Field(..., ge=0)

    @field_validator("leaf_hash", "root_hash")
    @classmethod
    def _validate_digest(cls, v: str) -> str:
        return check_hex(v)

    @classmethod
    def from_tree(cls, tree: MerkleTree, target: Target) -> InclusionProof:
        """Generate the proof for *target* (index or leaf digest) from *tree*."""
        steps = tree.get_proof(target)
        if isinstance(target, (bytes, bytearray, memoryview)):
            index = tree.index_of(bytes(target))
        else:
            index = target
        return cls(
            hash_algorithm=tree.hasher.name,
            leaf_index=index,
            leaf_hash=tree.leaf(index).hex(),
            steps=[ProofStepRecord.from_step(s) for s in steps],
            root_hash=tree.hex_root,
            tree_size=tree.leaf_count,
        )

    def to_proof(self) -> Proof:
        return tuple(record.to_step() for record in self.steps)

    def verify(self, leaf: bytes | None = None, root: bytes | None = None) -> bool:
        """Replay the proof for *leaf* (default: ``leaf_hash``) against *root*.

        *root* defaults to the proof's own ``root_hash``; a verifier that
        trusts only its own copy of the root should always pass it.
        """
        try:
            hasher = get_hasher(self.hash_algorithm)
        except ValueError:
            return False
        if leaf is None:
            leaf = bytes.fromhex(self.leaf_hash)
        if root is None:
            root = bytes.fromhex(self.root_hash)
        return verify_proof(leaf, self.to_proof(), root, hasher)


# ---------------------------------------------------------------------------
# Tree and verification summaries
# ---------------------------------------------------------------------------


class TreeSummary(BaseModel):
    schema_version: str = SCHEMA_VERSION
    hash_algorithm: str
    root_hash: str
    tree_size: int
    height: int

    @classmethod
    def from_tree(cls, tree: MerkleTree) -> TreeSummary:
        return cls(
            hash_algorithm=tree.hasher.name,
            root_hash=tree.hex_root,
            tree_size=tree.leaf_count,
            height=tree.height,
        )


class VerificationResult(BaseModel):
    """Outcome of checking one entry against a root."""

    entry: str
    leaf_hash: str
    root_hash: str
    verified: bool


# ---------------------------------------------------------------------------
# JSON Schema export for remote verifiers
# ---------------------------------------------------------------------------

_SCHEMA_MODELS: dict[str, type[BaseModel]] = {
    "ProofStepRecord": ProofStepRecord,
    "InclusionProof": InclusionProof,
    "TreeSummary": TreeSummary,
    "VerificationResult": VerificationResult,
}


def export_json_schemas(output_dir: str | Path | None = None) -> dict[str, dict]:
    """Generate versioned JSON Schema definitions for the exchanged models.

    If *output_dir* is provided, each schema is also written to
    ``<output_dir>/<ModelName>.v<version>.schema.json``.

    Returns a dict mapping model name to its JSON Schema dict.
    """
    schemas: dict[str, dict] = {}
    for name, model_cls in _SCHEMA_MODELS.items():
        schema = model_cls.model_json_schema()
        schema["$id"] = f"urn:merkle-allowlist:schemas:{name}:v{SCHEMA_VERSION}"
        schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
        schemas[name] = schema

    if output_dir is not None:
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        for name, schema in schemas.items():
            path = out / f"{name}.v{SCHEMA_VERSION}.schema.json"
            path.write_text(json.dumps(schema, indent=2) + "\n")

    return schemas
