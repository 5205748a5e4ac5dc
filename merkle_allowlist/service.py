"""HTTP service exposing one allowlist's root, proofs and verification.

Remote parties that hold only a root fetch a proof for their entry from
``GET /proof/{entry}`` and verify it locally, or ask the service to verify
a proof they already hold via ``POST /verify``.

Each app built by ``create_app`` owns its own ``Allowlist``; nothing is
shared between app instances.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator, model_validator
from starlette.middleware.base import BaseHTTPMiddleware

from merkle_allowlist import __version__
from merkle_allowlist.allowlist import Allowlist, encode_entry
from merkle_allowlist.config import settings
from merkle_allowlist.exceptions import InvalidInputError, LeafNotFoundError
from merkle_allowlist.hashers import get_hasher
from merkle_allowlist.merkle import verify_proof
from merkle_allowlist.schemas import (
    SCHEMA_VERSION,
    InclusionProof,
    ProofStepRecord,
    TreeSummary,
    check_hex,
    export_json_schemas,
)

logger = logging.getLogger(__name__)


class _BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body exceeds the configured limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                logger.warning("Rejected %s %s: bad Content-Length", request.method, request.url.path)
                return JSONResponse(
                    status_code=400,
                    content={"detail": "Invalid Content-Length header"},
                )
        else:
            declared = 0
        if declared > settings.max_request_body_bytes:
            logger.warning("Rejected %s %s: body too large", request.method, request.url.path)
            return JSONResponse(
                status_code=413,
                content={"detail": "Request body too large"},
            )
        return await call_next(request)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class VerifyRequest(BaseModel):
    """Proof to check.  Supply either the raw ``entry`` or its ``leaf_hash``."""

    entry: str | None = None
    leaf_hash: str | None = None
    steps: list[ProofStepRecord] = Field(default_factory=list)
    root_hash: str | None = Field(
        default=None, description="Root to verify against (default: the service's current root)"
    )
    hash_algorithm: str | None = None

    @field_validator("leaf_hash", "root_hash")
    @classmethod
    def _validate_hex(cls, v: str | None) -> str | None:
        return None if v is None else check_hex(v)

    @model_validator(mode="after")
    def _entry_or_leaf(self) -> VerifyRequest:
        if (self.entry is None) == (self.leaf_hash is None):
            raise ValueError("exactly one of 'entry' or 'leaf_hash' is required")
        return self


class ReplaceRequest(BaseModel):
    entries: list[str]


def _allowlist(request: Request) -> Allowlist:
    return request.app.state.allowlist


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/health")
def health(request: Request):
    allowlist = _allowlist(request)
    return {
        "status": "ok",
        "service": "merkle-allowlist",
        "version": __version__,
        "hash_algorithm": allowlist.hasher.name,
        "tree_size": allowlist.size,
    }


@router.get("/tree")
def tree_summary(request: Request):
    """Return the current root and tree shape."""
    return TreeSummary.from_tree(_allowlist(request).tree).model_dump(mode="json")


@router.get("/proof/{entry}")
def get_proof(entry: str, request: Request):
    """Return the inclusion proof for *entry*, or 404 if it is not listed."""
    try:
        proof = _allowlist(request).prove(entry)
    except LeafNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Entry not in allowlist") from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return proof.model_dump(mode="json")


@router.post("/verify")
def verify(req: VerifyRequest, request: Request):
    """Verify a caller-supplied proof.

    A proof that does not reproduce the root is a normal ``verified: false``
    answer, not an error.
    """
    allowlist = _allowlist(request)
    try:
        hasher = get_hasher(req.hash_algorithm) if req.hash_algorithm else allowlist.hasher
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if req.entry is not None:
        leaf = hasher.hash(encode_entry(allowlist.normalize(req.entry)))
    else:
        leaf = bytes.fromhex(req.leaf_hash)
    root = bytes.fromhex(req.root_hash) if req.root_hash else allowlist.root

    proof = tuple(record.to_step() for record in req.steps)
    verified = verify_proof(leaf, proof, root, hasher)
    if not verified:
        logger.warning("Proof rejected for leaf %s against root %s", leaf.hex(), root.hex())
    return {
        "verified": verified,
        "leaf_hash": leaf.hex(),
        "root_hash": root.hex(),
        "hash_algorithm": hasher.name,
    }


@router.put("/allowlist")
def replace_allowlist(req: ReplaceRequest, request: Request):
    """Replace every entry and return the new tree summary."""
    try:
        tree = _allowlist(request).replace(req.entries)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TreeSummary.from_tree(tree).model_dump(mode="json")


@router.get("/schemas")
def list_schemas():
    """Return versioned JSON Schema definitions for the exchanged models."""
    return {
        "schema_version": SCHEMA_VERSION,
        "schemas": export_json_schemas(),
    }


def create_app(allowlist: Allowlist | None = None) -> FastAPI:
    """Build the FastAPI app around *allowlist*.

    Without an explicit allowlist, entries are loaded from
    ``settings.allowlist_file`` (or left empty when it is unset).
    """
    if allowlist is None:
        if settings.allowlist_file:
            allowlist = Allowlist.from_file(settings.allowlist_file)
        else:
            allowlist = Allowlist()

    app = FastAPI(
        title="Merkle Allowlist",
        description="Merkle-root allowlist with inclusion proofs",
        version=__version__,
    )
    app.add_middleware(_BodySizeLimitMiddleware)
    app.state.allowlist = allowlist
    app.include_router(router)

    logger.info(
        "Allowlist service ready: %d entries, root %s",
        allowlist.size,
        allowlist.hex_root,
    )
    return app
