"""CLI entrypoint for merkle-allowlist.

Usage:
    merkle-allowlist root FILE                      # Print the root of FILE's entries
    merkle-allowlist prove FILE ENTRY               # Print ENTRY's inclusion proof as JSON
    merkle-allowlist verify ENTRY --proof P.json    # Verify a saved proof
    merkle-allowlist check FILE ENTRY [ENTRY ...]   # "x is whitelisted." / "x is not whitelisted."
    merkle-allowlist serve [--file FILE]            # Start the HTTP service
    merkle-allowlist schemas [--output-dir DIR]     # Export JSON Schemas
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from merkle_allowlist import __version__
from merkle_allowlist.allowlist import Allowlist, encode_entry, normalize_entry
from merkle_allowlist.config import settings
from merkle_allowlist.exceptions import LeafNotFoundError, MerkleError
from merkle_allowlist.hashers import available_algorithms, get_hasher
from merkle_allowlist.schemas import InclusionProof, TreeSummary, export_json_schemas

logger = logging.getLogger(__name__)


def _load(args: argparse.Namespace) -> Allowlist:
    return Allowlist.from_file(args.file, hasher=get_hasher(args.algorithm))


def _cmd_root(args: argparse.Namespace) -> int:
    summary = TreeSummary.from_tree(_load(args).tree)
    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    return 0


def _cmd_prove(args: argparse.Namespace) -> int:
    allowlist = _load(args)
    try:
        proof = allowlist.prove(args.entry)
    except LeafNotFoundError:
        print(f"ERROR: {args.entry} is not in {args.file}", file=sys.stderr)
        return 1
    print(json.dumps(proof.model_dump(mode="json"), indent=2))
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    proof = InclusionProof.model_validate_json(Path(args.proof).read_text(encoding="utf-8"))
    hasher = get_hasher(proof.hash_algorithm)
    entry = normalize_entry(args.entry, casefold=settings.casefold, strip=settings.strip)
    leaf = hasher.hash(encode_entry(entry))
    root = bytes.fromhex(args.root) if args.root else None

    verified = proof.verify(leaf, root)
    print(json.dumps({"entry": args.entry, "verified": verified}))
    return 0 if verified else 1


def _cmd_check(args: argparse.Namespace) -> int:
    allowlist = _load(args)
    all_allowed = True
    for entry in args.entries:
        allowed = allowlist.is_allowed(entry)
        all_allowed = all_allowed and allowed
        print(f"{entry} is {'whitelisted' if allowed else 'not whitelisted'}.")
    return 0 if all_allowed else 1


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    if args.file:
        settings.allowlist_file = args.file

    print(f"Merkle Allowlist v{__version__}")
    print(f"   Entries:   {settings.allowlist_file or '<empty>'}")
    print(f"   Hash:      {settings.hash_algorithm}")
    print(f"   Listening: http://{args.host}:{args.port}")
    print()

    uvicorn.run(
        "merkle_allowlist.service:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level="info",
    )
    return 0


def _cmd_schemas(args: argparse.Namespace) -> int:
    schemas = export_json_schemas(args.output_dir)
    if args.output_dir:
        print(f"Wrote {len(schemas)} schemas to {args.output_dir}")
    else:
        print(json.dumps(schemas, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merkle-allowlist",
        description="Merkle-root allowlist with inclusion proofs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--algorithm",
        default=settings.hash_algorithm,
        choices=available_algorithms(),
        help=f"Hash algorithm for leaves and nodes (default: {settings.hash_algorithm})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("root", help="Print the Merkle root of an entries file")
    p.add_argument("file", help="File with one entry per line")
    p.set_defaults(func=_cmd_root)

    p = sub.add_parser("prove", help="Print the inclusion proof for one entry")
    p.add_argument("file", help="File with one entry per line")
    p.add_argument("entry")
    p.set_defaults(func=_cmd_prove)

    p = sub.add_parser("verify", help="Verify a saved inclusion proof for an entry")
    p.add_argument("entry")
    p.add_argument("--proof", required=True, help="Path to an InclusionProof JSON file")
    p.add_argument("--root", help="Trusted hex root (default: the root stored in the proof)")
    p.set_defaults(func=_cmd_verify)

    p = sub.add_parser("check", help="Report whether entries are on the allowlist")
    p.add_argument("file", help="File with one entry per line")
    p.add_argument("entries", nargs="+")
    p.set_defaults(func=_cmd_check)

    p = sub.add_parser("serve", help="Run the HTTP service")
    p.add_argument("--file", help="Entries to load at startup")
    p.add_argument("--host", default=settings.host, help=f"Listen host (default: {settings.host})")
    p.add_argument(
        "--port", type=int, default=settings.port, help=f"Listen port (default: {settings.port})"
    )
    p.set_defaults(func=_cmd_serve)

    p = sub.add_parser("schemas", help="Export JSON Schemas for proofs and summaries")
    p.add_argument("--output-dir", help="Write <Model>.v<version>.schema.json files here")
    p.set_defaults(func=_cmd_schemas)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    if args.command == "serve":
        logging.getLogger().setLevel(logging.DEBUG if args.verbose else logging.INFO)
        settings.hash_algorithm = args.algorithm

    try:
        return args.func(args)
    except (MerkleError, OSError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
