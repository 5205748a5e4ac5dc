"""Example: Email allowlist checked through Merkle inclusion proofs.

Builds a tree over three email addresses, publishes only the root, and
then checks candidate addresses the way a remote verifier would: fetch a
proof, hash the address, replay the proof against the root it trusts.

Usage:
    python examples/email_allowlist.py [email ...]
"""

from __future__ import annotations

import json
import sys

from merkle_allowlist import Allowlist, LeafNotFoundError, verify_proof

EMAILS = ["example1@mail.com", "example2@mail.com", "example3@mail.com"]


def main() -> None:
    allowlist = Allowlist(EMAILS)
    trusted_root = allowlist.root
    print(f"Root: {trusted_root.hex()}")

    proof = allowlist.prove("example2@mail.com")
    print("Proof for example2@mail.com:")
    print(json.dumps(proof.model_dump(mode="json"), indent=2))

    for email in sys.argv[1:] or ["example2@mail.com", "x@mail.com"]:
        leaf = allowlist.leaf_hash(email)
        try:
            steps = allowlist.prove(email).to_proof()
        except LeafNotFoundError:
            # No proof exists; replaying someone else's cannot succeed either.
            steps = proof.to_proof()
        verified = verify_proof(leaf, steps, trusted_root, allowlist.hasher)
        print(f"{email} is {'whitelisted' if verified else 'not whitelisted'}.")


if __name__ == "__main__":
    main()
