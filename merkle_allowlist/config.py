"""Configuration for merkle-allowlist.

All settings are driven by environment variables with sensible defaults.
The hash algorithm chosen here must match the one remote verifiers use;
changing it changes every root and invalidates every issued proof.
"""

from __future__ import annotations

import os


def _get_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return int(val)


def _get_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


class AllowlistSettings:
    # --- Merkle engine ---
    hash_algorithm: str = os.getenv("MERKLE_HASH_ALGORITHM", "sha256")

    # --- Entry normalization ---
    # Case-fold entries before hashing ("Alice@Mail.com" == "alice@mail.com").
    casefold: bool = _get_bool("ALLOWLIST_CASEFOLD", True)
    # Strip surrounding whitespace before hashing.
    strip: bool = _get_bool("ALLOWLIST_STRIP", True)

    # --- Service ---
    # One entry per line; loaded when the HTTP service starts.
    allowlist_file: str = os.getenv("ALLOWLIST_FILE", "")
    host: str = os.getenv("ALLOWLIST_HOST", "127.0.0.1")
    port: int = _get_int("ALLOWLIST_PORT", 3200)

    # --- Ingestion limits ---
    # Maximum number of entries committed by a single tree.
    max_entries: int = _get_int("ALLOWLIST_MAX_ENTRIES", 1_000_000)
    # Hard cap on HTTP request bodies.
    max_request_body_bytes: int = _get_int("ALLOWLIST_MAX_REQUEST_BODY_BYTES", 8 * 1024 * 1024)


settings = AllowlistSettings()
