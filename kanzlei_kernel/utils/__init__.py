"""Utility functions for the kanzlei kernel."""

from kanzlei_kernel.utils.hashing import (
    GENESIS_HASH,
    HASH_ALGORITHM,
    canonicalize_json,
    hash_chain_link,
    hash_payload,
    sha256_hex,
)

__all__ = [
    "GENESIS_HASH",
    "HASH_ALGORITHM",
    "canonicalize_json",
    "hash_chain_link",
    "hash_payload",
    "sha256_hex",
]
