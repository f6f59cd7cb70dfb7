"""
Chain -- pure hash-chain link computation and verification.

Responsibility:
    The "append with previous-hash linkage" primitive shared by the fiscal
    signature ledger and the export journal.  Computes links and verifies
    ordered sequences of entries; persistence and per-scope serialization
    live in services/chain_writer.py.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - payload_hash = sha256(canonical_json(payload))
    - chain_hash   = sha256(previous_hash + ":" + payload_hash)
    - previous_hash of the first entry in a scope is "GENESIS".
    - Adjacent entries satisfy entry[n].previous_hash == entry[n-1].chain_hash.

Failure modes:
    - CryptoUnavailableError from seal() if SHA-256 is not available.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from kanzlei_kernel.utils.hashing import (
    GENESIS_HASH,
    HASH_ALGORITHM,
    hash_chain_link,
    hash_payload,
)


@dataclass(frozen=True)
class ChainLink:
    """The hash fields stored on every chained record."""

    previous_hash: str
    payload_hash: str
    chain_hash: str
    algorithm: str = HASH_ALGORITHM

    @property
    def is_genesis(self) -> bool:
        return self.previous_hash == GENESIS_HASH


class ChainEntry(Protocol):
    previous_hash: str
    chain_hash: str


class SealedEntry(ChainEntry, Protocol):
    id: Any
    payload: dict
    payload_hash: str


def seal(payload: dict, previous_hash: str | None) -> ChainLink:
    """Compute the link for a payload appended after ``previous_hash``."""
    prev = previous_hash or GENESIS_HASH
    payload_hash = hash_payload(payload)
    return ChainLink(
        previous_hash=prev,
        payload_hash=payload_hash,
        chain_hash=hash_chain_link(prev, payload_hash),
    )


def verify_chain(entries: Sequence[ChainEntry]) -> bool:
    """
    True iff every adjacent pair links.

    Entries must already be in chain order.  A sequence of zero or one
    entry is trivially consistent; this check does not require the first
    entry to be genesis, so it can be applied to a window of a chain
    (e.g. one day's signatures).
    """
    for i in range(1, len(entries)):
        if entries[i].previous_hash != entries[i - 1].chain_hash:
            return False
    return True


@dataclass(frozen=True)
class ChainBreak:
    """First point at which a chain fails strict verification."""

    index: int
    entry_id: str
    reason: str
    expected: str
    actual: str


def find_chain_break(
    entries: Sequence[SealedEntry],
    expect_genesis: bool = True,
) -> ChainBreak | None:
    """
    Strict verification: linkage plus recomputation of both hashes.

    Detects edited payloads (payload_hash mismatch), edited link fields
    (chain_hash mismatch), removed or reordered entries (linkage), and a
    truncated head (first entry not genesis).

    Returns:
        The first ChainBreak, or None if the chain verifies.
    """
    for i, entry in enumerate(entries):
        if i == 0:
            if expect_genesis and entry.previous_hash != GENESIS_HASH:
                return ChainBreak(0, str(entry.id), "not_genesis", GENESIS_HASH, entry.previous_hash)
        elif entry.previous_hash != entries[i - 1].chain_hash:
            return ChainBreak(
                i, str(entry.id), "broken_link", entries[i - 1].chain_hash, entry.previous_hash
            )

        expected_payload_hash = hash_payload(entry.payload)
        if entry.payload_hash != expected_payload_hash:
            return ChainBreak(
                i, str(entry.id), "payload_hash_mismatch", expected_payload_hash, entry.payload_hash
            )

        expected_chain_hash = hash_chain_link(entry.previous_hash, entry.payload_hash)
        if entry.chain_hash != expected_chain_hash:
            return ChainBreak(
                i, str(entry.id), "chain_hash_mismatch", expected_chain_hash, entry.chain_hash
            )
    return None
