"""
ScopeLocks -- per-chain-scope serialization of appends.

Responsibility:
    A process-wide registry holding one re-entrant lock per (ledger, scope).
    A read-latest-then-append on a chain must not interleave with another
    append to the same chain, or two entries end up claiming the same
    previous_hash.

Architecture position:
    Kernel > Services -- used by ChainWriter (per append) and by the
    orchestration layer, which holds the lock for the whole transaction so
    the append and its commit are atomic with respect to other writers.

Invariants enforced:
    - At most one writer per (ledger, scope) inside this process.
    - Cross-process writers are caught by the unique (workspace_id, seq)
      and (workspace_id, previous_hash) constraints (ChainForkError).
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

FISCAL_LEDGER = "fiscal_signatures"
EXPORT_JOURNAL = "export_journal"


class ScopeLocks:
    """Lazily created RLocks keyed by (ledger, scope_id)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.RLock] = {}

    def lock_for(self, ledger: str, scope_id: str) -> threading.RLock:
        key = (ledger, scope_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, ledger: str, scope_id: str) -> Iterator[None]:
        lock = self.lock_for(ledger, scope_id)
        with lock:
            yield


_default_locks = ScopeLocks()


def default_scope_locks() -> ScopeLocks:
    """The process-wide registry shared by every service instance."""
    return _default_locks
