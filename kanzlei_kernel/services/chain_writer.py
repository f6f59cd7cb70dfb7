"""
ChainWriter -- persistence side of the hash-chain primitive.

Responsibility:
    Appends a payload to a workspace-scoped chain table: reads the latest
    entry, seals the payload against it, assigns the next scope-local seq
    and flushes the row.  Shared by the fiscal signature ledger and the
    export journal.

Architecture position:
    Kernel > Services -- imperative shell around domain/chain.py.

Invariants enforced:
    - previous_hash = latest.chain_hash, or "GENESIS" for the first entry.
    - seq = latest.seq + 1 (1 for the first entry).
    - Hashes are computed before anything is added to the session, so a
      CryptoUnavailableError never leaves a partial row behind.
    - Appends to one (ledger, scope) are serialized through ScopeLocks.

Failure modes:
    - CryptoUnavailableError: fatal, propagated unchanged.
    - ChainForkError: another writer appended to the scope first (unique
      constraint violation at flush).  The caller's transaction must be
      rolled back.

Non-goals:
    - Does NOT call session.commit() -- caller controls boundaries.
"""

from __future__ import annotations

import json
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kanzlei_kernel.domain.chain import ChainLink, seal
from kanzlei_kernel.exceptions import ChainForkError
from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.services.scope_locks import ScopeLocks, default_scope_locks
from kanzlei_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.chain_writer")

ChainModel = TypeVar("ChainModel")


class ChainWriter(Generic[ChainModel]):
    """Append-only writer for one chained table."""

    def __init__(
        self,
        session: Session,
        model: type[ChainModel],
        ledger: str,
        locks: ScopeLocks | None = None,
    ):
        self._session = session
        self._model = model
        self._ledger = ledger
        self._locks = locks or default_scope_locks()

    def latest(self, scope_id: str) -> ChainModel | None:
        model = self._model
        return self._session.execute(
            select(model)
            .where(model.workspace_id == scope_id)
            .order_by(model.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(self, scope_id: str, payload: dict[str, Any], **columns: Any) -> ChainModel:
        """
        Seal ``payload`` onto the scope's chain and flush the new row.

        Args:
            scope_id: Chain scope (workspace id).
            payload: Event payload; stored in canonical form.
            **columns: Additional model columns for the row.

        Returns:
            The flushed row.
        """
        canonical_payload = json.loads(canonicalize_json(payload))

        with self._locks.hold(self._ledger, scope_id):
            latest = self.latest(scope_id)
            link: ChainLink = seal(
                canonical_payload, latest.chain_hash if latest is not None else None
            )
            row = self._model(
                workspace_id=scope_id,
                seq=(latest.seq + 1) if latest is not None else 1,
                payload=canonical_payload,
                payload_hash=link.payload_hash,
                previous_hash=link.previous_hash,
                chain_hash=link.chain_hash,
                algorithm=link.algorithm,
                **columns,
            )
            self._session.add(row)
            try:
                self._session.flush()
            except IntegrityError as exc:
                logger.error(
                    "chain_fork_rejected",
                    extra={
                        "ledger": self._ledger,
                        "workspace_id": scope_id,
                        "previous_hash": link.previous_hash,
                    },
                )
                raise ChainForkError(self._ledger, scope_id, link.previous_hash) from exc

        logger.debug(
            "chain_entry_appended",
            extra={
                "ledger": self._ledger,
                "workspace_id": scope_id,
                "seq": row.seq,
                "chain_hash": link.chain_hash,
                "genesis": link.is_genesis,
            },
        )
        return row
