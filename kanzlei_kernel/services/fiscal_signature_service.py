"""
FiscalSignatureService -- the per-workspace fiscal signature ledger.

Responsibility:
    Seals cash-handling events (cash payments, receipt voids) into an
    append-only hash chain scoped to the workspace, and verifies that chain.

Architecture position:
    Kernel > Services -- imperative shell, called by KassenbelegService.

Invariants enforced:
    - Append-only: there is no update or delete operation; a mistake is
      corrected by signing a compensating event.
    - Chain linkage via ChainWriter (one chain per workspace, not per matter).
    - Hashes are computed before anything is written.

Failure modes:
    - CryptoUnavailableError: no SHA-256 available; nothing is appended.
    - ChainForkError: a concurrent writer appended first.
    - ChainVerificationFailedError: from validate_chain() on a tampered chain.

Audit relevance:
    Every row is evidence for cash-basis bookkeeping.  validate_chain()
    recomputes every hash, so edited payloads, rewritten links, deleted or
    reordered rows are all detected.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from kanzlei_kernel.domain.chain import find_chain_break, verify_chain
from kanzlei_kernel.domain.clock import Clock, SystemClock
from kanzlei_kernel.domain.dtos import FiscalEventType
from kanzlei_kernel.exceptions import ChainVerificationFailedError
from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_kernel.selectors.ledger_selector import FiscalSignatureSelector
from kanzlei_kernel.services.chain_writer import ChainWriter
from kanzlei_kernel.services.scope_locks import FISCAL_LEDGER, ScopeLocks

logger = get_logger("services.fiscal_signature")


class FiscalSignatureService:
    """
    Signs fiscal events onto the workspace chain.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: ScopeLocks | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._writer: ChainWriter[FiscalSignature] = ChainWriter(
            session, FiscalSignature, FISCAL_LEDGER, locks
        )
        self._selector = FiscalSignatureSelector(session)

    def sign_event(
        self,
        workspace_id: str,
        event_type: FiscalEventType,
        payload: dict[str, Any],
        *,
        case_id: str | None = None,
        matter_id: str | None = None,
        kassenbeleg_id: UUID | None = None,
    ) -> FiscalSignature:
        """
        Append one signed event to the workspace chain.

        Postconditions:
            - The returned row is flushed; its previous_hash is the prior
              entry's chain_hash or "GENESIS".
        """
        signed_at = self._clock.now_utc()
        signature = self._writer.append(
            workspace_id,
            payload,
            event_type=FiscalEventType(event_type).value,
            case_id=case_id,
            matter_id=matter_id,
            kassenbeleg_id=kassenbeleg_id,
            signed_at=signed_at,
            signed_on=signed_at.date(),
        )

        logger.info(
            "fiscal_signature_created",
            extra={
                "workspace_id": workspace_id,
                "signature_id": str(signature.id),
                "event_type": signature.event_type,
                "seq": signature.seq,
                "previous_hash": signature.previous_hash,
                "chain_hash": signature.chain_hash,
            },
        )
        return signature

    def verify_workspace_chain(self, workspace_id: str) -> bool:
        """Linkage-only check of the whole workspace chain."""
        return verify_chain(self._selector.list_for_workspace(workspace_id))

    def validate_chain(self, workspace_id: str) -> bool:
        """
        Strict verification: linkage, genesis and recomputed hashes.

        Raises:
            ChainVerificationFailedError: at the first inconsistent entry.
        """
        entries = self._selector.list_for_workspace(workspace_id)
        broken = find_chain_break(entries)
        if broken is not None:
            logger.critical(
                "fiscal_chain_broken",
                extra={
                    "workspace_id": workspace_id,
                    "entry_id": broken.entry_id,
                    "reason": broken.reason,
                    "index": broken.index,
                },
            )
            raise ChainVerificationFailedError(
                FISCAL_LEDGER, workspace_id, broken.entry_id, broken.expected, broken.actual
            )

        logger.info(
            "fiscal_chain_valid",
            extra={"workspace_id": workspace_id, "entry_count": len(entries)},
        )
        return True
