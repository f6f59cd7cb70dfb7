"""
ExportJournalService -- tamper-evident journal of export runs.

Responsibility:
    Seals every terminal export-run transition (ready, failed) and every
    explicit download into a workspace-scoped hash chain that is independent
    from the fiscal signature chain.

Architecture position:
    Kernel > Services -- called by kanzlei_services.export_service.

Invariants enforced:
    - One entry per transition; a successful run normally yields two
      (ready, then downloaded).
    - The sealed payload is the run identity (workspace, case, provider,
      format, scope, run id, file name), its metrics (record count, totals),
      the status, the period, who triggered it and the timestamp.
    - Same canonicalization as the fiscal ledger, verified the same way.

Failure modes:
    - CryptoUnavailableError, ChainForkError (see ChainWriter).
    - ChainVerificationFailedError from validate_chain().

Non-goals:
    - Does NOT call session.commit() -- caller controls boundaries.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from kanzlei_kernel.domain.chain import find_chain_break, verify_chain
from kanzlei_kernel.domain.clock import Clock, SystemClock
from kanzlei_kernel.domain.dtos import JournalStatus
from kanzlei_kernel.domain.values import round_money
from kanzlei_kernel.exceptions import ChainVerificationFailedError
from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.models.export import ExportRun
from kanzlei_kernel.models.export_journal import ExportJournalEntry
from kanzlei_kernel.selectors.export_selector import ExportSelector
from kanzlei_kernel.services.chain_writer import ChainWriter
from kanzlei_kernel.services.scope_locks import EXPORT_JOURNAL, ScopeLocks

logger = get_logger("services.export_journal")


class ExportJournalService:
    """Appends and verifies export journal entries."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: ScopeLocks | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._writer: ChainWriter[ExportJournalEntry] = ChainWriter(
            session, ExportJournalEntry, EXPORT_JOURNAL, locks
        )
        self._selector = ExportSelector(session)

    def record_transition(
        self,
        run: ExportRun,
        status: JournalStatus,
        triggered_by: str | None = None,
    ) -> ExportJournalEntry:
        """
        Seal one state transition of ``run``.

        Args:
            run: The export run (already carrying its new status/metrics).
            status: The transition being recorded.
            triggered_by: Actor; defaults to the run's exporter.
        """
        status = JournalStatus(status)
        created_at = self._clock.now_utc()
        actor = triggered_by or run.exported_by
        total_net = round_money(run.total_net or 0)
        total_gross = round_money(run.total_gross or 0)

        payload = {
            "workspace_id": run.workspace_id,
            "case_id": run.case_id,
            "provider": run.provider,
            "format": run.format,
            "scope": run.scope,
            "run_id": run.id,
            "file_name": run.file_name,
            "record_count": run.record_count,
            "total_net": total_net,
            "total_gross": total_gross,
            "status": status.value,
            "period_from": run.period_from,
            "period_to": run.period_to,
            "triggered_by": actor,
            "created_at": created_at,
        }
        if status == JournalStatus.FAILED:
            payload["error_message"] = run.error_message

        entry = self._writer.append(
            run.workspace_id,
            payload,
            case_id=run.case_id,
            provider=run.provider,
            format=run.format,
            scope=run.scope,
            run_id=run.id,
            file_name=run.file_name,
            record_count=run.record_count,
            total_net=total_net,
            total_gross=total_gross,
            status=status.value,
            period_from=run.period_from,
            period_to=run.period_to,
            triggered_by=actor,
            error_message=run.error_message if status == JournalStatus.FAILED else None,
            created_at=created_at,
        )

        logger.info(
            "export_journal_entry_created",
            extra={
                "workspace_id": run.workspace_id,
                "run_id": str(run.id),
                "status": status.value,
                "seq": entry.seq,
                "chain_hash": entry.chain_hash,
            },
        )
        return entry

    def verify_workspace_chain(self, workspace_id: str) -> bool:
        """Linkage-only check of the workspace's export journal."""
        return verify_chain(self._selector.journal_for_workspace(workspace_id))

    def validate_chain(self, workspace_id: str) -> bool:
        """
        Strict verification: linkage, genesis and recomputed hashes.

        Raises:
            ChainVerificationFailedError: at the first inconsistent entry.
        """
        entries = self._selector.journal_for_workspace(workspace_id)
        broken = find_chain_break(entries)
        if broken is not None:
            logger.critical(
                "export_journal_chain_broken",
                extra={
                    "workspace_id": workspace_id,
                    "entry_id": broken.entry_id,
                    "reason": broken.reason,
                },
            )
            raise ChainVerificationFailedError(
                EXPORT_JOURNAL, workspace_id, broken.entry_id, broken.expected, broken.actual
            )
        return True
