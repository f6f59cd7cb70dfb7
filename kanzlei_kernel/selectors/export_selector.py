"""
Module: kanzlei_kernel.selectors.export_selector
Responsibility: Read access to export configs, export runs and the export
    journal chain.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from kanzlei_kernel.domain.dtos import ExportRunStatus, JournalStatus
from kanzlei_kernel.domain.values import round_money
from kanzlei_kernel.models.export import ExportConfig, ExportRun
from kanzlei_kernel.models.export_journal import ExportJournalEntry
from kanzlei_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ExportJournalEntryDTO:
    id: UUID
    workspace_id: str
    seq: int
    provider: str
    format: str
    scope: str
    run_id: UUID
    file_name: str | None
    record_count: int
    total_net: Decimal
    total_gross: Decimal
    status: JournalStatus
    period_from: str
    period_to: str
    triggered_by: str
    error_message: str | None
    payload: dict
    payload_hash: str
    previous_hash: str
    chain_hash: str
    algorithm: str
    created_at: datetime
    case_id: str | None = None

    @classmethod
    def from_model(cls, row: ExportJournalEntry) -> ExportJournalEntryDTO:
        return cls(
            id=row.id,
            workspace_id=row.workspace_id,
            seq=row.seq,
            provider=row.provider,
            format=row.format,
            scope=row.scope,
            run_id=row.run_id,
            file_name=row.file_name,
            record_count=row.record_count,
            total_net=round_money(row.total_net),
            total_gross=round_money(row.total_gross),
            status=JournalStatus(row.status),
            period_from=row.period_from,
            period_to=row.period_to,
            triggered_by=row.triggered_by,
            error_message=row.error_message,
            payload=dict(row.payload),
            payload_hash=row.payload_hash,
            previous_hash=row.previous_hash,
            chain_hash=row.chain_hash,
            algorithm=row.algorithm,
            created_at=row.created_at,
            case_id=row.case_id,
        )


@dataclass(frozen=True)
class ExportRunDTO:
    id: UUID
    workspace_id: str
    config_id: UUID
    provider: str
    format: str
    scope: str
    period_from: str
    period_to: str
    status: ExportRunStatus
    file_name: str | None
    record_count: int
    total_net: Decimal
    total_gross: Decimal
    error_message: str | None
    exported_by: str
    exported_by_name: str | None
    started_at: datetime
    completed_at: datetime | None
    downloaded_at: datetime | None
    matter_id: str | None = None

    @classmethod
    def from_model(cls, row: ExportRun) -> ExportRunDTO:
        return cls(
            id=row.id,
            workspace_id=row.workspace_id,
            config_id=row.config_id,
            provider=row.provider,
            format=row.format,
            scope=row.scope,
            period_from=row.period_from,
            period_to=row.period_to,
            status=ExportRunStatus(row.status),
            file_name=row.file_name,
            record_count=row.record_count,
            total_net=round_money(row.total_net),
            total_gross=round_money(row.total_gross),
            error_message=row.error_message,
            exported_by=row.exported_by,
            exported_by_name=row.exported_by_name,
            started_at=row.started_at,
            completed_at=row.completed_at,
            downloaded_at=row.downloaded_at,
            matter_id=row.matter_id,
        )


@dataclass(frozen=True)
class ExportDashboardStats:
    """Headline numbers for the export overview."""

    total_runs: int
    ready_runs: int
    downloaded_runs: int
    failed_runs: int
    last_run_at: datetime | None
    last_successful_run_at: datetime | None
    records_exported: int


class ExportSelector(BaseSelector):
    """Queries over export configs, runs and the export journal."""

    def active_config_for(self, workspace_id: str, provider: str) -> ExportConfig | None:
        """
        The active config for a provider.

        Returns the ORM row: configs are mutable working records that the
        export service updates in place.
        """
        return self.session.execute(
            select(ExportConfig)
            .where(ExportConfig.workspace_id == workspace_id)
            .where(ExportConfig.provider == provider)
            .where(ExportConfig.is_active.is_(True))
            .order_by(ExportConfig.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_run(self, run_id: UUID) -> ExportRunDTO | None:
        row = self.session.get(ExportRun, run_id)
        return ExportRunDTO.from_model(row) if row is not None else None

    def run_history(self, workspace_id: str, limit: int = 20) -> list[ExportRunDTO]:
        rows = self.session.execute(
            select(ExportRun)
            .where(ExportRun.workspace_id == workspace_id)
            .order_by(ExportRun.started_at.desc())
            .limit(limit)
        ).scalars().all()
        return [ExportRunDTO.from_model(r) for r in rows]

    def dashboard_stats(self, workspace_id: str) -> ExportDashboardStats:
        counts = dict(
            self.session.execute(
                select(ExportRun.status, func.count())
                .where(ExportRun.workspace_id == workspace_id)
                .group_by(ExportRun.status)
            ).all()
        )
        last_run_at = self.session.execute(
            select(func.max(ExportRun.started_at)).where(ExportRun.workspace_id == workspace_id)
        ).scalar_one()
        successful = (ExportRunStatus.READY.value, ExportRunStatus.DOWNLOADED.value)
        last_ok = self.session.execute(
            select(func.max(ExportRun.completed_at))
            .where(ExportRun.workspace_id == workspace_id)
            .where(ExportRun.status.in_(successful))
        ).scalar_one()
        records = self.session.execute(
            select(func.coalesce(func.sum(ExportRun.record_count), 0))
            .where(ExportRun.workspace_id == workspace_id)
            .where(ExportRun.status.in_(successful))
        ).scalar_one()
        return ExportDashboardStats(
            total_runs=sum(counts.values()),
            ready_runs=counts.get(ExportRunStatus.READY.value, 0),
            downloaded_runs=counts.get(ExportRunStatus.DOWNLOADED.value, 0),
            failed_runs=counts.get(ExportRunStatus.FAILED.value, 0),
            last_run_at=last_run_at,
            last_successful_run_at=last_ok,
            records_exported=int(records),
        )

    def journal_for_workspace(self, workspace_id: str) -> list[ExportJournalEntryDTO]:
        rows = self.session.execute(
            select(ExportJournalEntry)
            .where(ExportJournalEntry.workspace_id == workspace_id)
            .order_by(ExportJournalEntry.seq)
        ).scalars().all()
        return [ExportJournalEntryDTO.from_model(r) for r in rows]

    def journal_for_run(self, run_id: UUID) -> list[ExportJournalEntryDTO]:
        rows = self.session.execute(
            select(ExportJournalEntry)
            .where(ExportJournalEntry.run_id == run_id)
            .order_by(ExportJournalEntry.seq)
        ).scalars().all()
        return [ExportJournalEntryDTO.from_model(r) for r in rows]
