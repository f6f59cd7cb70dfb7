"""
Module: kanzlei_kernel.models.export_journal
Responsibility: ORM persistence for the export journal -- the hash chain that
    seals every accounting-export run state transition.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + DB trigger).
    - One row per run transition (ready, failed, downloaded).
    - Chain scope is the workspace; (workspace_id, seq),
      (workspace_id, previous_hash) and (workspace_id, chain_hash) are unique.

Audit relevance:
    ExportRun rows are mutable working records; this journal is the
    tamper-evident mirror of what was exported, when, by whom and with
    which totals.  It is independent from the fiscal signature chain.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kanzlei_kernel.db.base import Base, UUIDString
from kanzlei_kernel.domain.dtos import JournalStatus


class ExportJournalEntry(Base):
    """One sealed export-run transition."""

    __tablename__ = "export_journal"

    __table_args__ = (
        UniqueConstraint("workspace_id", "seq", name="uq_export_journal_seq"),
        UniqueConstraint("workspace_id", "previous_hash", name="uq_export_journal_prev"),
        UniqueConstraint("workspace_id", "chain_hash", name="uq_export_journal_hash"),
        Index("idx_export_journal_run", "run_id"),
    )

    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    seq: Mapped[int] = mapped_column(nullable=False)
    case_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(30), nullable=False)
    scope: Mapped[str] = mapped_column(String(30), nullable=False)
    run_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_net: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[JournalStatus] = mapped_column(String(20), nullable=False)
    period_from: Mapped[str] = mapped_column(String(10), nullable=False)
    period_to: Mapped[str] = mapped_column(String(10), nullable=False)
    triggered_by: Mapped[str] = mapped_column(String(100), nullable=False)
    error_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    chain_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(20), nullable=False, default="sha256")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ExportJournalEntry {self.workspace_id}#{self.seq} {self.status} run={self.run_id}>"
