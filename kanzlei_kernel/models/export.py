"""
Module: kanzlei_kernel.models.export
Responsibility: ORM persistence for the mutable export working records --
    ExportConfig (destination settings per workspace/provider) and ExportRun
    (one execution with its generated content).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ExportRun.status only moves pending -> generating -> ready|failed,
      and ready -> downloaded.  The transitions are enforced by
      ExportService; terminal states are mirrored into the export journal.

Audit relevance:
    Not chained.  Only the journal entries written at each terminal
    transition are tamper-evident.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kanzlei_kernel.db.base import TrackedBase, UUIDString


class ExportConfig(TrackedBase):
    """Per-workspace destination settings for one accounting provider."""

    __tablename__ = "export_configs"

    __table_args__ = (
        Index("idx_export_config_workspace", "workspace_id", "provider"),
    )

    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(30), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # DATEV
    datev_adviser_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    datev_client_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fiscal_year_start: Mapped[str] = mapped_column(String(2), nullable=False, default="01")
    account_length: Mapped[int] = mapped_column(Integer, nullable=False, default=4)

    # BMD
    bmd_firm_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    chart_of_accounts: Mapped[str] = mapped_column(String(10), nullable=False, default="skr03")
    revenue_account: Mapped[str] = mapped_column(String(10), nullable=False)
    expense_account: Mapped[str] = mapped_column(String(10), nullable=False)
    vat_account: Mapped[str] = mapped_column(String(10), nullable=False)
    client_funds_account: Mapped[str | None] = mapped_column(String(10), nullable=True)

    csv_separator: Mapped[str] = mapped_column(String(1), nullable=False, default=";")
    encoding: Mapped[str] = mapped_column(String(20), nullable=False, default="utf-8")
    include_voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<ExportConfig {self.workspace_id} {self.provider}/{self.format}>"


class ExportRun(TrackedBase):
    """One execution of an export config over a date window."""

    __tablename__ = "export_runs"

    __table_args__ = (
        Index("idx_export_run_workspace", "workspace_id", "created_at"),
    )

    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    config_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(30), nullable=False)
    scope: Mapped[str] = mapped_column(String(30), nullable=False)
    period_from: Mapped[str] = mapped_column(String(10), nullable=False)
    period_to: Mapped[str] = mapped_column(String(10), nullable=False)
    matter_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    case_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    encoding: Mapped[str] = mapped_column(String(20), nullable=False, default="utf-8")
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_net: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    total_gross: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))
    error_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    exported_by: Mapped[str] = mapped_column(String(100), nullable=False)
    exported_by_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    downloaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ExportRun {self.id} {self.format} {self.status}>"
