"""
kanzlei_services.export_service
===============================

Responsibility:
    Orchestrates accounting exports: export-config management, export runs
    (pending -> generating -> ready | failed, then downloaded), the guarded
    one-click export and the read side used by the export dashboard.

Architecture:
    Services layer.  Composes the pure engines (compliance, export
    formats) with the kernel's ExportJournalService and owns the
    transaction boundary: every public write method commits on success and
    rolls back on failure.  Journal appends hold the workspace's
    export-journal lock until the commit.

Invariants enforced:
    - Date range and compliance are checked before anything is written;
      a rejected one-click export leaves no config change, run or journal
      entry behind.
    - Generation runs outside the journal lock.  The journal entry is
      written only once generation has definitively succeeded or failed.
    - Generation-time exceptions are recorded as a failed run plus a
      ``failed`` journal entry; they never escape run_export().
    - Every ready, failed and downloaded transition is sealed in the
      export journal.

Failure modes:
    - InvalidDateRangeError, ComplianceBlockedError,
      OrganizationProfileMissingError: raised before any write.
    - ExportConfigNotFoundError / ExportRunNotFoundError for unknown ids.
    - ExportRunNotReadyError: one-click run failed, or content requested
      for a run that has none.
    - CryptoUnavailableError / ChainForkError from the journal: session
      rolled back, error re-raised.

Audit relevance:
    The export journal proves which file was produced from which window,
    by whom, and that it was handed out.  Structured log events accompany
    each transition.

Usage::

    service = ExportService(session, invoices=..., expenses=..., time_entries=...,
                            profiles=..., jurisdictions=...)
    result = service.run_one_click_export(
        workspace_id="ws-1", period_from="2025-01-01", period_to="2025-01-31",
        exported_by="user-1",
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from kanzlei_config import get_policy_tables
from kanzlei_config.schema import PolicyTables
from kanzlei_engines.compliance import (
    AccountingComplianceResult,
    default_format_for,
    ensure_compliant,
    evaluate,
    provider_for,
)
from kanzlei_engines.export_formats import (
    ExportSettings,
    GeneratedExport,
    encode_content,
    generate,
)
from kanzlei_kernel.domain.clock import Clock, SystemClock
from kanzlei_kernel.domain.collaborators import (
    ExpenseSource,
    InvoiceSource,
    JurisdictionResolver,
    OrganizationProfileProvider,
    TimeEntrySource,
)
from kanzlei_kernel.domain.dtos import (
    AccountingProvider,
    DateRange,
    ExportFormat,
    ExportRunStatus,
    ExportScope,
    Jurisdiction,
    JournalStatus,
    OrganizationProfile,
)
from kanzlei_kernel.domain.values import ZERO
from kanzlei_kernel.exceptions import (
    ExportConfigNotFoundError,
    ExportRunNotFoundError,
    ExportRunNotReadyError,
    OrganizationProfileMissingError,
)
from kanzlei_kernel.logging_config import LogContext, get_logger
from kanzlei_kernel.models.export import ExportConfig, ExportRun
from kanzlei_kernel.selectors.export_selector import (
    ExportDashboardStats,
    ExportJournalEntryDTO,
    ExportRunDTO,
    ExportSelector,
)
from kanzlei_kernel.services.export_journal_service import ExportJournalService
from kanzlei_kernel.services.scope_locks import (
    EXPORT_JOURNAL,
    ScopeLocks,
    default_scope_locks,
)
from kanzlei_services.reports import accounting_report_file_name, render_accounting_report

logger = get_logger("services.export")

# Config columns a caller may change through update_config().
UPDATABLE_CONFIG_FIELDS = frozenset({
    "format",
    "is_active",
    "datev_adviser_number",
    "datev_client_number",
    "fiscal_year_start",
    "account_length",
    "bmd_firm_number",
    "chart_of_accounts",
    "revenue_account",
    "expense_account",
    "vat_account",
    "client_funds_account",
    "csv_separator",
    "encoding",
    "include_voided",
})


@dataclass(frozen=True)
class ExportFile:
    """Downloadable export payload."""

    content: str
    file_name: str
    encoding: str

    def encoded(self) -> bytes:
        return encode_content(self.content, self.encoding)


@dataclass(frozen=True)
class OneClickExportResult:
    jurisdiction: Jurisdiction
    provider: AccountingProvider
    run: ExportRunDTO
    compliance: AccountingComplianceResult
    report_file_name: str
    report_html: str


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def settings_from_config(config: ExportConfig) -> ExportSettings:
    return ExportSettings(
        provider=AccountingProvider(config.provider),
        format=config.format,
        revenue_account=config.revenue_account,
        expense_account=config.expense_account,
        vat_account=config.vat_account,
        chart_of_accounts=config.chart_of_accounts,
        datev_adviser_number=config.datev_adviser_number,
        datev_client_number=config.datev_client_number,
        fiscal_year_start=config.fiscal_year_start,
        account_length=config.account_length,
        bmd_firm_number=config.bmd_firm_number,
        csv_separator=config.csv_separator,
        encoding=config.encoding,
        include_voided=config.include_voided,
    )


class ExportService:
    """
    Export runs, one-click export and export dashboard.

    Contract:
        Receives a Session and the record collaborators.  Profile and
        jurisdiction collaborators are only needed for the one-click flow.

    Transaction boundary:
        Write methods commit on success and roll back on failure.
    """

    def __init__(
        self,
        session: Session,
        invoices: InvoiceSource,
        expenses: ExpenseSource,
        time_entries: TimeEntrySource,
        profiles: OrganizationProfileProvider | None = None,
        jurisdictions: JurisdictionResolver | None = None,
        clock: Clock | None = None,
        locks: ScopeLocks | None = None,
        tables: PolicyTables | None = None,
    ):
        self._session = session
        self._invoices = invoices
        self._expenses = expenses
        self._time_entries = time_entries
        self._profiles = profiles
        self._jurisdictions = jurisdictions
        self._clock = clock or SystemClock()
        self._locks = locks or default_scope_locks()
        self._tables = tables or get_policy_tables()
        self._selector = ExportSelector(session)
        self._journal = ExportJournalService(session, self._clock, self._locks)

    # =========================================================================
    # Config management
    # =========================================================================

    def create_config(
        self,
        workspace_id: str,
        provider: AccountingProvider | str,
        export_format: ExportFormat | str | None = None,
        **settings: Any,
    ) -> ExportConfig:
        """
        Create the export config for a provider, filling account numbers,
        chart, encoding and separator from the provider defaults.
        """
        provider = AccountingProvider(provider)
        self._check_config_fields(settings)
        defaults = self._tables.defaults_for(provider.value)
        chart = self._tables.chart(settings.get("chart_of_accounts") or defaults.chart)
        export_format = ExportFormat(export_format or default_format_for(provider))

        try:
            config = ExportConfig(
                workspace_id=workspace_id,
                provider=provider.value,
                format=export_format.value,
                is_active=True,
                datev_adviser_number=_clean(settings.get("datev_adviser_number")),
                datev_client_number=_clean(settings.get("datev_client_number")),
                fiscal_year_start=settings.get("fiscal_year_start") or "01",
                account_length=settings.get("account_length") or 4,
                bmd_firm_number=_clean(settings.get("bmd_firm_number")),
                chart_of_accounts=chart.name,
                revenue_account=settings.get("revenue_account") or defaults.revenue_account,
                expense_account=settings.get("expense_account") or defaults.expense_account,
                vat_account=settings.get("vat_account") or defaults.vat_account,
                client_funds_account=(
                    settings.get("client_funds_account") or chart.client_funds_account
                ),
                csv_separator=settings.get("csv_separator") or defaults.csv_separator,
                encoding=settings.get("encoding") or defaults.encoding,
                include_voided=bool(settings.get("include_voided", False)),
            )
            self._session.add(config)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "export_config_created",
            extra={
                "workspace_id": workspace_id,
                "config_id": str(config.id),
                "provider": provider.value,
                "format": export_format.value,
            },
        )
        return config

    def update_config(self, config_id: UUID, **updates: Any) -> ExportConfig:
        """
        Change settings of an existing config.

        Raises:
            ExportConfigNotFoundError: If no config has that id.
            ValueError: For fields that cannot be updated.
        """
        self._check_config_fields(updates)
        config = self._session.get(ExportConfig, config_id)
        if config is None:
            raise ExportConfigNotFoundError(str(config_id))

        try:
            for name, value in updates.items():
                if name == "format":
                    value = ExportFormat(value).value
                elif name == "chart_of_accounts":
                    value = self._tables.chart(value).name
                elif name in ("datev_adviser_number", "datev_client_number", "bmd_firm_number"):
                    value = _clean(value)
                setattr(config, name, value)
            self._session.flush()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.info(
            "export_config_updated",
            extra={"config_id": str(config_id), "fields": sorted(updates)},
        )
        return config

    def get_config_for_provider(
        self,
        workspace_id: str,
        provider: AccountingProvider | str,
    ) -> ExportConfig | None:
        return self._selector.active_config_for(workspace_id, AccountingProvider(provider).value)

    @staticmethod
    def _check_config_fields(values: dict[str, Any]) -> None:
        unknown = set(values) - UPDATABLE_CONFIG_FIELDS
        if unknown:
            raise ValueError(f"Unknown export config fields: {', '.join(sorted(unknown))}")

    # =========================================================================
    # Export runs
    # =========================================================================

    def run_export(
        self,
        workspace_id: str,
        config_id: UUID,
        scope: ExportScope | str,
        period_from: str,
        period_to: str,
        exported_by: str,
        exported_by_name: str | None = None,
        matter_id: str | None = None,
        case_id: str | None = None,
    ) -> ExportRunDTO:
        """
        Execute one export run.

        Postconditions:
            - The run is ``ready`` with content, or ``failed`` with an error
              message; either way exactly one journal entry was appended.

        Raises:
            InvalidDateRangeError: Before anything is written.
            ExportConfigNotFoundError: If the config does not exist.
        """
        date_range = DateRange.parse(period_from, period_to)
        scope = ExportScope(scope)
        config = self._session.get(ExportConfig, config_id)
        if config is None:
            raise ExportConfigNotFoundError(str(config_id))

        with LogContext.bind(workspace_id=workspace_id, actor_id=exported_by):
            run_id = self._start_run(
                workspace_id, config, scope, date_range, exported_by, exported_by_name,
                matter_id, case_id,
            )
            with LogContext.bind(run_id=run_id):
                logger.info(
                    "export_run_started",
                    extra={
                        "format": config.format,
                        "scope": scope.value,
                        "period_from": date_range.period_from,
                        "period_to": date_range.period_to,
                    },
                )

                generated: GeneratedExport | None = None
                error_message: str | None = None
                try:
                    generated = self._generate(config, scope, date_range, workspace_id, matter_id)
                except Exception as exc:
                    error_message = str(exc) or type(exc).__name__
                    logger.error(
                        "export_run_failed",
                        extra={"error": error_message},
                        exc_info=True,
                    )

                result = self._finish_run(run_id, workspace_id, generated, error_message)
                if generated is not None:
                    logger.info(
                        "export_run_completed",
                        extra={
                            "file_name": generated.file_name,
                            "record_count": generated.record_count,
                            "total_gross": generated.total_gross,
                        },
                    )
        return result

    def _start_run(
        self,
        workspace_id: str,
        config: ExportConfig,
        scope: ExportScope,
        date_range: DateRange,
        exported_by: str,
        exported_by_name: str | None,
        matter_id: str | None,
        case_id: str | None,
    ) -> UUID:
        """Persist the run as pending, move it to generating and commit."""
        try:
            run = ExportRun(
                workspace_id=workspace_id,
                config_id=config.id,
                provider=config.provider,
                format=config.format,
                scope=scope.value,
                period_from=date_range.period_from,
                period_to=date_range.period_to,
                matter_id=matter_id,
                case_id=case_id,
                status=ExportRunStatus.PENDING.value,
                encoding=config.encoding,
                record_count=0,
                total_net=ZERO,
                total_gross=ZERO,
                exported_by=exported_by,
                exported_by_name=exported_by_name,
                started_at=self._clock.now_utc(),
            )
            self._session.add(run)
            self._session.flush()
            run.status = ExportRunStatus.GENERATING.value
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return run.id

    def _finish_run(
        self,
        run_id: UUID,
        workspace_id: str,
        generated: GeneratedExport | None,
        error_message: str | None,
    ) -> ExportRunDTO:
        """Settle the run as ready or failed and journal it, under the journal lock."""
        with self._locks.hold(EXPORT_JOURNAL, workspace_id):
            try:
                run = self._session.get(ExportRun, run_id)
                if generated is not None:
                    run.status = ExportRunStatus.READY.value
                    run.content = generated.content
                    run.file_name = generated.file_name
                    run.record_count = generated.record_count
                    run.total_net = generated.total_net
                    run.total_gross = generated.total_gross
                    journal_status = JournalStatus.READY
                else:
                    run.status = ExportRunStatus.FAILED.value
                    run.error_message = (error_message or "Export failed")[:2000]
                    journal_status = JournalStatus.FAILED
                run.completed_at = self._clock.now_utc()
                self._session.flush()
                self._journal.record_transition(run, journal_status)
                result = ExportRunDTO.from_model(run)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise
        return result

    def _generate(
        self,
        config: ExportConfig,
        scope: ExportScope,
        date_range: DateRange,
        workspace_id: str,
        matter_id: str | None,
    ) -> GeneratedExport:
        start, end = date_range.start, date_range.end
        invoices = (
            self._invoices.invoices_in_range(workspace_id, start, end, matter_id)
            if scope.includes_invoices else []
        )
        expenses = (
            self._expenses.expenses_in_range(workspace_id, start, end, matter_id)
            if scope.includes_expenses else []
        )
        time_entries = (
            self._time_entries.time_entries_in_range(workspace_id, start, end, matter_id)
            if scope.includes_time_entries else []
        )
        return generate(
            settings_from_config(config),
            scope=scope,
            date_range=date_range,
            invoices=invoices,
            expenses=expenses,
            time_entries=time_entries,
            chart=self._tables.chart(config.chart_of_accounts),
            created_on=self._clock.today(),
            matter_id=matter_id,
        )

    def mark_downloaded(self, run_id: UUID, triggered_by: str | None = None) -> ExportRunDTO:
        """
        Record that a ready run's file was handed out.

        Only the first download is a state transition; later calls return
        the run unchanged without a journal entry.

        Raises:
            ExportRunNotFoundError: Unknown run.
            ExportRunNotReadyError: The run is not ready (pending, failed, ...).
        """
        run = self._session.get(ExportRun, run_id)
        if run is None:
            raise ExportRunNotFoundError(str(run_id))
        if run.status == ExportRunStatus.DOWNLOADED.value:
            return ExportRunDTO.from_model(run)
        if run.status != ExportRunStatus.READY.value:
            raise ExportRunNotReadyError(str(run_id), run.status, run.error_message)

        workspace_id = run.workspace_id
        with LogContext.bind(workspace_id=workspace_id, actor_id=triggered_by, run_id=run_id):
            with self._locks.hold(EXPORT_JOURNAL, workspace_id):
                try:
                    run.status = ExportRunStatus.DOWNLOADED.value
                    run.downloaded_at = self._clock.now_utc()
                    self._session.flush()
                    self._journal.record_transition(run, JournalStatus.DOWNLOADED, triggered_by)
                    result = ExportRunDTO.from_model(run)
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    raise
            logger.info("export_run_downloaded")
        return result

    # =========================================================================
    # One-click export
    # =========================================================================

    def evaluate_compliance(
        self,
        workspace_id: str,
        period_from: str,
        period_to: str,
        matter_id: str | None = None,
    ) -> tuple[AccountingComplianceResult, OrganizationProfile | None]:
        """Run the compliance gate for the active jurisdiction without exporting."""
        if self._profiles is None or self._jurisdictions is None:
            raise RuntimeError(
                "ExportService needs profile and jurisdiction collaborators for compliance"
            )
        date_range = DateRange.parse(period_from, period_to)
        jurisdiction = Jurisdiction(self._jurisdictions.get_active_jurisdiction())
        provider = provider_for(jurisdiction, self._tables)
        profile = self._profiles.get_organization_profile(workspace_id)
        invoices = self._invoices.invoices_in_range(
            workspace_id, date_range.start, date_range.end, matter_id
        )
        window = [inv for inv in invoices if date_range.contains(inv.invoice_date)]
        result = evaluate(
            jurisdiction=jurisdiction,
            provider=provider,
            profile=profile,
            invoices=window,
            tables=self._tables,
        )
        return result, profile

    def run_one_click_export(
        self,
        workspace_id: str,
        period_from: str,
        period_to: str,
        exported_by: str,
        exported_by_name: str | None = None,
        matter_id: str | None = None,
        matter_label: str | None = None,
        client_labels: Sequence[str] = (),
    ) -> OneClickExportResult:
        """
        Guarded export: compliance gate, config sync, full-scope run, report.

        Raises:
            InvalidDateRangeError: Malformed or inverted window.
            OrganizationProfileMissingError: No profile for the workspace.
            ComplianceBlockedError: Missing fields or tax-rate violations.
            ExportRunNotReadyError: The run was recorded as failed.
        """
        compliance, profile = self.evaluate_compliance(
            workspace_id, period_from, period_to, matter_id
        )
        if profile is None:
            raise OrganizationProfileMissingError(workspace_id)
        if not compliance.is_compliant:
            logger.warning(
                "one_click_export_blocked",
                extra={
                    "workspace_id": workspace_id,
                    "jurisdiction": compliance.jurisdiction.value,
                    "provider": compliance.provider.value,
                    "missing_fields": list(compliance.missing_fields),
                    "rule_violations": list(compliance.rule_violations),
                },
            )
        ensure_compliant(compliance)

        provider = compliance.provider
        profile_ids = {
            "datev_adviser_number": profile.value_of("datev_adviser_number") or None,
            "datev_client_number": profile.value_of("datev_client_number") or None,
            "bmd_firm_number": profile.value_of("bmd_firm_number") or None,
        }
        config = self.get_config_for_provider(workspace_id, provider)
        if config is None:
            config = self.create_config(workspace_id, provider, **profile_ids)
        else:
            changed = {k: v for k, v in profile_ids.items() if v is not None}
            if changed:
                config = self.update_config(config.id, **changed)

        run = self.run_export(
            workspace_id,
            config.id,
            ExportScope.ALL,
            period_from,
            period_to,
            exported_by,
            exported_by_name=exported_by_name,
            matter_id=matter_id,
        )
        if run.status != ExportRunStatus.READY:
            raise ExportRunNotReadyError(str(run.id), run.status.value, run.error_message)

        report_html = render_accounting_report(
            jurisdiction=compliance.jurisdiction.value,
            provider=provider.value,
            profile=profile,
            file_name=run.file_name,
            period_from=run.period_from,
            period_to=run.period_to,
            record_count=run.record_count,
            total_net=run.total_net,
            total_gross=run.total_gross,
            warnings=compliance.warnings,
            rule_violations=compliance.rule_violations,
            generated_on=self._clock.today(),
            matter_label=matter_label,
            client_labels=client_labels,
        )
        logger.info(
            "one_click_export_completed",
            extra={
                "workspace_id": workspace_id,
                "run_id": str(run.id),
                "jurisdiction": compliance.jurisdiction.value,
                "provider": provider.value,
                "warning_count": len(compliance.warnings),
            },
        )
        return OneClickExportResult(
            jurisdiction=compliance.jurisdiction,
            provider=provider,
            run=run,
            compliance=compliance,
            report_file_name=accounting_report_file_name(
                provider.value, run.period_from, run.period_to
            ),
            report_html=report_html,
        )

    # =========================================================================
    # Read side
    # =========================================================================

    def get_export_content(self, run_id: UUID) -> ExportFile:
        """
        Raises:
            ExportRunNotFoundError: Unknown run.
            ExportRunNotReadyError: The run has no generated content.
        """
        run = self._session.get(ExportRun, run_id)
        if run is None:
            raise ExportRunNotFoundError(str(run_id))
        if run.content is None or run.file_name is None:
            raise ExportRunNotReadyError(str(run_id), run.status, run.error_message)
        return ExportFile(content=run.content, file_name=run.file_name, encoding=run.encoding)

    def get_run(self, run_id: UUID) -> ExportRunDTO:
        run = self._selector.get_run(run_id)
        if run is None:
            raise ExportRunNotFoundError(str(run_id))
        return run

    def get_run_history(self, workspace_id: str, limit: int = 20) -> list[ExportRunDTO]:
        return self._selector.run_history(workspace_id, limit)

    def get_dashboard_stats(self, workspace_id: str) -> ExportDashboardStats:
        return self._selector.dashboard_stats(workspace_id)

    def get_journal(self, workspace_id: str) -> list[ExportJournalEntryDTO]:
        return self._selector.journal_for_workspace(workspace_id)

    def validate_journal(self, workspace_id: str) -> bool:
        """Strict check of the export journal; raises ChainVerificationFailedError."""
        return self._journal.validate_chain(workspace_id)
