"""
kanzlei_services.daily_closure
==============================

Responsibility:
    Builds the Kassenabschluss of one calendar day: receipt counts, cash
    inflow, storno figures, the number of fiscal signatures and whether
    the day's part of the fiscal chain is consistent.

Architecture:
    Services layer, read-only.  Loads receipts and signatures through the
    kernel selectors, reconciles them with kanzlei_engines.closure and
    renders the printable report.  Nothing is written; no commit.

Failure modes:
    - InvalidDateRangeError for a malformed date.
    - A broken chain is reported in the result (and logged as a warning),
      never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from kanzlei_engines.closure import DailyClosureSummary, reconcile_day
from kanzlei_kernel.domain.collaborators import (
    JurisdictionResolver,
    OrganizationProfileProvider,
)
from kanzlei_kernel.domain.dtos import DateRange, Jurisdiction
from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.selectors.ledger_selector import (
    FiscalSignatureSelector,
    KassenbelegSelector,
)
from kanzlei_services.reports import daily_closure_file_name, render_daily_closure

logger = get_logger("services.daily_closure")


@dataclass(frozen=True)
class DailyClosureReport:
    closure_date: date
    jurisdiction: str
    beleg_count: int
    storno_count: int
    cash_inflow: Decimal
    storno_amount: Decimal
    signature_count: int
    chain_consistent: bool
    file_name: str
    html: str
    chain_break_reason: str | None = None
    uncovered_receipts: tuple[str, ...] = ()


class DailyClosureService:
    """Daily cash closure over the fiscal ledger."""

    def __init__(
        self,
        session: Session,
        profiles: OrganizationProfileProvider | None = None,
        jurisdictions: JurisdictionResolver | None = None,
    ):
        self._profiles = profiles
        self._jurisdictions = jurisdictions
        self._signatures = FiscalSignatureSelector(session)
        self._receipts = KassenbelegSelector(session)

    def summarize(
        self,
        workspace_id: str,
        closure_date: date | str,
        matter_id: str | None = None,
    ) -> DailyClosureSummary:
        """
        Reconcile one day without rendering.

        The linkage check always covers the whole workspace chain of that
        day; ``matter_id`` only narrows the receipts and the signature count.
        """
        day = _as_day(closure_date)
        receipts = self._receipts.list_booked_on(workspace_id, day, matter_id)
        day_signatures = self._signatures.list_signed_on(workspace_id, day)
        counted = (
            day_signatures
            if matter_id is None
            else [s for s in day_signatures if s.matter_id == matter_id]
        )

        day_ids = {s.id for s in day_signatures}
        referenced = {}
        for receipt in receipts:
            sig_id = receipt.fiscal_signature_id
            if sig_id is None or sig_id in day_ids or sig_id in referenced:
                continue
            signature = self._signatures.get(sig_id)
            if signature is not None:
                referenced[sig_id] = signature

        return reconcile_day(
            day,
            receipts,
            day_signatures,
            referenced_signatures=referenced,
            counted_signatures=counted,
        )

    def build_closure(
        self,
        workspace_id: str,
        closure_date: date | str,
        matter_id: str | None = None,
    ) -> DailyClosureReport:
        """
        Reconcile and render the Kassenabschluss.

        Raises:
            InvalidDateRangeError: If ``closure_date`` is not a calendar date.
        """
        summary = self.summarize(workspace_id, closure_date, matter_id)
        profile = (
            self._profiles.get_organization_profile(workspace_id)
            if self._profiles is not None else None
        )
        jurisdiction = (
            Jurisdiction(self._jurisdictions.get_active_jurisdiction()).value
            if self._jurisdictions is not None else Jurisdiction.DE.value
        )

        if not summary.chain_consistent:
            logger.warning(
                "daily_closure_chain_inconsistent",
                extra={
                    "workspace_id": workspace_id,
                    "closure_date": summary.closure_date.isoformat(),
                    "reason": summary.chain_break_reason,
                    "uncovered_receipts": list(summary.uncovered_receipts),
                },
            )

        html = render_daily_closure(
            closure_date=summary.closure_date,
            jurisdiction=jurisdiction,
            profile=profile,
            beleg_count=summary.beleg_count,
            storno_count=summary.storno_count,
            cash_inflow=summary.cash_inflow,
            storno_amount=summary.storno_amount,
            signature_count=summary.signature_count,
            chain_consistent=summary.chain_consistent,
        )
        logger.info(
            "daily_closure_generated",
            extra={
                "workspace_id": workspace_id,
                "closure_date": summary.closure_date.isoformat(),
                "beleg_count": summary.beleg_count,
                "signature_count": summary.signature_count,
                "chain_consistent": summary.chain_consistent,
            },
        )
        return DailyClosureReport(
            closure_date=summary.closure_date,
            jurisdiction=jurisdiction,
            beleg_count=summary.beleg_count,
            storno_count=summary.storno_count,
            cash_inflow=summary.cash_inflow,
            storno_amount=summary.storno_amount,
            signature_count=summary.signature_count,
            chain_consistent=summary.chain_consistent,
            file_name=daily_closure_file_name(summary.closure_date),
            html=html,
            chain_break_reason=summary.chain_break_reason,
            uncovered_receipts=summary.uncovered_receipts,
        )


def _as_day(value: date | str) -> date:
    if isinstance(value, date):
        return value
    return DateRange.parse(value, value).start
