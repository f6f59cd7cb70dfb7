"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable records that flow between the external
    practice-management collaborators (invoices, payments, expenses, time
    entries, organization profile) and the ledger/export core, plus the
    enumerations shared by every layer.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies; services translate ORM rows at the boundary.

Invariants enforced:
    - All monetary fields are Decimal (never float).
    - DateRange only exists for two real calendar dates with from <= to.

Failure modes:
    - InvalidDateRangeError from DateRange.parse().
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from kanzlei_kernel.domain.values import round_money
from kanzlei_kernel.exceptions import InvalidDateRangeError


class Jurisdiction(str, Enum):
    """Jurisdictions the practice may bill under."""

    AT = "AT"
    DE = "DE"
    CH = "CH"
    FR = "FR"
    IT = "IT"
    PT = "PT"
    PL = "PL"
    EU = "EU"
    ECHR = "ECHR"


class AccountingProvider(str, Enum):
    """Target accounting software family."""

    DATEV = "datev"
    BMD = "bmd"
    CSV = "csv"


class ExportFormat(str, Enum):
    DATEV_ASCII = "datev_ascii"
    DATEV_XML = "datev_xml"
    BMD_CSV = "bmd_csv"
    BMD_NTCS = "bmd_ntcs"
    GENERIC_CSV = "generic_csv"


DEFAULT_FORMAT_BY_PROVIDER: dict[AccountingProvider, ExportFormat] = {
    AccountingProvider.DATEV: ExportFormat.DATEV_ASCII,
    AccountingProvider.BMD: ExportFormat.BMD_CSV,
    AccountingProvider.CSV: ExportFormat.GENERIC_CSV,
}


class ExportScope(str, Enum):
    """Which record kinds an export run includes."""

    INVOICES = "invoices"
    EXPENSES = "expenses"
    TIME_ENTRIES = "time_entries"
    ALL = "all"

    @property
    def includes_invoices(self) -> bool:
        return self in (ExportScope.INVOICES, ExportScope.ALL)

    @property
    def includes_expenses(self) -> bool:
        return self in (ExportScope.EXPENSES, ExportScope.ALL)

    @property
    def includes_time_entries(self) -> bool:
        return self in (ExportScope.TIME_ENTRIES, ExportScope.ALL)


class ChartOfAccounts(str, Enum):
    SKR03 = "skr03"
    SKR04 = "skr04"
    BMD = "bmd"


class ExportRunStatus(str, Enum):
    """Lifecycle of an ExportRun: pending -> generating -> ready|failed -> downloaded."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


class JournalStatus(str, Enum):
    """Run states that are sealed into the export journal."""

    READY = "ready"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


class FiscalEventType(str, Enum):
    CASH_PAYMENT = "cash_payment"
    RECEIPT_VOIDED = "receipt_voided"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    VOIDED = "voided"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CARD = "card"
    DIRECT_DEBIT = "direct_debit"
    OTHER = "other"


class ExpenseCategory(str, Enum):
    """Disbursement categories billed on to clients."""

    COURT_FEES = "court_fees"
    EXPERT = "expert"
    WITNESS = "witness"
    TRAVEL = "travel"
    COPIES = "copies"
    POSTAGE = "postage"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Invoice:
    """An invoice as supplied by the invoicing collaborator."""

    id: str
    workspace_id: str
    number: str
    invoice_date: date
    subject: str
    net_amount: Decimal
    tax_percent: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    status: InvoiceStatus = InvoiceStatus.SENT
    currency: str = "EUR"
    matter_id: str | None = None
    case_id: str | None = None
    client_id: str | None = None

    @property
    def is_voided(self) -> bool:
        return self.status == InvoiceStatus.VOIDED


@dataclass(frozen=True)
class Payment:
    """A payment recorded against an invoice."""

    id: str
    invoice_id: str
    amount: Decimal
    method: PaymentMethod
    paid_at: date
    reference: str | None = None


@dataclass(frozen=True)
class Expense:
    id: str
    workspace_id: str
    expense_date: date
    description: str
    category: ExpenseCategory
    amount: Decimal
    currency: str = "EUR"
    receipt_ref: str | None = None
    matter_id: str | None = None
    case_id: str | None = None
    client_id: str | None = None


@dataclass(frozen=True)
class TimeEntry:
    id: str
    workspace_id: str
    entry_date: date
    description: str
    minutes: int
    hourly_rate: Decimal
    status: str = "open"
    currency: str = "EUR"
    matter_id: str | None = None
    case_id: str | None = None
    client_id: str | None = None

    @property
    def amount(self) -> Decimal:
        return round_money(Decimal(self.minutes) / Decimal(60) * self.hourly_rate)


@dataclass(frozen=True)
class OrganizationProfile:
    """
    The practice's master data used by the compliance gate and as export
    metadata.  Field names double as the keys referenced by the
    jurisdiction policy table (``required_fields``).
    """

    name: str = ""
    tax_number: str = ""
    vat_id: str = ""
    iban: str = ""
    address: str = ""
    datev_adviser_number: str = ""
    datev_client_number: str = ""
    bmd_firm_number: str = ""
    extra: dict[str, str] = field(default_factory=dict)

    def value_of(self, key: str) -> str:
        """Trimmed value of a profile field by key ('' when absent)."""
        if key in self.extra:
            return (self.extra[key] or "").strip()
        return (getattr(self, key, "") or "").strip()

    def has(self, key: str) -> bool:
        return bool(self.value_of(key))


# ---------------------------------------------------------------------------
# Export window
# ---------------------------------------------------------------------------

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive export window of two ISO calendar dates.

    Comparison against record dates is lexicographic on the ISO strings,
    which orders identically to calendar order for YYYY-MM-DD.
    """

    period_from: str
    period_to: str

    @classmethod
    def parse(cls, period_from: str, period_to: str) -> DateRange:
        """
        Validate and build a DateRange.

        Raises:
            InvalidDateRangeError: If either bound is not a YYYY-MM-DD
                calendar date, or from is after to.
        """
        for value in (period_from, period_to):
            if not isinstance(value, str) or not _ISO_DATE.match(value):
                raise InvalidDateRangeError(
                    str(period_from), str(period_to), "dates must be YYYY-MM-DD"
                )
            try:
                date.fromisoformat(value)
            except ValueError as exc:
                raise InvalidDateRangeError(
                    period_from, period_to, f"{value} is not a calendar date"
                ) from exc
        if period_from > period_to:
            raise InvalidDateRangeError(
                period_from, period_to, "start date is after end date"
            )
        return cls(period_from, period_to)

    def contains(self, day: date | str) -> bool:
        iso = day.isoformat() if isinstance(day, date) else day[:10]
        return self.period_from <= iso <= self.period_to

    @property
    def start(self) -> date:
        return date.fromisoformat(self.period_from)

    @property
    def end(self) -> date:
        return date.fromisoformat(self.period_to)
