"""
Export Format Engine (``kanzlei_engines.export_formats``).

Responsibility
--------------
Renders the records of an export window into one of five import-ready
file formats:

* ``datev_ascii`` -- DATEV EXTF Buchungsstapel: metadata header row,
  German column-name row, one net booking line per invoice (S, or H for a
  voided invoice) and one per expense.  Comma decimals, DDMM dates, CRLF.
* ``datev_xml``   -- DATEV ``LedgerImport`` document, one ``bookingRow``
  per invoice (gross) and expense.  ISO dates, dot decimals.
* ``bmd_csv``     -- BMD import CSV: quoted, separator-delimited,
  DD.MM.YYYY dates, Austrian accounts and VAT codes.
* ``bmd_ntcs``    -- same row layout as ``bmd_csv``, own file name.
* ``generic_csv`` -- provider-agnostic rows with a ``Typ`` discriminator
  (Rechnung, Auslage, Zeit); the only format carrying time entries.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads (the creation date is an argument).

Invariants enforced
-------------------
* Date filtering is inclusive on ISO dates; voided invoices are dropped
  unless ``include_voided``.
* Totals are the net/gross sums of the exported non-voided invoices,
  rounded to cents at every step.
* ``record_count`` is the number of booking rows written.
* Deterministic: same inputs, same bytes.

Failure modes
-------------
* ``UnsupportedExportFormatError`` for an unknown format.
* ``LookupError`` from ``encode_content`` for an unknown encoding.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

from kanzlei_engines.accounts import AccountMap
from kanzlei_engines.tracer import traced_engine
from kanzlei_kernel.domain.dtos import (
    AccountingProvider,
    DateRange,
    Expense,
    ExpenseCategory,
    ExportFormat,
    ExportScope,
    Invoice,
    InvoiceStatus,
    TimeEntry,
)
from kanzlei_kernel.domain.values import (
    ZERO,
    format_decimal_comma,
    format_rate,
    round_money,
    sum_money,
)
from kanzlei_kernel.exceptions import UnsupportedExportFormatError

if TYPE_CHECKING:
    from kanzlei_config.schema import ChartDefinition

CRLF = "\r\n"

DATEV_FORMAT_NAME = "EXTF"
DATEV_HEADER_VERSION = "700"
DATEV_CATEGORY_BOOKINGS = "21"
DATEV_CATEGORY_NAME = "Buchungsstapel"
DATEV_FORMAT_VERSION = "12"
DATEV_ORIGIN = "KZ"
DATEV_TEXT_MAX_LENGTH = 60
DATEV_LEDGER_NAMESPACE = "http://xml.datev.de/bedi/tps/ledger/v050"

DATEV_COLUMNS = (
    "Umsatz (ohne Soll/Haben-Kz)",
    "Soll/Haben-Kennzeichen",
    "WKZ Umsatz",
    "Kurs",
    "Basis-Umsatz",
    "WKZ Basis-Umsatz",
    "Konto",
    "Gegenkonto (ohne BU-Schlüssel)",
    "BU-Schlüssel",
    "Belegdatum",
    "Belegfeld 1",
    "Belegfeld 2",
    "Skonto",
    "Buchungstext",
    "Postensperre",
    "Diverse Adressnummer",
    "Geschäftspartnerbank",
    "Sachverhalt",
    "Zinssperre",
    "Beleglink",
)

BMD_COLUMNS = (
    "Satzart",
    "Buchungsdatum",
    "Belegnummer",
    "Buchungstext",
    "Sollkonto",
    "Habenkonto",
    "Betrag",
    "USt-Code",
    "USt-Betrag",
    "Waehrung",
    "Firmennummer",
)

GENERIC_COLUMNS = (
    "Typ",
    "Datum",
    "Belegnummer",
    "Beschreibung",
    "Mandant-ID",
    "Akte-ID",
    "Netto",
    "USt%",
    "USt-Betrag",
    "Brutto",
    "Waehrung",
    "Status",
)

FILE_NAME_PATTERNS: dict[ExportFormat, str] = {
    ExportFormat.DATEV_ASCII: "EXTF_Buchungsstapel_{period_from}_{period_to}.csv",
    ExportFormat.DATEV_XML: "DATEV_Export_{period_from}_{period_to}.xml",
    ExportFormat.BMD_CSV: "BMD_Export_{period_from}_{period_to}.csv",
    ExportFormat.BMD_NTCS: "BMD_NTCS_{period_from}_{period_to}.csv",
    ExportFormat.GENERIC_CSV: "Export_{period_from}_{period_to}.csv",
}


# ---------------------------------------------------------------------------
# Inputs and outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExportSettings:
    """The parts of an export config the renderers read."""

    provider: AccountingProvider
    format: ExportFormat
    revenue_account: str
    expense_account: str
    vat_account: str
    chart_of_accounts: str = "skr03"
    datev_adviser_number: str | None = None
    datev_client_number: str | None = None
    fiscal_year_start: str = "01"
    account_length: int = 4
    bmd_firm_number: str | None = None
    csv_separator: str = ";"
    encoding: str = "utf-8"
    include_voided: bool = False


@dataclass(frozen=True)
class ExportRecords:
    """Records selected for one export window."""

    invoices: tuple[Invoice, ...] = ()
    expenses: tuple[Expense, ...] = ()
    time_entries: tuple[TimeEntry, ...] = ()


@dataclass(frozen=True)
class GeneratedExport:
    format: ExportFormat
    content: str
    file_name: str
    record_count: int
    total_net: Decimal
    total_gross: Decimal


# ---------------------------------------------------------------------------
# Selection and helpers
# ---------------------------------------------------------------------------


def select_records(
    scope: ExportScope | str,
    date_range: DateRange,
    invoices: Iterable[Invoice] = (),
    expenses: Iterable[Expense] = (),
    time_entries: Iterable[TimeEntry] = (),
    include_voided: bool = False,
    matter_id: str | None = None,
) -> ExportRecords:
    """Apply scope, date window, matter and voided filters."""
    scope = ExportScope(scope)

    def in_window(day: date, record_matter: str | None) -> bool:
        if matter_id is not None and record_matter != matter_id:
            return False
        return date_range.contains(day)

    selected_invoices: tuple[Invoice, ...] = ()
    if scope.includes_invoices:
        selected_invoices = tuple(
            inv for inv in invoices
            if in_window(inv.invoice_date, inv.matter_id)
            and (include_voided or not inv.is_voided)
        )
    selected_expenses: tuple[Expense, ...] = ()
    if scope.includes_expenses:
        selected_expenses = tuple(
            exp for exp in expenses if in_window(exp.expense_date, exp.matter_id)
        )
    selected_time: tuple[TimeEntry, ...] = ()
    if scope.includes_time_entries:
        selected_time = tuple(
            t for t in time_entries if in_window(t.entry_date, t.matter_id)
        )
    return ExportRecords(selected_invoices, selected_expenses, selected_time)


def file_name_for(export_format: ExportFormat | str, date_range: DateRange) -> str:
    return FILE_NAME_PATTERNS[ExportFormat(export_format)].format(
        period_from=date_range.period_from,
        period_to=date_range.period_to,
    )


def sanitize_datev_text(text: str | None) -> str:
    """No double quotes, ';' -> ',', at most 60 characters."""
    return (text or "").replace('"', "").replace(";", ",")[:DATEV_TEXT_MAX_LENGTH]


def format_date_datev(day: date) -> str:
    return day.strftime("%d%m")


def format_date_bmd(day: date) -> str:
    return day.strftime("%d.%m.%Y")


def _money(value: Decimal) -> str:
    return f"{round_money(value):f}"


def _q(value: object) -> str:
    return f'"{value}"'


def _csv_text(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def encode_content(content: str, encoding: str) -> bytes:
    """
    Encode generated content for download.

    Characters the target encoding cannot represent (e.g. in windows-1252
    for DATEV) are replaced rather than failing the download.
    """
    return content.encode(encoding, errors="replace")


# ---------------------------------------------------------------------------
# Renderers: (settings, accounts, records, date_range, created_on) -> (content, rows)
# ---------------------------------------------------------------------------


def render_datev_ascii(
    settings: ExportSettings,
    accounts: AccountMap,
    records: ExportRecords,
    date_range: DateRange,
    created_on: date,
) -> tuple[str, int]:
    sep = settings.csv_separator
    lines = [
        sep.join([
            _q(DATEV_FORMAT_NAME),
            DATEV_HEADER_VERSION,
            DATEV_CATEGORY_BOOKINGS,
            _q(DATEV_CATEGORY_NAME),
            DATEV_FORMAT_VERSION,
            created_on.strftime("%Y%m%d"),
            "",
            _q(DATEV_ORIGIN),
            _q(""),
            _q(""),
            _q(settings.datev_adviser_number or ""),
            _q(settings.datev_client_number or ""),
            settings.fiscal_year_start or "01",
            str(settings.account_length or 4),
            date_range.start.strftime("%Y%m%d"),
            date_range.end.strftime("%Y%m%d"),
            _q(""),
            _q(""),
            "0",
            "0",
            "0",
            _q("EUR"),
        ]),
        sep.join(_q(column) for column in DATEV_COLUMNS),
    ]
    trailing = [""] * 6

    for invoice in records.invoices:
        lines.append(sep.join([
            _q(format_decimal_comma(invoice.net_amount)),
            _q("H" if invoice.is_voided else "S"),
            _q(invoice.currency),
            "",
            "",
            "",
            _q(settings.revenue_account),
            _q(accounts.receivables_account),
            accounts.tax_key_for(invoice.tax_percent),
            _q(format_date_datev(invoice.invoice_date)),
            _q(sanitize_datev_text(invoice.number)),
            "",
            "",
            _q(sanitize_datev_text(invoice.subject)),
            *trailing,
        ]))

    for expense in records.expenses:
        lines.append(sep.join([
            _q(format_decimal_comma(expense.amount)),
            _q("S"),
            _q(expense.currency),
            "",
            "",
            "",
            _q(accounts.expense_account_for(expense.category)),
            _q(accounts.bank_account),
            "",
            _q(format_date_datev(expense.expense_date)),
            _q(sanitize_datev_text(expense.receipt_ref)),
            "",
            "",
            _q(sanitize_datev_text(expense.description)),
            *trailing,
        ]))

    return CRLF.join(lines), len(records.invoices) + len(records.expenses)


def render_datev_xml(
    settings: ExportSettings,
    accounts: AccountMap,
    records: ExportRecords,
    date_range: DateRange,
    created_on: date,
) -> tuple[str, int]:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<LedgerImport xmlns="{DATEV_LEDGER_NAMESPACE}">',
        "  <consolidate><accountsPayableLedger>",
    ]

    for invoice in records.invoices:
        lines.append("    <bookingRow>")
        lines.append(f"      <date>{invoice.invoice_date.isoformat()}</date>")
        lines.append(f"      <amount>{_money(invoice.gross_amount)}</amount>")
        lines.append(f"      <accountNumber>{escape(settings.revenue_account)}</accountNumber>")
        lines.append(
            f"      <contraAccountNumber>{escape(accounts.receivables_account)}</contraAccountNumber>"
        )
        lines.append(f"      <bookingText>{_xml_text(invoice.subject)}</bookingText>")
        lines.append(f"      <invoiceId>{_xml_text(invoice.number)}</invoiceId>")
        lines.append(f"      <currencyCode>{escape(invoice.currency)}</currencyCode>")
        if invoice.tax_percent > 0:
            lines.append(f"      <taxRate>{format_rate(invoice.tax_percent)}</taxRate>")
        lines.append("    </bookingRow>")

    for expense in records.expenses:
        lines.append("    <bookingRow>")
        lines.append(f"      <date>{expense.expense_date.isoformat()}</date>")
        lines.append(f"      <amount>{_money(expense.amount)}</amount>")
        lines.append(
            f"      <accountNumber>{escape(accounts.expense_account_for(expense.category))}</accountNumber>"
        )
        lines.append(
            f"      <contraAccountNumber>{escape(accounts.bank_account)}</contraAccountNumber>"
        )
        lines.append(f"      <bookingText>{_xml_text(expense.description)}</bookingText>")
        lines.append(f"      <currencyCode>{escape(expense.currency)}</currencyCode>")
        lines.append("    </bookingRow>")

    lines.append("  </accountsPayableLedger></consolidate>")
    lines.append("</LedgerImport>")
    return "\n".join(lines), len(records.invoices) + len(records.expenses)


def _xml_text(value: str | None) -> str:
    return escape(value or "", {'"': "&quot;"})


def render_bmd_csv(
    settings: ExportSettings,
    accounts: AccountMap,
    records: ExportRecords,
    date_range: DateRange,
    created_on: date,
) -> tuple[str, int]:
    sep = settings.csv_separator
    firm = settings.bmd_firm_number or ""
    lines = [sep.join(_q(column) for column in BMD_COLUMNS)]

    for invoice in records.invoices:
        lines.append(sep.join([
            _q("B"),
            _q(format_date_bmd(invoice.invoice_date)),
            _q(sanitize_datev_text(invoice.number)),
            _q(sanitize_datev_text(invoice.subject)),
            _q(accounts.receivables_account),
            _q(settings.revenue_account),
            _q(_money(invoice.gross_amount)),
            _q(accounts.tax_key_for(invoice.tax_percent)),
            _q(_money(invoice.tax_amount)),
            _q(invoice.currency),
            _q(firm),
        ]))

    for expense in records.expenses:
        lines.append(sep.join([
            _q("B"),
            _q(format_date_bmd(expense.expense_date)),
            _q(sanitize_datev_text(expense.receipt_ref)),
            _q(sanitize_datev_text(expense.description)),
            _q(accounts.expense_account_for(expense.category)),
            _q(accounts.bank_account),
            _q(_money(expense.amount)),
            _q(""),
            _q(_money(ZERO)),
            _q(expense.currency),
            _q(firm),
        ]))

    return CRLF.join(lines), len(records.invoices) + len(records.expenses)


def render_generic_csv(
    settings: ExportSettings,
    accounts: AccountMap,
    records: ExportRecords,
    date_range: DateRange,
    created_on: date,
) -> tuple[str, int]:
    sep = settings.csv_separator
    lines = [sep.join(GENERIC_COLUMNS)]

    for invoice in records.invoices:
        lines.append(sep.join([
            "Rechnung",
            invoice.invoice_date.isoformat(),
            _csv_text(invoice.number),
            _csv_text(invoice.subject),
            _csv_text(invoice.client_id),
            _csv_text(invoice.matter_id),
            _money(invoice.net_amount),
            format_rate(invoice.tax_percent),
            _money(invoice.tax_amount),
            _money(invoice.gross_amount),
            _csv_text(invoice.currency),
            InvoiceStatus(invoice.status).value,
        ]))

    for expense in records.expenses:
        lines.append(sep.join([
            "Auslage",
            expense.expense_date.isoformat(),
            _csv_text(expense.receipt_ref),
            _csv_text(expense.description),
            _csv_text(expense.client_id),
            _csv_text(expense.matter_id),
            _money(expense.amount),
            "0",
            _money(ZERO),
            _money(expense.amount),
            _csv_text(expense.currency),
            ExpenseCategory(expense.category).value,
        ]))

    for entry in records.time_entries:
        lines.append(sep.join([
            "Zeit",
            entry.entry_date.isoformat(),
            _csv_text(entry.id),
            _csv_text(entry.description),
            _csv_text(entry.client_id),
            _csv_text(entry.matter_id),
            _money(entry.amount),
            "0",
            _money(ZERO),
            _money(entry.amount),
            _csv_text(entry.currency),
            _csv_text(entry.status),
        ]))

    rows = len(records.invoices) + len(records.expenses) + len(records.time_entries)
    return CRLF.join(lines), rows


Renderer = Callable[
    [ExportSettings, AccountMap, ExportRecords, DateRange, date], tuple[str, int]
]

RENDERERS: dict[ExportFormat, Renderer] = {
    ExportFormat.DATEV_ASCII: render_datev_ascii,
    ExportFormat.DATEV_XML: render_datev_xml,
    ExportFormat.BMD_CSV: render_bmd_csv,
    ExportFormat.BMD_NTCS: render_bmd_csv,
    ExportFormat.GENERIC_CSV: render_generic_csv,
}


def invoice_totals(invoices: Sequence[Invoice]) -> tuple[Decimal, Decimal]:
    """(net, gross) over non-voided invoices, rounded at every step."""
    active = [inv for inv in invoices if not inv.is_voided]
    return (
        sum_money(inv.net_amount for inv in active),
        sum_money(inv.gross_amount for inv in active),
    )


def _trace_summary(result: GeneratedExport) -> dict:
    return {"export_format": result.format.value, "record_count": result.record_count}


@traced_engine(
    "export_formats",
    "1.0",
    fingerprint_fields=("scope", "date_range", "matter_id"),
    summarize=_trace_summary,
)
def generate(
    settings: ExportSettings,
    scope: ExportScope | str,
    date_range: DateRange,
    invoices: Iterable[Invoice] = (),
    expenses: Iterable[Expense] = (),
    time_entries: Iterable[TimeEntry] = (),
    *,
    chart: ChartDefinition,
    created_on: date,
    matter_id: str | None = None,
) -> GeneratedExport:
    """
    Render one export.

    Args:
        settings: Destination settings of the export config.
        scope: Which record kinds to include.
        date_range: Inclusive export window.
        invoices, expenses, time_entries: Candidate records; filtered here.
        chart: Chart-of-accounts variant named by the config.
        created_on: Creation date written into the DATEV header.
        matter_id: Restrict to one matter.

    Raises:
        UnsupportedExportFormatError: If the settings name an unknown format.
    """
    try:
        export_format = ExportFormat(settings.format)
    except ValueError as exc:
        raise UnsupportedExportFormatError(str(settings.format)) from exc

    records = select_records(
        scope,
        date_range,
        invoices,
        expenses,
        time_entries,
        include_voided=settings.include_voided,
        matter_id=matter_id,
    )
    accounts = AccountMap(
        chart=chart,
        revenue_account=settings.revenue_account,
        expense_account=settings.expense_account,
    )
    content, record_count = RENDERERS[export_format](
        settings, accounts, records, date_range, created_on
    )
    total_net, total_gross = invoice_totals(records.invoices)

    return GeneratedExport(
        format=export_format,
        content=content,
        file_name=file_name_for(export_format, date_range),
        record_count=record_count,
        total_net=total_net,
        total_gross=total_gross,
    )
