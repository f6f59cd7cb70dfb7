"""
Tests for the export format engine.

Each renderer is exercised on a small fixed record set; assertions target
the structural contract of the file (header rows, column values, line
endings) rather than whole-file snapshots.
"""

import csv
import io
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from kanzlei_engines.export_formats import (
    CRLF,
    DATEV_COLUMNS,
    ExportSettings,
    encode_content,
    file_name_for,
    generate,
    sanitize_datev_text,
    select_records,
)
from kanzlei_kernel.domain.dtos import (
    AccountingProvider,
    DateRange,
    ExpenseCategory,
    ExportFormat,
    ExportScope,
    InvoiceStatus,
)
from kanzlei_kernel.exceptions import UnsupportedExportFormatError
from tests.factories import make_expense, make_invoice, make_time_entry

JANUARY = DateRange.parse("2025-01-01", "2025-01-31")
CREATED_ON = date(2025, 2, 3)


def datev_settings(**overrides) -> ExportSettings:
    values = dict(
        provider=AccountingProvider.DATEV,
        format=ExportFormat.DATEV_ASCII,
        revenue_account="8400",
        expense_account="4900",
        vat_account="1776",
        chart_of_accounts="skr03",
        datev_adviser_number="1234567",
        datev_client_number="10001",
    )
    values.update(overrides)
    return ExportSettings(**values)


def bmd_settings(**overrides) -> ExportSettings:
    values = dict(
        provider=AccountingProvider.BMD,
        format=ExportFormat.BMD_CSV,
        revenue_account="4000",
        expense_account="7390",
        vat_account="3500",
        chart_of_accounts="bmd",
        bmd_firm_number="42",
    )
    values.update(overrides)
    return ExportSettings(**values)


def csv_settings(**overrides) -> ExportSettings:
    values = dict(
        provider=AccountingProvider.CSV,
        format=ExportFormat.GENERIC_CSV,
        revenue_account="8400",
        expense_account="4900",
        vat_account="1776",
    )
    values.update(overrides)
    return ExportSettings(**values)


@pytest.fixture
def invoices():
    return [
        make_invoice(number="RE-1", gross="119.00", tax_percent="19", invoice_date=date(2025, 1, 5)),
        make_invoice(number="RE-2", gross="107.00", tax_percent="7", invoice_date=date(2025, 1, 31)),
        make_invoice(number="RE-3", gross="50.00", tax_percent="0", invoice_date=date(2025, 2, 1)),
        make_invoice(
            number="RE-4",
            gross="238.00",
            tax_percent="19",
            invoice_date=date(2025, 1, 20),
            status=InvoiceStatus.VOIDED,
        ),
    ]


@pytest.fixture
def expenses():
    return [
        make_expense(description="Gerichtskosten", amount="50.00"),
        make_expense(
            description="Reise",
            amount="80.10",
            category=ExpenseCategory.TRAVEL,
            expense_date=date(2025, 1, 20),
        ),
        make_expense(
            description="Sonstiges",
            amount="12.00",
            category=ExpenseCategory.OTHER,
            expense_date=date(2025, 1, 21),
        ),
    ]


class TestRecordSelection:
    def test_window_is_inclusive_and_voided_dropped(self, invoices):
        selected = select_records(ExportScope.INVOICES, JANUARY, invoices)
        assert [i.number for i in selected.invoices] == ["RE-1", "RE-2"]

    def test_include_voided(self, invoices):
        selected = select_records("invoices", JANUARY, invoices, include_voided=True)
        assert [i.number for i in selected.invoices] == ["RE-1", "RE-2", "RE-4"]

    def test_scope_limits_record_kinds(self, invoices, expenses):
        selected = select_records(ExportScope.EXPENSES, JANUARY, invoices, expenses)
        assert selected.invoices == ()
        assert len(selected.expenses) == 3

    def test_matter_filter(self, invoices):
        other = make_invoice(number="RE-X", matter_id="matter-2", invoice_date=date(2025, 1, 9))
        selected = select_records(
            ExportScope.ALL, JANUARY, invoices + [other], matter_id="matter-2"
        )
        assert [i.number for i in selected.invoices] == ["RE-X"]


class TestDatevAscii:
    def test_header_and_columns(self, policy_tables, invoices, expenses):
        result = generate(
            datev_settings(),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices,
            expenses=expenses,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        lines = result.content.split(CRLF)
        header = lines[0].split(";")
        assert header[0] == '"EXTF"'
        assert header[1] == "700"
        assert header[2] == "21"
        assert header[3] == '"Buchungsstapel"'
        assert header[5] == "20250203"
        assert header[10] == '"1234567"'
        assert header[11] == '"10001"'
        assert header[14] == "20250101"
        assert header[15] == "20250131"
        assert lines[1].split(";") == [f'"{c}"' for c in DATEV_COLUMNS]
        assert "\n" not in result.content.replace(CRLF, "")

    def test_invoice_and_expense_rows(self, policy_tables, invoices, expenses):
        result = generate(
            datev_settings(),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices,
            expenses=expenses,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        rows = [line.split(";") for line in result.content.split(CRLF)[2:]]
        first = rows[0]
        assert first[0] == '"100,00"'
        assert first[1] == '"S"'
        assert first[6] == '"8400"'
        assert first[7] == '"1400"'
        assert first[8] == "3"
        assert first[9] == '"0501"'
        assert first[10] == '"RE-1"'
        assert rows[1][8] == "2"

        court, travel, other = rows[2], rows[3], rows[4]
        assert court[6] == '"4910"'
        assert court[7] == '"1200"'
        assert travel[0] == '"80,10"'
        assert travel[6] == '"4660"'
        assert other[6] == '"4900"'
        assert result.record_count == 5

    def test_voided_invoice_booked_as_haben(self, policy_tables, invoices):
        result = generate(
            datev_settings(include_voided=True),
            scope=ExportScope.INVOICES,
            date_range=JANUARY,
            invoices=invoices,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        rows = result.content.split(CRLF)[2:]
        assert rows[-1].split(";")[1] == '"H"'
        # voided invoices never count towards totals
        assert result.total_gross == Decimal("226.00")

    def test_skr04_accounts(self, policy_tables, invoices):
        result = generate(
            datev_settings(chart_of_accounts="skr04"),
            scope=ExportScope.INVOICES,
            date_range=JANUARY,
            invoices=invoices,
            chart=policy_tables.chart("skr04"),
            created_on=CREATED_ON,
        )
        assert result.content.split(CRLF)[2].split(";")[7] == '"1200"'

    def test_text_sanitized(self):
        assert sanitize_datev_text('Akte "Müller"; Berufung') == "Akte Müller, Berufung"
        assert len(sanitize_datev_text("x" * 100)) == 60
        assert sanitize_datev_text(None) == ""


class TestDatevXml:
    def test_booking_rows(self, policy_tables, invoices, expenses):
        special = make_invoice(
            number="RE-<5>", gross="119.00", invoice_date=date(2025, 1, 6), subject="A & B"
        )
        result = generate(
            datev_settings(format=ExportFormat.DATEV_XML),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices + [special],
            expenses=expenses[:1],
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        content = result.content
        assert content.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert 'xmlns="http://xml.datev.de/bedi/tps/ledger/v050"' in content
        assert content.count("<bookingRow>") == 4
        assert "<amount>119.00</amount>" in content
        assert "<date>2025-01-05</date>" in content
        assert "<taxRate>19</taxRate>" in content
        assert "<bookingText>A &amp; B</bookingText>" in content
        assert "<invoiceId>RE-&lt;5&gt;</invoiceId>" in content
        assert result.file_name == "DATEV_Export_2025-01-01_2025-01-31.xml"


class TestBmd:
    def test_rows_use_austrian_accounts_and_codes(self, policy_tables):
        invoices = [
            make_invoice(number="AT-1", gross="120.00", tax_percent="20", invoice_date=date(2025, 1, 7)),
            make_invoice(number="AT-2", gross="113.00", tax_percent="13", invoice_date=date(2025, 1, 8)),
        ]
        result = generate(
            bmd_settings(),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices,
            expenses=[make_expense(amount="30.00")],
            chart=policy_tables.chart("bmd"),
            created_on=CREATED_ON,
        )
        lines = result.content.split(CRLF)
        assert lines[0].startswith('"Satzart";"Buchungsdatum"')
        first = lines[1].split(";")
        assert first == [
            '"B"', '"07.01.2025"', '"AT-1"', '"Beratung AT-1"', '"2000"', '"4000"',
            '"120.00"', '"U20"', '"20.00"', '"EUR"', '"42"',
        ]
        assert lines[2].split(";")[7] == '"U13"'
        expense = lines[3].split(";")
        assert expense[4] == '"7300"'
        assert expense[5] == '"2800"'
        assert result.record_count == 3
        assert result.file_name == "BMD_Export_2025-01-01_2025-01-31.csv"

    def test_ntcs_shares_layout_with_own_name(self, policy_tables):
        invoices = [make_invoice(number="AT-1", gross="120.00", tax_percent="20")]
        csv_result = generate(
            bmd_settings(), scope="all", date_range=JANUARY, invoices=invoices,
            chart=policy_tables.chart("bmd"), created_on=CREATED_ON,
        )
        ntcs_result = generate(
            bmd_settings(format=ExportFormat.BMD_NTCS), scope="all", date_range=JANUARY,
            invoices=invoices, chart=policy_tables.chart("bmd"), created_on=CREATED_ON,
        )
        assert csv_result.content == ntcs_result.content
        assert ntcs_result.file_name == "BMD_NTCS_2025-01-01_2025-01-31.csv"


class TestGenericCsv:
    def test_all_record_kinds(self, policy_tables, invoices, expenses):
        result = generate(
            csv_settings(),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices,
            expenses=expenses[:1],
            time_entries=[make_time_entry(minutes=90, hourly_rate="200.00")],
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        lines = result.content.split(CRLF)
        assert lines[0] == (
            "Typ;Datum;Belegnummer;Beschreibung;Mandant-ID;Akte-ID;Netto;USt%;"
            "USt-Betrag;Brutto;Waehrung;Status"
        )
        kinds = [line.split(";")[0] for line in lines[1:]]
        assert kinds == ["Rechnung", "Rechnung", "Auslage", "Zeit"]
        invoice_row = lines[1].split(";")
        assert invoice_row[3] == '"Beratung RE-1"'
        assert invoice_row[6:10] == ["100.00", "19", "19.00", "119.00"]
        assert invoice_row[11] == "sent"
        assert lines[3].split(";")[11] == "court_fees"
        assert lines[4].split(";")[9] == "300.00"
        assert result.record_count == 4

    @pytest.mark.parametrize("separator", [";", ","])
    def test_identifiers_with_separator_keep_columns(self, policy_tables, separator):
        invoice = make_invoice(number='RE;1,"A"', client_id="Muster, Hans; GmbH")
        expense = replace(make_expense(), receipt_ref='B;7 "bar"', matter_id="Akte 1,2")
        entry = replace(make_time_entry(), id="te;1", status='offen, "geprueft"')

        result = generate(
            csv_settings(csv_separator=separator),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=[invoice],
            expenses=[expense],
            time_entries=[entry],
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )

        rows = list(csv.reader(io.StringIO(result.content), delimiter=separator))
        assert [len(row) for row in rows] == [12, 12, 12, 12]
        assert rows[1][2] == 'RE;1,"A"'
        assert rows[1][4] == "Muster, Hans; GmbH"
        assert rows[2][2] == 'B;7 "bar"'
        assert rows[2][5] == "Akte 1,2"
        assert rows[3][2] == "te;1"
        assert rows[3][11] == 'offen, "geprueft"'

    def test_totals_over_non_voided_invoices(self, policy_tables, invoices):
        result = generate(
            csv_settings(include_voided=True),
            scope=ExportScope.INVOICES,
            date_range=JANUARY,
            invoices=invoices,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        assert result.record_count == 3
        assert result.total_net == Decimal("200.00")
        assert result.total_gross == Decimal("226.00")

    def test_many_small_invoices_total_exactly(self, policy_tables):
        invoices = [
            make_invoice(number=f"RE-{i}", gross="19.99", tax_percent="19") for i in range(1000)
        ]
        result = generate(
            csv_settings(),
            scope=ExportScope.INVOICES,
            date_range=JANUARY,
            invoices=invoices,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        assert result.total_gross == Decimal("19990.00")
        assert result.total_net == sum(inv.net_amount for inv in invoices)
        assert result.total_net == Decimal("16800.00")
        assert result.record_count == 1000

    def test_empty_window_yields_header_only(self, policy_tables):
        result = generate(
            csv_settings(),
            scope=ExportScope.ALL,
            date_range=JANUARY,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        assert result.content.count(CRLF) == 0
        assert result.record_count == 0
        assert result.total_gross == Decimal("0.00")


class TestFilesAndEncoding:
    @pytest.mark.parametrize(
        "export_format, name",
        [
            (ExportFormat.DATEV_ASCII, "EXTF_Buchungsstapel_2025-01-01_2025-01-31.csv"),
            (ExportFormat.DATEV_XML, "DATEV_Export_2025-01-01_2025-01-31.xml"),
            (ExportFormat.BMD_CSV, "BMD_Export_2025-01-01_2025-01-31.csv"),
            (ExportFormat.BMD_NTCS, "BMD_NTCS_2025-01-01_2025-01-31.csv"),
            (ExportFormat.GENERIC_CSV, "Export_2025-01-01_2025-01-31.csv"),
        ],
    )
    def test_file_names(self, export_format, name):
        assert file_name_for(export_format, JANUARY) == name

    def test_windows_1252_replaces_unmappable(self):
        assert encode_content("Gebühr", "windows-1252") == "Gebühr".encode("cp1252")
        assert encode_content("€ ✓", "windows-1252") == b"\x80 ?"

    def test_unknown_format_rejected(self, policy_tables):
        with pytest.raises(UnsupportedExportFormatError):
            generate(
                csv_settings(format="lexware"),
                scope=ExportScope.ALL,
                date_range=JANUARY,
                chart=policy_tables.chart("skr03"),
                created_on=CREATED_ON,
            )

    def test_same_input_same_output(self, policy_tables, invoices, expenses):
        kwargs = dict(
            scope=ExportScope.ALL,
            date_range=JANUARY,
            invoices=invoices,
            expenses=expenses,
            chart=policy_tables.chart("skr03"),
            created_on=CREATED_ON,
        )
        assert generate(datev_settings(), **kwargs) == generate(datev_settings(), **kwargs)
