"""
Test data builders and in-memory collaborator fakes.

Shared by the fixtures in ``tests/conftest.py`` and imported directly by
tests that need more than one record of a kind.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import uuid4

from kanzlei_kernel.domain.dtos import (
    Expense,
    ExpenseCategory,
    Invoice,
    InvoiceStatus,
    Jurisdiction,
    OrganizationProfile,
    Payment,
    PaymentMethod,
    TimeEntry,
)
from kanzlei_kernel.domain.values import round_money

WORKSPACE_ID = "ws-kanzlei-1"
TEST_ACTOR = "user-1"


# =============================================================================
# Collaborator fakes
# =============================================================================


@dataclass
class InMemoryRecords:
    """Invoice, expense and time-entry source backed by lists."""

    invoices: list[Invoice] = field(default_factory=list)
    expenses: list[Expense] = field(default_factory=list)
    time_entries: list[TimeEntry] = field(default_factory=list)
    fail_with: Exception | None = None

    def _window(self, records, day_of, workspace_id, start, end, matter_id):
        if self.fail_with is not None:
            raise self.fail_with
        return [
            r for r in records
            if r.workspace_id == workspace_id
            and start <= day_of(r) <= end
            and (matter_id is None or r.matter_id == matter_id)
        ]

    def invoices_in_range(self, workspace_id, start, end, matter_id=None):
        return self._window(
            self.invoices, lambda r: r.invoice_date, workspace_id, start, end, matter_id
        )

    def expenses_in_range(self, workspace_id, start, end, matter_id=None):
        return self._window(
            self.expenses, lambda r: r.expense_date, workspace_id, start, end, matter_id
        )

    def time_entries_in_range(self, workspace_id, start, end, matter_id=None):
        return self._window(
            self.time_entries, lambda r: r.entry_date, workspace_id, start, end, matter_id
        )


@dataclass
class StaticProfiles:
    profiles: dict[str, OrganizationProfile] = field(default_factory=dict)

    def get_organization_profile(self, workspace_id):
        return self.profiles.get(workspace_id)


@dataclass
class StaticJurisdiction:
    jurisdiction: Jurisdiction = Jurisdiction.DE

    def get_active_jurisdiction(self):
        return self.jurisdiction


# =============================================================================
# Builders
# =============================================================================


def make_profile(**overrides) -> OrganizationProfile:
    values = {
        "name": "Kanzlei Muster & Partner",
        "tax_number": "143/123/45678",
        "vat_id": "DE123456789",
        "iban": "DE02120300000000202051",
        "address": "Hauptstrasse 1, 10115 Berlin",
        "datev_adviser_number": "1234567",
        "datev_client_number": "10001",
        "bmd_firm_number": "42",
    }
    values.update(overrides)
    return OrganizationProfile(**values)


def make_invoice(
    number: str = "RE-2025-001",
    gross: str = "119.00",
    tax_percent: str = "19",
    invoice_date: date = date(2025, 1, 15),
    status: InvoiceStatus = InvoiceStatus.SENT,
    workspace_id: str = WORKSPACE_ID,
    matter_id: str | None = "matter-1",
    **overrides,
) -> Invoice:
    gross_d = round_money(gross)
    rate = Decimal(tax_percent)
    net = round_money(gross_d / (Decimal(1) + rate / Decimal(100)))
    values = {
        "id": f"inv-{number}",
        "workspace_id": workspace_id,
        "number": number,
        "invoice_date": invoice_date,
        "subject": f"Beratung {number}",
        "net_amount": net,
        "tax_percent": rate,
        "tax_amount": gross_d - net,
        "gross_amount": gross_d,
        "status": status,
        "matter_id": matter_id,
        "case_id": "case-1",
        "client_id": "client-1",
    }
    values.update(overrides)
    return Invoice(**values)


def make_payment(
    invoice: Invoice,
    amount: str | None = None,
    method: PaymentMethod = PaymentMethod.CASH,
    paid_at: date = date(2025, 1, 15),
    payment_id: str | None = None,
) -> Payment:
    return Payment(
        id=payment_id or f"pay:{uuid4().hex[:8]}",
        invoice_id=invoice.id,
        amount=Decimal(amount) if amount is not None else invoice.gross_amount,
        method=method,
        paid_at=paid_at,
    )


def make_expense(
    description: str = "Gerichtskosten",
    amount: str = "50.00",
    category: ExpenseCategory = ExpenseCategory.COURT_FEES,
    expense_date: date = date(2025, 1, 16),
    workspace_id: str = WORKSPACE_ID,
    matter_id: str | None = "matter-1",
) -> Expense:
    return Expense(
        id=f"exp-{uuid4().hex[:8]}",
        workspace_id=workspace_id,
        expense_date=expense_date,
        description=description,
        category=category,
        amount=Decimal(amount),
        receipt_ref="B-7",
        matter_id=matter_id,
        client_id="client-1",
    )


def make_time_entry(
    minutes: int = 90,
    hourly_rate: str = "200.00",
    entry_date: date = date(2025, 1, 17),
    workspace_id: str = WORKSPACE_ID,
    matter_id: str | None = "matter-1",
) -> TimeEntry:
    return TimeEntry(
        id=f"te-{uuid4().hex[:8]}",
        workspace_id=workspace_id,
        entry_date=entry_date,
        description="Schriftsatz",
        minutes=minutes,
        hourly_rate=Decimal(hourly_rate),
        matter_id=matter_id,
        client_id="client-1",
    )
