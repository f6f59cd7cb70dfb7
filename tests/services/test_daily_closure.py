"""
Daily cash closure (Kassenabschluss) over the fiscal ledger.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from kanzlei_kernel.domain.dtos import Jurisdiction
from kanzlei_kernel.exceptions import InvalidDateRangeError
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_services.daily_closure import DailyClosureService
from tests.factories import WORKSPACE_ID, make_invoice, make_payment

DAY = date(2025, 1, 15)
ONE_DAY = 24 * 60 * 60


@pytest.fixture
def closure(session, profiles, jurisdiction) -> DailyClosureService:
    return DailyClosureService(session, profiles, jurisdiction)


@pytest.fixture
def cash_day(invoice_events, clock):
    """Three cash payments on 2025-01-15, two for matter-1 and one for matter-2."""
    invoices = [
        make_invoice(number="RE-1", gross="119.00"),
        make_invoice(number="RE-2", gross="59.50"),
        make_invoice(number="RE-3", gross="238.00", matter_id="matter-2"),
    ]
    for i, invoice in enumerate(invoices):
        invoice_events.on_cash_payment_recorded(
            invoice, make_payment(invoice, payment_id=f"pay:{i + 1}")
        )
        clock.advance(60)
    return invoices


class TestClosureFigures:
    def test_consistent_day(self, closure, cash_day):
        report = closure.build_closure(WORKSPACE_ID, DAY)

        assert report.beleg_count == 3
        assert report.storno_count == 0
        assert report.cash_inflow == Decimal("416.50")
        assert report.storno_amount == Decimal("0.00")
        assert report.signature_count == 3
        assert report.chain_consistent is True
        assert report.jurisdiction == "DE"
        assert report.file_name == "Kassenabschluss-2025-01-15.html"
        assert "Chain-Integrität</th><td>OK" in report.html
        assert "416.50 EUR" in report.html

    def test_voided_receipt_is_storno(self, closure, cash_day, invoice_events):
        invoice_events.on_invoice_voided(cash_day[1], reason="Storno")

        report = closure.build_closure(WORKSPACE_ID, "2025-01-15")

        assert report.beleg_count == 3
        assert report.storno_count == 1
        assert report.cash_inflow == Decimal("357.00")
        assert report.storno_amount == Decimal("59.50")
        assert report.signature_count == 4
        assert report.chain_consistent is True

    def test_receipt_voided_on_later_day(self, closure, cash_day, invoice_events, clock):
        clock.advance(ONE_DAY)
        invoice_events.on_invoice_voided(cash_day[0])

        day_of_payment = closure.build_closure(WORKSPACE_ID, DAY)
        assert day_of_payment.storno_count == 1
        assert day_of_payment.signature_count == 3
        assert day_of_payment.chain_consistent is True

        day_of_void = closure.build_closure(WORKSPACE_ID, date(2025, 1, 16))
        assert day_of_void.beleg_count == 0
        assert day_of_void.signature_count == 1
        assert day_of_void.chain_consistent is True

    def test_matter_narrows_receipts_and_count(self, closure, cash_day):
        report = closure.build_closure(WORKSPACE_ID, DAY, matter_id="matter-2")
        assert report.beleg_count == 1
        assert report.cash_inflow == Decimal("238.00")
        assert report.signature_count == 1
        assert report.chain_consistent is True

    def test_empty_day(self, closure):
        report = closure.build_closure(WORKSPACE_ID, DAY)
        assert report.beleg_count == 0
        assert report.signature_count == 0
        assert report.chain_consistent is True

    def test_jurisdiction_and_profile_in_report(self, session, cash_day, jurisdiction, profiles):
        jurisdiction.jurisdiction = Jurisdiction.AT
        report = DailyClosureService(session, profiles, jurisdiction).build_closure(
            WORKSPACE_ID, DAY
        )
        assert report.jurisdiction == "AT"
        assert "Kanzlei Muster &amp; Partner" in report.html

    def test_without_collaborators_defaults_to_germany(self, session, cash_day):
        report = DailyClosureService(session).build_closure(WORKSPACE_ID, DAY)
        assert report.jurisdiction == "DE"
        assert "<strong>Kanzlei</strong>" in report.html

    @pytest.mark.parametrize("bad", ["2025-13-01", "15.01.2025", ""])
    def test_invalid_date(self, closure, bad):
        with pytest.raises(InvalidDateRangeError):
            closure.build_closure(WORKSPACE_ID, bad)


class TestClosureIntegrity:
    def test_tampered_signature_reported(
        self, session, closure, cash_day, unprotected, captured_logs
    ):
        with unprotected():
            session.execute(
                update(FiscalSignature)
                .where(FiscalSignature.workspace_id == WORKSPACE_ID)
                .where(FiscalSignature.seq == 2)
                .values(payload={"amount": "1"})
            )
            session.commit()
        session.expire_all()

        report = closure.build_closure(WORKSPACE_ID, DAY)

        assert report.chain_consistent is False
        assert report.chain_break_reason == "payload_hash_mismatch"
        assert "FEHLER" in report.html
        warnings = [
            r for r in captured_logs() if r["message"] == "daily_closure_chain_inconsistent"
        ]
        assert warnings and warnings[0]["level"] == "WARNING"

    def test_other_matter_tamper_still_detected(self, session, closure, cash_day, unprotected):
        with unprotected():
            session.execute(
                update(FiscalSignature)
                .where(FiscalSignature.matter_id == "matter-1")
                .where(FiscalSignature.seq == 1)
                .values(payload={"amount": "0"})
            )
            session.commit()
        session.expire_all()

        report = closure.build_closure(WORKSPACE_ID, DAY, matter_id="matter-2")
        assert report.chain_consistent is False
