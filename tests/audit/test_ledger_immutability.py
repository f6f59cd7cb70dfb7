"""
Append-only enforcement and tamper detection for both chained ledgers.

Verifies:
- ORM listeners reject UPDATE/DELETE of fiscal signatures and journal entries
- Database triggers reject raw SQL UPDATE/DELETE
- Kassenbelege allow only the one-way void flip
- Strict validation detects edited payloads and deleted rows
"""

from decimal import Decimal

import pytest
from sqlalchemy import UniqueConstraint, delete, select, text, update
from sqlalchemy.exc import DatabaseError

from kanzlei_kernel.db.triggers import triggers_installed
from kanzlei_kernel.exceptions import ChainVerificationFailedError, ImmutabilityViolationError
from kanzlei_kernel.models.export_journal import ExportJournalEntry
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_kernel.models.kassenbeleg import Kassenbeleg
from kanzlei_kernel.services.fiscal_signature_service import FiscalSignatureService
from tests.factories import WORKSPACE_ID, make_invoice, make_payment


@pytest.fixture
def signed(session, invoice_events, clock):
    """Three cash receipts on one workspace chain."""
    receipts = []
    for i in range(3):
        invoice = make_invoice(number=f"RE-{i}")
        receipts.append(
            invoice_events.on_cash_payment_recorded(
                invoice, make_payment(invoice, payment_id=f"pay:{i}")
            )
        )
        clock.advance(1)
    return receipts


def _signature(session, seq: int) -> FiscalSignature:
    return session.execute(
        select(FiscalSignature)
        .where(FiscalSignature.workspace_id == WORKSPACE_ID)
        .where(FiscalSignature.seq == seq)
    ).scalar_one()


class TestOrmListeners:
    def test_signature_update_rejected(self, session, signed):
        row = _signature(session, 1)
        row.payload = {"amount": "0"}
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_signature_delete_rejected(self, session, signed):
        session.delete(_signature(session, 2))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_receipt_amount_frozen(self, session, signed):
        row = session.get(Kassenbeleg, signed[0].id)
        row.gross_amount = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Kassenbeleg"
        session.rollback()

    def test_voided_receipt_cannot_be_reinstated(self, session, signed, invoice_events):
        invoice_events.on_invoice_voided(make_invoice(number="RE-0"))
        row = session.get(Kassenbeleg, signed[0].id)
        row.voided = False
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_receipt_delete_rejected(self, session, signed):
        session.delete(session.get(Kassenbeleg, signed[1].id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestDatabaseTriggers:
    def test_triggers_installed(self, db_engine):
        assert triggers_installed(db_engine)

    def test_raw_signature_update_rejected(self, session, signed):
        with pytest.raises(DatabaseError):
            session.execute(
                text("UPDATE fiscal_signatures SET payload_hash = 'x' WHERE seq = 1")
            )
        session.rollback()

    def test_raw_signature_delete_rejected(self, session, signed):
        with pytest.raises(DatabaseError):
            session.execute(text("DELETE FROM fiscal_signatures"))
        session.rollback()

    def test_raw_journal_delete_rejected(self, session, export_service, records):
        config = export_service.create_config(WORKSPACE_ID, "csv")
        export_service.run_export(
            WORKSPACE_ID, config.id, "all", "2025-01-01", "2025-01-31", "user-1"
        )
        with pytest.raises(DatabaseError):
            session.execute(delete(ExportJournalEntry))
        session.rollback()

    def test_raw_receipt_amount_update_rejected(self, session, signed):
        with pytest.raises(DatabaseError):
            session.execute(
                update(Kassenbeleg)
                .where(Kassenbeleg.id == signed[0].id)
                .values(receipt_number="K-0000-0")
            )
        session.rollback()


class TestTamperDetection:
    def test_intact_chain_validates(self, session, signed, clock, locks):
        assert FiscalSignatureService(session, clock, locks).validate_chain(WORKSPACE_ID)

    def test_edited_payload_detected(self, session, signed, clock, locks, unprotected):
        with unprotected():
            session.execute(
                update(FiscalSignature)
                .where(FiscalSignature.workspace_id == WORKSPACE_ID)
                .where(FiscalSignature.seq == 2)
                .values(payload={"amount": "1"})
            )
            session.commit()
        session.expire_all()

        service = FiscalSignatureService(session, clock, locks)
        assert service.verify_workspace_chain(WORKSPACE_ID) is True
        with pytest.raises(ChainVerificationFailedError) as exc_info:
            service.validate_chain(WORKSPACE_ID)
        assert exc_info.value.entry_id == str(_signature(session, 2).id)

    def test_deleted_entry_breaks_linkage(self, session, signed, clock, locks, unprotected):
        with unprotected():
            session.execute(
                delete(FiscalSignature)
                .where(FiscalSignature.workspace_id == WORKSPACE_ID)
                .where(FiscalSignature.seq == 2)
            )
            session.commit()
        session.expire_all()

        service = FiscalSignatureService(session, clock, locks)
        assert service.verify_workspace_chain(WORKSPACE_ID) is False
        with pytest.raises(ChainVerificationFailedError):
            service.validate_chain(WORKSPACE_ID)

    def test_broken_chain_logged_critical(
        self, session, signed, clock, locks, unprotected, captured_logs
    ):
        with unprotected():
            session.execute(
                update(FiscalSignature)
                .where(FiscalSignature.seq == 1)
                .values(chain_hash="f" * 64)
            )
            session.commit()
        session.expire_all()

        with pytest.raises(ChainVerificationFailedError):
            FiscalSignatureService(session, clock, locks).validate_chain(WORKSPACE_ID)
        critical = [r for r in captured_logs() if r["level"] == "CRITICAL"]
        assert critical and critical[0]["message"] == "fiscal_chain_broken"


@pytest.mark.parametrize("model", [FiscalSignature, ExportJournalEntry])
def test_hash_uniqueness_is_scoped_to_workspace(model):
    table = model.__table__
    assert not table.c.chain_hash.unique
    scoped = {
        tuple(c.name for c in constraint.columns)
        for constraint in table.constraints
        if isinstance(constraint, UniqueConstraint)
    }
    assert {
        ("workspace_id", "seq"),
        ("workspace_id", "previous_hash"),
        ("workspace_id", "chain_hash"),
    } <= scoped
