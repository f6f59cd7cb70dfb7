"""
Concurrent appends to one workspace chain.

Verifies:
- Parallel cash payments on one workspace serialize into a single linear
  chain (no two entries share a previous_hash, seq has no gaps)
- A writer that read a stale head is rejected with ChainForkError
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from kanzlei_kernel.exceptions import ChainForkError
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_kernel.selectors.ledger_selector import FiscalSignatureSelector
from kanzlei_kernel.services.chain_writer import ChainWriter
from kanzlei_kernel.services.fiscal_signature_service import FiscalSignatureService
from kanzlei_kernel.services.scope_locks import FISCAL_LEDGER, ScopeLocks
from kanzlei_services.invoice_events import InvoiceEventHandler
from tests.factories import WORKSPACE_ID, make_invoice, make_payment

WRITERS = 8
PAYMENTS_PER_WRITER = 5


class TestParallelAppends:
    def test_parallel_payments_form_one_chain(self, session_factory, clock, locks):
        barrier = threading.Barrier(WRITERS)

        def writer(n: int) -> None:
            session = session_factory()
            try:
                handler = InvoiceEventHandler(session, clock, locks)
                barrier.wait()
                for i in range(PAYMENTS_PER_WRITER):
                    invoice = make_invoice(number=f"RE-{n}-{i}")
                    handler.on_cash_payment_recorded(
                        invoice, make_payment(invoice, payment_id=f"pay:{n}-{i}")
                    )
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=WRITERS) as pool:
            for future in [pool.submit(writer, n) for n in range(WRITERS)]:
                future.result()

        check = session_factory()
        try:
            signatures = FiscalSignatureSelector(check).list_for_workspace(WORKSPACE_ID)
            total = WRITERS * PAYMENTS_PER_WRITER
            assert [s.seq for s in signatures] == list(range(1, total + 1))
            assert len({s.previous_hash for s in signatures}) == total
            assert FiscalSignatureService(check, clock, locks).validate_chain(WORKSPACE_ID)
        finally:
            check.close()

    def test_workspaces_do_not_share_locks(self):
        locks = ScopeLocks()
        assert locks.lock_for(FISCAL_LEDGER, "ws-a") is locks.lock_for(FISCAL_LEDGER, "ws-a")
        assert locks.lock_for(FISCAL_LEDGER, "ws-a") is not locks.lock_for(FISCAL_LEDGER, "ws-b")


class TestForkRejection:
    def test_stale_head_rejected(self, session, invoice_events, clock, locks, monkeypatch):
        invoice = make_invoice()
        invoice_events.on_cash_payment_recorded(invoice, make_payment(invoice))

        writer = ChainWriter(session, FiscalSignature, FISCAL_LEDGER, locks)
        # A second process that never saw the genesis entry
        monkeypatch.setattr(writer, "latest", lambda scope_id: None)

        with pytest.raises(ChainForkError) as exc_info:
            writer.append(
                WORKSPACE_ID,
                {"invoice_id": "inv-x"},
                event_type="cash_payment",
                signed_at=clock.now_utc(),
                signed_on=clock.today(),
            )
        assert exc_info.value.previous_hash == "GENESIS"
        session.rollback()
