"""
kanzlei_services.invoice_events
===============================

Responsibility:
    Entry points the invoicing collaborator calls at the two moments that
    touch the cash ledgers: a cash payment was recorded, and an invoice
    was voided.

Architecture:
    Services layer.  Composes KassenbelegService (which signs through
    FiscalSignatureService) and owns the transaction boundary: each public
    method commits on success and rolls back on failure, holding the
    workspace's fiscal-ledger lock from the first chain read to the
    commit.

Invariants enforced:
    - Non-cash payments never produce a receipt or a signature.
    - A retried event (same payment id, already-voided invoice) produces
      no second signature.

Failure modes:
    - CryptoUnavailableError, ChainForkError: session rolled back and the
      error re-raised; no receipt and no signature are persisted.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from kanzlei_kernel.domain.clock import Clock, SystemClock
from kanzlei_kernel.domain.dtos import Invoice, Payment, PaymentMethod
from kanzlei_kernel.logging_config import LogContext, get_logger
from kanzlei_kernel.selectors.ledger_selector import KassenbelegDTO
from kanzlei_kernel.services.kassenbeleg_service import (
    DEFAULT_VOID_REASON,
    KassenbelegService,
)
from kanzlei_kernel.services.scope_locks import (
    FISCAL_LEDGER,
    ScopeLocks,
    default_scope_locks,
)

logger = get_logger("services.invoice_events")


class InvoiceEventHandler:
    """
    Reacts to invoice lifecycle events.

    Transaction boundary:
        This handler commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: ScopeLocks | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._locks = locks or default_scope_locks()
        self._receipts = KassenbelegService(session, self._clock, self._locks)

    def on_cash_payment_recorded(
        self,
        invoice: Invoice,
        payment: Payment,
    ) -> KassenbelegDTO | None:
        """
        Issue the Kassenbeleg for a payment.

        Returns:
            The receipt, or None when the payment is not a cash payment.
        """
        if PaymentMethod(payment.method) != PaymentMethod.CASH:
            logger.debug(
                "non_cash_payment_ignored",
                extra={"payment_id": payment.id, "method": PaymentMethod(payment.method).value},
            )
            return None

        with LogContext.bind(workspace_id=invoice.workspace_id, correlation_id=invoice.id):
            with self._locks.hold(FISCAL_LEDGER, invoice.workspace_id):
                try:
                    receipt = self._receipts.create_receipt(invoice, payment)
                    result = KassenbelegDTO.from_model(receipt)
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    raise
        return result

    def on_invoice_voided(
        self,
        invoice: Invoice,
        reason: str = DEFAULT_VOID_REASON,
    ) -> list[KassenbelegDTO]:
        """
        Void the invoice's cash receipts.

        Returns:
            The receipts voided by this call; empty on a repeated event.
        """
        with LogContext.bind(workspace_id=invoice.workspace_id, correlation_id=invoice.id):
            with self._locks.hold(FISCAL_LEDGER, invoice.workspace_id):
                try:
                    voided = self._receipts.void_receipts_for_invoice(
                        invoice.id, reason, workspace_id=invoice.workspace_id
                    )
                    result = [KassenbelegDTO.from_model(r) for r in voided]
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    raise
            logger.info(
                "invoice_void_processed",
                extra={"invoice_id": invoice.id, "voided_receipts": len(result)},
            )
        return result
