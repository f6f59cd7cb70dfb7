"""
KassenbelegService -- the cash receipt ledger.

Responsibility:
    Issues exactly one Kassenbeleg per cash payment, sealed by a
    ``cash_payment`` fiscal signature, and voids receipts in lockstep with
    invoice cancellation, each void sealed by a ``receipt_voided`` signature.

Architecture position:
    Kernel > Services -- called by the invoice lifecycle handlers in
    kanzlei_services.

Invariants enforced:
    - Receipts only for payment method "cash".
    - net = round2(amount / (1 + rate/100)), vat = amount - net, computed
      on the payment amount (partial payments get their own split).
    - One receipt per payment id; repeating the call returns the existing
      receipt without signing again.
    - Voiding is idempotent: already voided receipts are skipped and produce
      no signature.
    - The receipt stores the sealing signature's id, chain hash and previous
      hash.

Failure modes:
    - NotACashPaymentError, InvalidReceiptAmountError.
    - CryptoUnavailableError / ChainForkError from the signature ledger; the
      receipt is not written in either case.

Non-goals:
    - Does NOT call session.commit() -- caller controls boundaries.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from kanzlei_kernel.domain.clock import Clock, SystemClock
from kanzlei_kernel.domain.dtos import FiscalEventType, Invoice, Payment, PaymentMethod
from kanzlei_kernel.domain.values import round_money, split_gross
from kanzlei_kernel.exceptions import InvalidReceiptAmountError, NotACashPaymentError
from kanzlei_kernel.logging_config import get_logger
from kanzlei_kernel.models.kassenbeleg import Kassenbeleg
from kanzlei_kernel.services.fiscal_signature_service import FiscalSignatureService
from kanzlei_kernel.services.scope_locks import ScopeLocks

logger = get_logger("services.kassenbeleg")

DEFAULT_VOID_REASON = "Invoice voided"


def receipt_number_for(payment: Payment) -> str:
    """K-{year}-{last ':'-separated segment of the payment id}."""
    suffix = payment.id.split(":")[-1] or payment.id
    return f"K-{payment.paid_at.year}-{suffix}"


class KassenbelegService:
    """Creates and voids cash receipts."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: ScopeLocks | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._signatures = FiscalSignatureService(session, self._clock, locks)

    def create_receipt(self, invoice: Invoice, payment: Payment) -> Kassenbeleg:
        """
        Issue the receipt for a cash payment.

        Raises:
            NotACashPaymentError: If the payment method is not cash.
            InvalidReceiptAmountError: If the amount is not positive.
        """
        if PaymentMethod(payment.method) != PaymentMethod.CASH:
            raise NotACashPaymentError(payment.id, str(PaymentMethod(payment.method).value))
        amount = round_money(payment.amount)
        if amount <= Decimal("0"):
            raise InvalidReceiptAmountError(payment.id, str(payment.amount))

        existing = self._session.execute(
            select(Kassenbeleg).where(Kassenbeleg.payment_id == payment.id)
        ).scalar_one_or_none()
        if existing is not None:
            logger.info(
                "kassenbeleg_already_issued",
                extra={"payment_id": payment.id, "receipt_number": existing.receipt_number},
            )
            return existing

        net, vat = split_gross(amount, invoice.tax_percent)
        receipt_id = uuid4()
        receipt_number = receipt_number_for(payment)

        signature = self._signatures.sign_event(
            invoice.workspace_id,
            FiscalEventType.CASH_PAYMENT,
            {
                "invoice_id": invoice.id,
                "invoice_number": invoice.number,
                "receipt_number": receipt_number,
                "amount": amount,
                "payment_date": payment.paid_at,
            },
            case_id=invoice.case_id,
            matter_id=invoice.matter_id,
            kassenbeleg_id=receipt_id,
        )

        receipt = Kassenbeleg(
            id=receipt_id,
            workspace_id=invoice.workspace_id,
            matter_id=invoice.matter_id,
            case_id=invoice.case_id,
            client_id=invoice.client_id,
            invoice_id=invoice.id,
            invoice_number=invoice.number,
            payment_id=payment.id,
            receipt_number=receipt_number,
            gross_amount=amount,
            net_amount=net,
            vat_amount=vat,
            vat_percent=Decimal(invoice.tax_percent),
            currency=invoice.currency,
            payment_method=PaymentMethod.CASH.value,
            booking_date=payment.paid_at,
            description=invoice.subject,
            voided=False,
            fiscal_signature_id=signature.id,
            fiscal_signature_hash=signature.chain_hash,
            fiscal_previous_hash=signature.previous_hash,
        )
        self._session.add(receipt)
        self._session.flush()

        logger.info(
            "kassenbeleg_created",
            extra={
                "workspace_id": invoice.workspace_id,
                "invoice_id": invoice.id,
                "receipt_number": receipt_number,
                "gross_amount": amount,
                "net_amount": net,
                "vat_amount": vat,
            },
        )
        return receipt

    def void_receipts_for_invoice(
        self,
        invoice_id: str,
        reason: str = DEFAULT_VOID_REASON,
        workspace_id: str | None = None,
    ) -> list[Kassenbeleg]:
        """
        Void every not-yet-voided receipt of an invoice.

        ``workspace_id`` restricts the lookup to one workspace; invoice ids
        are only unique within a workspace.

        Returns:
            The receipts voided by this call (empty when all were already
            voided, making repeated calls no-ops).
        """
        stmt = select(Kassenbeleg).where(Kassenbeleg.invoice_id == invoice_id)
        if workspace_id is not None:
            stmt = stmt.where(Kassenbeleg.workspace_id == workspace_id)
        receipts = self._session.execute(
            stmt.order_by(Kassenbeleg.booking_date, Kassenbeleg.receipt_number)
        ).scalars().all()

        voided: list[Kassenbeleg] = []
        for receipt in receipts:
            if receipt.voided:
                continue
            voided_at = self._clock.now_utc()
            signature = self._signatures.sign_event(
                receipt.workspace_id,
                FiscalEventType.RECEIPT_VOIDED,
                {
                    "invoice_id": receipt.invoice_id,
                    "receipt_number": receipt.receipt_number,
                    "amount": round_money(receipt.gross_amount),
                    "void_reason": reason,
                    "voided_at": voided_at,
                },
                case_id=receipt.case_id,
                matter_id=receipt.matter_id,
                kassenbeleg_id=receipt.id,
            )
            receipt.voided = True
            receipt.voided_at = voided_at
            receipt.void_reason = reason
            receipt.fiscal_signature_id = signature.id
            receipt.fiscal_signature_hash = signature.chain_hash
            receipt.fiscal_previous_hash = signature.previous_hash
            voided.append(receipt)

        if voided:
            self._session.flush()
            logger.info(
                "kassenbelege_voided",
                extra={
                    "invoice_id": invoice_id,
                    "receipt_numbers": [r.receipt_number for r in voided],
                },
            )
        return voided
