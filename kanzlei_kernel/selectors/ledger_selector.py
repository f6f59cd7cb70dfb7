"""
Module: kanzlei_kernel.selectors.ledger_selector
Responsibility: Read access to the fiscal signature chain and the cash
    receipts it seals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Chain reads are always ordered by the scope-local seq, which is the
      append order; timestamps are informational only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from kanzlei_kernel.domain.dtos import FiscalEventType
from kanzlei_kernel.domain.values import round_money
from kanzlei_kernel.models.fiscal_signature import FiscalSignature
from kanzlei_kernel.models.kassenbeleg import Kassenbeleg
from kanzlei_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class FiscalSignatureDTO:
    id: UUID
    workspace_id: str
    seq: int
    event_type: FiscalEventType
    payload: dict
    payload_hash: str
    previous_hash: str
    chain_hash: str
    algorithm: str
    signed_at: datetime
    signed_on: date
    case_id: str | None = None
    matter_id: str | None = None
    kassenbeleg_id: UUID | None = None

    @classmethod
    def from_model(cls, row: FiscalSignature) -> FiscalSignatureDTO:
        return cls(
            id=row.id,
            workspace_id=row.workspace_id,
            seq=row.seq,
            event_type=FiscalEventType(row.event_type),
            payload=dict(row.payload),
            payload_hash=row.payload_hash,
            previous_hash=row.previous_hash,
            chain_hash=row.chain_hash,
            algorithm=row.algorithm,
            signed_at=row.signed_at,
            signed_on=row.signed_on,
            case_id=row.case_id,
            matter_id=row.matter_id,
            kassenbeleg_id=row.kassenbeleg_id,
        )


@dataclass(frozen=True)
class KassenbelegDTO:
    id: UUID
    workspace_id: str
    invoice_id: str
    invoice_number: str
    payment_id: str
    receipt_number: str
    gross_amount: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    vat_percent: Decimal
    currency: str
    payment_method: str
    booking_date: date
    description: str
    voided: bool
    voided_at: datetime | None
    void_reason: str | None
    fiscal_signature_id: UUID | None
    fiscal_signature_hash: str | None
    fiscal_previous_hash: str | None
    matter_id: str | None = None
    case_id: str | None = None
    client_id: str | None = None

    @classmethod
    def from_model(cls, row: Kassenbeleg) -> KassenbelegDTO:
        return cls(
            id=row.id,
            workspace_id=row.workspace_id,
            invoice_id=row.invoice_id,
            invoice_number=row.invoice_number,
            payment_id=row.payment_id,
            receipt_number=row.receipt_number,
            gross_amount=round_money(row.gross_amount),
            net_amount=round_money(row.net_amount),
            vat_amount=round_money(row.vat_amount),
            vat_percent=Decimal(row.vat_percent).normalize(),
            currency=row.currency,
            payment_method=row.payment_method,
            booking_date=row.booking_date,
            description=row.description,
            voided=row.voided,
            voided_at=row.voided_at,
            void_reason=row.void_reason,
            fiscal_signature_id=row.fiscal_signature_id,
            fiscal_signature_hash=row.fiscal_signature_hash,
            fiscal_previous_hash=row.fiscal_previous_hash,
            matter_id=row.matter_id,
            case_id=row.case_id,
            client_id=row.client_id,
        )


class FiscalSignatureSelector(BaseSelector):
    """Queries over the per-workspace fiscal signature chain."""

    def get(self, signature_id: UUID) -> FiscalSignatureDTO | None:
        row = self.session.get(FiscalSignature, signature_id)
        return FiscalSignatureDTO.from_model(row) if row is not None else None

    def list_for_workspace(self, workspace_id: str) -> list[FiscalSignatureDTO]:
        rows = self.session.execute(
            select(FiscalSignature)
            .where(FiscalSignature.workspace_id == workspace_id)
            .order_by(FiscalSignature.seq)
        ).scalars().all()
        return [FiscalSignatureDTO.from_model(r) for r in rows]

    def latest_for_workspace(self, workspace_id: str) -> FiscalSignatureDTO | None:
        row = self.session.execute(
            select(FiscalSignature)
            .where(FiscalSignature.workspace_id == workspace_id)
            .order_by(FiscalSignature.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return FiscalSignatureDTO.from_model(row) if row is not None else None

    def list_signed_on(
        self,
        workspace_id: str,
        day: date,
        matter_id: str | None = None,
    ) -> list[FiscalSignatureDTO]:
        """Signatures signed on ``day`` in chain order, optionally for one matter."""
        stmt = (
            select(FiscalSignature)
            .where(FiscalSignature.workspace_id == workspace_id)
            .where(FiscalSignature.signed_on == day)
        )
        if matter_id is not None:
            stmt = stmt.where(FiscalSignature.matter_id == matter_id)
        rows = self.session.execute(stmt.order_by(FiscalSignature.seq)).scalars().all()
        return [FiscalSignatureDTO.from_model(r) for r in rows]

    def list_for_receipt(self, kassenbeleg_id: UUID) -> list[FiscalSignatureDTO]:
        rows = self.session.execute(
            select(FiscalSignature)
            .where(FiscalSignature.kassenbeleg_id == kassenbeleg_id)
            .order_by(FiscalSignature.seq)
        ).scalars().all()
        return [FiscalSignatureDTO.from_model(r) for r in rows]


class KassenbelegSelector(BaseSelector):
    """Queries over cash receipts."""

    def get(self, kassenbeleg_id: UUID) -> KassenbelegDTO | None:
        row = self.session.get(Kassenbeleg, kassenbeleg_id)
        return KassenbelegDTO.from_model(row) if row is not None else None

    def get_by_payment(self, payment_id: str) -> KassenbelegDTO | None:
        row = self.session.execute(
            select(Kassenbeleg).where(Kassenbeleg.payment_id == payment_id)
        ).scalar_one_or_none()
        return KassenbelegDTO.from_model(row) if row is not None else None

    def list_for_invoice(self, invoice_id: str) -> list[KassenbelegDTO]:
        rows = self.session.execute(
            select(Kassenbeleg)
            .where(Kassenbeleg.invoice_id == invoice_id)
            .order_by(Kassenbeleg.booking_date, Kassenbeleg.receipt_number)
        ).scalars().all()
        return [KassenbelegDTO.from_model(r) for r in rows]

    def list_booked_on(
        self,
        workspace_id: str,
        day: date,
        matter_id: str | None = None,
    ) -> list[KassenbelegDTO]:
        stmt = (
            select(Kassenbeleg)
            .where(Kassenbeleg.workspace_id == workspace_id)
            .where(Kassenbeleg.booking_date == day)
        )
        if matter_id is not None:
            stmt = stmt.where(Kassenbeleg.matter_id == matter_id)
        rows = self.session.execute(stmt.order_by(Kassenbeleg.receipt_number)).scalars().all()
        return [KassenbelegDTO.from_model(r) for r in rows]
