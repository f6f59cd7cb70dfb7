"""
Module: kanzlei_kernel.models.kassenbeleg
Responsibility: ORM persistence for cash receipts (Kassenbelege).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one receipt per cash payment (unique payment_id).
    - gross_amount == net_amount + vat_amount.
    - The only permitted mutation is the one-way flip to voided together
      with the new signature link fields (ORM listener).  Receipts are never
      deleted; they survive cancellation of their invoice.

Failure modes:
    - ImmutabilityViolationError on any other UPDATE, on un-voiding, or on
      DELETE.

Audit relevance:
    fiscal_signature_id / fiscal_signature_hash / fiscal_previous_hash point
    at the signature that sealed the receipt's current state, so the daily
    closure can check every receipt against the signature chain without
    re-joining it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from kanzlei_kernel.db.base import TrackedBase, UUIDString

# Fields the void flip is allowed to touch
KASSENBELEG_VOID_FIELDS = frozenset({
    "voided",
    "voided_at",
    "void_reason",
    "fiscal_signature_id",
    "fiscal_signature_hash",
    "fiscal_previous_hash",
    "updated_at",
})


class Kassenbeleg(TrackedBase):
    """Cash receipt issued for one cash payment on an invoice."""

    __tablename__ = "kassenbelege"

    __table_args__ = (
        Index("idx_kassenbeleg_day", "workspace_id", "booking_date"),
        Index("idx_kassenbeleg_invoice", "invoice_id"),
    )

    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)
    matter_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    case_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    invoice_id: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    # K-{year}-{payment id suffix}
    receipt_number: Mapped[str] = mapped_column(String(50), nullable=False)

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    vat_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    vat_percent: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    voided: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    fiscal_signature_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    fiscal_signature_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fiscal_previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        state = "voided" if self.voided else "active"
        return f"<Kassenbeleg {self.receipt_number} {self.gross_amount} {state}>"
