"""
Module: kanzlei_kernel.models.fiscal_signature
Responsibility: ORM persistence for the per-workspace fiscal signature chain.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + DB trigger).
    - Chain linkage: previous_hash equals the chain_hash of the entry with
      seq - 1 in the same workspace ("GENESIS" for seq 1).
    - (workspace_id, seq) and (workspace_id, previous_hash) are unique, so a
      forked append is rejected by the database even across processes.
    - chain_hash is unique per workspace only: two workspaces may seal
      identical first events.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError (surfaced as ChainForkError) on a concurrent fork.

Audit relevance:
    Each row seals one cash-handling event (cash payment or receipt void).
    Together with the Kassenbeleg link fields it gives cash-basis
    bookkeeping its tamper evidence.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kanzlei_kernel.db.base import Base, UUIDString
from kanzlei_kernel.domain.dtos import FiscalEventType


class FiscalSignature(Base):
    """
    One sealed cash-handling event.

    Guarantees:
        - chain_hash = sha256(previous_hash + ":" + payload_hash)
        - payload_hash = sha256(canonical_json(payload))
        - signed_on is the UTC calendar date of signed_at, used by the
          daily closure.
    """

    __tablename__ = "fiscal_signatures"

    __table_args__ = (
        UniqueConstraint("workspace_id", "seq", name="uq_fiscal_signature_seq"),
        UniqueConstraint("workspace_id", "previous_hash", name="uq_fiscal_signature_prev"),
        UniqueConstraint("workspace_id", "chain_hash", name="uq_fiscal_signature_hash"),
        Index("idx_fiscal_signature_day", "workspace_id", "signed_on"),
        Index("idx_fiscal_signature_beleg", "kassenbeleg_id"),
    )

    workspace_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Position within the workspace chain, starting at 1
    seq: Mapped[int] = mapped_column(nullable=False)

    case_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    matter_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    kassenbeleg_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    event_type: Mapped[FiscalEventType] = mapped_column(String(30), nullable=False)

    # Canonical payload as hashed (Decimals rendered as strings)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    chain_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(20), nullable=False, default="sha256")

    signed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    signed_on: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<FiscalSignature {self.workspace_id}#{self.seq} {self.event_type}>"

    @property
    def is_genesis(self) -> bool:
        return self.previous_hash == "GENESIS"
