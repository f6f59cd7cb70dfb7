"""
Module: kanzlei_kernel.db.base
Responsibility: ORM foundation shared by the four kernel tables (fiscal
    signatures, Kassenbelege, export runs/configs and the export journal).
Architecture position: Kernel > DB.  Imported by models/ only; imports
    nothing from the kernel.

Invariants enforced:
    - Every row is keyed by a uuid4 stored as text, so ids round-trip
      unchanged between SQLite (tests) and PostgreSQL.
    - Annotated ``Decimal`` columns are exact numerics; money is never float.
    - Annotated ``int`` columns are BigInteger, which covers chain ``seq``.

Audit relevance:
    Ledger rows (FiscalSignature, ExportJournalEntry) derive from ``Base``
    and carry only their own business timestamps.  Working records derive
    from ``TrackedBase``; its ``updated_at`` is the one column the
    immutability listeners let change on a voided Kassenbeleg besides the
    void fields.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """A ``uuid.UUID`` column persisted as its 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative root: uuid4 primary key and the shared column type map."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        int: BigInteger,
        date: Date,
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Working records: database-stamped ``created_at`` / ``updated_at``."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
