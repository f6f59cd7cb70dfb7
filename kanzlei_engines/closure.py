"""
Daily Closure Reconciliation (``kanzlei_engines.closure``).

Responsibility
--------------
Reconciles one calendar day's cash receipts against the fiscal signature
chain and computes the figures of the Kassenabschluss.

Architecture position
---------------------
**Engines layer** -- pure functional core.  The service gathers the
receipts booked that day, the signatures signed that day, and the
signatures the receipts reference; this module only compares them.

Invariants enforced
-------------------
* ``cash_inflow`` sums non-voided receipts, ``storno_amount`` voided ones,
  both rounded to cents at every step.
* ``chain_consistent`` is false when the day's signatures do not link (or
  their hashes do not recompute), or when any receipt's signature
  reference is neither in the day's set nor resolvable to the chain entry
  that sealed that very receipt with that very hash.  A receipt voided on
  a later day references its void signature, which lives on that later
  day; it is checked against the chain entry directly.

Failure modes
-------------
* None raised.  Inconsistency is a reporting signal, never an exception.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from kanzlei_kernel.domain.chain import find_chain_break
from kanzlei_kernel.domain.values import sum_money


class ClosureReceipt(Protocol):
    id: Any
    receipt_number: str
    gross_amount: Decimal
    voided: bool
    fiscal_signature_id: Any
    fiscal_signature_hash: str | None


class ClosureSignature(Protocol):
    id: Any
    kassenbeleg_id: Any
    payload: dict
    payload_hash: str
    previous_hash: str
    chain_hash: str


@dataclass(frozen=True)
class DailyClosureSummary:
    closure_date: date
    beleg_count: int
    storno_count: int
    cash_inflow: Decimal
    storno_amount: Decimal
    signature_count: int
    chain_consistent: bool
    chain_break_reason: str | None = None
    uncovered_receipts: tuple[str, ...] = ()


def receipt_is_covered(
    receipt: ClosureReceipt,
    day_hashes: set[str],
    referenced: Mapping[Any, ClosureSignature],
) -> bool:
    if not receipt.fiscal_signature_hash:
        return True
    if receipt.fiscal_signature_hash in day_hashes:
        return True
    signature = referenced.get(receipt.fiscal_signature_id)
    return (
        signature is not None
        and signature.chain_hash == receipt.fiscal_signature_hash
        and signature.kassenbeleg_id == receipt.id
    )


def reconcile_day(
    closure_date: date,
    receipts: Sequence[ClosureReceipt],
    day_signatures: Sequence[ClosureSignature],
    referenced_signatures: Mapping[Any, ClosureSignature] | None = None,
    counted_signatures: Sequence[ClosureSignature] | None = None,
) -> DailyClosureSummary:
    """
    Build the closure figures for one day.

    Args:
        closure_date: The day being closed.
        receipts: Receipts booked on that day.
        day_signatures: All workspace signatures signed on that day, in
            chain order (used for the linkage check).
        referenced_signatures: Chain entries referenced by the receipts,
            keyed by signature id.
        counted_signatures: Signatures to count in the report (e.g. only
            one matter's); defaults to ``day_signatures``.
    """
    referenced = referenced_signatures or {}
    active = [r for r in receipts if not r.voided]
    voided = [r for r in receipts if r.voided]

    broken = find_chain_break(day_signatures, expect_genesis=False)
    day_hashes = {s.chain_hash for s in day_signatures}
    uncovered = tuple(
        r.receipt_number for r in receipts if not receipt_is_covered(r, day_hashes, referenced)
    )

    counted = day_signatures if counted_signatures is None else counted_signatures
    return DailyClosureSummary(
        closure_date=closure_date,
        beleg_count=len(receipts),
        storno_count=len(voided),
        cash_inflow=sum_money(r.gross_amount for r in active),
        storno_amount=sum_money(r.gross_amount for r in voided),
        signature_count=len(counted),
        chain_consistent=broken is None and not uncovered,
        chain_break_reason=broken.reason if broken is not None else None,
        uncovered_receipts=uncovered,
    )
