"""
Tests for the daily closure reconciliation.

Receipts and signatures are plain dataclasses sealed with the real chain
primitive; no database.
"""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from kanzlei_engines.closure import reconcile_day
from kanzlei_kernel.domain.chain import seal
from kanzlei_kernel.domain.values import split_gross, sum_money

DAY = date(2025, 1, 15)


@dataclass(frozen=True)
class Signature:
    id: str
    kassenbeleg_id: str
    payload: dict
    payload_hash: str
    previous_hash: str
    chain_hash: str


@dataclass(frozen=True)
class Receipt:
    id: str
    receipt_number: str
    gross_amount: Decimal
    voided: bool
    fiscal_signature_id: str | None
    fiscal_signature_hash: str | None


def sign(receipt_id: str, payload: dict, previous: Signature | None, n: int) -> Signature:
    link = seal(payload, previous.chain_hash if previous else None)
    return Signature(
        f"sig-{n}", receipt_id, payload, link.payload_hash, link.previous_hash, link.chain_hash
    )


def receipt_for(signature: Signature, amount: str, voided: bool = False) -> Receipt:
    return Receipt(
        id=signature.kassenbeleg_id,
        receipt_number=f"K-2025-{signature.kassenbeleg_id}",
        gross_amount=Decimal(amount),
        voided=voided,
        fiscal_signature_id=signature.id,
        fiscal_signature_hash=signature.chain_hash,
    )


def day_of_two_receipts():
    first = sign("1", {"amount": "119"}, None, 1)
    second = sign("2", {"amount": "50.5"}, first, 2)
    return [first, second], [receipt_for(first, "119.00"), receipt_for(second, "50.50")]


class TestFigures:
    def test_consistent_day(self):
        signatures, receipts = day_of_two_receipts()
        summary = reconcile_day(DAY, receipts, signatures)

        assert summary.closure_date == DAY
        assert summary.beleg_count == 2
        assert summary.storno_count == 0
        assert summary.cash_inflow == Decimal("169.50")
        assert summary.storno_amount == Decimal("0.00")
        assert summary.signature_count == 2
        assert summary.chain_consistent is True
        assert summary.chain_break_reason is None

    def test_voided_receipt_counted_as_storno(self):
        signatures, receipts = day_of_two_receipts()
        void = sign("2", {"event": "receipt_voided"}, signatures[-1], 3)
        receipts[1] = replace(
            receipts[1], voided=True, fiscal_signature_id=void.id, fiscal_signature_hash=void.chain_hash
        )
        summary = reconcile_day(DAY, receipts, signatures + [void])

        assert summary.storno_count == 1
        assert summary.cash_inflow == Decimal("119.00")
        assert summary.storno_amount == Decimal("50.50")
        assert summary.signature_count == 3
        assert summary.chain_consistent is True

    def test_empty_day(self):
        summary = reconcile_day(DAY, [], [])
        assert summary.beleg_count == 0
        assert summary.cash_inflow == Decimal("0")
        assert summary.chain_consistent is True

    def test_counted_signatures_override(self):
        signatures, receipts = day_of_two_receipts()
        summary = reconcile_day(DAY, receipts[:1], signatures, counted_signatures=signatures[:1])
        assert summary.signature_count == 1
        assert summary.chain_consistent is True


class TestConsistency:
    def test_edited_payload_breaks_day(self):
        signatures, receipts = day_of_two_receipts()
        signatures[1] = replace(signatures[1], payload={"amount": "1"})
        summary = reconcile_day(DAY, receipts, signatures)
        assert summary.chain_consistent is False
        assert summary.chain_break_reason == "payload_hash_mismatch"

    def test_missing_middle_signature_breaks_linkage(self):
        signatures, receipts = day_of_two_receipts()
        third = sign("3", {"amount": "10"}, signatures[1], 3)
        summary = reconcile_day(
            DAY, receipts + [receipt_for(third, "10.00")], [signatures[0], third]
        )
        assert summary.chain_consistent is False
        assert summary.chain_break_reason == "broken_link"

    def test_day_window_need_not_start_at_genesis(self):
        earlier = sign("0", {"amount": "5"}, None, 0)
        first = sign("1", {"amount": "119"}, earlier, 1)
        summary = reconcile_day(DAY, [receipt_for(first, "119.00")], [first])
        assert summary.chain_consistent is True

    def test_receipt_voided_on_later_day_resolved_directly(self):
        signatures, receipts = day_of_two_receipts()
        later_void = sign("2", {"event": "receipt_voided"}, signatures[-1], 3)
        receipts[1] = replace(
            receipts[1],
            voided=True,
            fiscal_signature_id=later_void.id,
            fiscal_signature_hash=later_void.chain_hash,
        )
        summary = reconcile_day(
            DAY, receipts, signatures, referenced_signatures={later_void.id: later_void}
        )
        assert summary.chain_consistent is True
        assert summary.uncovered_receipts == ()

    def test_unresolvable_reference_is_uncovered(self):
        signatures, receipts = day_of_two_receipts()
        receipts[0] = replace(receipts[0], fiscal_signature_hash="f" * 64)
        summary = reconcile_day(DAY, receipts, signatures)
        assert summary.chain_consistent is False
        assert summary.uncovered_receipts == ("K-2025-1",)

    def test_reference_to_another_receipts_signature_is_uncovered(self):
        signatures, receipts = day_of_two_receipts()
        foreign = sign("9", {"amount": "1"}, None, 9)
        receipts[0] = replace(
            receipts[0], fiscal_signature_id=foreign.id, fiscal_signature_hash=foreign.chain_hash
        )
        summary = reconcile_day(
            DAY, receipts, signatures, referenced_signatures={foreign.id: foreign}
        )
        assert summary.uncovered_receipts == ("K-2025-1",)


class TestRoundingStability:
    def test_thousand_small_cash_receipts(self):
        splits = [split_gross("19.99", 19) for _ in range(1000)]
        assert set(splits) == {(Decimal("16.80"), Decimal("3.19"))}
        assert sum_money(net for net, _ in splits) == Decimal("16800.00")
        assert sum_money(vat for _, vat in splits) == Decimal("3190.00")

        signatures, receipts = [], []
        previous = None
        for n in range(1000):
            previous = sign(str(n), {"amount": "19.99", "n": n}, previous, n)
            signatures.append(previous)
            receipts.append(receipt_for(previous, "19.99"))

        summary = reconcile_day(DAY, receipts, signatures)
        assert summary.cash_inflow == Decimal("19990.00")
        assert summary.beleg_count == 1000
        assert summary.chain_consistent is True
