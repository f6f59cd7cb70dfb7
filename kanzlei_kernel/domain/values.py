"""
Values -- money arithmetic for cash receipts and export totals.

Responsibility:
    The one sanctioned place where monetary amounts are parsed, rounded and
    summed.  All amounts are Decimal; floats are rejected at the boundary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Two-decimal ROUND_HALF_UP rounding via round_money() only.
    - Aggregation rounds at every summation step (sum_money), so totals over
      large batches carry no drift.

Failure modes:
    - TypeError when a float is passed where money is expected.
    - ValueError on non-numeric strings.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")
_HUNDRED = Decimal(100)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an int/str/Decimal to Decimal. Floats are refused."""
    if isinstance(value, float):
        raise TypeError("Monetary values must not be float; pass Decimal or str")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc


def round_money(
    value: Decimal | int | str,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for monetary values.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return to_decimal(value).quantize(quantum, rounding=rounding)


def sum_money(values: Iterable[Decimal | int | str]) -> Decimal:
    """Sum amounts, rounding to cents after every addition."""
    total = ZERO
    for value in values:
        total = round_money(total + round_money(value))
    return total


def split_gross(
    gross: Decimal | int | str,
    vat_percent: Decimal | int | str,
) -> tuple[Decimal, Decimal]:
    """
    Split a gross amount into (net, vat) for a VAT percentage.

    net = round2(gross / (1 + rate/100)); vat = gross - net, so the two
    parts always add back up to the rounded gross exactly.
    """
    gross_d = round_money(gross)
    rate = to_decimal(vat_percent)
    net = round_money(gross_d / (Decimal(1) + rate / _HUNDRED))
    return net, gross_d - net


def format_decimal_comma(value: Decimal) -> str:
    """Render an amount as '1234,50' (German decimal comma, no grouping)."""
    return f"{round_money(value):f}".replace(".", ",")


def format_rate(value: Decimal | int | str) -> str:
    """Render a tax rate without superfluous zeros ('19', '5.5', '2.1')."""
    return format(to_decimal(value).normalize(), "f")
