"""
salesdocs/money.py

Line-item and document money math.

Conventions (hold these everywhere):
- total_amount = sum of post-discount, PRE-tax line amounts
- total_tax = sum of line tax amounts
- total_discount = sum of line discount amounts
- grand total (customer-facing) = total_amount + total_tax

All arithmetic is exact Decimal arithmetic. Rounding happens once, when
totals are persisted (see DocumentTotals.quantized), never per line.

IMPORTANT:
- This module does not validate. Negative quantities or prices produce
  negative results; rejecting them is the caller's job (schemas.py).
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, NamedTuple

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def _to_decimal(value) -> Decimal:
    """Convert Numeric/float/str/None to Decimal (None => 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return _to_decimal(x).quantize(CENT, rounding=ROUND_HALF_UP)


class LineAmounts(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal


class DocumentTotals(NamedTuple):
    total_amount: Decimal
    total_tax: Decimal
    total_discount: Decimal

    @property
    def grand_total(self) -> Decimal:
        return grand_total(self.total_amount, self.total_tax)

    def quantized(self) -> "DocumentTotals":
        """Totals rounded to cents, as they are stored on a Document."""
        return DocumentTotals(money(self.total_amount), money(self.total_tax), money(self.total_discount))


def compute_line(quantity, unit_price, discount_percent=None, tax_rate_percent=None) -> LineAmounts:
    """
    Compute the derived amounts of one line item.

    Order matters for reproducibility:
      subtotal -> discount -> net (after discount) -> tax on net -> line total
    A missing discount or tax rate counts as 0.
    """
    subtotal = _to_decimal(quantity) * _to_decimal(unit_price)
    discount_amount = subtotal * (_to_decimal(discount_percent) / HUNDRED)
    net_amount = subtotal - discount_amount
    tax_amount = net_amount * (_to_decimal(tax_rate_percent) / HUNDRED)
    return LineAmounts(
        subtotal=subtotal,
        discount_amount=discount_amount,
        net_amount=net_amount,
        tax_amount=tax_amount,
        line_total=net_amount + tax_amount,
    )


def line_amounts(item: Any) -> LineAmounts:
    """compute_line() for any object exposing quantity/unit_price/discount/tax_rate."""
    return compute_line(
        getattr(item, "quantity", None),
        getattr(item, "unit_price", None),
        getattr(item, "discount", None),
        getattr(item, "tax_rate", None),
    )


def compute_totals(items: Iterable[Any]) -> DocumentTotals:
    """
    Aggregate document totals from line items (LineItem rows or LineItemIn schemas).

    An empty sequence gives all-zero totals.
    """
    total_amount = ZERO
    total_tax = ZERO
    total_discount = ZERO

    for item in items:
        amounts = line_amounts(item)
        total_amount += amounts.net_amount
        total_tax += amounts.tax_amount
        total_discount += amounts.discount_amount

    return DocumentTotals(total_amount, total_tax, total_discount)


def grand_total(total_amount, total_tax) -> Decimal:
    return _to_decimal(total_amount) + _to_decimal(total_tax)
