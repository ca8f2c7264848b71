"""Pure invoice arithmetic and numbering rules."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from ..enums import PaymentStatus

CENT = Decimal("0.01")


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


@dataclass(frozen=True)
class InvoiceTotals:
    line_totals: tuple[Decimal, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    grand_total: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    payment_status: PaymentStatus


def line_total(item: Any) -> Decimal:
    """quantity * unit_price - discount + tax for one line."""
    gross = _money(_field(item, "quantity")) * _money(_field(item, "unit_price"))
    return quantize(gross - _money(_field(item, "discount")) + _money(_field(item, "tax")))


def derive_payment_status(paid_amount: Any, grand_total: Any) -> PaymentStatus:
    paid = _money(paid_amount)
    if paid <= 0:
        return PaymentStatus.DUE
    if paid < _money(grand_total):
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


def compute_invoice_totals(items: Iterable[Any], discount: Any = 0, paid_amount: Any = 0) -> InvoiceTotals:
    """Invoice-level totals.

    subtotal is the sum of quantity * unit_price (before line discounts),
    tax is the sum of line taxes, and the invoice discount is applied once.
    """
    items = list(items)
    subtotal = quantize(sum(
        (_money(_field(i, "quantity")) * _money(_field(i, "unit_price")) for i in items),
        Decimal("0"),
    ))
    tax = quantize(sum((_money(_field(i, "tax")) for i in items), Decimal("0")))
    discount_ = quantize(_money(discount))
    grand_total = quantize(subtotal - discount_ + tax)
    paid = quantize(_money(paid_amount))
    return InvoiceTotals(
        line_totals=tuple(line_total(i) for i in items),
        subtotal=subtotal,
        discount=discount_,
        tax=tax,
        grand_total=grand_total,
        paid_amount=paid,
        due_amount=quantize(grand_total - paid),
        payment_status=derive_payment_status(paid, grand_total),
    )


def invoice_period(moment: datetime) -> str:
    return f"{moment.year:04d}{moment.month:02d}"


def format_invoice_number(period: str, sequence: int) -> str:
    """INV-YYYYMM-NNNN (the counter widens past 9999 rather than wrapping)."""
    return f"INV-{period}-{sequence:04d}"
