from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from quotedesk.errors import ValidationError
from quotedesk.models import DiscountType


CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class Discount:
    value: Decimal
    type: DiscountType


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'total': str(self.total),
        }


def to_decimal(value, *, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be numeric')
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f'{field} must be numeric') from exc
    if not parsed.is_finite():
        raise ValidationError(f'{field} must be numeric')
    return parsed


def discount_from_fields(value, discount_type) -> Discount | None:
    """Pair the stored value/type columns; either half missing means no discount."""
    if value is None or discount_type is None:
        return None
    return Discount(value=to_decimal(value, field='discount value'), type=DiscountType(discount_type))


def _apply(base: Decimal, discount: Discount | None) -> Decimal:
    if discount is None:
        return base
    if discount.type == DiscountType.PERCENTAGE:
        return base - (base * discount.value / HUNDRED)
    return base - discount.value


def _price_of(item) -> Decimal:
    price = getattr(item, 'price', item)
    return to_decimal(price, field='price')


def compute_total(
    line_items: Iterable,
    initial_discount: Discount | None = None,
    final_discount: Discount | None = None,
) -> QuoteTotals:
    subtotal = sum((_price_of(item) for item in line_items), ZERO)

    # Final discount is taken from the post-initial base, never the raw subtotal.
    running = _apply(subtotal, initial_discount)
    running = _apply(running, final_discount)

    total = max(ZERO, running)
    subtotal = subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    total = total.quantize(CENT, rounding=ROUND_HALF_UP)
    return QuoteTotals(subtotal=subtotal, discount_amount=subtotal - total, total=total)


def compute_quote_total(quote, line_items: Iterable) -> QuoteTotals:
    return compute_total(
        line_items,
        discount_from_fields(quote.initial_discount_value, quote.initial_discount_type),
        discount_from_fields(quote.final_discount_value, quote.final_discount_type),
    )
