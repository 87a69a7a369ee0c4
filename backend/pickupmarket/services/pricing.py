from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from pickupmarket.config import FeeSchedule, get_fee_schedule, get_vertical_minimums
from pickupmarket.errors import ValidationError

PRICING_SNAPSHOT_VERSION = 1

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineItem:
    unit_price_cents: int
    quantity: int

    @property
    def subtotal_cents(self) -> int:
        return int(self.unit_price_cents) * int(self.quantity)


@dataclass(frozen=True)
class OrderPricing:
    subtotal_cents: int
    buyer_percent_fee_cents: int
    buyer_flat_fee_cents: int
    buyer_total_cents: int
    vendor_percent_fee_cents: int
    vendor_flat_fee_cents: int
    vendor_payout_cents: int
    platform_fee_cents: int

    @property
    def buyer_fee_cents(self) -> int:
        return self.buyer_percent_fee_cents + self.buyer_flat_fee_cents

    @property
    def vendor_fee_cents(self) -> int:
        return self.vendor_percent_fee_cents + self.vendor_flat_fee_cents

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["snapshot_version"] = PRICING_SNAPSHOT_VERSION
        return payload


def _percent_of(amount_cents: int, percent: Decimal) -> int:
    raw = (Decimal(int(amount_cents)) * Decimal(percent)) / _HUNDRED
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _as_line_item(raw) -> LineItem:
    if isinstance(raw, LineItem):
        return raw
    if isinstance(raw, dict):
        return LineItem(unit_price_cents=raw.get("unit_price_cents"), quantity=raw.get("quantity"))
    unit, qty = raw
    return LineItem(unit_price_cents=unit, quantity=qty)


def validate_line_items(items) -> list[LineItem]:
    """Coerce raw (unit_price_cents, quantity) input, rejecting malformed lines."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("ITEMS_REQUIRED", "At least one line item is required")
    out = []
    for idx, raw in enumerate(items):
        try:
            line = _as_line_item(raw)
        except (TypeError, ValueError):
            raise ValidationError("INVALID_LINE_ITEM", f"Line {idx} must be (unit_price_cents, quantity)")
        unit, qty = line.unit_price_cents, line.quantity
        if isinstance(unit, bool) or not isinstance(unit, int) or unit < 0:
            raise ValidationError("INVALID_UNIT_PRICE", f"Line {idx}: unit_price_cents must be a non-negative integer")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            raise ValidationError("INVALID_QUANTITY", f"Line {idx}: quantity must be a positive integer")
        out.append(line)
    return out


def calculate_order_pricing(items: Iterable, schedule: FeeSchedule | None = None) -> OrderPricing:
    """Price a whole order.

    Percentage fees are rounded once on the order subtotal, never per line, so
    the result does not depend on item order. Flat fees are charged once per
    order on each side. Vendor payout is not clamped and can be negative for
    very small subtotals.
    """
    fees = schedule or get_fee_schedule()
    subtotal = sum(_as_line_item(raw).subtotal_cents for raw in items)

    buyer_percent = _percent_of(subtotal, fees.buyer_fee_percent)
    buyer_flat = int(fees.buyer_flat_fee_cents)
    vendor_percent = _percent_of(subtotal, fees.vendor_fee_percent)
    vendor_flat = int(fees.vendor_flat_fee_cents)

    return OrderPricing(
        subtotal_cents=int(subtotal),
        buyer_percent_fee_cents=buyer_percent,
        buyer_flat_fee_cents=buyer_flat,
        buyer_total_cents=int(subtotal + buyer_percent + buyer_flat),
        vendor_percent_fee_cents=vendor_percent,
        vendor_flat_fee_cents=vendor_flat,
        vendor_payout_cents=int(subtotal - vendor_percent - vendor_flat),
        platform_fee_cents=int(buyer_percent + buyer_flat + vendor_percent + vendor_flat),
    )


def calculate_buyer_price(subtotal_cents: int, schedule: FeeSchedule | None = None) -> int:
    fees = schedule or get_fee_schedule()
    return int(subtotal_cents) + _percent_of(subtotal_cents, fees.buyer_fee_percent) + int(fees.buyer_flat_fee_cents)


def calculate_vendor_payout(subtotal_cents: int, schedule: FeeSchedule | None = None) -> int:
    fees = schedule or get_fee_schedule()
    return int(subtotal_cents) - _percent_of(subtotal_cents, fees.vendor_fee_percent) - int(fees.vendor_flat_fee_cents)


def calculate_item_display_price(base_price_cents: int, schedule: FeeSchedule | None = None) -> int:
    # Browse views show the percentage markup only; never summed into totals.
    fees = schedule or get_fee_schedule()
    return int(base_price_cents) + _percent_of(base_price_cents, fees.buyer_fee_percent)


def format_price(cents: int) -> str:
    value = int(cents)
    sign = "-" if value < 0 else ""
    dollars = (Decimal(abs(value)) / _HUNDRED).quantize(Decimal("0.01"))
    return f"{sign}${dollars}"


def format_display_price(base_price_cents: int, schedule: FeeSchedule | None = None) -> str:
    return format_price(calculate_item_display_price(base_price_cents, schedule))


def vertical_minimum(vertical_id: str | None, schedule: FeeSchedule | None = None) -> int:
    table = get_vertical_minimums()
    key = (vertical_id or "").strip().lower()
    if key in table:
        return int(table[key])
    fees = schedule or get_fee_schedule()
    return int(fees.minimum_order_cents)


def meets_minimum_order(subtotal_cents: int, vertical_id: str | None = None) -> bool:
    return int(subtotal_cents) >= vertical_minimum(vertical_id)


def amount_to_minimum(subtotal_cents: int, vertical_id: str | None = None) -> int:
    remaining = vertical_minimum(vertical_id) - int(subtotal_cents)
    return remaining if remaining > 0 else 0


def allocate_vendor_payouts(pricing: OrderPricing, item_subtotals: list[int]) -> list[int]:
    """Split the order-level vendor payout across items.

    The vendor fee is distributed proportionally to item subtotals with the
    largest-remainder method; each item's share is its subtotal minus its fee
    portion, so the shares always sum to ``pricing.vendor_payout_cents``.
    """
    if not item_subtotals:
        return []
    fee_total = int(pricing.subtotal_cents) - int(pricing.vendor_payout_cents)
    subtotal = sum(int(s) for s in item_subtotals)
    if subtotal <= 0:
        fee_parts = [0] * len(item_subtotals)
        fee_parts[0] = fee_total
    else:
        fee_parts = []
        remainders = []
        for idx, item_subtotal in enumerate(item_subtotals):
            quotient, remainder = divmod(fee_total * int(item_subtotal), subtotal)
            fee_parts.append(quotient)
            remainders.append((remainder, -idx))
        leftover = fee_total - sum(fee_parts)
        for _remainder, neg_idx in sorted(remainders, reverse=True)[:leftover]:
            fee_parts[-neg_idx] += 1
    return [int(s) - fee for s, fee in zip(item_subtotals, fee_parts)]
