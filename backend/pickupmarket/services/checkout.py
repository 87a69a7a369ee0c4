from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime

import sqlalchemy as sa

from pickupmarket.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.models import Listing, Market, Order, OrderItem, VendorProfile
from pickupmarket.services.cutoff import build_pickup_snapshot, market_availability
from pickupmarket.services.fee_ledger import can_use_external_payments
from pickupmarket.services.order_status import record_order_event
from pickupmarket.services.pricing import (
    LineItem,
    allocate_vendor_payouts,
    amount_to_minimum,
    calculate_order_pricing,
    format_price,
    meets_minimum_order,
    vertical_minimum,
)
from pickupmarket.utils.events import log_event

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("processor", "cash", "venmo", "cashapp", "paypal")


def _order_number(now: datetime) -> str:
    return f"PM-{now.strftime('%Y%m%d')}-{secrets.token_hex(3).upper()}"


def _parse_request_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("ITEMS_REQUIRED", "At least one item is required")
    parsed = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("INVALID_ITEM", f"Item {idx} must be an object")
        try:
            listing_id = int(raw.get("listing_id"))
            quantity = int(raw.get("quantity", 1))
            market_id = int(raw.get("market_id"))
        except (TypeError, ValueError):
            raise ValidationError("INVALID_ITEM", f"Item {idx} needs integer listing_id, market_id and quantity")
        if quantity < 1:
            raise ValidationError("INVALID_QUANTITY", f"Item {idx}: quantity must be at least 1")
        parsed.append({"listing_id": listing_id, "quantity": quantity, "market_id": market_id})
    return parsed


def _take_stock(listing: Listing, qty: int) -> None:
    table = Listing.__table__
    result = db.session.execute(
        sa.update(table)
        .where(table.c.id == listing.id, table.c.quantity >= qty)
        .values(quantity=table.c.quantity - qty)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ConflictError("INSUFFICIENT_STOCK", f"{listing.title} sold out while you were checking out")
    db.session.refresh(listing, attribute_names=["quantity"])


def place_order(buyer_user_id: int, raw_items, payment_method: str = "processor", now: datetime | None = None) -> Order:
    """Validate a cart against cutoffs and minimums, price it and persist the order.

    Each item carries a frozen snapshot of the pickup market and occurrence
    chosen at purchase time.
    """
    now = now or datetime.utcnow()
    method = (payment_method or "processor").strip().lower()
    if method not in PAYMENT_METHODS:
        raise ValidationError("INVALID_PAYMENT_METHOD", f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")
    requested = _parse_request_items(raw_items)

    wanted: dict[int, int] = {}
    for req in requested:
        wanted[req["listing_id"]] = wanted.get(req["listing_id"], 0) + req["quantity"]

    lines = []
    for req in requested:
        listing = db.session.get(Listing, req["listing_id"])
        if listing is None:
            raise NotFoundError("LISTING_NOT_FOUND", f"Listing {req['listing_id']} not found")
        if not listing.is_published:
            raise ValidationError("LISTING_UNAVAILABLE", f"{listing.title} is not available")
        if listing.quantity is not None and listing.quantity < wanted[listing.id]:
            raise ValidationError("INSUFFICIENT_STOCK", f"Only {listing.quantity} of {listing.title} left")
        market = db.session.get(Market, req["market_id"])
        if market is None or market.id not in {m.id for m in listing.markets}:
            raise ValidationError("MARKET_NOT_OFFERED", f"{listing.title} is not sold at market {req['market_id']}")
        availability = market_availability(market, now)
        if not availability.is_accepting and availability.reason != "cutoff_passed":
            raise ValidationError("MARKET_UNAVAILABLE", f"{market.name} has no upcoming pickups", details={"reason": availability.reason})
        if not availability.is_accepting:
            raise ExpiredError(
                "ORDER_CUTOFF_PASSED",
                f"{market.name} is no longer accepting orders for its next pickup",
                details={"market_id": market.id, "reason": availability.reason},
            )
        lines.append((listing, market, availability, req["quantity"]))

    verticals = {listing.vertical_id for listing, _m, _a, _q in lines}
    if len(verticals) != 1:
        raise ValidationError("MIXED_VERTICALS", "All items must come from the same marketplace")
    vertical = verticals.pop()

    pricing = calculate_order_pricing(
        [LineItem(unit_price_cents=int(listing.price_cents), quantity=qty) for listing, _m, _a, qty in lines]
    )
    if not meets_minimum_order(pricing.subtotal_cents, vertical):
        short = amount_to_minimum(pricing.subtotal_cents, vertical)
        raise ValidationError(
            "BELOW_MINIMUM_ORDER",
            f"Add {format_price(short)} more to reach the {format_price(vertical_minimum(vertical))} minimum",
            details={"amount_to_minimum_cents": short, "minimum_cents": vertical_minimum(vertical)},
        )

    if method != "processor":
        vendor_ids = {listing.vendor_profile_id for listing, _m, _a, _q in lines}
        if len(vendor_ids) != 1:
            raise ValidationError("EXTERNAL_PAYMENT_SINGLE_VENDOR", "External payments are limited to one vendor per order")
        vendor = db.session.get(VendorProfile, vendor_ids.pop())
        allowed, reason = can_use_external_payments(vendor, now)
        if not allowed:
            raise ValidationError("EXTERNAL_PAYMENT_NOT_ALLOWED", "This vendor cannot accept external payments right now", details={"reason": reason})

    order = Order(
        order_number=_order_number(now),
        buyer_user_id=int(buyer_user_id),
        vertical_id=vertical,
        status="pending",
        payment_method=method,
        subtotal_cents=pricing.subtotal_cents,
        buyer_fee_cents=pricing.buyer_fee_cents,
        buyer_total_cents=pricing.buyer_total_cents,
        vendor_payout_cents=pricing.vendor_payout_cents,
        platform_fee_cents=pricing.platform_fee_cents,
        pricing_snapshot_json=json.dumps(pricing.to_dict(), separators=(",", ":")),
        created_at=now,
    )
    db.session.add(order)
    db.session.flush()

    subtotals = [int(listing.price_cents) * qty for listing, _m, _a, qty in lines]
    shares = allocate_vendor_payouts(pricing, subtotals)
    for (listing, market, availability, qty), subtotal, share in zip(lines, subtotals, shares):
        if listing.quantity is not None:
            _take_stock(listing, qty)
        db.session.add(
            OrderItem(
                order_id=order.id,
                vendor_profile_id=listing.vendor_profile_id,
                listing_id=listing.id,
                market_id=market.id,
                pickup_date=availability.window.occurrence_at.date() if availability.window else None,
                quantity=qty,
                unit_price_cents=int(listing.price_cents),
                subtotal_cents=subtotal,
                vendor_payout_cents=share,
                status="pending",
                pickup_snapshot_json=json.dumps(build_pickup_snapshot(market, availability), separators=(",", ":")),
                created_at=now,
            )
        )
    record_order_event(order.id, "order_placed", to_status="pending", actor_type="buyer", actor_id=buyer_user_id)
    log_event(
        "order_placed",
        actor_user_id=buyer_user_id,
        subject_type="order",
        subject_id=order.id,
        metadata={"buyer_total_cents": pricing.buyer_total_cents, "payment_method": method},
    )
    db.session.commit()
    logger.info("order_placed order=%s buyer=%s total=%s", order.order_number, buyer_user_id, pricing.buyer_total_cents)
    return order
