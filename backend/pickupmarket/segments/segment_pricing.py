from __future__ import annotations

from flask import Blueprint, jsonify, request

from pickupmarket.errors import ValidationError
from pickupmarket.services.pricing import (
    amount_to_minimum,
    calculate_item_display_price,
    calculate_order_pricing,
    format_display_price,
    format_price,
    meets_minimum_order,
    validate_line_items,
    vertical_minimum,
)

pricing_bp = Blueprint("pricing_bp", __name__, url_prefix="/api")


@pricing_bp.post("/pricing/order")
def compute_order_pricing():
    payload = request.get_json(silent=True) or {}
    lines = validate_line_items(payload.get("items"))
    vertical = (payload.get("vertical_id") or "").strip().lower() or None
    pricing = calculate_order_pricing(lines)
    return jsonify(
        {
            "ok": True,
            "pricing": pricing.to_dict(),
            "display": {
                "subtotal": format_price(pricing.subtotal_cents),
                "buyer_total": format_price(pricing.buyer_total_cents),
                "vendor_payout": format_price(pricing.vendor_payout_cents),
            },
            "minimum": {
                "vertical_id": vertical,
                "minimum_cents": vertical_minimum(vertical),
                "meets_minimum": meets_minimum_order(pricing.subtotal_cents, vertical),
                "amount_to_minimum_cents": amount_to_minimum(pricing.subtotal_cents, vertical),
            },
        }
    ), 200


@pricing_bp.get("/pricing/display")
def display_price():
    raw = (request.args.get("base_cents") or "").strip()
    try:
        base_cents = int(raw)
    except ValueError:
        raise ValidationError("INVALID_BASE_CENTS", "base_cents must be an integer")
    if base_cents < 0:
        raise ValidationError("INVALID_BASE_CENTS", "base_cents must be non-negative")
    return jsonify(
        {
            "ok": True,
            "base_cents": base_cents,
            "display_cents": calculate_item_display_price(base_cents),
            "display": format_display_price(base_cents),
        }
    ), 200
