from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request

from pickupmarket.errors import ForbiddenError, NotFoundError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.models import MarketBoxSubscription, VendorProfile
from pickupmarket.services.market_box import (
    MARKET_BOX_PICKUP,
    mark_pickup_missed,
    mark_pickup_ready,
    reschedule_pickup,
)
from pickupmarket.services.pickup_handshake import BUYER, VENDOR, confirm_pickup, report_pickup_issue
from pickupmarket.utils.auth import require_actor, require_vendor

market_boxes_bp = Blueprint("market_boxes_bp", __name__, url_prefix="/api")


@market_boxes_bp.get("/market-boxes/<int:subscription_id>")
def get_subscription(subscription_id: int):
    actor = require_actor()
    sub = db.session.get(MarketBoxSubscription, subscription_id)
    if sub is None:
        raise NotFoundError("SUBSCRIPTION_NOT_FOUND", f"Market box {subscription_id} not found")
    vendor = db.session.get(VendorProfile, int(sub.vendor_profile_id))
    if not actor.is_admin and actor.user_id not in (int(sub.buyer_user_id), int(vendor.user_id)):
        raise ForbiddenError("FORBIDDEN", "Not your market box")
    return jsonify({"ok": True, "subscription": sub.to_dict(), "pickups": [p.to_dict() for p in sub.pickups]}), 200


@market_boxes_bp.post("/vendor/market-box-pickups/<int:pickup_id>/ready")
def vendor_pickup_ready(pickup_id: int):
    pickup = mark_pickup_ready(pickup_id, require_vendor())
    return jsonify({"ok": True, "pickup": pickup.to_dict()}), 200


@market_boxes_bp.post("/vendor/market-box-pickups/<int:pickup_id>/missed")
def vendor_pickup_missed(pickup_id: int):
    payload = request.get_json(silent=True) or {}
    pickup = mark_pickup_missed(pickup_id, require_vendor(), notes=(payload.get("notes") or "").strip())
    return jsonify({"ok": True, "pickup": pickup.to_dict()}), 200


@market_boxes_bp.post("/vendor/market-box-pickups/<int:pickup_id>/reschedule")
def vendor_pickup_reschedule(pickup_id: int):
    vendor = require_vendor()
    payload = request.get_json(silent=True) or {}
    try:
        new_date = date.fromisoformat(str(payload.get("new_date") or ""))
    except ValueError:
        raise ValidationError("INVALID_RESCHEDULE_DATE", "new_date must be YYYY-MM-DD")
    pickup = reschedule_pickup(pickup_id, vendor, new_date, notes=(payload.get("notes") or "").strip())
    return jsonify({"ok": True, "pickup": pickup.to_dict()}), 200


@market_boxes_bp.post("/buyer/market-box-pickups/<int:pickup_id>/confirm")
def buyer_confirm_box_pickup(pickup_id: int):
    actor = require_actor()
    result = confirm_pickup(MARKET_BOX_PICKUP, pickup_id, party=BUYER, actor_user_id=actor.user_id)
    return jsonify({"ok": True, **result.to_dict()}), 200


@market_boxes_bp.post("/vendor/market-box-pickups/<int:pickup_id>/confirm")
def vendor_confirm_box_pickup(pickup_id: int):
    actor = require_actor("vendor")
    result = confirm_pickup(MARKET_BOX_PICKUP, pickup_id, party=VENDOR, actor_user_id=actor.user_id)
    return jsonify({"ok": True, **result.to_dict()}), 200


@market_boxes_bp.post("/buyer/market-box-pickups/<int:pickup_id>/report-issue")
def buyer_report_box_issue(pickup_id: int):
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    pickup = report_pickup_issue(
        MARKET_BOX_PICKUP,
        pickup_id,
        actor_user_id=actor.user_id,
        description=payload.get("description") or "",
    )
    return jsonify({"ok": True, "pickup": pickup.to_dict()}), 200
