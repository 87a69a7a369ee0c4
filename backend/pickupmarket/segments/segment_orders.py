from __future__ import annotations

from flask import Blueprint, jsonify, request

from pickupmarket.errors import ForbiddenError, NotFoundError
from pickupmarket.extensions import db
from pickupmarket.models import Order, OrderEvent, OrderItem, VendorProfile
from pickupmarket.services.checkout import place_order
from pickupmarket.services.order_status import (
    ORDER_ITEM_PICKUP,
    cancel_item,
    confirm_cash_complete,
    confirm_external_payment,
    confirm_item,
    mark_item_ready,
)
from pickupmarket.services.pickup_handshake import BUYER, VENDOR, confirm_pickup, handshake_state, report_pickup_issue
from pickupmarket.utils.auth import require_actor, require_vendor

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")


def _visible_order(order_id: int) -> Order:
    actor = require_actor()
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("ORDER_NOT_FOUND", f"Order {order_id} not found")
    if actor.is_admin or int(order.buyer_user_id) == actor.user_id:
        return order
    vendor = VendorProfile.query.filter_by(user_id=actor.user_id).first()
    if vendor is not None and any(int(i.vendor_profile_id) == int(vendor.id) for i in order.items):
        return order
    raise ForbiddenError("FORBIDDEN", "Not your order")


@orders_bp.post("/orders")
def create_order():
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    order = place_order(actor.user_id, payload.get("items"), payload.get("payment_method") or "processor")
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/orders/<int:order_id>")
def get_order(order_id: int):
    order = _visible_order(order_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.get("/orders/<int:order_id>/events")
def get_order_events(order_id: int):
    order = _visible_order(order_id)
    rows = OrderEvent.query.filter_by(order_id=order.id).order_by(OrderEvent.id.asc()).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@orders_bp.post("/vendor/order-items/<int:item_id>/confirm")
def vendor_confirm_item(item_id: int):
    item = confirm_item(item_id, require_vendor())
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.post("/vendor/order-items/<int:item_id>/ready")
def vendor_mark_ready(item_id: int):
    item = mark_item_ready(item_id, require_vendor())
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.post("/vendor/order-items/<int:item_id>/cancel")
def vendor_cancel_item(item_id: int):
    vendor = require_vendor()
    payload = request.get_json(silent=True) or {}
    item = cancel_item(item_id, actor_type="vendor", actor_id=vendor.user_id, reason=(payload.get("reason") or "").strip())
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.post("/buyer/order-items/<int:item_id>/cancel")
def buyer_cancel_item(item_id: int):
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    item = cancel_item(item_id, actor_type="buyer", actor_id=actor.user_id, reason=(payload.get("reason") or "").strip())
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.post("/buyer/order-items/<int:item_id>/confirm-pickup")
def buyer_confirm_pickup(item_id: int):
    actor = require_actor()
    result = confirm_pickup(ORDER_ITEM_PICKUP, item_id, party=BUYER, actor_user_id=actor.user_id)
    return jsonify({"ok": True, **result.to_dict()}), 200


@orders_bp.post("/vendor/order-items/<int:item_id>/confirm-handoff")
def vendor_confirm_pickup(item_id: int):
    actor = require_actor("vendor")
    result = confirm_pickup(ORDER_ITEM_PICKUP, item_id, party=VENDOR, actor_user_id=actor.user_id)
    return jsonify({"ok": True, **result.to_dict()}), 200


@orders_bp.post("/buyer/order-items/<int:item_id>/report-issue")
def buyer_report_issue(item_id: int):
    actor = require_actor()
    payload = request.get_json(silent=True) or {}
    item = report_pickup_issue(
        ORDER_ITEM_PICKUP,
        item_id,
        actor_user_id=actor.user_id,
        description=payload.get("description") or "",
    )
    return jsonify({"ok": True, "item": item.to_dict()}), 200


@orders_bp.get("/order-items/<int:item_id>/handshake")
def get_item_handshake(item_id: int):
    item = db.session.get(OrderItem, item_id)
    if item is None:
        raise NotFoundError("ORDER_ITEM_NOT_FOUND", f"Order item {item_id} not found")
    _visible_order(item.order_id)
    return jsonify({"ok": True, "order_item_id": item.id, "status": item.status, **handshake_state(item)}), 200


@orders_bp.post("/vendor/orders/<int:order_id>/confirm-external-payment")
def vendor_confirm_external_payment(order_id: int):
    order = confirm_external_payment(order_id, require_vendor())
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/vendor/orders/<int:order_id>/confirm-cash-complete")
def vendor_confirm_cash_complete(order_id: int):
    order = confirm_cash_complete(order_id, require_vendor())
    return jsonify({"ok": True, "order": order.to_dict()}), 200
