from __future__ import annotations

import json
from datetime import datetime

from pickupmarket.extensions import db
from pickupmarket.models.pickup_confirmation import PickupConfirmationMixin


def _load_json(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
        return data if isinstance(data, dict) else {}
    except Exception:
        return {}


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    buyer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vertical_id = db.Column(db.String(32), nullable=False, default="farmers_market", index=True)

    # pending | paid | fulfilled | cancelled | refunded
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    # processor | cash | venmo | cashapp | paypal
    payment_method = db.Column(db.String(16), nullable=False, default="processor")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    buyer_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    buyer_total_cents = db.Column(db.Integer, nullable=False, default=0)
    vendor_payout_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    pricing_snapshot_json = db.Column(db.Text, nullable=True)

    external_payment_confirmed_at = db.Column(db.DateTime, nullable=True)
    external_payment_confirmed_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship("OrderItem", backref="order", lazy="select", order_by="OrderItem.id")

    @property
    def is_external_payment(self) -> bool:
        return (self.payment_method or "processor") != "processor"

    def pricing_snapshot(self) -> dict:
        return _load_json(self.pricing_snapshot_json)

    def to_dict(self, *, include_items: bool = True) -> dict:
        payload = {
            "id": int(self.id),
            "order_number": self.order_number,
            "buyer_user_id": int(self.buyer_user_id),
            "vertical_id": self.vertical_id,
            "status": self.status or "pending",
            "payment_method": self.payment_method or "processor",
            "subtotal_cents": int(self.subtotal_cents or 0),
            "buyer_fee_cents": int(self.buyer_fee_cents or 0),
            "buyer_total_cents": int(self.buyer_total_cents or 0),
            "vendor_payout_cents": int(self.vendor_payout_cents or 0),
            "platform_fee_cents": int(self.platform_fee_cents or 0),
            "pricing": self.pricing_snapshot(),
            "external_payment_confirmed_at": (
                self.external_payment_confirmed_at.isoformat() if self.external_payment_confirmed_at else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
        if include_items:
            payload["items"] = [item.to_dict() for item in (self.items or [])]
        return payload


class OrderItem(PickupConfirmationMixin, db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    vendor_profile_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    market_id = db.Column(db.Integer, db.ForeignKey("markets.id"), nullable=True, index=True)
    pickup_date = db.Column(db.Date, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    vendor_payout_cents = db.Column(db.Integer, nullable=False, default=0)

    # pending | confirmed | ready | fulfilled | cancelled | refunded
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    pickup_snapshot_json = db.Column(db.Text, nullable=True)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    ready_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def pickup_snapshot(self) -> dict:
        return _load_json(self.pickup_snapshot_json)

    def to_dict(self) -> dict:
        payload = {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "vendor_profile_id": int(self.vendor_profile_id),
            "listing_id": int(self.listing_id),
            "market_id": int(self.market_id) if self.market_id is not None else None,
            "pickup_date": self.pickup_date.isoformat() if self.pickup_date else None,
            "quantity": int(self.quantity or 0),
            "unit_price_cents": int(self.unit_price_cents or 0),
            "subtotal_cents": int(self.subtotal_cents or 0),
            "vendor_payout_cents": int(self.vendor_payout_cents or 0),
            "status": self.status or "pending",
            "pickup": self.pickup_snapshot(),
            "confirmed_at": self.confirmed_at.isoformat() if self.confirmed_at else None,
            "ready_at": self.ready_at.isoformat() if self.ready_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
        payload.update(self.confirmation_dict())
        return payload
