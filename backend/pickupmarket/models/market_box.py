from datetime import datetime

from pickupmarket.extensions import db
from pickupmarket.models.pickup_confirmation import PickupConfirmationMixin


class MarketBoxSubscription(db.Model):
    __tablename__ = "market_box_subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    buyer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vendor_profile_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    market_id = db.Column(db.Integer, db.ForeignKey("markets.id"), nullable=True)

    offering_name = db.Column(db.String(160), nullable=False, default="Market Box")
    term_weeks = db.Column(db.Integer, nullable=False, default=4)
    weeks_completed = db.Column(db.Integer, nullable=False, default=0)

    # active | completed | cancelled
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    pickups = db.relationship(
        "MarketBoxPickup",
        backref="subscription",
        lazy="select",
        order_by="MarketBoxPickup.week_number",
    )

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "buyer_user_id": int(self.buyer_user_id),
            "vendor_profile_id": int(self.vendor_profile_id),
            "market_id": int(self.market_id) if self.market_id is not None else None,
            "offering_name": self.offering_name,
            "term_weeks": int(self.term_weeks or 0),
            "weeks_completed": int(self.weeks_completed or 0),
            "status": self.status or "active",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class MarketBoxPickup(PickupConfirmationMixin, db.Model):
    __tablename__ = "market_box_pickups"
    __table_args__ = (
        db.UniqueConstraint("subscription_id", "week_number", name="uq_market_box_pickup_week"),
    )

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("market_box_subscriptions.id"), nullable=False, index=True)
    week_number = db.Column(db.Integer, nullable=False)
    scheduled_date = db.Column(db.Date, nullable=False)

    # scheduled | ready | picked_up | missed | rescheduled
    status = db.Column(db.String(16), nullable=False, default="scheduled", index=True)

    ready_at = db.Column(db.DateTime, nullable=True)
    picked_up_at = db.Column(db.DateTime, nullable=True)
    missed_at = db.Column(db.DateTime, nullable=True)
    rescheduled_to = db.Column(db.Date, nullable=True)
    vendor_notes = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        payload = {
            "id": int(self.id),
            "subscription_id": int(self.subscription_id),
            "week_number": int(self.week_number),
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "status": self.status or "scheduled",
            "ready_at": self.ready_at.isoformat() if self.ready_at else None,
            "picked_up_at": self.picked_up_at.isoformat() if self.picked_up_at else None,
            "missed_at": self.missed_at.isoformat() if self.missed_at else None,
            "rescheduled_to": self.rescheduled_to.isoformat() if self.rescheduled_to else None,
            "vendor_notes": self.vendor_notes or "",
        }
        payload.update(self.confirmation_dict())
        return payload
