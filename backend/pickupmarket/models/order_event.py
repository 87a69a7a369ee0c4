from datetime import datetime

from pickupmarket.extensions import db


class OrderEvent(db.Model):
    __tablename__ = "order_events"
    __table_args__ = (
        db.UniqueConstraint("order_id", "idempotency_key", name="uq_order_event_order_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    order_item_id = db.Column(db.Integer, nullable=True, index=True)
    event = db.Column(db.String(48), nullable=False)
    from_status = db.Column(db.String(16), nullable=False, default="")
    to_status = db.Column(db.String(16), nullable=False, default="")
    actor_type = db.Column(db.String(16), nullable=False, default="system")
    actor_id = db.Column(db.Integer, nullable=True)
    idempotency_key = db.Column(db.String(160), nullable=False)
    note = db.Column(db.String(240), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "order_item_id": int(self.order_item_id) if self.order_item_id is not None else None,
            "event": self.event,
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_type": self.actor_type or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "note": self.note or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
