from datetime import datetime

from pickupmarket.extensions import db


class VendorPayout(db.Model):
    __tablename__ = "vendor_payouts"

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, unique=True, index=True)
    vendor_profile_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    fee_deduction_cents = db.Column(db.Integer, nullable=False, default=0)
    transfer_id = db.Column(db.String(120), nullable=True)
    provider = db.Column(db.String(32), nullable=True)
    # processing | failed | skipped
    status = db.Column(db.String(16), nullable=False, default="processing")
    failure_reason = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_item_id": int(self.order_item_id),
            "vendor_profile_id": int(self.vendor_profile_id),
            "amount_cents": int(self.amount_cents or 0),
            "fee_deduction_cents": int(self.fee_deduction_cents or 0),
            "transfer_id": self.transfer_id or "",
            "provider": self.provider or "",
            "status": self.status or "processing",
            "failure_reason": self.failure_reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
