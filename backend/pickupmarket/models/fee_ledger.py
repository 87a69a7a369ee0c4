from datetime import datetime

from pickupmarket.extensions import db


class VendorFeeLedgerEntry(db.Model):
    __tablename__ = "vendor_fee_ledger"
    __table_args__ = (
        db.UniqueConstraint("vendor_profile_id", "order_id", name="uq_vendor_fee_ledger_vendor_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_profile_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    # pending | paid
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    description = db.Column(db.String(240), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    settlement_reference = db.Column(db.String(120), nullable=True)

    @property
    def outstanding_cents(self) -> int:
        remaining = int(self.amount_cents or 0) - int(self.paid_cents or 0)
        return remaining if remaining > 0 else 0

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "vendor_profile_id": int(self.vendor_profile_id),
            "order_id": int(self.order_id) if self.order_id is not None else None,
            "amount_cents": int(self.amount_cents or 0),
            "paid_cents": int(self.paid_cents or 0),
            "outstanding_cents": self.outstanding_cents,
            "status": self.status or "pending",
            "description": self.description or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "settlement_reference": self.settlement_reference or "",
        }
