from datetime import datetime

from pickupmarket.extensions import db


class ListingMarket(db.Model):
    __tablename__ = "listing_markets"
    __table_args__ = (
        db.UniqueConstraint("listing_id", "market_id", name="uq_listing_market"),
    )

    id = db.Column(db.Integer, primary_key=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    market_id = db.Column(db.Integer, db.ForeignKey("markets.id"), nullable=False, index=True)


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    vendor_profile_id = db.Column(db.Integer, db.ForeignKey("vendor_profiles.id"), nullable=False, index=True)
    vertical_id = db.Column(db.String(32), nullable=False, default="farmers_market", index=True)

    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    # None means unlimited stock.
    quantity = db.Column(db.Integer, nullable=True)

    # draft | published | paused
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    markets = db.relationship(
        "Market",
        secondary="listing_markets",
        lazy="select",
        viewonly=True,
    )

    @property
    def is_published(self) -> bool:
        return (self.status or "") == "published" and self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "vendor_profile_id": int(self.vendor_profile_id),
            "vertical_id": self.vertical_id,
            "title": self.title,
            "description": self.description or "",
            "price_cents": int(self.price_cents or 0),
            "quantity": int(self.quantity) if self.quantity is not None else None,
            "status": self.status or "draft",
            "market_ids": [int(m.id) for m in (self.markets or [])],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
