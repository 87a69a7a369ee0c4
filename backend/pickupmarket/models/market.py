from datetime import datetime

from pickupmarket.extensions import db


class Market(db.Model):
    __tablename__ = "markets"

    id = db.Column(db.Integer, primary_key=True)
    vertical_id = db.Column(db.String(32), nullable=False, default="farmers_market", index=True)
    name = db.Column(db.String(160), nullable=False)

    # traditional | private_pickup
    market_type = db.Column(db.String(24), nullable=False, default="traditional")

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(80), nullable=True)
    state = db.Column(db.String(32), nullable=True)
    timezone = db.Column(db.String(64), nullable=False, default="America/Chicago")

    # Explicit override of the market-type cutoff policy.
    cutoff_hours = db.Column(db.Integer, nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    schedules = db.relationship(
        "MarketSchedule",
        backref="market",
        lazy="select",
        order_by="MarketSchedule.day_of_week",
    )

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "vertical_id": self.vertical_id,
            "name": self.name,
            "market_type": self.market_type or "traditional",
            "address": self.address or "",
            "city": self.city or "",
            "state": self.state or "",
            "timezone": self.timezone,
            "cutoff_hours": int(self.cutoff_hours) if self.cutoff_hours is not None else None,
            "active": bool(self.active),
        }


class MarketSchedule(db.Model):
    __tablename__ = "market_schedules"

    id = db.Column(db.Integer, primary_key=True)
    market_id = db.Column(db.Integer, db.ForeignKey("markets.id"), nullable=False, index=True)

    # 0 = Sunday ... 6 = Saturday
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "market_id": int(self.market_id),
            "day_of_week": int(self.day_of_week),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "active": bool(self.active),
        }
