from __future__ import annotations

from datetime import datetime

from pickupmarket.extensions import db


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class PickupConfirmationMixin:
    """Columns shared by every row that completes through the pickup handshake.

    ``confirmation_window_expires_at`` is only meaningful while exactly one
    side has confirmed; it is cleared on completion or reset.
    """

    buyer_confirmed_at = db.Column(db.DateTime, nullable=True)
    vendor_confirmed_at = db.Column(db.DateTime, nullable=True)
    confirmation_window_expires_at = db.Column(db.DateTime, nullable=True)
    pickup_confirmed_at = db.Column(db.DateTime, nullable=True)

    issue_reported_at = db.Column(db.DateTime, nullable=True)
    issue_reported_by = db.Column(db.String(16), nullable=True)
    issue_description = db.Column(db.Text, nullable=True)

    def confirmation_dict(self) -> dict:
        return {
            "buyer_confirmed_at": _iso(self.buyer_confirmed_at),
            "vendor_confirmed_at": _iso(self.vendor_confirmed_at),
            "confirmation_window_expires_at": _iso(self.confirmation_window_expires_at),
            "pickup_confirmed_at": _iso(self.pickup_confirmed_at),
            "issue_reported_at": _iso(self.issue_reported_at),
            "issue_reported_by": self.issue_reported_by or None,
            "issue_description": self.issue_description or None,
        }
