from __future__ import annotations

import os
import time
import unittest
from datetime import datetime, time as dtime

from pickupmarket import create_app
from pickupmarket.extensions import db
from pickupmarket.models import Listing, ListingMarket, Market, MarketSchedule, User, VendorProfile
from pickupmarket.utils.jwt_utils import create_access_token

# A Wednesday morning, UTC.
NOW = datetime(2026, 10, 14, 9, 0, 0)

_ENV_KEYS = ("SQLALCHEMY_DATABASE_URI", "DATABASE_URL")


class InMemoryAppTestCase(unittest.TestCase):
    """Fresh app bound to its own in-memory SQLite database per test class."""

    @classmethod
    def setUpClass(cls):
        cls._prev_env = {k: os.getenv(k) for k in _ENV_KEYS}
        for key in _ENV_KEYS:
            os.environ[key] = "sqlite:///:memory:"
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        for key, value in cls._prev_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def auth_header(user_id: int, role: str = "buyer") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


def seed_marketplace(
    *,
    vertical: str = "farmers_market",
    price_cents: int = 1000,
    quantity: int | None = 10,
    processor_account: str | None = "acct_test_vendor",
    cutoff_hours: int | None = 1,
    buyer_phone: str | None = None,
) -> dict:
    """Buyer, vendor, a market open every day at noon UTC and one published listing."""
    suffix = time.time_ns()
    buyer = User(name="Test Buyer", email=f"buyer-{suffix}@pickupmarket.test", role="buyer", phone=buyer_phone)
    vendor_user = User(name="Test Vendor", email=f"vendor-{suffix}@pickupmarket.test", role="vendor")
    db.session.add_all([buyer, vendor_user])
    db.session.flush()

    market = Market(
        vertical_id=vertical,
        name=f"Riverside Market {suffix}",
        market_type="traditional",
        timezone="UTC",
        cutoff_hours=cutoff_hours,
        active=True,
    )
    db.session.add(market)
    db.session.flush()
    for day in range(7):
        db.session.add(
            MarketSchedule(market_id=market.id, day_of_week=day, start_time=dtime(12, 0), end_time=dtime(16, 0))
        )

    vendor = VendorProfile(
        user_id=vendor_user.id,
        vertical_id=vertical,
        status="approved",
        business_name="Green Acres Farm",
        processor_account_id=processor_account,
    )
    db.session.add(vendor)
    db.session.flush()

    listing = Listing(
        vendor_profile_id=vendor.id,
        vertical_id=vertical,
        title="Heirloom tomatoes",
        price_cents=price_cents,
        quantity=quantity,
        status="published",
    )
    db.session.add(listing)
    db.session.flush()
    db.session.add(ListingMarket(listing_id=listing.id, market_id=market.id))
    db.session.commit()
    return {
        "buyer_id": int(buyer.id),
        "vendor_user_id": int(vendor_user.id),
        "vendor_id": int(vendor.id),
        "market_id": int(market.id),
        "listing_id": int(listing.id),
    }
