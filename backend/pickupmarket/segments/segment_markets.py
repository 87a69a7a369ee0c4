from __future__ import annotations

from datetime import datetime

from flask import Blueprint, jsonify

from pickupmarket.errors import NotFoundError
from pickupmarket.extensions import db
from pickupmarket.models import Listing, Market
from pickupmarket.services.cutoff import listing_availability, market_availability

markets_bp = Blueprint("markets_bp", __name__, url_prefix="/api")


@markets_bp.get("/markets/<int:market_id>/availability")
def get_market_availability(market_id: int):
    market = db.session.get(Market, market_id)
    if market is None:
        raise NotFoundError("MARKET_NOT_FOUND", f"Market {market_id} not found")
    result = market_availability(market, datetime.utcnow())
    return jsonify({"ok": True, **result.to_dict(), "schedules": [s.to_dict() for s in market.schedules]}), 200


@markets_bp.get("/listings/<int:listing_id>/availability")
def get_listing_availability(listing_id: int):
    listing = db.session.get(Listing, listing_id)
    if listing is None or listing.deleted_at is not None:
        raise NotFoundError("LISTING_NOT_FOUND", f"Listing {listing_id} not found")
    result = listing_availability(listing, listing.markets, datetime.utcnow())
    return jsonify({"ok": True, **result}), 200
