from pickupmarket.models.user import User
from pickupmarket.models.vendor import VendorProfile, VendorProfileData
from pickupmarket.models.market import Market, MarketSchedule
from pickupmarket.models.listing import Listing, ListingMarket
from pickupmarket.models.order import Order, OrderItem
from pickupmarket.models.order_event import OrderEvent
from pickupmarket.models.market_box import MarketBoxSubscription, MarketBoxPickup
from pickupmarket.models.fee_ledger import VendorFeeLedgerEntry
from pickupmarket.models.payout import VendorPayout
from pickupmarket.models.notification import Notification
from pickupmarket.models.platform_event import PlatformEvent
from pickupmarket.models.idempotency_key import IdempotencyKey

__all__ = [
    "User",
    "VendorProfile",
    "VendorProfileData",
    "Market",
    "MarketSchedule",
    "Listing",
    "ListingMarket",
    "Order",
    "OrderItem",
    "OrderEvent",
    "MarketBoxSubscription",
    "MarketBoxPickup",
    "VendorFeeLedgerEntry",
    "VendorPayout",
    "Notification",
    "PlatformEvent",
    "IdempotencyKey",
]
