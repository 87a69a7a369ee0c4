from __future__ import annotations

import json
import unittest
from datetime import timedelta

from seed_helpers import NOW, InMemoryAppTestCase, seed_marketplace

from pickupmarket.errors import ConflictError, ExpiredError, InvalidTransitionError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.models import Listing, MarketSchedule, Order, OrderEvent, OrderItem, VendorFeeLedgerEntry, VendorProfile
from pickupmarket.services.checkout import _take_stock, place_order
from pickupmarket.services.order_status import (
    cancel_item,
    confirm_cash_complete,
    confirm_external_payment,
    confirm_item,
    mark_item_ready,
    mark_order_paid,
)


def _cart(ids, quantity=1):
    return [{"listing_id": ids["listing_id"], "quantity": quantity, "market_id": ids["market_id"]}]


class CheckoutTestCase(InMemoryAppTestCase):
    def test_places_priced_order_with_pickup_snapshot(self):
        with self.app.app_context():
            ids = seed_marketplace(price_cents=1250, quantity=5)
            order = place_order(ids["buyer_id"], _cart(ids, 2), "processor", now=NOW)
            self.assertTrue(order.order_number.startswith("PM-20261014-"))
            self.assertEqual(order.subtotal_cents, 2500)
            self.assertEqual(order.buyer_total_cents, 2678)
            self.assertEqual(order.status, "pending")

            item = order.items[0]
            self.assertEqual(item.vendor_payout_cents, order.vendor_payout_cents)
            snapshot = json.loads(item.pickup_snapshot_json)
            self.assertEqual(snapshot["pickup_at"], "2026-10-14T12:00:00")
            self.assertEqual(snapshot["cutoff_at"], "2026-10-14T11:00:00")
            self.assertEqual(str(item.pickup_date), "2026-10-14")
            self.assertEqual(db.session.get(Listing, ids["listing_id"]).quantity, 3)

    def test_below_minimum_reports_shortfall(self):
        with self.app.app_context():
            ids = seed_marketplace(price_cents=400)
            with self.assertRaises(ValidationError) as ctx:
                place_order(ids["buyer_id"], _cart(ids, 2), now=NOW)
            self.assertEqual(ctx.exception.code, "BELOW_MINIMUM_ORDER")
            self.assertEqual(ctx.exception.details["amount_to_minimum_cents"], 200)

    def test_cutoff_passed_is_expired_error(self):
        with self.app.app_context():
            ids = seed_marketplace(cutoff_hours=30)
            MarketSchedule.query.filter(
                MarketSchedule.market_id == ids["market_id"], MarketSchedule.day_of_week != 4
            ).update({"active": False})
            db.session.commit()
            # Thursday noon pickup, 30h cutoff: closes Wednesday 06:00.
            with self.assertRaises(ExpiredError) as ctx:
                place_order(ids["buyer_id"], _cart(ids), now=NOW)
            self.assertEqual(ctx.exception.code, "ORDER_CUTOFF_PASSED")
            self.assertEqual(ctx.exception.http_status, 410)

    def test_insufficient_stock_and_unpublished(self):
        with self.app.app_context():
            ids = seed_marketplace(quantity=1)
            with self.assertRaises(ValidationError) as ctx:
                place_order(ids["buyer_id"], _cart(ids, 2), now=NOW)
            self.assertEqual(ctx.exception.code, "INSUFFICIENT_STOCK")
            listing = db.session.get(Listing, ids["listing_id"])
            listing.status = "paused"
            db.session.commit()
            with self.assertRaises(ValidationError) as ctx:
                place_order(ids["buyer_id"], _cart(ids), now=NOW)
            self.assertEqual(ctx.exception.code, "LISTING_UNAVAILABLE")

    def test_repeated_listing_counts_against_stock_once(self):
        with self.app.app_context():
            ids = seed_marketplace(quantity=5)
            line = {"listing_id": ids["listing_id"], "market_id": ids["market_id"], "quantity": 3}
            with self.assertRaises(ValidationError) as ctx:
                place_order(ids["buyer_id"], [line, dict(line)], now=NOW)
            self.assertEqual(ctx.exception.code, "INSUFFICIENT_STOCK")
            self.assertEqual(db.session.get(Listing, ids["listing_id"]).quantity, 5)

            order = place_order(ids["buyer_id"], [line, {**line, "quantity": 2}], now=NOW)
            self.assertEqual(len(order.items), 2)
            db.session.expire_all()
            self.assertEqual(db.session.get(Listing, ids["listing_id"]).quantity, 0)

    def test_stock_taken_concurrently_is_a_conflict(self):
        with self.app.app_context():
            ids = seed_marketplace(quantity=5)
            listing = db.session.get(Listing, ids["listing_id"])
            with self.assertRaises(ConflictError) as ctx:
                _take_stock(listing, 6)
            self.assertEqual(ctx.exception.code, "INSUFFICIENT_STOCK")
            db.session.expire_all()
            self.assertEqual(db.session.get(Listing, ids["listing_id"]).quantity, 5)

    def test_external_payment_needs_processor_account(self):
        with self.app.app_context():
            ids = seed_marketplace(processor_account=None)
            with self.assertRaises(ValidationError) as ctx:
                place_order(ids["buyer_id"], _cart(ids), "venmo", now=NOW)
            self.assertEqual(ctx.exception.code, "EXTERNAL_PAYMENT_NOT_ALLOWED")
            self.assertEqual(ctx.exception.details["reason"], "processor_account_required")


class ItemStateMachineTestCase(InMemoryAppTestCase):
    def _order(self, method="processor"):
        ids = seed_marketplace()
        order = place_order(ids["buyer_id"], _cart(ids), method, now=NOW)
        vendor = db.session.get(VendorProfile, ids["vendor_id"])
        return ids, order, vendor

    def test_confirm_then_ready_writes_audit_rows(self):
        with self.app.app_context():
            _ids, order, vendor = self._order()
            item_id = order.items[0].id
            confirm_item(item_id, vendor, now=NOW)
            mark_item_ready(item_id, vendor, now=NOW + timedelta(minutes=1))
            item = db.session.get(OrderItem, item_id)
            self.assertEqual(item.status, "ready")
            self.assertIsNotNone(item.confirmed_at)
            events = [e.event for e in OrderEvent.query.filter_by(order_id=order.id).order_by(OrderEvent.id).all()]
            self.assertEqual(events, ["order_placed", "item_confirmed", "item_ready"])

    def test_confirm_only_from_pending(self):
        with self.app.app_context():
            _ids, order, vendor = self._order()
            item_id = order.items[0].id
            mark_item_ready(item_id, vendor, now=NOW)
            with self.assertRaises(InvalidTransitionError):
                confirm_item(item_id, vendor, now=NOW)

    def test_ready_from_cancelled_is_rejected(self):
        with self.app.app_context():
            ids, order, vendor = self._order()
            item_id = order.items[0].id
            cancel_item(item_id, actor_type="buyer", actor_id=ids["buyer_id"], reason="changed my mind", now=NOW)
            with self.assertRaises(InvalidTransitionError) as ctx:
                mark_item_ready(item_id, vendor, now=NOW)
            self.assertEqual(ctx.exception.code, "INVALID_ITEM_TRANSITION")
            self.assertEqual(db.session.get(Order, order.id).status, "cancelled")

    def test_processor_webhook_replay_is_noop(self):
        with self.app.app_context():
            _ids, order, _vendor = self._order()
            mark_order_paid(order.id, reference="cs_1", now=NOW)
            mark_order_paid(order.id, reference="cs_1", now=NOW)
            self.assertEqual(db.session.get(Order, order.id).status, "paid")


class ExternalPaymentTestCase(InMemoryAppTestCase):
    def _order(self, method):
        ids = seed_marketplace()
        order = place_order(ids["buyer_id"], _cart(ids), method, now=NOW)
        vendor = db.session.get(VendorProfile, ids["vendor_id"])
        return ids, order, vendor

    def test_confirm_external_payment_records_fee(self):
        with self.app.app_context():
            _ids, order, vendor = self._order("venmo")
            confirm_external_payment(order.id, vendor, now=NOW)
            self.assertEqual(db.session.get(Order, order.id).status, "paid")
            entries = VendorFeeLedgerEntry.query.filter_by(order_id=order.id).all()
            self.assertEqual(len(entries), 1)
            self.assertEqual(entries[0].amount_cents, 80)
            with self.assertRaises(ConflictError):
                confirm_external_payment(order.id, vendor, now=NOW)
            self.assertEqual(VendorFeeLedgerEntry.query.filter_by(order_id=order.id).count(), 1)

    def test_processor_order_is_not_external(self):
        with self.app.app_context():
            _ids, order, vendor = self._order("processor")
            with self.assertRaises(ValidationError) as ctx:
                confirm_external_payment(order.id, vendor, now=NOW)
            self.assertEqual(ctx.exception.code, "NOT_EXTERNAL_PAYMENT")

    def test_cash_complete_fulfils_everything(self):
        with self.app.app_context():
            _ids, order, vendor = self._order("cash")
            confirm_cash_complete(order.id, vendor, now=NOW)
            order = db.session.get(Order, order.id)
            self.assertEqual(order.status, "fulfilled")
            item = order.items[0]
            self.assertEqual(item.status, "fulfilled")
            self.assertEqual(item.buyer_confirmed_at, NOW)
            self.assertEqual(item.vendor_confirmed_at, NOW)
            self.assertEqual(VendorFeeLedgerEntry.query.filter_by(order_id=order.id).count(), 1)
            with self.assertRaises(InvalidTransitionError):
                confirm_cash_complete(order.id, vendor, now=NOW)

    def test_cash_complete_rejects_other_methods(self):
        with self.app.app_context():
            _ids, order, vendor = self._order("paypal")
            with self.assertRaises(ValidationError) as ctx:
                confirm_cash_complete(order.id, vendor, now=NOW)
            self.assertEqual(ctx.exception.code, "NOT_CASH_ORDER")


if __name__ == "__main__":
    unittest.main()
