from __future__ import annotations

import os
import unittest
from datetime import timedelta
from unittest.mock import MagicMock, patch

from seed_helpers import NOW, InMemoryAppTestCase, seed_marketplace

from pickupmarket.config import LedgerPolicy
from pickupmarket.errors import UpstreamError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.integrations.common import ProviderError
from pickupmarket.models import IdempotencyKey, VendorFeeLedgerEntry, VendorProfile
from pickupmarket.services.fee_ledger import (
    apply_fee_payment,
    calculate_auto_deduct_amount,
    can_use_external_payments,
    get_vendor_fee_balance,
    pay_vendor_fee_balance,
)


def _entry(vendor_id, amount, created_at, paid=0):
    row = VendorFeeLedgerEntry(
        vendor_profile_id=vendor_id,
        amount_cents=amount,
        paid_cents=paid,
        status="pending",
        description="Platform fee",
        created_at=created_at,
    )
    db.session.add(row)
    return row


class AutoDeductTestCase(unittest.TestCase):
    def test_capped_at_half_the_payout(self):
        policy = LedgerPolicy()
        self.assertEqual(calculate_auto_deduct_amount(1000, 300, policy), 300)
        self.assertEqual(calculate_auto_deduct_amount(1000, 800, policy), 500)
        self.assertEqual(calculate_auto_deduct_amount(999, 800, policy), 499)
        self.assertEqual(calculate_auto_deduct_amount(1000, 0, policy), 0)
        self.assertEqual(calculate_auto_deduct_amount(-50, 100, policy), 0)


class FeeBalanceTestCase(InMemoryAppTestCase):
    def test_balance_threshold(self):
        with self.app.app_context():
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 4999, NOW)
            db.session.commit()
            self.assertFalse(get_vendor_fee_balance(ids["vendor_id"], NOW).requires_payment)
            _entry(ids["vendor_id"], 1, NOW)
            db.session.commit()
            balance = get_vendor_fee_balance(ids["vendor_id"], NOW)
            self.assertEqual(balance.balance_cents, 5000)
            self.assertTrue(balance.requires_payment)
            self.assertEqual(balance.reason, "balance_threshold")

    def test_age_threshold(self):
        with self.app.app_context():
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 120, NOW - timedelta(days=40))
            db.session.commit()
            balance = get_vendor_fee_balance(ids["vendor_id"], NOW)
            self.assertTrue(balance.requires_payment)
            self.assertEqual(balance.reason, "age_threshold")
            self.assertFalse(get_vendor_fee_balance(ids["vendor_id"], NOW - timedelta(days=1)).requires_payment)

    def test_balance_blocks_external_payments(self):
        with self.app.app_context():
            ids = seed_marketplace()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            self.assertEqual(can_use_external_payments(vendor, NOW), (True, None))
            _entry(ids["vendor_id"], 6000, NOW)
            db.session.commit()
            allowed, reason = can_use_external_payments(vendor, NOW)
            self.assertFalse(allowed)
            self.assertEqual(reason, "fee_balance_due:balance_threshold")

    def test_payments_apply_oldest_first(self):
        with self.app.app_context():
            ids = seed_marketplace()
            old = _entry(ids["vendor_id"], 300, NOW - timedelta(days=3))
            new = _entry(ids["vendor_id"], 500, NOW - timedelta(days=1))
            db.session.commit()
            applied = apply_fee_payment(ids["vendor_id"], 400, reference="manual:1", now=NOW)
            db.session.commit()
            self.assertEqual(applied, 400)
            self.assertEqual(old.status, "paid")
            self.assertEqual(old.paid_at, NOW)
            self.assertEqual(new.status, "pending")
            self.assertEqual(new.paid_cents, 100)
            self.assertEqual(get_vendor_fee_balance(ids["vendor_id"], NOW).balance_cents, 400)

    def test_overpayment_applies_only_what_is_owed(self):
        with self.app.app_context():
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 250, NOW)
            db.session.commit()
            self.assertEqual(apply_fee_payment(ids["vendor_id"], 1000, reference="manual:2", now=NOW), 250)
            with self.assertRaises(ValidationError):
                apply_fee_payment(ids["vendor_id"], 0, reference="manual:3")


class PayFeeBalanceTestCase(InMemoryAppTestCase):
    def test_zero_balance_is_rejected(self):
        with self.app.app_context():
            ids = seed_marketplace()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            with self.assertRaises(ValidationError) as ctx:
                pay_vendor_fee_balance(vendor, NOW)
            self.assertEqual(ctx.exception.code, "NO_BALANCE")

    def test_retry_with_same_balance_replays_session(self):
        with self.app.app_context(), patch.dict(os.environ, {"INTEGRATIONS_MODE": "sandbox", "PAYMENTS_PROVIDER": "mock"}):
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 700, NOW)
            db.session.commit()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            first = pay_vendor_fee_balance(vendor, NOW)
            second = pay_vendor_fee_balance(vendor, NOW)
            self.assertFalse(first["replayed"])
            self.assertTrue(second["replayed"])
            self.assertEqual(first["session_id"], second["session_id"])
            self.assertEqual(first["amount_cents"], 700)
            self.assertEqual(IdempotencyKey.query.filter(IdempotencyKey.key.like(f"vendor_fee:{vendor.id}:%")).count(), 1)

    def test_new_fees_after_settlement_open_a_fresh_session(self):
        with self.app.app_context(), patch.dict(os.environ, {"INTEGRATIONS_MODE": "sandbox", "PAYMENTS_PROVIDER": "mock"}):
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 80, NOW)
            db.session.commit()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            first = pay_vendor_fee_balance(vendor, NOW)
            apply_fee_payment(vendor.id, 80, reference=first["session_id"], now=NOW)
            db.session.commit()
            self.assertEqual(get_vendor_fee_balance(vendor.id, NOW).balance_cents, 0)

            later = NOW + timedelta(days=7)
            _entry(ids["vendor_id"], 80, later)
            db.session.commit()
            second = pay_vendor_fee_balance(vendor, later)
            self.assertFalse(second["replayed"])
            self.assertNotEqual(first["session_id"], second["session_id"])
            self.assertEqual(second["amount_cents"], 80)

    def test_provider_failure_releases_reservation(self):
        with self.app.app_context(), patch.dict(os.environ, {"INTEGRATIONS_MODE": "sandbox"}):
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 900, NOW)
            db.session.commit()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            provider = MagicMock()
            provider.create_checkout_session.side_effect = ProviderError("stripe", "HTTP_500", "boom")
            with patch("pickupmarket.services.fee_ledger.build_payments_provider", return_value=provider):
                with self.assertRaises(UpstreamError) as ctx:
                    pay_vendor_fee_balance(vendor, NOW)
            self.assertEqual(ctx.exception.code, "PAYMENT_PROVIDER_FAILED")
            self.assertEqual(IdempotencyKey.query.filter(IdempotencyKey.key.like(f"vendor_fee:{vendor.id}:%")).count(), 0)

    def test_disabled_integrations_are_upstream_errors(self):
        with self.app.app_context(), patch.dict(os.environ, {"INTEGRATIONS_MODE": "disabled"}):
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 900, NOW)
            db.session.commit()
            vendor = db.session.get(VendorProfile, ids["vendor_id"])
            with self.assertRaises(UpstreamError) as ctx:
                pay_vendor_fee_balance(vendor, NOW)
            self.assertEqual(ctx.exception.code, "PAYMENTS_UNAVAILABLE")


class AutoDeductOnPayoutTestCase(InMemoryAppTestCase):
    def test_payout_withholds_part_of_balance(self):
        from pickupmarket.services.checkout import place_order
        from pickupmarket.services.order_status import ORDER_ITEM_PICKUP, mark_item_ready, mark_order_paid
        from pickupmarket.services.pickup_handshake import BUYER, VENDOR, confirm_pickup
        from pickupmarket.models import VendorPayout

        with self.app.app_context(), patch.dict(os.environ, {"INTEGRATIONS_MODE": "sandbox", "PAYMENTS_PROVIDER": "mock"}):
            ids = seed_marketplace()
            _entry(ids["vendor_id"], 1000, NOW - timedelta(days=2))
            db.session.commit()
            order = place_order(
                ids["buyer_id"], [{"listing_id": ids["listing_id"], "quantity": 1, "market_id": ids["market_id"]}], now=NOW
            )
            mark_order_paid(order.id, now=NOW)
            item_id = order.items[0].id
            mark_item_ready(item_id, db.session.get(VendorProfile, ids["vendor_id"]), now=NOW)
            confirm_pickup(ORDER_ITEM_PICKUP, item_id, party=BUYER, actor_user_id=ids["buyer_id"], now=NOW)
            confirm_pickup(ORDER_ITEM_PICKUP, item_id, party=VENDOR, actor_user_id=ids["vendor_user_id"], now=NOW)

            payout = VendorPayout.query.filter_by(order_item_id=item_id).one()
            # 920 payout, half withheld toward the 1000 owed.
            self.assertEqual(payout.fee_deduction_cents, 460)
            self.assertEqual(payout.amount_cents, 460)
            self.assertEqual(get_vendor_fee_balance(ids["vendor_id"], NOW).balance_cents, 540)


if __name__ == "__main__":
    unittest.main()
