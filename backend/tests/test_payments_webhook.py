from __future__ import annotations

import json
import os
import unittest
from datetime import datetime
from unittest.mock import patch

from seed_helpers import InMemoryAppTestCase, seed_marketplace

from pickupmarket.extensions import db
from pickupmarket.models import Order, VendorFeeLedgerEntry
from pickupmarket.segments.segment_payment_webhooks import sign_payload
from pickupmarket.services.checkout import place_order

SECRET = "whsec_test_secret"


class PaymentsWebhookTestCase(InMemoryAppTestCase):
    def setUp(self):
        self._env = patch.dict(os.environ, {"PAYMENTS_WEBHOOK_SECRET": SECRET})
        self._env.start()

    def tearDown(self):
        self._env.stop()

    def _post(self, payload: dict, secret: str = SECRET):
        raw = json.dumps(payload).encode("utf-8")
        return self.client.post(
            "/api/webhooks/payments",
            data=raw,
            headers={"Content-Type": "application/json", "X-Webhook-Signature": sign_payload(raw, secret)},
        )

    def _seed_order(self) -> int:
        with self.app.app_context():
            ids = seed_marketplace()
            order = place_order(
                ids["buyer_id"],
                [{"listing_id": ids["listing_id"], "quantity": 1, "market_id": ids["market_id"]}],
                now=datetime(2026, 10, 14, 9, 0),
            )
            return int(order.id)

    def test_bad_signature_is_rejected(self):
        res = self._post({"id": "evt_1", "type": "checkout.completed"}, secret="wrong")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["error"]["code"], "INVALID_SIGNATURE")

    def test_checkout_completed_marks_order_paid_once(self):
        order_id = self._seed_order()
        event = {
            "id": "evt_order_paid",
            "type": "checkout.completed",
            "data": {"id": "cs_123", "metadata": {"type": "order", "order_id": order_id}},
        }
        first = self._post(event)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["order_status"], "paid")
        self.assertFalse(first.get_json()["replayed"])

        again = self._post(event)
        self.assertEqual(again.status_code, 200)
        self.assertTrue(again.get_json()["replayed"])
        with self.app.app_context():
            self.assertEqual(db.session.get(Order, order_id).status, "paid")

    def test_reused_event_id_with_different_payload_is_a_conflict(self):
        order_id = self._seed_order()
        event = {
            "id": "evt_reused",
            "type": "checkout.completed",
            "data": {"id": "cs_reused", "metadata": {"type": "order", "order_id": order_id}},
        }
        self.assertEqual(self._post(event).status_code, 200)

        tampered = {**event, "data": {"id": "cs_other", "metadata": {"type": "order", "order_id": order_id + 1}}}
        res = self._post(tampered)
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["error"]["code"], "EVENT_PAYLOAD_MISMATCH")

    def test_vendor_fee_checkout_settles_ledger(self):
        with self.app.app_context():
            ids = seed_marketplace()
            db.session.add(
                VendorFeeLedgerEntry(vendor_profile_id=ids["vendor_id"], amount_cents=300, status="pending")
            )
            db.session.commit()
        event = {
            "id": "evt_fee_paid",
            "type": "checkout.completed",
            "data": {
                "id": "cs_fee",
                "amount_cents": 300,
                "metadata": {"type": "vendor_fee_payment", "vendor_profile_id": ids["vendor_id"]},
            },
        }
        res = self._post(event)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["applied_cents"], 300)
        with self.app.app_context():
            entry = VendorFeeLedgerEntry.query.filter_by(vendor_profile_id=ids["vendor_id"]).one()
            self.assertEqual(entry.status, "paid")
            self.assertEqual(entry.settlement_reference, "cs_fee")

    def test_unknown_order_releases_event_for_retry(self):
        event = {
            "id": "evt_missing_order",
            "type": "checkout.completed",
            "data": {"id": "cs_x", "metadata": {"type": "order", "order_id": 999999}},
        }
        self.assertEqual(self._post(event).status_code, 404)
        self.assertEqual(self._post(event).status_code, 404)

    def test_unhandled_event_is_acknowledged(self):
        res = self._post({"id": "evt_other", "type": "payout.paid", "data": {}})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["ignored"])


if __name__ == "__main__":
    unittest.main()
