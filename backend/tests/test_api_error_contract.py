from __future__ import annotations

import unittest

from seed_helpers import InMemoryAppTestCase, auth_header, seed_marketplace

from pickupmarket.extensions import db
from pickupmarket.models import Market


class ApiErrorContractTestCase(InMemoryAppTestCase):
    def test_unknown_api_route_returns_json_error_shape(self):
        res = self.client.get("/api/does-not-exist")
        self.assertEqual(res.status_code, 404)
        self.assertTrue(res.is_json)
        body = res.get_json(force=True) or {}
        self.assertFalse(bool(body.get("ok", True)))
        self.assertTrue(str(body.get("error") or "").strip())
        self.assertTrue(str(body.get("message") or "").strip())
        self.assertEqual(int(body.get("status") or 0), 404)
        self.assertTrue(str(body.get("trace_id") or "").strip())

    def test_domain_error_carries_code_and_category(self):
        res = self.client.post("/api/pricing/order", json={"items": [[100, 0]]})
        self.assertEqual(res.status_code, 400)
        body = res.get_json()
        self.assertEqual(body["error"]["code"], "INVALID_QUANTITY")
        self.assertEqual(body["error"]["category"], "validation")
        self.assertTrue(body["trace_id"])

    def test_missing_token_is_unauthorized(self):
        res = self.client.post("/api/orders", json={"items": []})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["error"]["code"], "UNAUTHORIZED")

    def test_buyer_cannot_use_vendor_routes(self):
        res = self.client.post("/api/vendor/order-items/1/ready", headers=auth_header(5, "buyer"))
        self.assertEqual(res.status_code, 403)

    def test_pricing_endpoint(self):
        res = self.client.post("/api/pricing/order", json={"items": [[1000, 2], [500, 1]], "vertical_id": "farmers_market"})
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["pricing"]["buyer_total_cents"], 2678)
        self.assertEqual(body["display"]["buyer_total"], "$26.78")
        self.assertTrue(body["minimum"]["meets_minimum"])

        res = self.client.get("/api/pricing/display?base_cents=1000")
        self.assertEqual(res.get_json()["display"], "$10.65")
        self.assertEqual(self.client.get("/api/pricing/display?base_cents=abc").status_code, 400)


class OrderFlowApiTestCase(InMemoryAppTestCase):
    def test_place_order_ready_and_handshake_over_http(self):
        with self.app.app_context():
            ids = seed_marketplace()
        buyer = auth_header(ids["buyer_id"], "buyer")
        vendor = auth_header(ids["vendor_user_id"], "vendor")

        res = self.client.post(
            "/api/orders",
            json={"items": [{"listing_id": ids["listing_id"], "quantity": 1, "market_id": ids["market_id"]}]},
            headers=buyer,
        )
        self.assertEqual(res.status_code, 201, res.get_json())
        order = res.get_json()["order"]
        item_id = order["items"][0]["id"]

        self.assertEqual(self.client.post(f"/api/vendor/order-items/{item_id}/ready", headers=vendor).status_code, 200)

        res = self.client.post(f"/api/buyer/order-items/{item_id}/confirm-pickup", headers=buyer)
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["outcome"], "awaiting_counterparty")

        res = self.client.post(f"/api/buyer/order-items/{item_id}/confirm-pickup", headers=buyer)
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["error"]["code"], "ALREADY_CONFIRMED")

        res = self.client.get(f"/api/order-items/{item_id}/handshake", headers=vendor)
        self.assertEqual(res.get_json()["state"], "awaiting_vendor")

        res = self.client.post(f"/api/vendor/order-items/{item_id}/confirm-handoff", headers=vendor)
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["completed"])

        res = self.client.get("/api/notifications", headers=buyer)
        self.assertEqual(res.status_code, 200)
        types = {n["type"] for n in res.get_json()["items"]}
        self.assertIn("order_ready", types)

    def test_market_availability_endpoint(self):
        with self.app.app_context():
            ids = seed_marketplace()
        res = self.client.get(f"/api/markets/{ids['market_id']}/availability")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["is_accepting"])

        res = self.client.get(f"/api/listings/{ids['listing_id']}/availability")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["is_accepting"])

    def test_inactive_market_order_is_rejected(self):
        with self.app.app_context():
            ids = seed_marketplace()
            db.session.get(Market, ids["market_id"]).active = False
            db.session.commit()
        res = self.client.post(
            "/api/orders",
            json={"items": [{"listing_id": ids["listing_id"], "quantity": 1, "market_id": ids["market_id"]}]},
            headers=auth_header(ids["buyer_id"]),
        )
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"]["code"], "MARKET_UNAVAILABLE")

    def test_vendor_fee_summary(self):
        with self.app.app_context():
            ids = seed_marketplace()
        res = self.client.get("/api/vendor/fees", headers=auth_header(ids["vendor_user_id"], "vendor"))
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["balance"]["balance_cents"], 0)
        self.assertTrue(body["external_payments"]["allowed"])


if __name__ == "__main__":
    unittest.main()
