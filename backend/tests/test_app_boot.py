from __future__ import annotations

import importlib
import os
import unittest
import uuid
from unittest.mock import patch

from flask import Flask

from seed_helpers import InMemoryAppTestCase

from pickupmarket.utils.observability import init_sentry


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("pickupmarket")
        self.assertTrue(callable(getattr(module, "create_app", None)))

    def test_import_segments(self):
        for name in (
            "pickupmarket.segments.segment_orders",
            "pickupmarket.segments.segment_market_boxes",
            "pickupmarket.segments.segment_payment_webhooks",
        ):
            self.assertIsNotNone(importlib.import_module(name))

    def test_production_requires_secret_key(self):
        from pickupmarket import create_app

        with patch.dict(os.environ, {"PICKUPMARKET_ENV": "production", "SECRET_KEY": "short"}):
            with self.assertRaises(RuntimeError):
                create_app()


class SentryOptionalInitTestCase(unittest.TestCase):
    def test_sentry_init_is_noop_without_dsn(self):
        app = Flask(__name__)
        with patch.dict(os.environ, {"SENTRY_DSN": ""}, clear=False):
            self.assertFalse(init_sentry(app))


class RequestIdHeadersTestCase(InMemoryAppTestCase):
    def test_generates_request_id_when_missing(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        rid = (res.headers.get("X-Request-ID") or "").strip()
        self.assertTrue(rid)
        uuid.UUID(rid)

    def test_echoes_request_id_when_provided(self):
        res = self.client.get("/api/health", headers={"X-Request-ID": "rid-test-123"})
        self.assertEqual(res.headers.get("X-Request-ID"), "rid-test-123")

    def test_error_payload_trace_id_matches_header(self):
        res = self.client.post("/api/orders", json={"items": []})
        self.assertEqual(res.status_code, 401)
        body = res.get_json(force=True)
        self.assertEqual((body.get("trace_id") or "").strip(), (res.headers.get("X-Request-ID") or "").strip())

    def test_health_reports_database(self):
        body = self.client.get("/api/health").get_json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["service"], "pickupmarket-backend")
        self.assertEqual(body["alembic_head"], "3c1a9e5d7b20")


if __name__ == "__main__":
    unittest.main()
