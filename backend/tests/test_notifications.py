from __future__ import annotations

import os
import unittest
from datetime import datetime
from unittest.mock import patch

from seed_helpers import InMemoryAppTestCase, auth_header, seed_marketplace

from pickupmarket.extensions import db
from pickupmarket.models import Notification, VendorFeeLedgerEntry
from pickupmarket.tasks.fee_tasks import remind_vendors_with_fees_due
from pickupmarket.utils.notify import render, send_notification

SMS_ON = {
    "INTEGRATIONS_MODE": "sandbox",
    "MESSAGING_PROVIDER": "mock",
    "SMS_NOTIFICATIONS_ENABLED": "1",
    "NOTIFY_QUEUE": "0",
}


class RenderTestCase(unittest.TestCase):
    def test_missing_fields_render_blank(self):
        urgency, title, message = render("order_ready", {"order_number": "PM-1"})
        self.assertEqual(urgency, "immediate")
        self.assertEqual(title, "Order ready for pickup")
        self.assertEqual(message, "Your order PM-1 is ready at .")

    def test_unknown_type(self):
        with self.assertRaises(KeyError):
            render("no_such_type")


class SendNotificationTestCase(InMemoryAppTestCase):
    def test_in_app_row_only_for_non_urgent(self):
        with self.app.app_context(), patch.dict(os.environ, SMS_ON):
            ids = seed_marketplace(buyer_phone="+15555550100")
            send_notification("order_confirmed", ids["buyer_id"], {"order_number": "PM-2", "vendor_name": "Green Acres"})
            rows = Notification.query.filter_by(user_id=ids["buyer_id"]).all()
            self.assertEqual([r.channel for r in rows], ["in_app"])
            self.assertEqual(rows[0].message, "Green Acres confirmed your order PM-2.")

    def test_urgent_type_delivers_sms(self):
        with self.app.app_context(), patch.dict(os.environ, SMS_ON):
            ids = seed_marketplace(buyer_phone="+15555550101")
            send_notification("order_cancelled", ids["buyer_id"], {"order_number": "PM-3"})
            sms = Notification.query.filter_by(user_id=ids["buyer_id"], channel="sms").one()
            self.assertEqual(sms.status, "sent")
            self.assertEqual(sms.recipient, "+15555550101")
            self.assertEqual(sms.provider, "mock")

    def test_delivery_failure_is_recorded_not_raised(self):
        with self.app.app_context(), patch.dict(os.environ, {**SMS_ON, "MOCK_NOTIFY_FORCE_FAIL": "1"}):
            ids = seed_marketplace(buyer_phone="+15555550102")
            in_app = send_notification("order_cancelled", ids["buyer_id"], {"order_number": "PM-4"})
            self.assertIsNotNone(in_app)
            sms = Notification.query.filter_by(user_id=ids["buyer_id"], channel="sms").one()
            self.assertEqual(sms.status, "failed")

    def test_unknown_type_is_swallowed(self):
        with self.app.app_context():
            ids = seed_marketplace()
            self.assertIsNone(send_notification("no_such_type", ids["buyer_id"]))


class FeeReminderTestCase(InMemoryAppTestCase):
    def test_only_vendors_over_threshold_are_reminded(self):
        with self.app.app_context():
            owing = seed_marketplace()
            fine = seed_marketplace()
            db.session.add_all(
                [
                    VendorFeeLedgerEntry(vendor_profile_id=owing["vendor_id"], amount_cents=5200, created_at=datetime.utcnow()),
                    VendorFeeLedgerEntry(vendor_profile_id=fine["vendor_id"], amount_cents=100, created_at=datetime.utcnow()),
                ]
            )
            db.session.commit()
            self.assertEqual(remind_vendors_with_fees_due(), 1)
            note = Notification.query.filter_by(user_id=owing["vendor_user_id"], notification_type="fee_balance_due").one()
            self.assertIn("$52.00", note.message)
            self.assertEqual(
                Notification.query.filter_by(user_id=fine["vendor_user_id"], notification_type="fee_balance_due").count(),
                0,
            )


class NotificationEndpointsTestCase(InMemoryAppTestCase):
    def test_list_and_mark_read(self):
        with self.app.app_context():
            ids = seed_marketplace()
            note = send_notification("order_ready", ids["buyer_id"], {"order_number": "PM-5", "market_name": "Riverside"})
            note_id = int(note.id)
        headers = auth_header(ids["buyer_id"])

        listed = self.client.get("/api/notifications?unread=1", headers=headers).get_json()
        self.assertEqual([n["id"] for n in listed["items"]], [note_id])
        self.assertEqual(listed["items"][0]["type"], "order_ready")

        res = self.client.post(f"/api/notifications/{note_id}/read", headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["notification"]["is_read"])
        self.assertEqual(self.client.get("/api/notifications?unread=1", headers=headers).get_json()["items"], [])

    def test_cannot_read_someone_elses_notification(self):
        with self.app.app_context():
            ids = seed_marketplace()
            note_id = int(send_notification("order_cancelled", ids["buyer_id"], {"order_number": "PM-6"}).id)
        res = self.client.post(f"/api/notifications/{note_id}/read", headers=auth_header(ids["vendor_user_id"], "vendor"))
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["error"]["code"], "NOTIFICATION_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
