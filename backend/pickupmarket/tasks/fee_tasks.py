from __future__ import annotations

import time

from celery import shared_task

from pickupmarket.extensions import db
from pickupmarket.models import VendorProfile
from pickupmarket.services.fee_ledger import get_vendor_fee_balance, outstanding_by_vendor
from pickupmarket.services.pricing import format_price
from pickupmarket.tasks.notification_tasks import _task_log
from pickupmarket.utils.notify import send_notification


def remind_vendors_with_fees_due() -> int:
    """Notify every vendor whose balance has crossed a payment threshold."""
    reminded = 0
    for vendor_id in sorted(outstanding_by_vendor()):
        balance = get_vendor_fee_balance(vendor_id)
        if not balance.requires_payment:
            continue
        vendor = db.session.get(VendorProfile, vendor_id)
        if vendor is None:
            continue
        sent = send_notification(
            "fee_balance_due",
            vendor.user_id,
            {"amount": format_price(balance.balance_cents), "reason": balance.reason},
        )
        if sent is not None:
            reminded += 1
    return reminded


@shared_task(name="pickupmarket.tasks.fee_tasks.remind_fee_balances")
def remind_fee_balances():
    started = time.perf_counter()
    reminded = remind_vendors_with_fees_due()
    _task_log("remind_fee_balances", status="ok", started_at=started, reminded=reminded)
    return {"ok": True, "reminded": reminded}
