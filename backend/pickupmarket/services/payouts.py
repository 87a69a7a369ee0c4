from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from pickupmarket.extensions import db
from pickupmarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from pickupmarket.integrations.payments.factory import build_payments_provider
from pickupmarket.models import VendorPayout, VendorProfile
from pickupmarket.services.fee_ledger import apply_fee_payment, calculate_auto_deduct_amount, get_vendor_fee_balance
from pickupmarket.services.pricing import format_price
from pickupmarket.utils.events import log_event
from pickupmarket.utils.notify import send_notification

logger = logging.getLogger(__name__)


def _record(item, vendor_id: int, **fields) -> VendorPayout:
    payout = VendorPayout(order_item_id=int(item.id), vendor_profile_id=int(vendor_id), **fields)
    db.session.add(payout)
    return payout


def request_item_payout(item, now: datetime | None = None) -> VendorPayout | None:
    """Transfer a completed processor-paid item's payout to its vendor.

    Withholds a capped share toward any outstanding fee balance. Failures are
    recorded on the payout row and logged; they never undo the pickup.
    """
    now = now or datetime.utcnow()
    order = item.order
    if order.is_external_payment or order.status not in ("paid", "fulfilled"):
        return None
    existing = VendorPayout.query.filter_by(order_item_id=int(item.id)).first()
    if existing is not None:
        return existing

    vendor = db.session.get(VendorProfile, int(item.vendor_profile_id))
    gross = int(item.vendor_payout_cents or 0)
    account = (getattr(vendor, "processor_account_id", None) or "").strip()
    if not account:
        payout = _record(item, item.vendor_profile_id, amount_cents=0, status="skipped", failure_reason="no_processor_account")
        return _commit(payout)

    owed = get_vendor_fee_balance(vendor.id, now).balance_cents
    deduction = calculate_auto_deduct_amount(gross, owed)
    amount = gross - deduction
    if amount <= 0:
        payout = _record(item, vendor.id, amount_cents=0, status="skipped", failure_reason="nothing_to_transfer")
        return _commit(payout)

    try:
        provider = build_payments_provider()
        transfer = provider.create_transfer(
            amount_cents=amount,
            destination_account=account,
            idempotency_key=f"payout:order_item:{item.id}",
            metadata={"order_id": order.id, "order_item_id": item.id},
        )
    except (IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError) as e:
        logger.warning("payout_transfer_failed item=%s vendor=%s err=%s", item.id, vendor.id, e)
        payout = _record(
            item,
            vendor.id,
            amount_cents=amount,
            fee_deduction_cents=0,
            status="failed",
            failure_reason=str(e)[:240],
        )
        return _commit(payout)

    payout = _record(
        item,
        vendor.id,
        amount_cents=amount,
        fee_deduction_cents=deduction,
        transfer_id=transfer.transfer_id,
        provider=transfer.provider,
        status="processing",
    )
    if deduction > 0:
        apply_fee_payment(vendor.id, deduction, reference=f"auto_deduct:{transfer.transfer_id}", now=now)
    log_event(
        "vendor_payout_requested",
        subject_type="order_item",
        subject_id=item.id,
        idempotency_key=f"vendor_payout_requested:{item.id}",
        metadata={"amount_cents": amount, "fee_deduction_cents": deduction, "transfer_id": transfer.transfer_id},
    )
    payout = _commit(payout)
    if payout is not None and payout.status == "processing":
        send_notification(
            "payout_processed",
            vendor.user_id,
            {"amount": format_price(amount), "order_number": order.order_number, "order_id": order.id},
        )
    return payout


def _commit(payout: VendorPayout) -> VendorPayout | None:
    try:
        db.session.commit()
        return payout
    except IntegrityError:
        # A concurrent completion already recorded this item's payout.
        db.session.rollback()
        return VendorPayout.query.filter_by(order_item_id=int(payout.order_item_id)).first()
