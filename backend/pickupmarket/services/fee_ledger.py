from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta

import sqlalchemy as sa

from pickupmarket.config import LedgerPolicy, get_integration_settings, get_ledger_policy
from pickupmarket.errors import ConflictError, UpstreamError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError, ProviderError
from pickupmarket.integrations.payments.factory import build_payments_provider
from pickupmarket.models import VendorFeeLedgerEntry, VendorProfile
from pickupmarket.services.pricing import format_price
from pickupmarket.utils.events import log_event
from pickupmarket.utils.idempotency import lookup_response, release, store_response

logger = logging.getLogger(__name__)

ENTRY_PENDING = "pending"
ENTRY_PAID = "paid"


@dataclass(frozen=True)
class FeeBalance:
    vendor_profile_id: int
    balance_cents: int
    pending_entries: int
    oldest_unpaid_at: datetime | None
    requires_payment: bool
    reason: str | None

    def to_dict(self) -> dict:
        return {
            "vendor_profile_id": int(self.vendor_profile_id),
            "balance_cents": int(self.balance_cents),
            "balance_display": format_price(self.balance_cents),
            "pending_entries": int(self.pending_entries),
            "oldest_unpaid_at": self.oldest_unpaid_at.isoformat() if self.oldest_unpaid_at else None,
            "requires_payment": bool(self.requires_payment),
            "reason": self.reason,
        }


def record_external_payment_fees(order, now: datetime | None = None) -> list[VendorFeeLedgerEntry]:
    """Add one pending ledger entry per vendor on an externally-paid order.

    Each vendor owes the vendor-side fee allocated to its items
    (item subtotal minus the item's payout share). Safe to call twice.
    Does not commit.
    """
    now = now or datetime.utcnow()
    owed: "OrderedDict[int, int]" = OrderedDict()
    for item in order.items or []:
        if (item.status or "") == "cancelled":
            continue
        fee = int(item.subtotal_cents or 0) - int(item.vendor_payout_cents or 0)
        owed[int(item.vendor_profile_id)] = owed.get(int(item.vendor_profile_id), 0) + fee

    entries = []
    for vendor_id, amount in owed.items():
        existing = VendorFeeLedgerEntry.query.filter_by(vendor_profile_id=vendor_id, order_id=int(order.id)).first()
        if existing is not None:
            entries.append(existing)
            continue
        if amount <= 0:
            continue
        entry = VendorFeeLedgerEntry(
            vendor_profile_id=vendor_id,
            order_id=int(order.id),
            amount_cents=int(amount),
            paid_cents=0,
            status=ENTRY_PENDING,
            description=f"Platform fee for order {order.order_number} ({order.payment_method})",
            created_at=now,
        )
        db.session.add(entry)
        entries.append(entry)
        log_event(
            "vendor_fee_recorded",
            subject_type="vendor",
            subject_id=vendor_id,
            idempotency_key=f"vendor_fee_recorded:{vendor_id}:{order.id}",
            metadata={"order_id": int(order.id), "amount_cents": int(amount)},
        )
    return entries


def _pending_entries(vendor_profile_id: int) -> list[VendorFeeLedgerEntry]:
    return (
        VendorFeeLedgerEntry.query
        .filter_by(vendor_profile_id=int(vendor_profile_id), status=ENTRY_PENDING)
        .order_by(VendorFeeLedgerEntry.created_at.asc(), VendorFeeLedgerEntry.id.asc())
        .all()
    )


def get_vendor_fee_balance(
    vendor_profile_id: int,
    now: datetime | None = None,
    policy: LedgerPolicy | None = None,
) -> FeeBalance:
    now = now or datetime.utcnow()
    policy = policy or get_ledger_policy()
    entries = [e for e in _pending_entries(vendor_profile_id) if e.outstanding_cents > 0]
    balance = sum(e.outstanding_cents for e in entries)
    oldest = entries[0].created_at if entries else None

    reason = None
    if balance > 0 and balance >= policy.balance_threshold_cents:
        reason = "balance_threshold"
    elif oldest is not None and now - oldest >= timedelta(days=policy.age_threshold_days):
        reason = "age_threshold"
    return FeeBalance(
        vendor_profile_id=int(vendor_profile_id),
        balance_cents=int(balance),
        pending_entries=len(entries),
        oldest_unpaid_at=oldest,
        requires_payment=reason is not None,
        reason=reason,
    )


def can_use_external_payments(vendor: VendorProfile, now: datetime | None = None) -> tuple[bool, str | None]:
    if not (vendor.processor_account_id or "").strip():
        return False, "processor_account_required"
    balance = get_vendor_fee_balance(vendor.id, now)
    if balance.requires_payment:
        return False, f"fee_balance_due:{balance.reason}"
    return True, None


def calculate_auto_deduct_amount(payout_cents: int, owed_cents: int, policy: LedgerPolicy | None = None) -> int:
    """Portion of a payout withheld toward the fee balance, capped at a share of the payout."""
    if int(owed_cents) <= 0 or int(payout_cents) <= 0:
        return 0
    policy = policy or get_ledger_policy()
    cap = (int(payout_cents) * int(policy.auto_deduct_max_percent)) // 100
    return int(min(int(owed_cents), cap))


def apply_fee_payment(
    vendor_profile_id: int,
    amount_cents: int,
    *,
    reference: str,
    now: datetime | None = None,
) -> int:
    """Pay down pending entries oldest first. Returns the cents applied. Does not commit."""
    now = now or datetime.utcnow()
    remaining = int(amount_cents)
    if remaining <= 0:
        raise ValidationError("INVALID_AMOUNT", "amount_cents must be positive")
    applied = 0
    for entry in _pending_entries(vendor_profile_id):
        if remaining <= 0:
            break
        take = min(entry.outstanding_cents, remaining)
        entry.paid_cents = int(entry.paid_cents or 0) + take
        remaining -= take
        applied += take
        if entry.outstanding_cents == 0:
            entry.status = ENTRY_PAID
            entry.paid_at = now
            entry.settlement_reference = (reference or "")[:120] or None
    log_event(
        "vendor_fee_payment_applied",
        subject_type="vendor",
        subject_id=vendor_profile_id,
        metadata={"amount_cents": int(amount_cents), "applied_cents": applied, "reference": reference},
    )
    return applied


def list_ledger_entries(vendor_profile_id: int, limit: int = 50) -> list[VendorFeeLedgerEntry]:
    limit = max(1, min(int(limit or 50), 200))
    return (
        VendorFeeLedgerEntry.query
        .filter_by(vendor_profile_id=int(vendor_profile_id))
        .order_by(VendorFeeLedgerEntry.created_at.desc(), VendorFeeLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def outstanding_by_vendor() -> dict[int, int]:
    rows = db.session.execute(
        sa.select(
            VendorFeeLedgerEntry.vendor_profile_id,
            sa.func.sum(VendorFeeLedgerEntry.amount_cents - VendorFeeLedgerEntry.paid_cents),
        )
        .where(VendorFeeLedgerEntry.status == ENTRY_PENDING)
        .group_by(VendorFeeLedgerEntry.vendor_profile_id)
    ).all()
    return {int(vendor_id): int(total or 0) for vendor_id, total in rows}


def pay_vendor_fee_balance(vendor: VendorProfile, now: datetime | None = None) -> dict:
    """Open a processor checkout for the vendor's whole outstanding balance.

    Keyed on the vendor, its newest pending entry and the balance: a retry with
    the ledger unchanged replays the session already created, while fees
    recorded after a settled payment open a fresh one.
    """
    balance = get_vendor_fee_balance(vendor.id, now)
    if balance.balance_cents <= 0:
        raise ValidationError("NO_BALANCE", "No balance to pay")

    try:
        provider = build_payments_provider()
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        raise UpstreamError("PAYMENTS_UNAVAILABLE", str(e))

    newest = max(e.id for e in _pending_entries(vendor.id) if e.outstanding_cents > 0)
    key = f"vendor_fee:{vendor.id}:{newest}:{balance.balance_cents}"
    payload = {"vendor_profile_id": int(vendor.id), "amount_cents": int(balance.balance_cents)}
    status, body_or_row, _code = lookup_response("vendor_fee_checkout", key, payload, user_id=vendor.user_id)
    if status == "hit":
        return {**body_or_row, "replayed": True}
    if status != "miss":
        raise ConflictError("PAYMENT_IN_PROGRESS", "A fee payment for this balance is already being created")

    settings = get_integration_settings()
    try:
        session = provider.create_checkout_session(
            amount_cents=balance.balance_cents,
            description=f"Platform fees ({balance.pending_entries} orders)",
            success_url=f"{settings.public_base_url}/vendor/fees?paid=1",
            cancel_url=f"{settings.public_base_url}/vendor/fees",
            idempotency_key=key,
            metadata={"type": "vendor_fee_payment", "vendor_profile_id": vendor.id},
        )
    except ProviderError as e:
        release(body_or_row)
        logger.warning("vendor_fee_checkout_failed vendor=%s err=%s", vendor.id, e)
        raise UpstreamError("PAYMENT_PROVIDER_FAILED", str(e))

    body = {
        "session_id": session.session_id,
        "url": session.url,
        "provider": session.provider,
        "amount_cents": int(balance.balance_cents),
    }
    store_response(body_or_row, body, 200)
    log_event(
        "vendor_fee_checkout_created",
        actor_user_id=vendor.user_id,
        subject_type="vendor",
        subject_id=vendor.id,
        metadata=body,
    )
    db.session.commit()
    return {**body, "replayed": False}
