from __future__ import annotations

from datetime import date, datetime

import sqlalchemy as sa

from pickupmarket.errors import ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.models import MarketBoxPickup, MarketBoxSubscription, VendorProfile
from pickupmarket.services.pickup_handshake import BUYER, PickupKind
from pickupmarket.utils.events import log_event
from pickupmarket.utils.notify import send_notification


class PickupStatus:
    SCHEDULED = "scheduled"
    READY = "ready"
    PICKED_UP = "picked_up"
    MISSED = "missed"
    RESCHEDULED = "rescheduled"

    ALLOWED = {
        SCHEDULED: {READY, MISSED, RESCHEDULED},
        RESCHEDULED: {READY, MISSED, RESCHEDULED},
        READY: {PICKED_UP, MISSED, RESCHEDULED},
        MISSED: {RESCHEDULED},
        PICKED_UP: set(),
    }


def _load_pickup(pickup_id: int) -> MarketBoxPickup:
    pickup = db.session.get(MarketBoxPickup, int(pickup_id))
    if pickup is None:
        raise NotFoundError("MARKET_BOX_PICKUP_NOT_FOUND", f"Market box pickup {pickup_id} not found")
    return pickup


def _require_vendor(pickup: MarketBoxPickup, vendor: VendorProfile) -> None:
    if int(pickup.subscription.vendor_profile_id) != int(vendor.id):
        raise ForbiddenError("NOT_SUBSCRIPTION_VENDOR", "This market box belongs to another vendor")


def _transition(pickup: MarketBoxPickup, to_status: str) -> str:
    current = pickup.status or PickupStatus.SCHEDULED
    if to_status not in PickupStatus.ALLOWED.get(current, set()):
        raise InvalidTransitionError(
            "INVALID_PICKUP_TRANSITION",
            f"invalid_pickup_transition {current}->{to_status}",
            details={"from": current, "to": to_status},
        )
    pickup.status = to_status
    return current


def _box_context(pickup: MarketBoxPickup) -> dict:
    sub = pickup.subscription
    return {
        "week_number": int(pickup.week_number),
        "offering_name": sub.offering_name,
        "subscription_id": int(sub.id),
        "pickup_id": int(pickup.id),
    }


def mark_pickup_ready(pickup_id: int, vendor: VendorProfile, now: datetime | None = None) -> MarketBoxPickup:
    now = now or datetime.utcnow()
    pickup = _load_pickup(pickup_id)
    _require_vendor(pickup, vendor)
    _transition(pickup, PickupStatus.READY)
    pickup.ready_at = now
    db.session.commit()
    send_notification("market_box_ready", pickup.subscription.buyer_user_id, _box_context(pickup))
    return pickup


def mark_pickup_missed(pickup_id: int, vendor: VendorProfile, *, notes: str = "", now: datetime | None = None) -> MarketBoxPickup:
    now = now or datetime.utcnow()
    pickup = _load_pickup(pickup_id)
    _require_vendor(pickup, vendor)
    _transition(pickup, PickupStatus.MISSED)
    pickup.missed_at = now
    pickup.buyer_confirmed_at = None
    pickup.vendor_confirmed_at = None
    pickup.confirmation_window_expires_at = None
    if notes:
        pickup.vendor_notes = notes[:2000]
    db.session.commit()
    send_notification("market_box_missed", pickup.subscription.buyer_user_id, _box_context(pickup))
    return pickup


def reschedule_pickup(
    pickup_id: int,
    vendor: VendorProfile,
    new_date: date,
    *,
    notes: str = "",
    now: datetime | None = None,
) -> MarketBoxPickup:
    now = now or datetime.utcnow()
    if not isinstance(new_date, date) or new_date <= now.date():
        raise ValidationError("INVALID_RESCHEDULE_DATE", "new_date must be in the future")
    pickup = _load_pickup(pickup_id)
    _require_vendor(pickup, vendor)
    if pickup.issue_reported_at is not None:
        raise InvalidTransitionError("PICKUP_ISSUE_REPORTED", "Resolve the reported issue first")
    _transition(pickup, PickupStatus.RESCHEDULED)
    pickup.rescheduled_to = new_date
    pickup.scheduled_date = new_date
    pickup.ready_at = None
    pickup.buyer_confirmed_at = None
    pickup.vendor_confirmed_at = None
    pickup.confirmation_window_expires_at = None
    if notes:
        pickup.vendor_notes = notes[:2000]
    db.session.commit()
    return pickup


def record_week_completed(pickup: MarketBoxPickup, now: datetime) -> None:
    """Count one completed week against the subscription term."""
    subs = MarketBoxSubscription.__table__
    db.session.execute(
        sa.update(subs)
        .where(subs.c.id == int(pickup.subscription_id))
        .values(weeks_completed=subs.c.weeks_completed + 1)
    )
    db.session.execute(
        sa.update(subs)
        .where(
            subs.c.id == int(pickup.subscription_id),
            subs.c.status == "active",
            subs.c.weeks_completed >= subs.c.term_weeks,
        )
        .values(status="completed", completed_at=now)
    )
    log_event(
        "market_box_week_completed",
        subject_type="market_box_subscription",
        subject_id=pickup.subscription_id,
        idempotency_key=f"market_box_week_completed:{pickup.id}",
        metadata={"week_number": int(pickup.week_number)},
    )
    db.session.commit()
    send_notification("market_box_picked_up", pickup.subscription.buyer_user_id, _box_context(pickup))


def _pickup_awaiting(table):
    return table.c.status == PickupStatus.READY


def _pickup_parties(pickup: MarketBoxPickup) -> tuple[int | None, int | None]:
    sub = pickup.subscription
    vendor = db.session.get(VendorProfile, int(sub.vendor_profile_id))
    return sub.buyer_user_id, (vendor.user_id if vendor else None)


def _notify_pickup_counterparty(pickup: MarketBoxPickup, party: str, window_seconds: int) -> None:
    buyer_id, vendor_user_id = _pickup_parties(pickup)
    target = vendor_user_id if party == BUYER else buyer_id
    if target is None:
        return
    ctx = _box_context(pickup)
    ctx.update({"order_number": f"market box week {pickup.week_number}", "window_seconds": window_seconds})
    send_notification("pickup_confirmation_needed", target, ctx)


def _notify_pickup_issue(pickup: MarketBoxPickup, description: str) -> None:
    _buyer_id, vendor_user_id = _pickup_parties(pickup)
    if vendor_user_id is None:
        return
    ctx = _box_context(pickup)
    ctx.update({"order_number": f"market box week {pickup.week_number}", "description": description[:200]})
    send_notification("pickup_issue_reported", vendor_user_id, ctx)


MARKET_BOX_PICKUP = PickupKind(
    name="market_box_pickup",
    model=MarketBoxPickup,
    completed_status=PickupStatus.PICKED_UP,
    awaiting=_pickup_awaiting,
    parties=_pickup_parties,
    on_complete=record_week_completed,
    notify_counterparty=_notify_pickup_counterparty,
    notify_issue=_notify_pickup_issue,
    completed_at_column="picked_up_at",
)
