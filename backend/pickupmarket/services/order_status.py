from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from pickupmarket.errors import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.models import Order, OrderEvent, OrderItem, VendorProfile
from pickupmarket.services.fee_ledger import record_external_payment_fees
from pickupmarket.services.payouts import request_item_payout
from pickupmarket.services.pickup_handshake import BUYER, PickupKind
from pickupmarket.utils.events import log_event
from pickupmarket.utils.notify import send_notification

logger = logging.getLogger(__name__)


class ItemStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    READY = "ready"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    TERMINAL = {FULFILLED, CANCELLED, REFUNDED}

    ALLOWED = {
        PENDING: {CONFIRMED, READY, FULFILLED, CANCELLED, REFUNDED},
        CONFIRMED: {READY, FULFILLED, CANCELLED, REFUNDED},
        READY: {FULFILLED, CANCELLED, REFUNDED},
        FULFILLED: set(),
        CANCELLED: set(),
        REFUNDED: set(),
    }


class OrderStatus:
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    ALLOWED = {
        PENDING: {PAID, CANCELLED},
        PAID: {FULFILLED, CANCELLED, REFUNDED},
        FULFILLED: set(),
        CANCELLED: set(),
        REFUNDED: set(),
    }


def record_order_event(
    order_id: int,
    event: str,
    *,
    item_id: int | None = None,
    from_status: str = "",
    to_status: str = "",
    actor_type: str = "system",
    actor_id: int | None = None,
    idempotency_key: str | None = None,
    note: str = "",
) -> OrderEvent:
    key = (idempotency_key or f"{event}:{item_id or 'order'}:{to_status}")[:160]
    existing = OrderEvent.query.filter_by(order_id=int(order_id), idempotency_key=key).first()
    if existing is not None:
        return existing
    row = OrderEvent(
        order_id=int(order_id),
        order_item_id=int(item_id) if item_id is not None else None,
        event=event[:48],
        from_status=from_status or "",
        to_status=to_status or "",
        actor_type=actor_type[:16],
        actor_id=actor_id,
        idempotency_key=key,
        note=(note or "")[:240] or None,
    )
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        return OrderEvent.query.filter_by(order_id=int(order_id), idempotency_key=key).first()
    return row


def transition_item(item: OrderItem, to_status: str, *, actor_type: str, actor_id: int | None, now: datetime) -> None:
    """Move one line item along the lifecycle. Does not commit."""
    current = item.status or ItemStatus.PENDING
    if to_status not in ItemStatus.ALLOWED.get(current, set()):
        raise InvalidTransitionError(
            "INVALID_ITEM_TRANSITION",
            f"invalid_item_transition {current}->{to_status}",
            details={"from": current, "to": to_status},
        )
    item.status = to_status
    if to_status == ItemStatus.CONFIRMED:
        item.confirmed_at = now
    elif to_status == ItemStatus.READY:
        item.ready_at = now
    elif to_status == ItemStatus.CANCELLED:
        item.cancelled_at = now
        item.confirmation_window_expires_at = None
    record_order_event(
        item.order_id,
        f"item_{to_status}",
        item_id=item.id,
        from_status=current,
        to_status=to_status,
        actor_type=actor_type,
        actor_id=actor_id,
    )


def transition_order(order: Order, to_status: str, *, actor_type: str, actor_id: int | None, now: datetime) -> None:
    current = order.status or OrderStatus.PENDING
    if to_status not in OrderStatus.ALLOWED.get(current, set()):
        raise InvalidTransitionError(
            "INVALID_ORDER_TRANSITION",
            f"invalid_order_transition {current}->{to_status}",
            details={"from": current, "to": to_status},
        )
    order.status = to_status
    if to_status == OrderStatus.FULFILLED:
        order.completed_at = now
    elif to_status == OrderStatus.CANCELLED:
        order.cancelled_at = now
    record_order_event(
        order.id,
        f"order_{to_status}",
        from_status=current,
        to_status=to_status,
        actor_type=actor_type,
        actor_id=actor_id,
    )


def complete_order_if_ready(order: Order, now: datetime | None = None) -> bool:
    """Fulfil a paid order once every live item is fulfilled. Does not commit."""
    now = now or datetime.utcnow()
    # Item rows may have been moved by a bulk UPDATE; reload them.
    db.session.flush()
    db.session.expire_all()
    if order.status != OrderStatus.PAID:
        return False
    live = [i for i in order.items if i.status not in (ItemStatus.CANCELLED, ItemStatus.REFUNDED)]
    if not live or any(i.status != ItemStatus.FULFILLED for i in live):
        return False
    transition_order(order, OrderStatus.FULFILLED, actor_type="system", actor_id=None, now=now)
    return True


def _load_item(item_id: int) -> OrderItem:
    item = db.session.get(OrderItem, int(item_id))
    if item is None:
        raise NotFoundError("ORDER_ITEM_NOT_FOUND", f"Order item {item_id} not found")
    return item


def _load_order(order_id: int) -> Order:
    order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFoundError("ORDER_NOT_FOUND", f"Order {order_id} not found")
    return order


def _require_vendor_item(item: OrderItem, vendor: VendorProfile) -> None:
    if int(item.vendor_profile_id) != int(vendor.id):
        raise ForbiddenError("NOT_ITEM_VENDOR", "This item belongs to another vendor")


def _vendor_items(order: Order, vendor: VendorProfile) -> list[OrderItem]:
    items = [i for i in order.items if int(i.vendor_profile_id) == int(vendor.id)]
    if not items:
        raise ForbiddenError("NOT_ORDER_VENDOR", "This order has no items from this vendor")
    return items


def _vendor_name(vendor_id: int) -> str:
    vendor = db.session.get(VendorProfile, int(vendor_id))
    return vendor.profile.display_name if vendor else "Vendor"


def _market_name(item: OrderItem) -> str:
    return item.pickup_snapshot().get("market_name") or "the market"


def confirm_item(item_id: int, vendor: VendorProfile, now: datetime | None = None) -> OrderItem:
    now = now or datetime.utcnow()
    item = _load_item(item_id)
    _require_vendor_item(item, vendor)
    if item.status != ItemStatus.PENDING:
        raise InvalidTransitionError("INVALID_ITEM_TRANSITION", f"invalid_item_transition {item.status}->confirmed")
    transition_item(item, ItemStatus.CONFIRMED, actor_type="vendor", actor_id=vendor.user_id, now=now)
    db.session.commit()
    order = item.order
    send_notification(
        "order_confirmed",
        order.buyer_user_id,
        {"order_number": order.order_number, "order_id": order.id, "vendor_name": vendor.profile.display_name},
    )
    return item


def mark_item_ready(item_id: int, vendor: VendorProfile, now: datetime | None = None) -> OrderItem:
    now = now or datetime.utcnow()
    item = _load_item(item_id)
    _require_vendor_item(item, vendor)
    transition_item(item, ItemStatus.READY, actor_type="vendor", actor_id=vendor.user_id, now=now)
    db.session.commit()
    order = item.order
    send_notification(
        "order_ready",
        order.buyer_user_id,
        {"order_number": order.order_number, "order_id": order.id, "market_name": _market_name(item)},
    )
    return item


def cancel_item(item_id: int, *, actor_type: str, actor_id: int, reason: str = "", now: datetime | None = None) -> OrderItem:
    now = now or datetime.utcnow()
    item = _load_item(item_id)
    order = item.order
    if actor_type == "buyer" and int(order.buyer_user_id) != int(actor_id):
        raise ForbiddenError("NOT_ORDER_BUYER", "Only the buyer can cancel this item")
    if actor_type == "vendor":
        vendor = db.session.get(VendorProfile, int(item.vendor_profile_id))
        if vendor is None or int(vendor.user_id) != int(actor_id):
            raise ForbiddenError("NOT_ITEM_VENDOR", "This item belongs to another vendor")
    transition_item(item, ItemStatus.CANCELLED, actor_type=actor_type, actor_id=actor_id, now=now)
    if reason:
        record_order_event(order.id, "item_cancel_reason", item_id=item.id, note=reason, actor_type=actor_type, actor_id=actor_id)
    db.session.flush()

    live = [i for i in order.items if i.status not in (ItemStatus.CANCELLED, ItemStatus.REFUNDED)]
    if not live and order.status in (OrderStatus.PENDING, OrderStatus.PAID):
        transition_order(order, OrderStatus.CANCELLED, actor_type=actor_type, actor_id=actor_id, now=now)
    else:
        complete_order_if_ready(order, now)
    db.session.commit()
    notify_user = order.buyer_user_id if actor_type != "buyer" else None
    if notify_user is not None:
        send_notification("order_cancelled", notify_user, {"order_number": order.order_number, "order_id": order.id})
    return item


def mark_order_paid(order_id: int, *, reference: str = "", now: datetime | None = None) -> Order:
    """Processor reported the buyer's payment. Replays are no-ops."""
    now = now or datetime.utcnow()
    order = _load_order(order_id)
    if order.is_external_payment:
        raise ValidationError("NOT_PROCESSOR_PAYMENT", "Order is paid outside the payment processor")
    if order.status in (OrderStatus.PAID, OrderStatus.FULFILLED):
        return order
    transition_order(order, OrderStatus.PAID, actor_type="processor", actor_id=None, now=now)
    record_order_event(order.id, "payment_received", actor_type="processor", note=reference)
    complete_order_if_ready(order, now)
    db.session.commit()
    # Items handed off before the payment cleared are paid out now.
    for item in order.items:
        if item.status == ItemStatus.FULFILLED and item.pickup_confirmed_at is not None:
            request_item_payout(item, now)
    return order


def _mark_externally_paid(order: Order, vendor: VendorProfile, now: datetime) -> None:
    if not order.is_external_payment:
        raise ValidationError("NOT_EXTERNAL_PAYMENT", "Order is paid through the payment processor")
    if order.status == OrderStatus.PAID or order.external_payment_confirmed_at is not None:
        raise ConflictError("PAYMENT_ALREADY_CONFIRMED", "Payment has already been confirmed")
    transition_order(order, OrderStatus.PAID, actor_type="vendor", actor_id=vendor.user_id, now=now)
    order.external_payment_confirmed_at = now
    order.external_payment_confirmed_by = vendor.user_id
    db.session.flush()
    record_external_payment_fees(order, now)


def confirm_external_payment(order_id: int, vendor: VendorProfile, now: datetime | None = None) -> Order:
    """Vendor attests that a cash/app payment was received outside the processor."""
    now = now or datetime.utcnow()
    order = _load_order(order_id)
    _vendor_items(order, vendor)
    _mark_externally_paid(order, vendor, now)
    complete_order_if_ready(order, now)
    db.session.commit()
    return order


def confirm_cash_complete(order_id: int, vendor: VendorProfile, now: datetime | None = None) -> Order:
    """Cash handoff: payment confirmation and fulfilment in one step."""
    now = now or datetime.utcnow()
    order = _load_order(order_id)
    items = _vendor_items(order, vendor)
    if (order.payment_method or "") != "cash":
        raise ValidationError("NOT_CASH_ORDER", "Only cash orders can be completed this way")
    if order.status != OrderStatus.PENDING:
        raise InvalidTransitionError("ORDER_NOT_PENDING", f"Order is {order.status}")

    _mark_externally_paid(order, vendor, now)
    for item in items:
        if item.status in ItemStatus.TERMINAL:
            continue
        transition_item(item, ItemStatus.FULFILLED, actor_type="vendor", actor_id=vendor.user_id, now=now)
        item.buyer_confirmed_at = item.buyer_confirmed_at or now
        item.vendor_confirmed_at = item.vendor_confirmed_at or now
        item.pickup_confirmed_at = now
        item.confirmation_window_expires_at = None
    db.session.flush()
    complete_order_if_ready(order, now)
    db.session.commit()
    send_notification("order_fulfilled", order.buyer_user_id, {"order_number": order.order_number, "order_id": order.id})
    return order


def _item_awaiting(table):
    return table.c.status == ItemStatus.READY


def _item_parties(item: OrderItem) -> tuple[int | None, int | None]:
    vendor = db.session.get(VendorProfile, int(item.vendor_profile_id))
    return item.order.buyer_user_id, (vendor.user_id if vendor else None)


def _on_item_pickup_completed(item: OrderItem, now: datetime) -> None:
    order = item.order
    record_order_event(
        order.id,
        "item_fulfilled",
        item_id=item.id,
        from_status=ItemStatus.READY,
        to_status=ItemStatus.FULFILLED,
        actor_type="handshake",
    )
    complete_order_if_ready(order, now)
    db.session.commit()
    request_item_payout(item, now)
    send_notification("order_fulfilled", order.buyer_user_id, {"order_number": order.order_number, "order_id": order.id})


def _notify_item_counterparty(item: OrderItem, party: str, window_seconds: int) -> None:
    buyer_id, vendor_user_id = _item_parties(item)
    target = vendor_user_id if party == BUYER else buyer_id
    if target is None:
        return
    send_notification(
        "pickup_confirmation_needed",
        target,
        {"order_number": item.order.order_number, "order_item_id": item.id, "window_seconds": window_seconds},
    )


def _notify_item_issue(item: OrderItem, description: str) -> None:
    _buyer_id, vendor_user_id = _item_parties(item)
    if vendor_user_id is None:
        return
    send_notification(
        "pickup_issue_reported",
        vendor_user_id,
        {"order_number": item.order.order_number, "order_item_id": item.id, "description": description[:200]},
    )


ORDER_ITEM_PICKUP = PickupKind(
    name="order_item",
    model=OrderItem,
    completed_status=ItemStatus.FULFILLED,
    awaiting=_item_awaiting,
    parties=_item_parties,
    on_complete=_on_item_pickup_completed,
    notify_counterparty=_notify_item_counterparty,
    notify_issue=_notify_item_issue,
)
