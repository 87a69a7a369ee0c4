from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from pickupmarket.config import get_integration_settings
from pickupmarket.extensions import db
from pickupmarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from pickupmarket.integrations.messaging.factory import build_messaging_provider
from pickupmarket.models import Notification, User

logger = logging.getLogger(__name__)


URGENCY_CHANNELS = {
    "immediate": ("push", "in_app"),
    "urgent": ("sms", "in_app"),
    "standard": ("email", "in_app"),
    "info": ("email",),
}


@dataclass(frozen=True)
class NotificationType:
    urgency: str
    title: str
    template: str


REGISTRY = {
    "order_confirmed": NotificationType(
        "standard", "Order confirmed", "{vendor_name} confirmed your order {order_number}."
    ),
    "order_ready": NotificationType(
        "immediate", "Order ready for pickup", "Your order {order_number} is ready at {market_name}."
    ),
    "order_fulfilled": NotificationType(
        "info", "Order picked up", "Order {order_number} has been picked up. Thanks for shopping local!"
    ),
    "order_cancelled": NotificationType(
        "urgent", "Order cancelled", "Order {order_number} was cancelled."
    ),
    "pickup_confirmation_needed": NotificationType(
        "immediate", "Confirm pickup", "Please confirm the handoff for order {order_number} within {window_seconds} seconds."
    ),
    "pickup_issue_reported": NotificationType(
        "urgent", "Pickup issue reported", "A buyer reported a problem with order {order_number}: {description}"
    ),
    "market_box_ready": NotificationType(
        "immediate", "Market box ready", "Week {week_number} of {offering_name} is ready for pickup."
    ),
    "market_box_missed": NotificationType(
        "standard", "Market box missed", "Week {week_number} of {offering_name} was marked as missed."
    ),
    "market_box_picked_up": NotificationType(
        "info", "Market box picked up", "Week {week_number} of {offering_name} has been picked up."
    ),
    "payout_processed": NotificationType(
        "info", "Payout sent", "A payout of {amount} is on its way for order {order_number}."
    ),
    "fee_balance_due": NotificationType(
        "standard", "Platform fees due", "You owe {amount} in platform fees. Pay now to keep accepting external payments."
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def render(notification_type: str, data: dict | None = None) -> tuple[str, str, str]:
    kind = REGISTRY.get(notification_type)
    if kind is None:
        raise KeyError(f"unknown notification type {notification_type}")
    message = kind.template.format_map(_Defaults(data or {}))
    return kind.urgency, kind.title, message


def send_notification(notification_type: str, user_id: int, data: dict | None = None) -> Notification | None:
    """Record an in-app notification and dispatch external channels.

    Fire-and-forget: call after the state change has been committed. Any
    failure here is logged and swallowed.
    """
    try:
        urgency, title, message = render(notification_type, data)
        payload = json.dumps(data or {}, separators=(",", ":"), default=str)
        in_app = Notification(
            user_id=int(user_id),
            notification_type=notification_type,
            urgency=urgency,
            channel="in_app",
            title=title,
            message=message,
            status="sent",
            sent_at=datetime.utcnow(),
            data_json=payload,
        )
        db.session.add(in_app)

        sms_row = None
        if "sms" in URGENCY_CHANNELS.get(urgency, ()):
            user = db.session.get(User, int(user_id))
            phone = (getattr(user, "phone", None) or "").strip()
            if phone:
                sms_row = Notification(
                    user_id=int(user_id),
                    notification_type=notification_type,
                    urgency=urgency,
                    channel="sms",
                    title=title,
                    message=message,
                    status="queued",
                    recipient=phone,
                    data_json=payload,
                )
                db.session.add(sms_row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("notification_record_failed type=%s user_id=%s", notification_type, user_id)
        return None

    if sms_row is not None:
        try:
            _dispatch(sms_row.id)
        except Exception:
            db.session.rollback()
            logger.exception("notification_dispatch_failed id=%s", sms_row.id)
    return in_app


def _dispatch(notification_id: int) -> None:
    settings = get_integration_settings()
    if settings.notify_queue:
        try:
            from pickupmarket.tasks.notification_tasks import deliver_notification_task

            deliver_notification_task.delay(notification_id=int(notification_id))
            return
        except Exception as e:
            logger.warning("notification_enqueue_failed id=%s err=%s", notification_id, e)
    deliver_notification(notification_id)


def deliver_notification(notification_id: int) -> bool:
    """Send one queued external notification. Returns True when sent."""
    row = db.session.get(Notification, int(notification_id))
    if row is None or row.status == "sent":
        return row is not None
    try:
        provider = build_messaging_provider()
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        logger.info("notification_delivery_skipped id=%s reason=%s", notification_id, e)
        return False
    try:
        result = provider.send_sms(to=row.recipient or "", message=row.message or "", reference=f"notif:{row.id}")
    except Exception:
        logger.exception("notification_delivery_error id=%s", notification_id)
        result = None
    row.provider = provider.name
    if result is not None and result.ok:
        row.status = "sent"
        row.sent_at = datetime.utcnow()
        row.provider_ref = result.provider_ref or None
    else:
        row.status = "failed"
        logger.warning(
            "notification_delivery_failed id=%s code=%s",
            notification_id,
            getattr(result, "code", "EXCEPTION"),
        )
    db.session.commit()
    return row.status == "sent"
