from __future__ import annotations

import hashlib
import hmac
import json
import logging

from flask import Blueprint, jsonify, request

from pickupmarket.config import get_integration_settings
from pickupmarket.errors import ConflictError, DomainError, UnauthorizedError, ValidationError
from pickupmarket.extensions import db
from pickupmarket.services.fee_ledger import apply_fee_payment
from pickupmarket.services.order_status import mark_order_paid
from pickupmarket.utils.events import log_event
from pickupmarket.utils.idempotency import lookup_response, release, store_response

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")


def sign_payload(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()


def _verify_signature(raw: bytes) -> None:
    secret = get_integration_settings().webhook_secret
    if not secret:
        raise UnauthorizedError("WEBHOOK_NOT_CONFIGURED", "PAYMENTS_WEBHOOK_SECRET is not set")
    signature = (request.headers.get("X-Webhook-Signature") or "").strip()
    if not signature or not hmac.compare_digest(signature, sign_payload(raw, secret)):
        raise UnauthorizedError("INVALID_SIGNATURE", "Webhook signature mismatch")


def _apply_event(event_type: str, data: dict) -> dict:
    meta = data.get("metadata") or {}
    kind = (meta.get("type") or "").strip()
    if event_type != "checkout.completed":
        return {"ignored": True, "reason": "unhandled_event_type"}
    if kind == "order":
        order = mark_order_paid(int(meta.get("order_id")), reference=str(data.get("id") or ""))
        return {"order_id": int(order.id), "order_status": order.status}
    if kind == "vendor_fee_payment":
        vendor_id = int(meta.get("vendor_profile_id"))
        applied = apply_fee_payment(vendor_id, int(data.get("amount_cents") or 0), reference=str(data.get("id") or ""))
        db.session.commit()
        return {"vendor_profile_id": vendor_id, "applied_cents": applied}
    return {"ignored": True, "reason": "unknown_metadata_type"}


@webhooks_bp.post("/payments")
def payments_webhook():
    raw = request.get_data() or b""
    _verify_signature(raw)
    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except ValueError:
        raise ValidationError("INVALID_JSON", "Webhook body must be JSON")
    event_id = str(payload.get("id") or "").strip()
    if not event_id:
        raise ValidationError("EVENT_ID_REQUIRED", "Webhook event id missing")

    status, body_or_row, code = lookup_response("payments_webhook", event_id, payload)
    if status == "hit":
        return jsonify({**body_or_row, "replayed": True}), code
    if status == "conflict":
        raise ConflictError("EVENT_PAYLOAD_MISMATCH", f"Event {event_id} was already received with a different payload")
    if status != "miss":
        return jsonify({"ok": True, "in_progress": True}), 202

    try:
        outcome = _apply_event(str(payload.get("type") or ""), payload.get("data") or {})
    except (TypeError, ValueError):
        db.session.rollback()
        release(body_or_row)
        raise ValidationError("INVALID_EVENT", "Webhook event metadata is malformed")
    except DomainError:
        db.session.rollback()
        release(body_or_row)
        raise
    body = {"ok": True, "event_id": event_id, **outcome}
    store_response(body_or_row, body, 200)
    log_event(
        "payments_webhook_processed",
        subject_type="webhook_event",
        subject_id=event_id,
        idempotency_key=f"payments_webhook:{event_id}",
        metadata=outcome,
    )
    db.session.commit()
    logger.info("payments_webhook_processed id=%s outcome=%s", event_id, outcome)
    return jsonify({**body, "replayed": False}), 200
