from __future__ import annotations

from datetime import datetime

from flask import Blueprint, jsonify, request

from pickupmarket.errors import NotFoundError
from pickupmarket.extensions import db
from pickupmarket.models import Notification
from pickupmarket.utils.auth import require_actor

notifications_bp = Blueprint("notifications_bp", __name__, url_prefix="/api")


@notifications_bp.get("/notifications")
def list_notifications():
    actor = require_actor()
    query = Notification.query.filter_by(user_id=actor.user_id, channel="in_app")
    if (request.args.get("unread") or "").strip() == "1":
        query = query.filter(Notification.read_at.is_(None))
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(80).all()
    return jsonify({"ok": True, "items": [n.to_dict() for n in rows]}), 200


@notifications_bp.post("/notifications/<int:notification_id>/read")
def mark_notification_read(notification_id: int):
    actor = require_actor()
    row = Notification.query.filter_by(id=notification_id, user_id=actor.user_id).first()
    if row is None:
        raise NotFoundError("NOTIFICATION_NOT_FOUND", "Notification not found")
    if row.read_at is None:
        row.read_at = datetime.utcnow()
        db.session.commit()
    return jsonify({"ok": True, "notification": row.to_dict()}), 200
