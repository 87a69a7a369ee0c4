import json
from datetime import datetime

from pickupmarket.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    notification_type = db.Column(db.String(48), nullable=False, index=True)
    # immediate | urgent | standard | info
    urgency = db.Column(db.String(16), nullable=False, default="standard")
    channel = db.Column(db.String(16), nullable=False, default="in_app")  # in_app | sms | email | push
    title = db.Column(db.String(160), nullable=True)
    message = db.Column(db.Text, nullable=False, default="")

    status = db.Column(db.String(16), nullable=False, default="queued")  # queued | sent | failed
    provider = db.Column(db.String(32), nullable=True)
    provider_ref = db.Column(db.String(120), nullable=True)
    recipient = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)
    read_at = db.Column(db.DateTime, nullable=True)

    data_json = db.Column(db.Text, nullable=True)

    def data(self) -> dict:
        raw = (self.data_json or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, dict) else {}
        except Exception:
            return {}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.notification_type,
            "urgency": self.urgency or "standard",
            "channel": self.channel or "in_app",
            "title": self.title or "",
            "message": self.message or "",
            "status": self.status or "queued",
            "provider": self.provider or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "is_read": self.read_at is not None,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "data": self.data(),
        }
