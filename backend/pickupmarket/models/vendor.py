from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from pickupmarket.extensions import db


@dataclass(frozen=True)
class VendorProfileData:
    business_name: str | None = None
    contact_email: str | None = None
    phone: str | None = None
    description: str | None = None
    website: str | None = None

    @property
    def display_name(self) -> str:
        return (self.business_name or "").strip() or "Vendor"

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["display_name"] = self.display_name
        return payload


class VendorProfile(db.Model):
    __tablename__ = "vendor_profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vertical_id = db.Column(db.String(32), nullable=False, default="farmers_market", index=True)

    # pending | approved | rejected
    status = db.Column(db.String(16), nullable=False, default="pending")
    # standard | premium
    tier = db.Column(db.String(16), nullable=False, default="standard")

    business_name = db.Column(db.String(160), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    description = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)

    processor_account_id = db.Column(db.String(120), nullable=True)
    home_market_id = db.Column(db.Integer, db.ForeignKey("markets.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def profile(self) -> VendorProfileData:
        return VendorProfileData(
            business_name=self.business_name,
            contact_email=self.contact_email,
            phone=self.phone,
            description=self.description,
            website=self.website,
        )

    def apply_profile(self, data: VendorProfileData) -> None:
        self.business_name = data.business_name
        self.contact_email = data.contact_email
        self.phone = data.phone
        self.description = data.description
        self.website = data.website

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "vertical_id": self.vertical_id,
            "status": self.status or "pending",
            "tier": self.tier or "standard",
            "profile": self.profile.to_dict(),
            "has_processor_account": bool((self.processor_account_id or "").strip()),
            "home_market_id": int(self.home_market_id) if self.home_market_id is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
