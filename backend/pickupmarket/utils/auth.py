from __future__ import annotations

from flask import g

from pickupmarket.errors import ForbiddenError, UnauthorizedError
from pickupmarket.models import VendorProfile
from pickupmarket.utils.jwt_utils import Actor


def current_actor() -> Actor | None:
    return getattr(g, "actor", None)


def require_actor(*roles: str) -> Actor:
    actor = current_actor()
    if actor is None:
        raise UnauthorizedError("UNAUTHORIZED", "Sign in required")
    if roles and actor.role not in roles and not actor.is_admin:
        raise ForbiddenError("FORBIDDEN", f"Requires role {'/'.join(roles)}")
    return actor


def require_vendor() -> VendorProfile:
    actor = require_actor("vendor")
    vendor = VendorProfile.query.filter_by(user_id=actor.user_id).first()
    if vendor is None:
        raise ForbiddenError("VENDOR_PROFILE_REQUIRED", "No vendor profile for this account")
    return vendor
