from __future__ import annotations

from flask import Blueprint, jsonify, request

from pickupmarket.services.fee_ledger import (
    can_use_external_payments,
    get_vendor_fee_balance,
    list_ledger_entries,
    pay_vendor_fee_balance,
)
from pickupmarket.utils.auth import require_vendor

vendor_fees_bp = Blueprint("vendor_fees_bp", __name__, url_prefix="/api")


@vendor_fees_bp.get("/vendor/fees")
def vendor_fee_balance():
    vendor = require_vendor()
    balance = get_vendor_fee_balance(vendor.id)
    allowed, reason = can_use_external_payments(vendor)
    return jsonify(
        {
            "ok": True,
            "balance": balance.to_dict(),
            "external_payments": {"allowed": allowed, "reason": reason},
            "recent": [e.to_dict() for e in list_ledger_entries(vendor.id, limit=10)],
        }
    ), 200


@vendor_fees_bp.get("/vendor/fees/ledger")
def vendor_fee_ledger():
    vendor = require_vendor()
    try:
        limit = int(request.args.get("limit") or 50)
    except ValueError:
        limit = 50
    rows = list_ledger_entries(vendor.id, limit=limit)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@vendor_fees_bp.post("/vendor/fees/pay")
def vendor_fee_pay():
    vendor = require_vendor()
    result = pay_vendor_fee_balance(vendor)
    return jsonify({"ok": True, **result}), 200
