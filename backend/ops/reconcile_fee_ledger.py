from __future__ import annotations

import argparse
import json
import os
import sys


def _bootstrap_app():
    from pickupmarket import create_app

    app = create_app()
    app.app_context().push()
    return app


def _entry_drift(entry) -> str | None:
    amount = int(entry.amount_cents or 0)
    paid = int(entry.paid_cents or 0)
    if paid < 0 or paid > amount:
        return "paid_out_of_range"
    if entry.status == "paid" and paid != amount:
        return "paid_status_with_balance"
    if entry.status == "pending" and amount > 0 and paid == amount:
        return "pending_status_fully_paid"
    return None


def main():
    parser = argparse.ArgumentParser(description="Check vendor fee ledger entries for inconsistent balances.")
    parser.add_argument("--vendor", type=int, default=0, help="Only check one vendor profile id.")
    parser.add_argument("--fix", action="store_true", help="Mark fully paid pending entries as paid.")
    args = parser.parse_args()

    _bootstrap_app()
    from pickupmarket.extensions import db
    from pickupmarket.models import VendorFeeLedgerEntry
    from pickupmarket.services.fee_ledger import get_vendor_fee_balance

    query = VendorFeeLedgerEntry.query
    if args.vendor:
        query = query.filter_by(vendor_profile_id=int(args.vendor))

    drift = []
    vendors = set()
    for entry in query.order_by(VendorFeeLedgerEntry.id.asc()).all():
        vendors.add(int(entry.vendor_profile_id))
        reason = _entry_drift(entry)
        if reason is None:
            continue
        drift.append({"entry_id": int(entry.id), "vendor_profile_id": int(entry.vendor_profile_id), "reason": reason})
        if args.fix and reason == "pending_status_fully_paid":
            entry.status = "paid"
    if args.fix:
        db.session.commit()

    summary = {
        "checked_vendors": len(vendors),
        "drift_count": len(drift),
        "drift": drift,
        "balances": [get_vendor_fee_balance(v).to_dict() for v in sorted(vendors)],
    }
    print(json.dumps(summary, indent=2))
    return 0 if not drift else 2


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "main.py")
    sys.exit(main())
