from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError

from pickupmarket.extensions import db
from pickupmarket.models import IdempotencyKey


def _hash_payload(scope: str, payload: Any) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(f"{scope}|{canonical}".encode("utf-8")).hexdigest()


def lookup_response(scope: str, key: str, payload: Any, *, user_id: int | None = None):
    """Reserve ``key`` within ``scope`` or replay what it already produced.

    Returns one of:
      ("hit", body, status)       stored response for the same payload
      ("conflict", None, 409)     key reused with a different payload
      ("pending", None, 409)      another request holds the reservation
      ("miss", row, 0)            reservation created; caller must store or release
    """
    scope = (scope or "").strip()[:64]
    key = (key or "").strip()[:128]
    req_hash = _hash_payload(scope, payload)

    row = IdempotencyKey.query.filter_by(scope=scope, key=key).first()
    if row is not None:
        if (row.request_hash or "") != req_hash:
            return ("conflict", None, 409)
        if row.response_json is None:
            return ("pending", None, 409)
        return ("hit", json.loads(row.response_json), int(row.response_code or 200))

    row = IdempotencyKey(
        scope=scope,
        key=key,
        user_id=int(user_id) if user_id is not None else None,
        request_hash=req_hash,
    )
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        # Lost the race to a concurrent request with the same key.
        return ("pending", None, 409)
    db.session.commit()
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int = 200) -> None:
    row.response_json = json.dumps(response_json, separators=(",", ":"), default=str)
    row.response_code = int(status_code or 200)
    row.updated_at = datetime.utcnow()
    db.session.add(row)
    db.session.commit()


def release(row: IdempotencyKey) -> None:
    """Drop an unfinished reservation so the operation can be retried."""
    db.session.delete(row)
    db.session.commit()
