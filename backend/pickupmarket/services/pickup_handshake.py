from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import sqlalchemy as sa

from pickupmarket.config import get_handshake_policy
from pickupmarket.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pickupmarket.extensions import db
from pickupmarket.utils.events import log_event

logger = logging.getLogger(__name__)

BUYER = "buyer"
VENDOR = "vendor"
PARTIES = (BUYER, VENDOR)

OUTCOME_COMPLETED = "completed"
OUTCOME_AWAITING = "awaiting_counterparty"
OUTCOME_RESTARTED = "window_restarted"

WINDOW_EXPIRED_CODE = "CONFIRMATION_WINDOW_EXPIRED"


@dataclass(frozen=True)
class PickupKind:
    """Describes one kind of row that completes through the handshake.

    ``awaiting`` builds the SQL condition for "waiting for pickup";
    ``parties`` returns (buyer_user_id, vendor_user_id) for a loaded row;
    ``on_complete`` runs the downstream side effects exactly once;
    ``notify_counterparty`` tells the other side a confirmation is pending.
    """

    name: str
    model: type
    completed_status: str
    awaiting: Callable
    parties: Callable
    on_complete: Callable
    notify_counterparty: Callable
    notify_issue: Callable
    completed_at_column: str | None = None


@dataclass
class HandshakeResult:
    outcome: str
    party: str
    row: object
    code: str | None = None
    window_expires_at: datetime | None = None

    @property
    def completed(self) -> bool:
        return self.outcome == OUTCOME_COMPLETED

    def to_dict(self, now: datetime | None = None) -> dict:
        now = now or datetime.utcnow()
        remaining = None
        if self.window_expires_at is not None:
            remaining = max(0, int((self.window_expires_at - now).total_seconds()))
        return {
            "outcome": self.outcome,
            "code": self.code,
            "party": self.party,
            "completed": self.completed,
            "window_expires_at": self.window_expires_at.isoformat() if self.window_expires_at else None,
            "seconds_remaining": remaining,
            "item": self.row.to_dict(),
        }


def _columns(kind: PickupKind, party: str):
    table = kind.model.__table__
    own = table.c.buyer_confirmed_at if party == BUYER else table.c.vendor_confirmed_at
    other = table.c.vendor_confirmed_at if party == BUYER else table.c.buyer_confirmed_at
    return table, own, other


def _load(kind: PickupKind, row_id: int):
    row = db.session.get(kind.model, int(row_id))
    if row is None:
        raise NotFoundError(f"{kind.name.upper()}_NOT_FOUND", f"{kind.name} {row_id} not found")
    return row


def _check_party(kind: PickupKind, row, party: str, actor_user_id: int) -> None:
    if party not in PARTIES:
        raise ValidationError("INVALID_PARTY", "party must be buyer or vendor")
    buyer_id, vendor_id = kind.parties(row)
    expected = buyer_id if party == BUYER else vendor_id
    if expected is None or int(expected) != int(actor_user_id):
        raise ForbiddenError("NOT_A_PARTY", f"Only the {party} can do this")


def _is_awaiting(kind: PickupKind, row) -> bool:
    table = kind.model.__table__
    stmt = sa.select(sa.literal(1)).select_from(table).where(table.c.id == row.id, kind.awaiting(table))
    return db.session.execute(stmt).first() is not None


def _reset_expired_window(kind: PickupKind, row_id: int, now: datetime) -> bool:
    """Clear a lone confirmation whose window has lapsed. Returns True if one was cleared."""
    table = kind.model.__table__
    exactly_one = sa.or_(
        sa.and_(table.c.buyer_confirmed_at.isnot(None), table.c.vendor_confirmed_at.is_(None)),
        sa.and_(table.c.buyer_confirmed_at.is_(None), table.c.vendor_confirmed_at.isnot(None)),
    )
    stmt = (
        sa.update(table)
        .where(
            table.c.id == int(row_id),
            table.c.pickup_confirmed_at.is_(None),
            table.c.confirmation_window_expires_at.isnot(None),
            table.c.confirmation_window_expires_at <= now,
            exactly_one,
        )
        .values(
            buyer_confirmed_at=None,
            vendor_confirmed_at=None,
            confirmation_window_expires_at=None,
        )
    )
    return db.session.execute(stmt).rowcount > 0


def _complete(kind: PickupKind, row_id: int, now: datetime) -> bool:
    """Flip the row to its completed status. Only one caller can win."""
    table = kind.model.__table__
    values = {
        "status": kind.completed_status,
        "pickup_confirmed_at": now,
        "confirmation_window_expires_at": None,
    }
    if kind.completed_at_column:
        values[kind.completed_at_column] = now
    stmt = (
        sa.update(table)
        .where(
            table.c.id == int(row_id),
            table.c.pickup_confirmed_at.is_(None),
            table.c.buyer_confirmed_at.isnot(None),
            table.c.vendor_confirmed_at.isnot(None),
            kind.awaiting(table),
        )
        .values(**values)
    )
    return db.session.execute(stmt).rowcount == 1


def confirm_pickup(
    kind: PickupKind,
    row_id: int,
    *,
    party: str,
    actor_user_id: int,
    now: datetime | None = None,
) -> HandshakeResult:
    """Record one party's attestation of an in-person handoff.

    Every write is a conditional single-row UPDATE; the outcome is decided by
    re-reading both confirmation fields afterwards. A lone confirmation whose
    window lapsed is cleared first, so a late confirmation starts a new window.
    """
    now = now or datetime.utcnow()
    window = timedelta(seconds=get_handshake_policy().window_seconds)

    row = _load(kind, row_id)
    _check_party(kind, row, party, actor_user_id)
    if row.pickup_confirmed_at is not None:
        raise InvalidTransitionError("PICKUP_ALREADY_COMPLETED", "Pickup has already been confirmed by both parties")
    if row.issue_reported_at is not None:
        raise InvalidTransitionError("PICKUP_ISSUE_REPORTED", "An issue was reported; confirmation is closed")
    if not _is_awaiting(kind, row):
        raise InvalidTransitionError("NOT_AWAITING_PICKUP", f"{kind.name} is not ready for pickup")

    restarted = _reset_expired_window(kind, row.id, now)

    table, own, other = _columns(kind, party)
    write = (
        sa.update(table)
        .where(
            table.c.id == int(row.id),
            own.is_(None),
            table.c.pickup_confirmed_at.is_(None),
            table.c.issue_reported_at.is_(None),
            kind.awaiting(table),
        )
        .values(
            {
                own.name: now,
                "confirmation_window_expires_at": sa.case(
                    (other.is_(None), now + window),
                    else_=table.c.confirmation_window_expires_at,
                ),
            }
        )
    )
    if db.session.execute(write).rowcount == 0:
        db.session.commit()
        db.session.refresh(row)
        if getattr(row, own.name) is not None:
            raise ConflictError("ALREADY_CONFIRMED", f"The {party} has already confirmed this pickup")
        raise InvalidTransitionError("NOT_AWAITING_PICKUP", f"{kind.name} is no longer awaiting pickup")
    db.session.commit()
    db.session.refresh(row)

    if row.buyer_confirmed_at is not None and row.vendor_confirmed_at is not None:
        won = _complete(kind, row.id, now)
        db.session.commit()
        db.session.refresh(row)
        if won:
            logger.info("pickup_completed kind=%s id=%s by=%s", kind.name, row.id, party)
            log_event(
                "pickup_completed",
                actor_user_id=actor_user_id,
                subject_type=kind.name,
                subject_id=row.id,
                idempotency_key=f"pickup_completed:{kind.name}:{row.id}",
            )
            kind.on_complete(row, now)
        return HandshakeResult(outcome=OUTCOME_COMPLETED, party=party, row=row)

    log_event(
        "pickup_confirmed",
        actor_user_id=actor_user_id,
        subject_type=kind.name,
        subject_id=row.id,
        metadata={"party": party, "window_restarted": restarted},
    )
    db.session.commit()
    kind.notify_counterparty(row, party, window.seconds)
    return HandshakeResult(
        outcome=OUTCOME_RESTARTED if restarted else OUTCOME_AWAITING,
        party=party,
        row=row,
        code=WINDOW_EXPIRED_CODE if restarted else None,
        window_expires_at=row.confirmation_window_expires_at,
    )


def report_pickup_issue(
    kind: PickupKind,
    row_id: int,
    *,
    actor_user_id: int,
    description: str,
    now: datetime | None = None,
):
    """Buyer flags a problem with a pickup. Leaves the confirmation window alone."""
    now = now or datetime.utcnow()
    text = (description or "").strip()
    if not text:
        raise ValidationError("DESCRIPTION_REQUIRED", "Describe the issue")

    row = _load(kind, row_id)
    _check_party(kind, row, BUYER, actor_user_id)
    if row.issue_reported_at is not None:
        raise ConflictError("ISSUE_ALREADY_REPORTED", "An issue has already been reported")

    table = kind.model.__table__
    stmt = (
        sa.update(table)
        .where(
            table.c.id == int(row.id),
            table.c.issue_reported_at.is_(None),
            table.c.pickup_confirmed_at.is_(None),
            kind.awaiting(table),
        )
        .values(issue_reported_at=now, issue_reported_by=BUYER, issue_description=text[:2000])
    )
    if db.session.execute(stmt).rowcount == 0:
        db.session.commit()
        db.session.refresh(row)
        if row.issue_reported_at is not None:
            raise ConflictError("ISSUE_ALREADY_REPORTED", "An issue has already been reported")
        raise InvalidTransitionError("NOT_AWAITING_PICKUP", f"{kind.name} is not awaiting pickup")
    log_event(
        "pickup_issue_reported",
        actor_user_id=actor_user_id,
        subject_type=kind.name,
        subject_id=row.id,
        severity="WARNING",
    )
    db.session.commit()
    db.session.refresh(row)
    kind.notify_issue(row, text)
    return row


def handshake_state(row, now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    expires = row.confirmation_window_expires_at
    if row.pickup_confirmed_at is not None:
        state = "completed"
    elif row.issue_reported_at is not None:
        state = "issue_reported"
    elif row.buyer_confirmed_at is None and row.vendor_confirmed_at is None:
        state = "none"
    elif expires is not None and expires <= now:
        state = "expired"
    elif row.buyer_confirmed_at is not None:
        state = "awaiting_vendor"
    else:
        state = "awaiting_buyer"
    remaining = None
    if state in ("awaiting_buyer", "awaiting_vendor") and expires is not None:
        remaining = max(0, int((expires - now).total_seconds()))
    return {
        "state": state,
        "seconds_remaining": remaining,
        **row.confirmation_dict(),
    }
