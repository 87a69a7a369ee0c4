from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pickupmarket.config import CutoffPolicy, get_cutoff_policy

PICKUP_SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class OccurrenceWindow:
    """Next occurrence of a weekly schedule and its order cutoff.

    Timestamps are naive UTC, matching how the rest of the app stores time.
    """

    day_of_week: int
    start_time: time
    end_time: time | None
    occurrence_at: datetime
    cutoff_at: datetime
    cutoff_hours: int
    is_accepting: bool
    hours_until_cutoff: float

    def to_dict(self) -> dict:
        return {
            "day_of_week": int(self.day_of_week),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "occurrence_at": self.occurrence_at.isoformat(),
            "cutoff_at": self.cutoff_at.isoformat(),
            "cutoff_hours": int(self.cutoff_hours),
            "is_accepting": bool(self.is_accepting),
            "hours_until_cutoff": round(self.hours_until_cutoff, 1),
        }


@dataclass(frozen=True)
class MarketAvailability:
    market_id: int
    market_name: str
    market_type: str
    cutoff_hours: int
    is_accepting: bool
    window: OccurrenceWindow | None
    reason: str | None = None

    @property
    def cutoff_at(self) -> datetime | None:
        return self.window.cutoff_at if self.window else None

    @property
    def hours_until_cutoff(self) -> float | None:
        return self.window.hours_until_cutoff if self.window else None

    def to_dict(self) -> dict:
        window = self.window
        return {
            "market_id": int(self.market_id),
            "market_name": self.market_name,
            "market_type": self.market_type,
            "cutoff_hours": int(self.cutoff_hours),
            "is_accepting": bool(self.is_accepting),
            "next_pickup_at": window.occurrence_at.isoformat() if window else None,
            "cutoff_at": window.cutoff_at.isoformat() if window else None,
            "start_time": window.start_time.strftime("%H:%M") if window else None,
            "end_time": window.end_time.strftime("%H:%M") if window and window.end_time else None,
            "hours_until_cutoff": round(window.hours_until_cutoff, 1) if window else None,
            "reason": self.reason,
        }


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo((name or "").strip() or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _js_weekday(value: datetime) -> int:
    # Python: Monday == 0. Schedules: Sunday == 0.
    return (value.weekday() + 1) % 7


def next_occurrence(
    day_of_week: int,
    start_time: time,
    cutoff_hours: int,
    now: datetime,
    *,
    tz: str | None = None,
    end_time: time | None = None,
) -> OccurrenceWindow:
    """Compute the next occurrence of a weekly schedule.

    ``now`` is naive UTC (or aware). The schedule's wall-clock time is read in
    ``tz``; an occurrence that is today but already started rolls forward one
    week. The cutoff is subtracted in absolute time, and ``now == cutoff``
    is already closed.
    """
    zone = _zone(tz)
    now_utc = _to_utc_naive(now)
    now_local = now_utc.replace(tzinfo=timezone.utc).astimezone(zone)

    days_ahead = (int(day_of_week) - _js_weekday(now_local)) % 7
    occurrence_local = datetime.combine(now_local.date() + timedelta(days=days_ahead), start_time, tzinfo=zone)
    if days_ahead == 0 and now_local >= occurrence_local:
        occurrence_local = datetime.combine(now_local.date() + timedelta(days=7), start_time, tzinfo=zone)

    occurrence_at = _to_utc_naive(occurrence_local)
    cutoff_at = occurrence_at - timedelta(hours=int(cutoff_hours))
    hours_left = (cutoff_at - now_utc).total_seconds() / 3600.0
    return OccurrenceWindow(
        day_of_week=int(day_of_week),
        start_time=start_time,
        end_time=end_time,
        occurrence_at=occurrence_at,
        cutoff_at=cutoff_at,
        cutoff_hours=int(cutoff_hours),
        is_accepting=now_utc < cutoff_at,
        hours_until_cutoff=hours_left,
    )


def resolve_cutoff_hours(market, policy: CutoffPolicy | None = None) -> int:
    if getattr(market, "cutoff_hours", None) is not None:
        return int(market.cutoff_hours)
    return (policy or get_cutoff_policy()).hours_for(getattr(market, "market_type", None))


def market_availability(market, now: datetime, policy: CutoffPolicy | None = None) -> MarketAvailability:
    policy = policy or get_cutoff_policy()
    cutoff_hours = resolve_cutoff_hours(market, policy)
    base = {
        "market_id": int(market.id),
        "market_name": market.name or "",
        "market_type": market.market_type or "traditional",
        "cutoff_hours": cutoff_hours,
    }
    if not bool(getattr(market, "active", True)):
        return MarketAvailability(is_accepting=False, window=None, reason="market_inactive", **base)

    tz = getattr(market, "timezone", None) or policy.default_timezone
    windows = [
        next_occurrence(
            s.day_of_week,
            s.start_time,
            cutoff_hours,
            now,
            tz=tz,
            end_time=s.end_time,
        )
        for s in (market.schedules or [])
        if bool(getattr(s, "active", True))
    ]
    if not windows:
        return MarketAvailability(is_accepting=False, window=None, reason="no_active_schedule", **base)

    open_windows = [w for w in windows if w.is_accepting]
    if open_windows:
        soonest = min(open_windows, key=lambda w: w.occurrence_at)
        return MarketAvailability(is_accepting=True, window=soonest, **base)
    soonest = min(windows, key=lambda w: w.occurrence_at)
    return MarketAvailability(is_accepting=False, window=soonest, reason="cutoff_passed", **base)


def listing_availability(listing, markets: Iterable, now: datetime, policy: CutoffPolicy | None = None) -> dict:
    """Aggregate availability of a listing across the markets it is sold at.

    The listing accepts orders if any active market does. ``closing_soon`` is
    judged on the soonest open cutoff against that market's own cutoff hours.
    """
    if not getattr(listing, "is_published", False):
        return {
            "listing_id": int(listing.id),
            "is_accepting": False,
            "closing_soon": False,
            "hours_until_cutoff": None,
            "next_cutoff_at": None,
            "reason": "listing_not_published",
            "markets": [],
        }

    results = [
        market_availability(m, now, policy)
        for m in markets
        if bool(getattr(m, "active", True))
    ]
    results.sort(key=lambda a: (not a.is_accepting, (a.market_name or "").lower()))
    open_results = [a for a in results if a.is_accepting]

    closing_soon = False
    hours_left = None
    next_cutoff = None
    if open_results:
        soonest = min(open_results, key=lambda a: a.cutoff_at)
        hours_left = soonest.hours_until_cutoff
        next_cutoff = soonest.cutoff_at
        closing_soon = 0 < hours_left <= soonest.cutoff_hours

    reason = None
    if not results:
        reason = "no_active_markets"
    elif not open_results:
        reason = "all_markets_closed"

    return {
        "listing_id": int(listing.id),
        "is_accepting": bool(open_results),
        "closing_soon": bool(closing_soon),
        "hours_until_cutoff": round(hours_left, 1) if hours_left is not None else None,
        "next_cutoff_at": next_cutoff.isoformat() if next_cutoff else None,
        "reason": reason,
        "markets": [a.to_dict() for a in results],
    }


def build_pickup_snapshot(market, availability: MarketAvailability) -> dict:
    """Freeze the chosen market and occurrence onto an order item."""
    window = availability.window
    return {
        "snapshot_version": PICKUP_SNAPSHOT_VERSION,
        "market_id": int(market.id),
        "market_name": market.name or "",
        "market_type": market.market_type or "traditional",
        "address": market.address or "",
        "city": market.city or "",
        "state": market.state or "",
        "timezone": market.timezone or "",
        "pickup_at": window.occurrence_at.isoformat() if window else None,
        "cutoff_at": window.cutoff_at.isoformat() if window else None,
        "start_time": window.start_time.strftime("%H:%M") if window else None,
        "end_time": window.end_time.strftime("%H:%M") if window and window.end_time else None,
    }
