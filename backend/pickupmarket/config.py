from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)


DEFAULT_VERTICAL_MINIMUMS = {
    "farmers_market": 1000,
    "food_trucks": 500,
    "fire_works": 4000,
}

DEFAULT_CUTOFF_HOURS = {
    "traditional": 18,
    "private_pickup": 10,
}


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _env_int(name: str, default: int, *, minimum: int = 0, maximum: int = 10_000_000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def _env_percent(name: str, default: str) -> Decimal:
    raw = (os.getenv(name) or "").strip()
    try:
        value = Decimal(raw or default)
    except InvalidOperation:
        logger.warning("invalid_percent_env name=%s value=%s", name, raw)
        value = Decimal(default)
    if value < 0:
        value = Decimal("0")
    return value


@dataclass(frozen=True)
class FeeSchedule:
    """Platform fee policy. Percentages are whole-number percents (6.5 == 6.5%)."""

    buyer_fee_percent: Decimal = Decimal("6.5")
    buyer_flat_fee_cents: int = 15
    vendor_fee_percent: Decimal = Decimal("6.5")
    vendor_flat_fee_cents: int = 15
    minimum_order_cents: int = 1000

    def to_dict(self) -> dict:
        return {
            "buyer_fee_percent": str(self.buyer_fee_percent),
            "buyer_flat_fee_cents": int(self.buyer_flat_fee_cents),
            "vendor_fee_percent": str(self.vendor_fee_percent),
            "vendor_flat_fee_cents": int(self.vendor_flat_fee_cents),
            "minimum_order_cents": int(self.minimum_order_cents),
        }


@dataclass(frozen=True)
class LedgerPolicy:
    balance_threshold_cents: int = 5000
    age_threshold_days: int = 40
    auto_deduct_max_percent: int = 50


@dataclass(frozen=True)
class IntegrationSettings:
    integrations_mode: str = "disabled"
    payments_provider: str = "mock"
    messaging_provider: str = "mock"
    sms_enabled: bool = False
    notify_queue: bool = False
    public_base_url: str = "http://localhost:3000"
    webhook_secret: str = ""


@dataclass(frozen=True)
class HandshakePolicy:
    window_seconds: int = 30


@dataclass(frozen=True)
class CutoffPolicy:
    hours_by_market_type: dict = field(default_factory=lambda: dict(DEFAULT_CUTOFF_HOURS))
    default_timezone: str = "America/Chicago"

    def hours_for(self, market_type: str | None) -> int:
        kind = (market_type or "traditional").strip().lower()
        return int(self.hours_by_market_type.get(kind, self.hours_by_market_type.get("traditional", 18)))


def get_fee_schedule() -> FeeSchedule:
    return FeeSchedule(
        buyer_fee_percent=_env_percent("BUYER_FEE_PERCENT", "6.5"),
        buyer_flat_fee_cents=_env_int("BUYER_FLAT_FEE_CENTS", 15),
        vendor_fee_percent=_env_percent("VENDOR_FEE_PERCENT", "6.5"),
        vendor_flat_fee_cents=_env_int("VENDOR_FLAT_FEE_CENTS", 15),
        minimum_order_cents=_env_int("MINIMUM_ORDER_CENTS", 1000),
    )


def get_vertical_minimums() -> dict[str, int]:
    table = dict(DEFAULT_VERTICAL_MINIMUMS)
    raw = (os.getenv("VERTICAL_MINIMUMS_JSON") or "").strip()
    if not raw:
        return table
    try:
        parsed = json.loads(raw)
    except Exception:
        logger.warning("invalid_vertical_minimums_json")
        return table
    if isinstance(parsed, dict):
        for key, value in parsed.items():
            try:
                table[str(key).strip().lower()] = max(0, int(value))
            except Exception:
                continue
    return table


def get_ledger_policy() -> LedgerPolicy:
    return LedgerPolicy(
        balance_threshold_cents=_env_int("FEE_BALANCE_THRESHOLD_CENTS", 5000),
        age_threshold_days=_env_int("FEE_AGE_THRESHOLD_DAYS", 40, minimum=1),
        auto_deduct_max_percent=_env_int("FEE_AUTO_DEDUCT_MAX_PERCENT", 50, maximum=100),
    )


def get_handshake_policy() -> HandshakePolicy:
    return HandshakePolicy(
        window_seconds=_env_int("PICKUP_CONFIRMATION_WINDOW_SECONDS", 30, minimum=1, maximum=3600),
    )


def get_cutoff_policy() -> CutoffPolicy:
    return CutoffPolicy(
        hours_by_market_type={
            "traditional": _env_int("CUTOFF_HOURS_TRADITIONAL", DEFAULT_CUTOFF_HOURS["traditional"], maximum=168),
            "private_pickup": _env_int("CUTOFF_HOURS_PRIVATE_PICKUP", DEFAULT_CUTOFF_HOURS["private_pickup"], maximum=168),
        },
        default_timezone=_env_str("DEFAULT_MARKET_TIMEZONE", "America/Chicago"),
    )


def get_integration_settings() -> IntegrationSettings:
    return IntegrationSettings(
        integrations_mode=_env_str("INTEGRATIONS_MODE", "disabled").lower(),
        payments_provider=_env_str("PAYMENTS_PROVIDER", "mock").lower(),
        messaging_provider=_env_str("MESSAGING_PROVIDER", "mock").lower(),
        sms_enabled=_env_bool("SMS_NOTIFICATIONS_ENABLED", False),
        notify_queue=_env_bool("NOTIFY_QUEUE", False),
        public_base_url=_env_str("PUBLIC_BASE_URL", "http://localhost:3000").rstrip("/"),
        webhook_secret=_env_str("PAYMENTS_WEBHOOK_SECRET"),
    )
