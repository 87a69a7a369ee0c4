from __future__ import annotations

import os

from pickupmarket.config import IntegrationSettings, get_integration_settings
from pickupmarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from pickupmarket.integrations.payments.base import PaymentsProvider
from pickupmarket.integrations.payments.mock_provider import MockPaymentsProvider
from pickupmarket.integrations.payments.stripe_provider import StripePaymentsProvider


def build_payments_provider(settings: IntegrationSettings | None = None) -> PaymentsProvider:
    settings = settings or get_integration_settings()
    mode = settings.integrations_mode
    provider = settings.payments_provider

    if mode == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        if mode == "live":
            raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:mock payments in live mode")
        return MockPaymentsProvider()

    if provider != "stripe":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing STRIPE_SECRET_KEY")
    return StripePaymentsProvider(secret_key=secret_key)


def payment_health(settings: IntegrationSettings | None = None) -> dict:
    settings = settings or get_integration_settings()
    missing = []
    if settings.integrations_mode != "disabled" and settings.payments_provider == "stripe":
        if not (os.getenv("STRIPE_SECRET_KEY") or "").strip():
            missing.append("STRIPE_SECRET_KEY")
    if settings.integrations_mode == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "mode": settings.integrations_mode,
        "provider": settings.payments_provider,
        "missing": missing,
    }
