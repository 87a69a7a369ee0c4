from __future__ import annotations

import os

from pickupmarket.config import IntegrationSettings, get_integration_settings
from pickupmarket.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from pickupmarket.integrations.messaging.base import MessagingProvider
from pickupmarket.integrations.messaging.mock_provider import MockMessagingProvider
from pickupmarket.integrations.messaging.twilio_provider import TwilioMessagingProvider


def build_messaging_provider(settings: IntegrationSettings | None = None) -> MessagingProvider:
    settings = settings or get_integration_settings()
    if settings.integrations_mode == "disabled" or not settings.sms_enabled:
        raise IntegrationDisabledError("INTEGRATION_DISABLED:sms")

    if settings.messaging_provider == "mock":
        return MockMessagingProvider()
    if settings.messaging_provider != "twilio":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:messaging_provider={settings.messaging_provider}")

    creds = {
        "TWILIO_ACCOUNT_SID": (os.getenv("TWILIO_ACCOUNT_SID") or "").strip(),
        "TWILIO_AUTH_TOKEN": (os.getenv("TWILIO_AUTH_TOKEN") or "").strip(),
        "TWILIO_FROM_NUMBER": (os.getenv("TWILIO_FROM_NUMBER") or "").strip(),
    }
    missing = [k for k, v in creds.items() if not v]
    if missing:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing {', '.join(missing)}")
    return TwilioMessagingProvider(
        account_sid=creds["TWILIO_ACCOUNT_SID"],
        auth_token=creds["TWILIO_AUTH_TOKEN"],
        from_number=creds["TWILIO_FROM_NUMBER"],
    )
