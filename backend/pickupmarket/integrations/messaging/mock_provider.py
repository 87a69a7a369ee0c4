from __future__ import annotations

import os

from pickupmarket.integrations.messaging.base import MessageResult, MessagingProvider


class MockMessagingProvider(MessagingProvider):
    name = "mock"

    def send_sms(self, *, to: str, message: str, reference: str = "") -> MessageResult:
        if (os.getenv("MOCK_NOTIFY_FORCE_FAIL") or "").strip() == "1":
            return MessageResult(ok=False, code="PROVIDER_DOWN", message="mock forced failure")
        return MessageResult(ok=True, code="OK", message="mock_sent", provider_ref=f"mock:{reference}", raw={"to": to})
