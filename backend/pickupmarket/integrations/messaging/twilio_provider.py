from __future__ import annotations

import requests

from pickupmarket.integrations.messaging.base import MessageResult, MessagingProvider

TWILIO_BASE = "https://api.twilio.com/2010-04-01"


def _map_twilio_error(status: int) -> str:
    if status in (401, 403):
        return "AUTH_FAILED"
    if status == 429:
        return "RATE_LIMITED"
    if status in (400, 404, 422):
        return "INVALID_RECIPIENT"
    return "PROVIDER_DOWN"


class TwilioMessagingProvider(MessagingProvider):
    name = "twilio"

    def __init__(self, *, account_sid: str, auth_token: str, from_number: str, timeout: int = 12):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    def send_sms(self, *, to: str, message: str, reference: str = "") -> MessageResult:
        url = f"{TWILIO_BASE}/Accounts/{self.account_sid}/Messages.json"
        payload = {"To": (to or "").strip(), "From": self.from_number, "Body": message}
        try:
            r = requests.post(url, data=payload, auth=(self.account_sid, self.auth_token), timeout=self.timeout)
        except requests.Timeout:
            return MessageResult(ok=False, code="PROVIDER_DOWN", message="timeout")
        except requests.RequestException as e:
            return MessageResult(ok=False, code="PROVIDER_DOWN", message=str(e)[:200])
        data = r.json() if r.content else {}
        if not isinstance(data, dict):
            data = {"payload": data}
        if 200 <= r.status_code < 300:
            return MessageResult(ok=True, code="OK", message="sent", provider_ref=str(data.get("sid") or ""), raw=data)
        return MessageResult(
            ok=False,
            code=_map_twilio_error(r.status_code),
            message=str(data.get("message") or f"http_{r.status_code}")[:200],
            raw=data,
        )
