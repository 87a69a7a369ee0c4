from __future__ import annotations

import requests

from pickupmarket.integrations.common import ProviderError
from pickupmarket.integrations.payments.base import CheckoutSessionResult, PaymentsProvider, TransferResult

STRIPE_BASE = "https://api.stripe.com/v1"


def _flatten_metadata(metadata: dict | None) -> dict:
    return {f"metadata[{k}]": str(v) for k, v in (metadata or {}).items()}


class StripePaymentsProvider(PaymentsProvider):
    name = "stripe"

    def __init__(self, secret_key: str, *, currency: str = "usd", timeout: int = 20):
        self.secret_key = secret_key
        self.currency = currency
        self.timeout = timeout

    def _post(self, path: str, data: dict, *, idempotency_key: str) -> dict:
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Idempotency-Key": idempotency_key,
        }
        try:
            r = requests.post(f"{STRIPE_BASE}{path}", headers=headers, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(self.name, "UNREACHABLE", str(e)[:200])
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            err = j.get("error") if isinstance(j, dict) else None
            msg = ((err or {}).get("message") or f"HTTP {r.status_code}").strip()
            raise ProviderError(self.name, "REQUEST_FAILED", msg)
        return j if isinstance(j, dict) else {"payload": j}

    def create_transfer(self, *, amount_cents: int, destination_account: str, idempotency_key: str, metadata: dict | None = None) -> TransferResult:
        data = {
            "amount": int(amount_cents),
            "currency": self.currency,
            "destination": destination_account,
            **_flatten_metadata(metadata),
        }
        j = self._post("/transfers", data, idempotency_key=idempotency_key)
        return TransferResult(
            transfer_id=str(j.get("id") or ""),
            amount_cents=int(j.get("amount") or amount_cents),
            provider=self.name,
            raw=j,
        )

    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        description: str,
        success_url: str,
        cancel_url: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> CheckoutSessionResult:
        data = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items[0][quantity]": 1,
            "line_items[0][price_data][currency]": self.currency,
            "line_items[0][price_data][unit_amount]": int(amount_cents),
            "line_items[0][price_data][product_data][name]": description,
            **_flatten_metadata(metadata),
        }
        j = self._post("/checkout/sessions", data, idempotency_key=idempotency_key)
        return CheckoutSessionResult(
            session_id=str(j.get("id") or ""),
            url=str(j.get("url") or ""),
            provider=self.name,
            raw=j,
        )
