from __future__ import annotations

import hashlib

from pickupmarket.integrations.payments.base import CheckoutSessionResult, PaymentsProvider, TransferResult


def _mock_id(prefix: str, key: str) -> str:
    return f"{prefix}_mock_{hashlib.sha256(key.encode('utf-8')).hexdigest()[:16]}"


class MockPaymentsProvider(PaymentsProvider):
    """Deterministic provider: the same idempotency key yields the same ids."""

    name = "mock"

    def create_transfer(self, *, amount_cents: int, destination_account: str, idempotency_key: str, metadata: dict | None = None) -> TransferResult:
        return TransferResult(
            transfer_id=_mock_id("tr", idempotency_key),
            amount_cents=int(amount_cents),
            provider=self.name,
            raw={"destination": destination_account, "metadata": metadata or {}},
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
        session_id = _mock_id("cs", idempotency_key)
        return CheckoutSessionResult(
            session_id=session_id,
            url=f"https://example.com/mock/checkout/{session_id}",
            provider=self.name,
            raw={"amount_cents": int(amount_cents), "description": description, "metadata": metadata or {}},
        )
