from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TransferResult:
    transfer_id: str
    amount_cents: int
    provider: str
    raw: dict | None = None


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str
    provider: str
    raw: dict | None = None


class PaymentsProvider:
    name = "unknown"

    def create_transfer(
        self,
        *,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        metadata: dict | None = None,
    ) -> TransferResult:
        raise NotImplementedError

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
        raise NotImplementedError
