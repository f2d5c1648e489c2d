"""
Payment Gateway Adapter -- the processor boundary.

Responsibility:
    Narrow, processor-neutral interface for moving money: charge a payer
    with a platform fee and a destination account, pay out a connected
    account, read its balance, and manage connected accounts.  Also turns
    signed webhook payloads into verified event dicts.

Architecture position:
    Kernel > Gateway.  Engines depend on ``PaymentGateway`` only; concrete
    adapters (Stripe, in-memory) are chosen at wiring time.

Failure modes (every adapter maps its native errors onto these):
    - GatewayDeclinedError     card / payment-method level refusal.
      PayoutRejectedError is its payout counterpart: the request was refused
      before any money moved.
    - GatewayUnavailableError  network, rate limit, processor outage, timeout.
      For confirmation this is an ambiguous outcome: the charge may or may
      not have happened.  The same holds for payout creation.
    - WebhookSignatureError    payload not signed by the processor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any


@dataclass(frozen=True)
class GatewayIntent:
    ref: str
    status: str
    amount: int
    currency: str
    client_secret: str | None = None


@dataclass(frozen=True)
class GatewayConfirmation:
    ref: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class GatewayPayout:
    ref: str
    status: str
    amount: int
    arrival_date: date | None = None


@dataclass(frozen=True)
class GatewayBalance:
    available: int
    pending: int
    currency: str


@dataclass(frozen=True)
class GatewayAccount:
    ref: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool


class PaymentGateway(ABC):
    """
    Processor adapter contract.

    Contract:
        Amounts are integers in minor units.  Every create call takes an
        idempotency key; repeating a call with the same key returns the
        original object instead of creating a second one.

    Non-goals:
        - No persistence.  Adapters never touch the Ledger Store.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def create_payment_intent(
        self,
        *,
        amount: int,
        currency: str,
        destination_account_ref: str,
        application_fee: int,
        payment_method_ref: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> GatewayIntent:
        ...

    @abstractmethod
    def confirm_payment_intent(
        self, intent_ref: str, *, idempotency_key: str | None = None
    ) -> GatewayConfirmation:
        ...

    @abstractmethod
    def create_payout(
        self,
        *,
        account_ref: str,
        amount: int,
        currency: str,
        method: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> GatewayPayout:
        ...

    @abstractmethod
    def get_account_balance(self, account_ref: str, currency: str) -> GatewayBalance:
        ...

    @abstractmethod
    def create_connected_account(
        self,
        *,
        email: str | None,
        country: str,
        metadata: dict[str, str] | None = None,
    ) -> GatewayAccount:
        ...

    @abstractmethod
    def update_connected_account(self, account_ref: str, **fields: Any) -> GatewayAccount:
        ...

    @abstractmethod
    def construct_event(self, payload: bytes | str, signature_header: str) -> dict[str, Any]:
        """Verify a webhook payload and return the event as a plain dict."""
        ...
