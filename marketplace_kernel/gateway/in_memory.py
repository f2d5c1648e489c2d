"""
In-memory payment gateway.

Deterministic stand-in for the processor, used by the test suite and by
local runs configured with ``gateway.provider: in_memory``.  Behaves like a
Stripe Connect account set: idempotency keys are honoured, a small set of
test payment methods decline, and webhook payloads are signed with the
``t=<ts>,v1=<hmac-sha256>`` header scheme.

Failures can be scripted per operation with ``fail_next()``.
"""

import hashlib
import hmac
import itertools
import json
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from marketplace_kernel.exceptions import (
    GatewayDeclinedError,
    GatewayUnavailableError,
    WebhookSignatureError,
)
from marketplace_kernel.gateway.base import (
    GatewayAccount,
    GatewayBalance,
    GatewayConfirmation,
    GatewayIntent,
    GatewayPayout,
    PaymentGateway,
)

# Payment methods that always decline on confirmation
DECLINING_PAYMENT_METHODS = frozenset(
    {"pm_card_chargeDeclined", "pm_card_visa_chargeDeclined", "pm_card_insufficientFunds"}
)

SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass
class _Account:
    ref: str
    email: str | None
    country: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    available: int = 0
    pending: int = 0


@dataclass
class _Intent:
    ref: str
    amount: int
    currency: str
    destination: str
    application_fee: int
    payment_method_ref: str
    status: str = "requires_confirmation"
    metadata: dict = field(default_factory=dict)


class InMemoryPaymentGateway(PaymentGateway):
    """Processor fake with Stripe-shaped behaviour."""

    def __init__(self, webhook_secret: str = "whsec_test", auto_enable_accounts: bool = False):
        self.webhook_secret = webhook_secret
        self.auto_enable_accounts = auto_enable_accounts
        self.accounts: dict[str, _Account] = {}
        self.intents: dict[str, _Intent] = {}
        self.payouts: dict[str, GatewayPayout] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._by_idempotency_key: dict[str, Any] = {}
        self._scripted_failures: dict[str, list[Exception]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "in_memory"

    # Test controls

    def fail_next(self, operation: str, error: Exception | None = None) -> None:
        """Make the next call to ``operation`` raise ``error`` (default: unavailable)."""
        self._scripted_failures[operation].append(
            error or GatewayUnavailableError(operation, "scripted failure")
        )

    def add_account(
        self,
        ref: str | None = None,
        *,
        charges_enabled: bool = True,
        payouts_enabled: bool = True,
        email: str | None = None,
    ) -> str:
        with self._lock:
            ref = ref or f"acct_{next(self._ids):08d}"
            self.accounts[ref] = _Account(
                ref=ref,
                email=email,
                country="US",
                charges_enabled=charges_enabled,
                payouts_enabled=payouts_enabled,
                details_submitted=charges_enabled,
            )
            return ref

    def set_account_balance(self, ref: str, *, available: int, pending: int) -> None:
        account = self.accounts[ref]
        account.available = available
        account.pending = pending

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def sign_payload(self, payload: str, timestamp: int | None = None) -> str:
        """Build a ``Stripe-Signature``-style header for ``payload``."""
        ts = int(time.time()) if timestamp is None else timestamp
        digest = hmac.new(
            self.webhook_secret.encode("utf-8"),
            f"{ts}.{payload}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"t={ts},v1={digest}"

    # Internals

    def _record(self, operation: str, **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((operation, kwargs))
            failures = self._scripted_failures.get(operation)
            error = failures.pop(0) if failures else None
        if error is not None:
            raise error

    def _next_ref(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids):08d}"

    # PaymentGateway

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
        self._record(
            "create_payment_intent",
            amount=amount,
            destination=destination_account_ref,
            application_fee=application_fee,
            idempotency_key=idempotency_key,
        )
        with self._lock:
            existing = self._by_idempotency_key.get(idempotency_key)
            if existing is None:
                existing = _Intent(
                    ref=self._next_ref("pi"),
                    amount=amount,
                    currency=currency,
                    destination=destination_account_ref,
                    application_fee=application_fee,
                    payment_method_ref=payment_method_ref,
                    metadata=dict(metadata or {}),
                )
                self.intents[existing.ref] = existing
                self._by_idempotency_key[idempotency_key] = existing
        return GatewayIntent(
            ref=existing.ref,
            status=existing.status,
            amount=existing.amount,
            currency=existing.currency,
            client_secret=f"{existing.ref}_secret",
        )

    def confirm_payment_intent(
        self, intent_ref: str, *, idempotency_key: str | None = None
    ) -> GatewayConfirmation:
        self._record("confirm_payment_intent", intent_ref=intent_ref)
        with self._lock:
            intent = self.intents.get(intent_ref)
            if intent is None:
                raise GatewayUnavailableError("confirm_payment_intent", f"no such intent {intent_ref}")
            if intent.status == "succeeded":
                return GatewayConfirmation(ref=intent.ref, status=intent.status)
            if intent.payment_method_ref in DECLINING_PAYMENT_METHODS:
                intent.status = "requires_payment_method"
                raise GatewayDeclinedError("Your card was declined.", failure_code="card_declined")
            intent.status = "succeeded"
            account = self.accounts.get(intent.destination)
            if account is not None:
                account.pending += intent.amount - intent.application_fee
        return GatewayConfirmation(ref=intent.ref, status=intent.status)

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
        self._record(
            "create_payout",
            account_ref=account_ref,
            amount=amount,
            method=method,
            idempotency_key=idempotency_key,
        )
        with self._lock:
            existing = self._by_idempotency_key.get(idempotency_key)
            if existing is None:
                existing = GatewayPayout(
                    ref=self._next_ref("po"),
                    status="paid" if method == "instant" else "pending",
                    amount=amount,
                )
                self.payouts[existing.ref] = existing
                self._by_idempotency_key[idempotency_key] = existing
        return existing

    def get_account_balance(self, account_ref: str, currency: str) -> GatewayBalance:
        self._record("get_account_balance", account_ref=account_ref)
        account = self.accounts.get(account_ref)
        if account is None:
            raise GatewayUnavailableError("get_account_balance", f"no such account {account_ref}")
        return GatewayBalance(available=account.available, pending=account.pending, currency=currency)

    def create_connected_account(
        self,
        *,
        email: str | None,
        country: str,
        metadata: dict[str, str] | None = None,
    ) -> GatewayAccount:
        self._record("create_connected_account", email=email, country=country)
        with self._lock:
            ref = self._next_ref("acct")
            account = _Account(
                ref=ref,
                email=email,
                country=country,
                charges_enabled=self.auto_enable_accounts,
                payouts_enabled=self.auto_enable_accounts,
                details_submitted=self.auto_enable_accounts,
            )
            self.accounts[ref] = account
        return self._to_account(account)

    def update_connected_account(self, account_ref: str, **fields: Any) -> GatewayAccount:
        self._record("update_connected_account", account_ref=account_ref, **fields)
        account = self.accounts.get(account_ref)
        if account is None:
            raise GatewayUnavailableError("update_connected_account", f"no such account {account_ref}")
        if "email" in fields:
            account.email = fields["email"]
        return self._to_account(account)

    def construct_event(self, payload: bytes | str, signature_header: str) -> dict[str, Any]:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        parts = dict(
            part.split("=", 1) for part in (signature_header or "").split(",") if "=" in part
        )
        timestamp, signature = parts.get("t"), parts.get("v1")
        if not timestamp or not signature:
            raise WebhookSignatureError("missing timestamp or signature")
        if abs(time.time() - int(timestamp)) > SIGNATURE_TOLERANCE_SECONDS:
            raise WebhookSignatureError("timestamp outside the tolerance zone")
        expected = self.sign_payload(body, int(timestamp)).split("v1=", 1)[1]
        if not hmac.compare_digest(expected, signature):
            raise WebhookSignatureError("no signatures found matching the expected signature")
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise WebhookSignatureError(f"invalid payload: {e}") from e

    @staticmethod
    def _to_account(account: _Account) -> GatewayAccount:
        return GatewayAccount(
            ref=account.ref,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            details_submitted=account.details_submitted,
        )
