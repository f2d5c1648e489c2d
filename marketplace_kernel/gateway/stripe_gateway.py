"""Stripe Connect implementation of the payment gateway."""

import os
from datetime import datetime, timezone
from typing import Any

import stripe

from marketplace_kernel.exceptions import (
    GatewayDeclinedError,
    GatewayUnavailableError,
    PayoutRejectedError,
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
from marketplace_kernel.logging_config import get_logger

logger = get_logger("gateway.stripe")


class StripePaymentGateway(PaymentGateway):
    """
    Stripe Connect destination-charge gateway.

    Charges are created on the platform account with
    ``transfer_data.destination`` set to the payee's connected account and an
    ``application_fee_amount`` equal to the platform fee.  Payouts and
    balances are read on the connected account via ``stripe_account``.

    Environment variables (names configurable):
        STRIPE_API_KEY: Secret API key (sk_test_... or sk_live_...)
        STRIPE_WEBHOOK_SECRET: Signing secret for webhook endpoints
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        *,
        api_key_env: str = "STRIPE_API_KEY",
        webhook_secret_env: str = "STRIPE_WEBHOOK_SECRET",
    ) -> None:
        self._api_key = api_key or os.environ.get(api_key_env)
        if not self._api_key:
            raise ValueError(f"Stripe API key required. Set {api_key_env} or pass api_key.")

        self._webhook_secret = webhook_secret or os.environ.get(webhook_secret_env)
        self._is_test_mode = self._api_key.startswith("sk_test_")

        self._stripe = stripe
        self._stripe.api_key = self._api_key

    @property
    def name(self) -> str:
        return "stripe"

    def _unavailable(self, operation: str, exc: Exception) -> GatewayUnavailableError:
        logger.warning(
            "stripe_call_failed",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "test_mode": self._is_test_mode,
            },
        )
        return GatewayUnavailableError(operation, getattr(exc, "user_message", None) or str(exc))

    @staticmethod
    def _to_account(account: Any) -> GatewayAccount:
        return GatewayAccount(
            ref=account["id"],
            charges_enabled=bool(account.get("charges_enabled")),
            payouts_enabled=bool(account.get("payouts_enabled")),
            details_submitted=bool(account.get("details_submitted")),
        )

    @staticmethod
    def _sum_for_currency(entries: Any, currency: str) -> int:
        return sum(
            int(entry["amount"]) for entry in entries or [] if entry.get("currency") == currency
        )

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
        try:
            intent = self._stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                payment_method=payment_method_ref,
                application_fee_amount=application_fee,
                transfer_data={"destination": destination_account_ref},
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as e:
            raise GatewayDeclinedError(e.user_message or str(e), failure_code=e.code) from e
        except stripe.StripeError as e:
            raise self._unavailable("create_payment_intent", e) from e

        return GatewayIntent(
            ref=intent["id"],
            status=intent["status"],
            amount=intent["amount"],
            currency=intent["currency"],
            client_secret=intent.get("client_secret"),
        )

    def confirm_payment_intent(
        self, intent_ref: str, *, idempotency_key: str | None = None
    ) -> GatewayConfirmation:
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        try:
            intent = self._stripe.PaymentIntent.confirm(intent_ref, **options)
        except stripe.CardError as e:
            raise GatewayDeclinedError(e.user_message or str(e), failure_code=e.code) from e
        except stripe.StripeError as e:
            # Connection errors and timeouts land here: outcome unknown
            raise self._unavailable("confirm_payment_intent", e) from e

        if intent["status"] == "requires_payment_method":
            last_error = intent.get("last_payment_error") or {}
            raise GatewayDeclinedError(
                last_error.get("message", "payment method was declined"),
                failure_code=last_error.get("code"),
            )

        return GatewayConfirmation(ref=intent["id"], status=intent["status"])

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
        try:
            payout = self._stripe.Payout.create(
                amount=amount,
                currency=currency,
                method=method,
                metadata=metadata or {},
                stripe_account=account_ref,
                idempotency_key=idempotency_key,
            )
        except stripe.InvalidRequestError as e:
            # 4xx: the processor validated and refused the request
            raise PayoutRejectedError(e.user_message or str(e), failure_code=e.code) from e
        except stripe.StripeError as e:
            raise self._unavailable("create_payout", e) from e

        arrival = payout.get("arrival_date")
        return GatewayPayout(
            ref=payout["id"],
            status=payout["status"],
            amount=payout["amount"],
            arrival_date=(
                datetime.fromtimestamp(arrival, tz=timezone.utc).date() if arrival else None
            ),
        )

    def get_account_balance(self, account_ref: str, currency: str) -> GatewayBalance:
        try:
            balance = self._stripe.Balance.retrieve(stripe_account=account_ref)
        except stripe.StripeError as e:
            raise self._unavailable("get_account_balance", e) from e

        return GatewayBalance(
            available=self._sum_for_currency(balance.get("available"), currency),
            pending=self._sum_for_currency(balance.get("pending"), currency),
            currency=currency,
        )

    def create_connected_account(
        self,
        *,
        email: str | None,
        country: str,
        metadata: dict[str, str] | None = None,
    ) -> GatewayAccount:
        try:
            account = self._stripe.Account.create(
                type="express",
                country=country,
                email=email,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            raise self._unavailable("create_connected_account", e) from e
        return self._to_account(account)

    def update_connected_account(self, account_ref: str, **fields: Any) -> GatewayAccount:
        try:
            account = self._stripe.Account.modify(account_ref, **fields)
        except stripe.StripeError as e:
            raise self._unavailable("update_connected_account", e) from e
        return self._to_account(account)

    def construct_event(self, payload: bytes | str, signature_header: str) -> dict[str, Any]:
        if not self._webhook_secret:
            raise WebhookSignatureError("webhook secret not configured")
        try:
            event = self._stripe.Webhook.construct_event(
                payload, signature_header, self._webhook_secret
            )
        except ValueError as e:
            raise WebhookSignatureError(f"invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        return event.to_dict()
