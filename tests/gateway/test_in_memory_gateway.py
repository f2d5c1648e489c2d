"""Tests for the in-memory processor fake used across the suite."""

import json
import time

import pytest

from marketplace_kernel.exceptions import (
    GatewayDeclinedError,
    GatewayUnavailableError,
    WebhookSignatureError,
)
from marketplace_kernel.gateway.in_memory import InMemoryPaymentGateway


@pytest.fixture
def fake():
    return InMemoryPaymentGateway(webhook_secret="whsec_unit")


def _intent(fake, key="k1", pm="pm_card_visa", destination="acct_x"):
    return fake.create_payment_intent(
        amount=10000,
        currency="usd",
        destination_account_ref=destination,
        application_fee=1200,
        payment_method_ref=pm,
        idempotency_key=key,
    )


class TestIntents:

    def test_idempotency_key_returns_same_intent(self, fake):
        assert _intent(fake).ref == _intent(fake).ref
        assert _intent(fake, key="k2").ref != _intent(fake).ref

    def test_confirm_credits_destination_pending(self, fake):
        ref = fake.add_account()
        intent = _intent(fake, destination=ref)

        confirmation = fake.confirm_payment_intent(intent.ref)

        assert confirmation.succeeded
        assert fake.get_account_balance(ref, "usd").pending == 8800

    def test_confirm_twice_credits_once(self, fake):
        ref = fake.add_account()
        intent = _intent(fake, destination=ref)
        fake.confirm_payment_intent(intent.ref)
        fake.confirm_payment_intent(intent.ref)
        assert fake.get_account_balance(ref, "usd").pending == 8800

    @pytest.mark.parametrize(
        "pm", ["pm_card_chargeDeclined", "pm_card_visa_chargeDeclined", "pm_card_insufficientFunds"]
    )
    def test_declining_methods(self, fake, pm):
        intent = _intent(fake, pm=pm)
        with pytest.raises(GatewayDeclinedError) as exc_info:
            fake.confirm_payment_intent(intent.ref)
        assert exc_info.value.failure_code == "card_declined"

    def test_scripted_failure_is_consumed(self, fake):
        fake.fail_next("create_payment_intent")
        with pytest.raises(GatewayUnavailableError):
            _intent(fake)
        assert _intent(fake).ref
        assert fake.call_count("create_payment_intent") == 2


class TestPayouts:

    def test_instant_paid_standard_pending(self, fake):
        instant = fake.create_payout(
            account_ref="acct_x", amount=100, currency="usd", method="instant", idempotency_key="a"
        )
        standard = fake.create_payout(
            account_ref="acct_x", amount=100, currency="usd", method="standard", idempotency_key="b"
        )
        assert instant.status == "paid"
        assert standard.status == "pending"


class TestAccounts:

    def test_new_accounts_start_restricted(self, fake):
        account = fake.create_connected_account(email=None, country="US")
        assert not account.charges_enabled and not account.payouts_enabled

    def test_auto_enable(self):
        fake = InMemoryPaymentGateway(auto_enable_accounts=True)
        account = fake.create_connected_account(email=None, country="US")
        assert account.charges_enabled and account.payouts_enabled

    def test_unknown_account_balance(self, fake):
        with pytest.raises(GatewayUnavailableError):
            fake.get_account_balance("acct_missing", "usd")


class TestWebhookSignatures:

    def test_round_trip(self, fake):
        payload = json.dumps({"id": "evt_1", "type": "payout.paid"})
        event = fake.construct_event(payload, fake.sign_payload(payload))
        assert event["id"] == "evt_1"

    def test_bytes_payload(self, fake):
        payload = json.dumps({"id": "evt_1"})
        assert fake.construct_event(payload.encode(), fake.sign_payload(payload))["id"] == "evt_1"

    def test_wrong_secret(self, fake):
        payload = json.dumps({"id": "evt_1"})
        header = InMemoryPaymentGateway(webhook_secret="whsec_other").sign_payload(payload)
        with pytest.raises(WebhookSignatureError, match="expected signature"):
            fake.construct_event(payload, header)

    def test_future_timestamp(self, fake):
        payload = json.dumps({"id": "evt_1"})
        header = fake.sign_payload(payload, timestamp=int(time.time()) + 3600)
        with pytest.raises(WebhookSignatureError):
            fake.construct_event(payload, header)

    def test_signed_garbage(self, fake):
        with pytest.raises(WebhookSignatureError, match="invalid payload"):
            fake.construct_event("not json", fake.sign_payload("not json"))
