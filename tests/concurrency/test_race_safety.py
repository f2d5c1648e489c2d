"""
Threaded race tests.

Real concurrent transactions against PostgreSQL: row locks, conditional
updates and unique indexes must keep every invariant when callers collide.

Run with: DATABASE_URL=postgresql://... pytest tests/concurrency/test_race_safety.py -v
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from marketplace_kernel.exceptions import (
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidStatusError,
    PaymentInFlightError,
    SignatureAlreadyProcessedError,
)
from marketplace_kernel.services.webhook_reconciler import ReconcileOutcome

pytestmark = pytest.mark.postgres

WORKERS = 8


def _race(fn, n=WORKERS):
    """Start ``n`` calls of ``fn`` together; return (results, errors)."""
    barrier = Barrier(n)

    def run(i):
        barrier.wait()
        try:
            return fn(i), None
        except Exception as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=n) as pool:
        outcomes = list(pool.map(run, range(n)))
    results = [r for r, e in outcomes if e is None]
    errors = [e for r, e in outcomes if e is not None]
    return results, errors


class TestPaymentRaces:

    def test_one_payment_per_deal(self, settlement, payable_deal):
        deal_id, payee_id = payable_deal()

        results, errors = _race(lambda i: settlement.execute_payment(deal_id, "pm_card_visa"))

        assert len(results) == 1
        assert all(isinstance(e, (PaymentInFlightError, InvalidStatusError)) for e in errors)
        assert settlement.get_athlete_balance(payee_id).pending == 8800
        assert settlement.get_athlete_earnings(payee_id).total_deals == 1

    def test_earnings_upsert_under_contention(self, settlement, payable_deal, make_deal):
        first_deal, payee_id = payable_deal(amount=10000)
        deals = [first_deal] + [
            make_deal(amount=10000, payee_id=payee_id) for _ in range(WORKERS - 1)
        ]

        results, errors = _race(lambda i: settlement.execute_payment(deals[i], "pm_card_visa"))

        assert errors == []
        summary = settlement.get_athlete_earnings(payee_id)
        assert len(summary.records) == 1
        assert summary.total_deals == WORKERS
        assert summary.total_net == 8800 * WORKERS
        assert settlement.get_athlete_balance(payee_id).pending == 8800 * WORKERS

    def test_settlement_runs_release_once(self, settlement, payable_deal, clock):
        deal_id, payee_id = payable_deal()
        settlement.execute_payment(deal_id, "pm_card_visa")
        clock.advance_days(2)

        results, errors = _race(lambda i: settlement.settle_balance(payee_id))

        assert errors == []
        assert sum(r.amount_released for r in results) == 8800
        balance = settlement.get_athlete_balance(payee_id)
        assert (balance.available, balance.pending) == (8800, 0)


class TestPayoutRaces:

    def test_concurrent_payouts_never_overdraw(self, payouts, settlement, make_account):
        payee_id = make_account(available=10000)

        results, errors = _race(lambda i: payouts.request_payout(payee_id, 3000))

        assert len(results) == 3
        assert all(isinstance(e, InsufficientFundsError) for e in errors)
        assert settlement.get_athlete_balance(payee_id).available == 1000


class TestSignatureRaces:

    def test_same_party_signs_once(self, contracts, sent_contract, signature):
        contract_id = sent_contract()

        results, errors = _race(lambda i: contracts.sign(contract_id, "athlete", signature))

        assert len(results) == 1
        assert all(isinstance(e, SignatureAlreadyProcessedError) for e in errors)
        assert contracts.get_contract_status(contract_id).contract_status == "partially_signed"

    def test_both_parties_sign_together(self, contracts, sent_contract, signature):
        contract_id = sent_contract()
        parties = ["athlete", "brand"]

        results, errors = _race(
            lambda i: contracts.sign(contract_id, parties[i], signature), n=2
        )

        assert errors == []
        assert contracts.get_contract_status(contract_id).contract_status == "fully_signed"


class TestWebhookRaces:

    def test_duplicate_deliveries_apply_once(self, settlement, reconciler, payable_deal, gateway):
        deal_id, payee_id = payable_deal()
        gateway.fail_next("confirm_payment_intent")
        with pytest.raises(GatewayUnavailableError):
            settlement.execute_payment(deal_id, "pm_card_visa")
        [payment] = settlement.list_payments(payee_id)
        event = {
            "id": "evt_dup",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": payment.gateway_intent_ref}},
        }

        results, errors = _race(lambda i: reconciler.reconcile(event))

        assert errors == []
        outcomes = [r.outcome for r in results]
        assert outcomes.count(ReconcileOutcome.APPLIED) == 1
        assert settlement.get_athlete_balance(payee_id).pending == 8800


class TestOnboardingRaces:

    def test_one_account_per_payee(self, accounts):
        payee_id = uuid4()

        results, errors = _race(lambda i: accounts.onboard_payee(payee_id))

        assert errors == []
        assert len({r.id for r in results}) == 1
