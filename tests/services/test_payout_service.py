"""
Tests for PayoutService.

Covers:
- Standard and instant payouts
- Default amount (whole available balance)
- Validation, minimum payout and insufficient funds
- A rejected payout returns the committed funds; a timeout keeps them committed
- Payout paid / failed notifications
"""

from uuid import uuid4

import pytest

from marketplace_kernel.domain.policy import SettlementPolicy
from marketplace_kernel.exceptions import (
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidInputError,
    PayoutAccountNotConfiguredError,
    PayoutNotFoundError,
    PayoutRejectedError,
    PayoutsNotEnabledError,
)
from marketplace_kernel.models.payout import Payout
from marketplace_kernel.services.payout_service import PayoutService


def _available(settlement, payee_id):
    return settlement.get_athlete_balance(payee_id).available


class TestRequestPayout:

    def test_standard_payout_stays_pending(self, payouts, settlement, make_account, gateway):
        payee_id = make_account(available=8800)

        payout = payouts.request_payout(payee_id, 5000)

        assert payout.status == "pending"
        assert payout.method == "standard"
        assert payout.amount == 5000
        assert payout.gateway_payout_ref is not None
        assert _available(settlement, payee_id) == 3800

        _, call = gateway.calls[-1]
        assert call["idempotency_key"] == f"marketplace:payout.create:{payout.id}"

    def test_instant_payout_is_paid(self, payouts, settlement, make_account):
        payee_id = make_account(available=8800)
        payout = payouts.request_payout(payee_id, 8800, method="instant")
        assert payout.status == "paid"
        assert _available(settlement, payee_id) == 0

    def test_default_amount_is_whole_balance(self, payouts, settlement, make_account):
        payee_id = make_account(available=12345, pending=500)
        payout = payouts.request_payout(payee_id)
        assert payout.amount == 12345
        balance = settlement.get_athlete_balance(payee_id)
        assert (balance.available, balance.pending) == (0, 500)

    def test_exceeding_available_rejected(self, payouts, settlement, make_account, gateway):
        payee_id = make_account(available=1000, pending=50000)

        with pytest.raises(InsufficientFundsError) as exc_info:
            payouts.request_payout(payee_id, 1001)

        assert exc_info.value.requested == 1001
        assert exc_info.value.available == 1000
        assert _available(settlement, payee_id) == 1000
        assert gateway.call_count("create_payout") == 0
        assert payouts.list_payouts(payee_id) == []

    def test_empty_balance_rejected(self, payouts, make_account):
        with pytest.raises(InsufficientFundsError):
            payouts.request_payout(make_account(available=0))

    def test_below_minimum_rejected(self, payouts, make_account):
        with pytest.raises(InvalidInputError, match="minimum payout is 100"):
            payouts.request_payout(make_account(available=5000), 99)

    @pytest.mark.parametrize("amount", [0, -5, 10.5, True])
    def test_invalid_amount(self, payouts, make_account, amount):
        with pytest.raises(InvalidInputError) as exc_info:
            payouts.request_payout(make_account(available=5000), amount)
        assert exc_info.value.field == "amount"

    def test_invalid_method(self, payouts, make_account):
        with pytest.raises(InvalidInputError) as exc_info:
            payouts.request_payout(make_account(available=5000), 1000, method="wire")
        assert exc_info.value.field == "method"

    def test_instant_disabled_by_policy(self, store, gateway, clock, make_account):
        service = PayoutService(
            store, gateway, clock, SettlementPolicy(instant_payouts_enabled=False)
        )
        with pytest.raises(InvalidInputError):
            service.request_payout(make_account(available=5000), 1000, method="instant")

    def test_payee_without_account(self, payouts):
        with pytest.raises(PayoutAccountNotConfiguredError):
            payouts.request_payout(uuid4(), 1000)

    def test_payouts_not_enabled(self, payouts, settlement, make_account):
        payee_id = make_account(payouts_enabled=False, available=5000)
        with pytest.raises(PayoutsNotEnabledError):
            payouts.request_payout(payee_id, 1000)
        assert _available(settlement, payee_id) == 5000

    def test_rejected_payout_returns_funds(self, payouts, settlement, make_account, gateway):
        payee_id = make_account(available=5000)
        gateway.fail_next(
            "create_payout",
            PayoutRejectedError("Insufficient funds", failure_code="balance_insufficient"),
        )

        with pytest.raises(PayoutRejectedError):
            payouts.request_payout(payee_id, 3000)

        assert _available(settlement, payee_id) == 5000
        [payout] = payouts.list_payouts(payee_id)
        assert payout.status == "failed"
        assert payout.failure_reason.startswith("Payout rejected")

    def test_timeout_keeps_funds_committed(self, payouts, settlement, make_account, gateway):
        payee_id = make_account(available=5000)
        gateway.fail_next("create_payout")

        with pytest.raises(GatewayUnavailableError):
            payouts.request_payout(payee_id, 3000)

        assert _available(settlement, payee_id) == 2000
        [payout] = payouts.list_payouts(payee_id)
        assert payout.status == "pending"
        assert payout.gateway_payout_ref is None
        assert payout.failure_reason is None

    def test_sequential_payouts_never_overdraw(self, payouts, settlement, make_account):
        payee_id = make_account(available=5000)
        payouts.request_payout(payee_id, 3000)
        with pytest.raises(InsufficientFundsError):
            payouts.request_payout(payee_id, 3000)
        payouts.request_payout(payee_id, 2000)
        assert _available(settlement, payee_id) == 0


class TestPayoutNotifications:

    def _apply(self, store, fn, payout_id, *args):
        with store.unit_of_work() as uow:
            return fn(uow, uow.get(Payout, payout_id), *args)

    def test_paid(self, payouts, store, make_account):
        payout = payouts.request_payout(make_account(available=5000), 5000)

        assert self._apply(store, payouts.apply_payout_paid, payout.id) is True
        assert payouts.get_payout(payout.id).status == "paid"
        assert self._apply(store, payouts.apply_payout_paid, payout.id) is False

    def test_failed_returns_funds_once(self, payouts, settlement, store, make_account):
        payee_id = make_account(available=5000)
        payout = payouts.request_payout(payee_id, 4000)

        assert self._apply(store, payouts.apply_payout_failed, payout.id, "account_closed")
        assert self._apply(store, payouts.apply_payout_failed, payout.id, "account_closed") is False

        info = payouts.get_payout(payout.id)
        assert info.status == "failed"
        assert info.failure_reason == "account_closed"
        assert _available(settlement, payee_id) == 5000

    def test_paid_payout_can_bounce(self, payouts, settlement, store, make_account):
        payee_id = make_account(available=5000)
        payout = payouts.request_payout(payee_id, 5000, method="instant")

        assert self._apply(store, payouts.apply_payout_failed, payout.id, "bank return")
        assert _available(settlement, payee_id) == 5000

    def test_failed_payout_is_not_marked_paid(self, payouts, store, make_account):
        payout = payouts.request_payout(make_account(available=5000), 5000)
        self._apply(store, payouts.apply_payout_failed, payout.id, "bank return")
        assert self._apply(store, payouts.apply_payout_paid, payout.id) is False
        assert payouts.get_payout(payout.id).status == "failed"


class TestQueries:

    def test_get_unknown_payout(self, payouts):
        with pytest.raises(PayoutNotFoundError):
            payouts.get_payout(uuid4())

    def test_list_payouts(self, payouts, make_account):
        payee_id = make_account(available=5000)
        first = payouts.request_payout(payee_id, 1000)
        second = payouts.request_payout(payee_id, 2000, method="instant")
        assert {p.id for p in payouts.list_payouts(payee_id)} == {first.id, second.id}
        assert payouts.list_payouts(uuid4()) == []
