"""Tests for PayoutAccountService onboarding and capability updates."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from marketplace_kernel.exceptions import (
    GatewayUnavailableError,
    InvalidInputError,
    PayoutAccountNotFoundError,
)
from marketplace_kernel.gateway.in_memory import InMemoryPaymentGateway
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount
from marketplace_kernel.services.payout_account_service import PayoutAccountService


class TestOnboarding:

    def test_creates_processor_and_local_account(self, accounts, gateway):
        payee_id = uuid4()
        info = accounts.onboard_payee(payee_id, email="jordan@example.com")

        assert info.payee_id == payee_id
        assert info.external_account_ref in gateway.accounts
        assert info.charges_enabled and info.payouts_enabled
        assert (info.available_balance, info.pending_balance) == (0, 0)
        assert info.currency == "usd"
        assert gateway.call_count("create_connected_account") == 1

    def test_is_idempotent_per_payee(self, accounts, gateway):
        payee_id = uuid4()
        first = accounts.onboard_payee(payee_id)
        second = accounts.onboard_payee(payee_id)

        assert first.id == second.id
        assert gateway.call_count("create_connected_account") == 1

    def test_new_account_awaits_processor_verification(self, store, clock, policy):
        service = PayoutAccountService(store, InMemoryPaymentGateway(), clock, policy)
        info = service.onboard_payee(uuid4())
        assert not info.charges_enabled
        assert not info.payouts_enabled

    @pytest.mark.parametrize("country", ["", "USA", "u"])
    def test_invalid_country(self, accounts, country):
        with pytest.raises(InvalidInputError):
            accounts.onboard_payee(uuid4(), country=country)

    def test_gateway_outage_writes_nothing(self, accounts, gateway, store):
        payee_id = uuid4()
        gateway.fail_next("create_connected_account")
        with pytest.raises(GatewayUnavailableError):
            accounts.onboard_payee(payee_id)
        with store.unit_of_work() as uow:
            assert uow.find_one(ConnectedPayoutAccount, payee_id=payee_id) is None

    def test_lost_race_returns_winner(self, accounts, gateway, make_account, captured_logs):
        payee_id = uuid4()
        real_create = gateway.create_connected_account

        def create_while_racing(**kwargs):
            # A concurrent onboarding commits while this one talks to the processor
            make_account(payee_id)
            return real_create(**kwargs)

        with patch.object(gateway, "create_connected_account", side_effect=create_while_racing):
            info = accounts.onboard_payee(payee_id)

        assert info.payee_id == payee_id
        assert any(r["message"] == "connected_account_orphaned" for r in captured_logs())


class TestUpdates:

    def test_update_email(self, accounts, gateway):
        payee_id = uuid4()
        accounts.onboard_payee(payee_id, email="old@example.com")

        info = accounts.update_payout_account(payee_id, email="new@example.com")

        assert gateway.accounts[info.external_account_ref].email == "new@example.com"
        assert gateway.call_count("update_connected_account") == 1

    def test_update_requires_fields(self, accounts):
        with pytest.raises(InvalidInputError):
            accounts.update_payout_account(uuid4())

    def test_update_unknown_payee(self, accounts):
        with pytest.raises(PayoutAccountNotFoundError):
            accounts.update_payout_account(uuid4(), email="x@example.com")

    def test_apply_capabilities(self, accounts, store, make_account):
        payee_id = make_account(charges_enabled=False, payouts_enabled=False)
        ref = accounts.get_payout_account(payee_id).external_account_ref

        with store.unit_of_work() as uow:
            changed = accounts.apply_capabilities(
                uow, ref, {"charges_enabled": True, "payouts_enabled": True, "email": "ignored"}
            )
        assert changed is True
        info = accounts.get_payout_account(payee_id)
        assert info.charges_enabled and info.payouts_enabled

        with store.unit_of_work() as uow:
            assert accounts.apply_capabilities(uow, ref, {"charges_enabled": True}) is False

    def test_older_snapshot_does_not_revert(self, accounts, store, make_account):
        payee_id = make_account(charges_enabled=False, payouts_enabled=False)
        ref = accounts.get_payout_account(payee_id).external_account_ref
        newer = datetime(2024, 3, 13, 14, 0, tzinfo=timezone.utc)
        older = newer - timedelta(hours=1)

        with store.unit_of_work() as uow:
            enabled = {"charges_enabled": True, "payouts_enabled": True}
            assert accounts.apply_capabilities(uow, ref, enabled, as_of=newer) is True
        with store.unit_of_work() as uow:
            disabled = {"charges_enabled": False, "payouts_enabled": False}
            assert accounts.apply_capabilities(uow, ref, disabled, as_of=older) is False

        info = accounts.get_payout_account(payee_id)
        assert info.charges_enabled and info.payouts_enabled
        with store.unit_of_work() as uow:
            account = uow.find_one(ConnectedPayoutAccount, external_account_ref=ref)
            assert account.capabilities_as_of == newer

    def test_unchanged_snapshot_still_advances_its_time(self, accounts, store, make_account):
        payee_id = make_account()
        ref = accounts.get_payout_account(payee_id).external_account_ref
        newer = datetime(2024, 3, 13, 14, 0, tzinfo=timezone.utc)

        with store.unit_of_work() as uow:
            assert accounts.apply_capabilities(
                uow, ref, {"payouts_enabled": True}, as_of=newer
            ) is False
        with store.unit_of_work() as uow:
            accounts.apply_capabilities(
                uow, ref, {"payouts_enabled": False}, as_of=newer - timedelta(minutes=5)
            )

        assert accounts.get_payout_account(payee_id).payouts_enabled

    def test_live_read_stamps_snapshot_time(self, accounts, store, clock):
        payee_id = uuid4()
        ref = accounts.onboard_payee(payee_id).external_account_ref
        clock.advance(7200)
        accounts.update_payout_account(payee_id, email="new@example.com")

        with store.unit_of_work() as uow:
            account = uow.find_one(ConnectedPayoutAccount, external_account_ref=ref)
            assert account.capabilities_as_of == clock.now_utc()

    def test_apply_capabilities_unknown_account(self, accounts, store):
        with pytest.raises(PayoutAccountNotFoundError):
            with store.unit_of_work() as uow:
                accounts.apply_capabilities(uow, "acct_missing", {"charges_enabled": True})

    def test_get_unknown_account(self, accounts):
        with pytest.raises(PayoutAccountNotFoundError):
            accounts.get_payout_account(uuid4())
