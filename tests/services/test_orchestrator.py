"""Tests for SettlementOrchestrator wiring and gateway selection."""

from decimal import Decimal

import pytest

from marketplace_config.loader import parse_settlement_config
from marketplace_config.schema import GatewayConfig
from marketplace_kernel.db.engine import get_session_factory
from marketplace_kernel.gateway.in_memory import InMemoryPaymentGateway
from marketplace_kernel.gateway.stripe_gateway import StripePaymentGateway
from marketplace_services.orchestrator import (
    DATABASE_URL_ENV_VAR,
    SettlementOrchestrator,
    build_gateway,
)


class TestBuildGateway:

    def test_in_memory(self, monkeypatch):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_local")
        gateway = build_gateway(GatewayConfig(provider="in_memory"))
        assert isinstance(gateway, InMemoryPaymentGateway)
        assert gateway.webhook_secret == "whsec_local"

    def test_stripe_reads_key_from_named_variable(self, monkeypatch):
        monkeypatch.setenv("MY_STRIPE_KEY", "sk_test_123")
        gateway = build_gateway(GatewayConfig(provider="stripe", api_key_env="MY_STRIPE_KEY"))
        assert isinstance(gateway, StripePaymentGateway)
        assert gateway.name == "stripe"

    def test_stripe_without_key(self, monkeypatch):
        monkeypatch.delenv("STRIPE_API_KEY", raising=False)
        with pytest.raises(ValueError, match="STRIPE_API_KEY"):
            build_gateway(GatewayConfig(provider="stripe"))

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown gateway provider"):
            build_gateway(GatewayConfig(provider="paypal"))


class TestOrchestrator:

    def test_engines_share_dependencies(self, orchestrator):
        assert orchestrator.settlement.store is orchestrator.store
        assert orchestrator.payouts.gateway is orchestrator.gateway
        assert orchestrator.contracts.clock is orchestrator.clock
        assert orchestrator.reconciler.settlement is orchestrator.settlement
        assert orchestrator.reconciler.payouts is orchestrator.payouts

    def test_from_config_applies_policy(self, db_tables, gateway, clock):
        config = parse_settlement_config(
            {
                "settlement": {"platform_fee_percent": "15", "minimum_payout": 500},
                "gateway": {"provider": "in_memory"},
            }
        )
        orchestrator = SettlementOrchestrator.from_config(
            config, session_factory=get_session_factory(), gateway=gateway, clock=clock
        )
        assert orchestrator.policy.platform_fee_percent == Decimal("15")
        assert orchestrator.payouts.policy.minimum_payout == 500
        assert orchestrator.gateway is gateway

    def test_from_config_requires_database(self, monkeypatch):
        monkeypatch.delenv(DATABASE_URL_ENV_VAR, raising=False)
        config = parse_settlement_config({"gateway": {"provider": "in_memory"}})
        with pytest.raises(ValueError, match="No database configured"):
            SettlementOrchestrator.from_config(config)
