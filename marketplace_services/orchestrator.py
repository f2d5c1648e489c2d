"""
marketplace_services.orchestrator -- Central DI container for kernel services.

Responsibility:
    Creates every kernel engine exactly once and wires them to one Ledger
    Store, one PaymentGateway, one Clock and one SettlementPolicy.  No
    engine constructs another internally.

Architecture position:
    Services -- wiring over marketplace_kernel and marketplace_config.
    This is the only place that turns a ``SettlementConfig`` into live
    objects (gateway adapter, engine, policy).

Failure modes:
    - ValueError when the configured gateway provider is unknown, or when
      the Stripe adapter cannot find its API key.

Usage:
    from marketplace_services.orchestrator import SettlementOrchestrator

    orchestrator = SettlementOrchestrator.from_config(get_active_config())
    orchestrator.contracts.generate_contract(...)
    orchestrator.settlement.execute_payment(...)
"""

from __future__ import annotations

import os

from sqlalchemy.orm import Session, sessionmaker

from marketplace_config.bridges import build_settlement_policy
from marketplace_config.schema import GatewayConfig, SettlementConfig
from marketplace_kernel.db.engine import get_session_factory, init_engine_from_url
from marketplace_kernel.db.store import LedgerStore
from marketplace_kernel.domain.clock import Clock, SystemClock
from marketplace_kernel.domain.policy import SettlementPolicy
from marketplace_kernel.gateway.base import PaymentGateway
from marketplace_kernel.gateway.in_memory import InMemoryPaymentGateway
from marketplace_kernel.gateway.stripe_gateway import StripePaymentGateway
from marketplace_kernel.logging_config import get_logger
from marketplace_kernel.services.contract_workflow import ContractWorkflowEngine
from marketplace_kernel.services.payout_account_service import PayoutAccountService
from marketplace_kernel.services.payout_service import PayoutService
from marketplace_kernel.services.settlement_engine import SettlementEngine
from marketplace_kernel.services.webhook_reconciler import WebhookReconciler

logger = get_logger("services.orchestrator")

DATABASE_URL_ENV_VAR = "DATABASE_URL"


def build_gateway(config: GatewayConfig) -> PaymentGateway:
    """Instantiate the processor adapter named by ``config.provider``."""
    if config.provider == "stripe":
        return StripePaymentGateway(
            api_key_env=config.api_key_env,
            webhook_secret_env=config.webhook_secret_env,
        )
    if config.provider == "in_memory":
        return InMemoryPaymentGateway(
            webhook_secret=os.environ.get(config.webhook_secret_env, "whsec_test"),
            auto_enable_accounts=True,
        )
    raise ValueError(f"Unknown gateway provider: {config.provider!r}")


class SettlementOrchestrator:
    """
    Central factory for kernel engines.

    Guarantees:
        - Single instance of every engine within this orchestrator.
        - All engines share the same store, gateway, clock and policy.
    """

    def __init__(
        self,
        store: LedgerStore,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.policy = policy or SettlementPolicy()

        self.contracts = ContractWorkflowEngine(store, self.clock, self.policy)
        self.settlement = SettlementEngine(store, gateway, self.clock, self.policy)
        self.payouts = PayoutService(store, gateway, self.clock, self.policy)
        self.accounts = PayoutAccountService(store, gateway, self.clock, self.policy)
        self.reconciler = WebhookReconciler(self.settlement, self.payouts, self.accounts)

        logger.info(
            "orchestrator_initialized",
            extra={
                "gateway": gateway.name,
                "platform_fee_percent": str(self.policy.platform_fee_percent),
            },
        )

    @classmethod
    def from_config(
        cls,
        config: SettlementConfig,
        *,
        session_factory: sessionmaker[Session] | None = None,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
    ) -> SettlementOrchestrator:
        """
        Wire engines from configuration.

        Without ``session_factory`` the database URL comes from the config,
        then the ``DATABASE_URL`` environment variable.
        """
        if session_factory is None:
            url = config.database_url or os.environ.get(DATABASE_URL_ENV_VAR)
            if not url:
                raise ValueError(
                    f"No database configured. Set database.url or {DATABASE_URL_ENV_VAR}."
                )
            init_engine_from_url(url)
            session_factory = get_session_factory()

        return cls(
            LedgerStore(session_factory),
            gateway or build_gateway(config.gateway),
            clock=clock,
            policy=build_settlement_policy(config),
        )
