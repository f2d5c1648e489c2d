"""
Config -> Kernel Bridges.

Functions that convert a ``SettlementConfig`` into kernel-compatible inputs.
These live in marketplace_config (the producer) because the kernel must
NEVER import marketplace_config.

Usage:
    from marketplace_config.bridges import build_settlement_policy

    config = get_active_config()
    policy = build_settlement_policy(config)
"""

from __future__ import annotations

from marketplace_config.schema import SettlementConfig
from marketplace_kernel.domain.policy import SettlementPolicy


def build_settlement_policy(config: SettlementConfig) -> SettlementPolicy:
    """Project the engine-facing switches out of a SettlementConfig."""
    return SettlementPolicy(
        platform_fee_percent=config.platform_fee_percent,
        default_currency=config.default_currency,
        supported_currencies=config.supported_currencies,
        settlement_hold_days=config.settlement_hold_days,
        minimum_payout=config.minimum_payout,
        instant_payouts_enabled=config.instant_payouts_enabled,
        cancel_on_optional_party_decline=config.cancel_on_optional_party_decline,
    )
