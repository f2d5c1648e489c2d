"""
Settlement configuration schema.

Frozen dataclasses parsed from YAML by ``marketplace_config.loader``.  The
kernel receives a ``SettlementConfig`` by injection and never reads files or
environment variables itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GatewayConfig:
    """Which processor adapter to wire, and where its secrets live."""

    provider: str = "stripe"  # stripe | in_memory
    api_key_env: str = "STRIPE_API_KEY"
    webhook_secret_env: str = "STRIPE_WEBHOOK_SECRET"


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    """Money movement and contract policy switches."""

    config_id: str = "default"
    version: int = 1
    platform_fee_percent: Decimal = Decimal("12.00")
    default_currency: str = "usd"
    supported_currencies: tuple[str, ...] = ("usd",)
    # Days a succeeded payment's net stays pending before it is released
    settlement_hold_days: int = 2
    # Smallest payout accepted, minor units
    minimum_payout: int = 100
    instant_payouts_enabled: bool = True
    # Whether a guardian or witness decline cancels the contract
    cancel_on_optional_party_decline: bool = False
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    database_url: str | None = None
    checksum: str = ""
