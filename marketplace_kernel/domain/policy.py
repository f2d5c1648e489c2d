"""
SettlementPolicy -- the configuration values the engines act on.

The kernel never imports the configuration package; the wiring layer builds
a SettlementPolicy from the active configuration (see
``marketplace_config.bridges``) and injects it.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class SettlementPolicy:
    platform_fee_percent: Decimal = Decimal("12.00")
    default_currency: str = "usd"
    supported_currencies: tuple[str, ...] = ("usd",)
    settlement_hold_days: int = 2
    minimum_payout: int = 100
    instant_payouts_enabled: bool = True
    cancel_on_optional_party_decline: bool = False
