"""Payment processor adapters."""

from marketplace_kernel.gateway.base import (
    GatewayAccount,
    GatewayBalance,
    GatewayConfirmation,
    GatewayIntent,
    GatewayPayout,
    PaymentGateway,
)
from marketplace_kernel.gateway.in_memory import InMemoryPaymentGateway

__all__ = [
    "GatewayAccount",
    "GatewayBalance",
    "GatewayConfirmation",
    "GatewayIntent",
    "GatewayPayout",
    "InMemoryPaymentGateway",
    "PaymentGateway",
]
