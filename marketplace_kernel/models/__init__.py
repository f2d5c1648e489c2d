"""Domain models for the marketplace kernel."""

from marketplace_kernel.models.contract import Contract, ContractSignature
from marketplace_kernel.models.deal import Deal
from marketplace_kernel.models.earnings import EarningsRecord
from marketplace_kernel.models.gateway_event import GatewayEventRecord
from marketplace_kernel.models.payment import Payment
from marketplace_kernel.models.payout import Payout
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount

__all__ = [
    "ConnectedPayoutAccount",
    "Contract",
    "ContractSignature",
    "Deal",
    "EarningsRecord",
    "GatewayEventRecord",
    "Payment",
    "Payout",
]
