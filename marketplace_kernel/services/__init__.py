"""Services for the marketplace kernel (write side)."""

from marketplace_kernel.services.contract_workflow import ContractWorkflowEngine
from marketplace_kernel.services.payout_account_service import PayoutAccountService
from marketplace_kernel.services.payout_service import PayoutService
from marketplace_kernel.services.settlement_engine import SettlementEngine
from marketplace_kernel.services.webhook_reconciler import (
    ReconcileOutcome,
    ReconcileResult,
    WebhookReconciler,
)

__all__ = [
    "ContractWorkflowEngine",
    "PayoutAccountService",
    "PayoutService",
    "ReconcileOutcome",
    "ReconcileResult",
    "SettlementEngine",
    "WebhookReconciler",
]
