"""
marketplace_services -- Package init and public API.

Responsibility:
    Wiring and the caller-facing operation surface.  Builds the kernel
    engines from configuration (SettlementOrchestrator) and wraps them so
    every operation returns a ServiceResult (MarketplaceAPI).

Architecture position:
    Services -- outermost layer.
        marketplace_services/ -> marketplace_kernel/, marketplace_config/  (allowed)
        marketplace_kernel/   -> marketplace_services/                     (FORBIDDEN)
"""

from marketplace_services.api import MarketplaceAPI, ServiceError, ServiceResult
from marketplace_services.orchestrator import SettlementOrchestrator, build_gateway

__all__ = [
    "MarketplaceAPI",
    "ServiceError",
    "ServiceResult",
    "SettlementOrchestrator",
    "build_gateway",
]
