"""Read-only query selectors."""

from marketplace_kernel.selectors.balance_selector import BalanceSelector
from marketplace_kernel.selectors.contract_selector import ContractSelector

__all__ = ["BalanceSelector", "ContractSelector"]
