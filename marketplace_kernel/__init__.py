"""
Marketplace Kernel - Contract Signature & Payment Settlement Engine

The coordination core of the athlete/brand deal marketplace:
- Multi-party contract signature workflow with derived status
- Payment execution with platform fee split (ceiling rounding)
- Pending vs. available payee balances and payout issuance
- Idempotent reconciliation of asynchronous gateway notifications
- Conditional (compare-and-set) writes for every state transition
"""

__version__ = "0.1.0"
