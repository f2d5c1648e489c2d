"""
Module: marketplace_kernel.models.payout_account
Responsibility: ORM persistence for a payee's connected payout account and
    its locally tracked balances.
Architecture position: Kernel > Models.

Invariants enforced:
    - One account per payee (uq_payout_account_payee) and per external
      account (uq_payout_account_external).
    - Balances are non-negative integers (ck_payout_account_balances).  They
      only change through LedgerSession.increment (relative SQL updates).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase


class ConnectedPayoutAccount(TrackedBase):
    """
    Payee account at the payment processor.

    Guarantees:
        - pending_balance holds succeeded-but-unsettled net amounts.
        - available_balance holds funds the payee may withdraw.
    """

    __tablename__ = "connected_payout_accounts"

    __table_args__ = (
        UniqueConstraint("payee_id", name="uq_payout_account_payee"),
        UniqueConstraint("external_account_ref", name="uq_payout_account_external"),
        CheckConstraint(
            "available_balance >= 0 AND pending_balance >= 0",
            name="ck_payout_account_balances",
        ),
    )

    payee_id: Mapped[UUID] = mapped_column(nullable=False)

    # acct_... at the processor
    external_account_ref: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    country: Mapped[str] = mapped_column(String(2), nullable=False, default="US")

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    charges_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payouts_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    details_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Processor time of the capability snapshot last applied
    capabilities_as_of: Mapped[datetime | None] = mapped_column(nullable=True)

    available_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    pending_balance: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<ConnectedPayoutAccount {self.external_account_ref}: "
            f"available={self.available_balance} pending={self.pending_balance}>"
        )
