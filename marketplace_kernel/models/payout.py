"""
Module: marketplace_kernel.models.payout
Responsibility: ORM persistence for withdrawals from a payee's available
    balance to their bank account or card.
Architecture position: Kernel > Models.

Invariants enforced:
    - amount > 0 (ck_payout_amount_positive).
    - The amount left available_balance when the payout was requested; a
      failed payout returns it exactly once (conditional transition).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase
from marketplace_kernel.domain.statuses import PayoutMethod, PayoutStatus


class Payout(TrackedBase):
    """A single withdrawal."""

    __tablename__ = "payouts"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payout_amount_positive"),
        Index("idx_payout_payee", "payee_id"),
    )

    payee_id: Mapped[UUID] = mapped_column(nullable=False)

    payout_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("connected_payout_accounts.id"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutMethod.STANDARD.value,
    )

    # po_... at the processor
    gateway_payout_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PayoutStatus.PENDING.value,
    )

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    arrival_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    failed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payout {self.id}: {self.amount} {self.method} ({self.status})>"
