"""
Module: marketplace_kernel.models.deal
Responsibility: ORM persistence for deals -- the paid engagement between a
    brand (payer) and an athlete (payee) that contracts and payments attach to.
Architecture position: Kernel > Models.  Deal CRUD is owned by an external
    collaborator; the kernel only reads deals and writes ``status = paid``.

Invariants enforced:
    - amount is a non-negative integer in minor units.
    - accepted -> paid happens only through the Settlement Engine's
      conditional transition, in the same unit of work that marks the
      Payment succeeded.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase
from marketplace_kernel.domain.statuses import DealStatus


class Deal(TrackedBase):
    """
    Paid promotional engagement between a payer and a payee.

    Non-goals:
        - Negotiation, acceptance and expiry are driven outside the kernel.
    """

    __tablename__ = "deals"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_deal_amount_non_negative"),
        Index("idx_deal_payer", "payer_id"),
        Index("idx_deal_payee", "payee_id"),
        Index("idx_deal_status", "status"),
    )

    # Brand paying for the engagement
    payer_id: Mapped[UUID] = mapped_column(nullable=False)

    # Athlete receiving the payment
    payee_id: Mapped[UUID] = mapped_column(nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DealStatus.PENDING.value,
    )

    @property
    def is_payable(self) -> bool:
        return self.status == DealStatus.ACCEPTED.value

    def __repr__(self) -> str:
        return f"<Deal {self.id}: {self.amount} {self.currency} ({self.status})>"
