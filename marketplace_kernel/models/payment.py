"""
Module: marketplace_kernel.models.payment
Responsibility: ORM persistence for deal payments (payer -> payee charges
    split with a platform fee).
Architecture position: Kernel > Models.

Invariants enforced:
    - platform_fee + net_amount == gross_amount (ck_payment_split_balances).
    - At most one non-failed Payment per deal (uq_payment_active_deal, a
      partial unique index).  A failed payment does not block a retry.
    - gateway_intent_ref is unique once assigned; the reconciler locates
      payments by it.
    - settled_at is set once, when the net moves from pending to available.

Failure modes:
    - IntegrityError on a second in-flight payment for the same deal.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase
from marketplace_kernel.domain.statuses import PaymentStatus

_ACTIVE_PAYMENT = text("status <> 'failed'")


class Payment(TrackedBase):
    """A single charge for a deal."""

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint(
            "platform_fee + net_amount = gross_amount",
            name="ck_payment_split_balances",
        ),
        CheckConstraint(
            "platform_fee >= 0 AND net_amount >= 0",
            name="ck_payment_amounts_non_negative",
        ),
        Index(
            "uq_payment_active_deal",
            "deal_id",
            unique=True,
            postgresql_where=_ACTIVE_PAYMENT,
            sqlite_where=_ACTIVE_PAYMENT,
        ),
        Index("idx_payment_payee_status", "payee_id", "status"),
    )

    deal_id: Mapped[UUID] = mapped_column(
        ForeignKey("deals.id"),
        nullable=False,
    )

    payer_id: Mapped[UUID] = mapped_column(nullable=False)

    payee_id: Mapped[UUID] = mapped_column(nullable=False)

    gross_amount: Mapped[int] = mapped_column(nullable=False)

    platform_fee: Mapped[int] = mapped_column(nullable=False)

    net_amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    payment_method_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    gateway_intent_ref: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
    )

    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    succeeded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    failed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    refunded_at: Mapped[datetime | None] = mapped_column(nullable=True)

    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.id}: deal={self.deal_id} {self.gross_amount} ({self.status})>"
