"""
Module: marketplace_kernel.models.earnings
Responsibility: Monthly earnings aggregates per payee.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (payee, year, month) (uq_earnings_payee_period).
    - Only incremented, by successful payments, via relative updates.  Never
      decremented (refunds leave history intact).
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase


class EarningsRecord(TrackedBase):
    """Cumulative earnings for one payee in one calendar month."""

    __tablename__ = "earnings_records"

    __table_args__ = (
        UniqueConstraint("payee_id", "year", "month", name="uq_earnings_payee_period"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_earnings_month_range"),
    )

    payee_id: Mapped[UUID] = mapped_column(nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    gross_earnings: Mapped[int] = mapped_column(nullable=False, default=0)

    platform_fees: Mapped[int] = mapped_column(nullable=False, default=0)

    net_earnings: Mapped[int] = mapped_column(nullable=False, default=0)

    deals_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<EarningsRecord {self.payee_id} {self.year}-{self.month:02d}: {self.net_earnings}>"
