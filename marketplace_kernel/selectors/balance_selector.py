"""Read queries over payee balances, earnings and payments."""

from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import (
    BalanceInfo,
    EarningsRecordInfo,
    EarningsSummary,
    PaymentInfo,
    PayoutInfo,
)
from marketplace_kernel.models.earnings import EarningsRecord
from marketplace_kernel.models.payment import Payment
from marketplace_kernel.models.payout import Payout
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount
from marketplace_kernel.selectors.base import BaseSelector


class BalanceSelector(BaseSelector):
    """Payee-facing money reads."""

    def get_balance(self, payee_id: UUID) -> BalanceInfo | None:
        account = self._first(
            select(ConnectedPayoutAccount).where(ConnectedPayoutAccount.payee_id == payee_id)
        )
        if account is None:
            return None
        return BalanceInfo(
            payee_id=payee_id,
            available=account.available_balance,
            pending=account.pending_balance,
            currency=account.currency,
        )

    def get_earnings(self, payee_id: UUID, year: int | None = None) -> EarningsSummary:
        """Monthly earnings, newest first, with totals over the returned rows."""
        stmt = select(EarningsRecord).where(EarningsRecord.payee_id == payee_id)
        if year is not None:
            stmt = stmt.where(EarningsRecord.year == year)
        stmt = stmt.order_by(EarningsRecord.year.desc(), EarningsRecord.month.desc())
        records = tuple(
            EarningsRecordInfo.from_model(r)
            for r in self._all(stmt, fresh=True)
        )
        return EarningsSummary(
            payee_id=payee_id,
            records=records,
            total_gross=sum(r.gross_earnings for r in records),
            total_fees=sum(r.platform_fees for r in records),
            total_net=sum(r.net_earnings for r in records),
            total_deals=sum(r.deals_completed for r in records),
        )

    def list_payments(self, payee_id: UUID) -> list[PaymentInfo]:
        rows = self._all(
            select(Payment)
            .where(Payment.payee_id == payee_id)
            .order_by(Payment.created_at.desc(), Payment.id),
            fresh=True,
        )
        return [PaymentInfo.from_model(p) for p in rows]

    def list_payouts(self, payee_id: UUID) -> list[PayoutInfo]:
        rows = self._all(
            select(Payout)
            .where(Payout.payee_id == payee_id)
            .order_by(Payout.created_at.desc(), Payout.id),
            fresh=True,
        )
        return [PayoutInfo.from_model(p) for p in rows]
