"""
PayoutService -- withdrawals from a payee's available balance.

Responsibility:
    Validate a payout request, commit the funds by decrementing
    available_balance, ask the processor to pay out, and record the result.
    Also applies the processor's later payout notifications (paid, failed).

Architecture position:
    Kernel > Services.  Depends on the Ledger Store and a PaymentGateway.

Invariants enforced:
    - available_balance is decremented at request time by a guarded relative
      update (``WHERE available_balance >= :amount``).  Two concurrent
      requests can never withdraw more than was available.
    - A payout that fails (at request time or via ``payout.failed``) returns
      its amount to available_balance exactly once: the re-credit only runs
      when this call won the transition to ``failed``.

Failure modes:
    - PayoutAccountNotConfiguredError: payee has no connected account.
    - PayoutsNotEnabledError: the account cannot pay out yet.
    - InsufficientFundsError: amount exceeds available (nothing written).
    - InvalidInputError: bad method, non-positive amount, below minimum, or
      instant payouts switched off.
    - GatewayDeclinedError: the processor refused the payout; it is marked
      failed and the funds returned.
    - GatewayUnavailableError: outcome unknown.  The payout stays pending
      with its funds committed; ``payout.paid`` or ``payout.failed`` (matched
      by ``metadata.payout_id``) resolves it later.
"""

from uuid import UUID, uuid4

from marketplace_kernel.db.store import LedgerSession, LedgerStore
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import PayoutInfo
from marketplace_kernel.domain.policy import SettlementPolicy
from marketplace_kernel.domain.statuses import OPEN_PAYOUT_STATUSES, PayoutMethod, PayoutStatus
from marketplace_kernel.exceptions import (
    GatewayDeclinedError,
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidInputError,
    PayoutAccountNotConfiguredError,
    PayoutNotFoundError,
    PayoutsNotEnabledError,
)
from marketplace_kernel.gateway.base import PaymentGateway
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.models.payout import Payout
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount
from marketplace_kernel.selectors.balance_selector import BalanceSelector
from marketplace_kernel.services.base import BaseService
from marketplace_kernel.utils.idempotency import request_key

logger = get_logger("services.payout_service")

# A payout the processor reported paid can still bounce back from the bank
_FAILABLE_PAYOUT_STATUSES = OPEN_PAYOUT_STATUSES + (PayoutStatus.PAID.value,)


class PayoutService(BaseService):
    """Payout requests and payout lifecycle updates."""

    def __init__(
        self,
        store: LedgerStore,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ):
        super().__init__(store, clock, policy)
        self.gateway = gateway

    def request_payout(
        self,
        payee_id: UUID,
        amount: int | None = None,
        method: PayoutMethod | str = PayoutMethod.STANDARD,
    ) -> PayoutInfo:
        """
        Withdraw ``amount`` (default: the whole available balance).

        ``instant`` payouts are recorded ``paid`` immediately; ``standard``
        payouts stay ``pending`` until the processor reports them paid.
        """
        try:
            payout_method = PayoutMethod(method)
        except ValueError:
            raise InvalidInputError("method", f"must be standard or instant; got {method!r}") from None
        if payout_method is PayoutMethod.INSTANT and not self.policy.instant_payouts_enabled:
            raise InvalidInputError("method", "instant payouts are disabled")
        if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int)):
            raise InvalidInputError("amount", "must be an integer in minor units")
        if amount is not None and amount <= 0:
            raise InvalidInputError("amount", "must be positive")

        with LogContext.bind(payee_id=payee_id):
            payout_id, account_ref, committed, currency = self._commit_funds(
                payee_id, amount, payout_method
            )

            try:
                result = self.gateway.create_payout(
                    account_ref=account_ref,
                    amount=committed,
                    currency=currency,
                    method=payout_method.value,
                    idempotency_key=request_key("payout.create", payout_id),
                    metadata={"payout_id": str(payout_id), "payee_id": str(payee_id)},
                )
            except GatewayDeclinedError as exc:
                with self.store.unit_of_work("request_payout.rejected") as uow:
                    self._fail_and_recredit(uow, payout_id, str(exc))
                raise
            except GatewayUnavailableError:
                # The processor may have created the payout; its webhooks settle it
                logger.warning(
                    "payout_creation_ambiguous",
                    extra={"payout_id": str(payout_id), "amount": committed},
                )
                raise

            with self.store.unit_of_work("request_payout.record") as uow:
                values = {
                    "gateway_payout_ref": result.ref,
                    "arrival_date": result.arrival_date,
                }
                if payout_method is PayoutMethod.INSTANT:
                    uow.transition(
                        Payout,
                        payout_id,
                        from_status=PayoutStatus.PENDING.value,
                        to_status=PayoutStatus.PAID.value,
                        paid_at=self.clock.now_utc(),
                        **values,
                    )
                else:
                    uow.transition(
                        Payout,
                        payout_id,
                        from_status=PayoutStatus.PENDING.value,
                        to_status=PayoutStatus.PENDING.value,
                        **values,
                    )
                info = PayoutInfo.from_model(uow.get(Payout, payout_id))

            logger.info(
                "payout_requested",
                extra={
                    "payout_id": str(payout_id),
                    "amount": committed,
                    "method": payout_method.value,
                    "payout_status": info.status,
                },
            )
        return info

    def _commit_funds(
        self, payee_id: UUID, amount: int | None, method: PayoutMethod
    ) -> tuple[UUID, str, int, str]:
        with self.store.unit_of_work("request_payout.commit") as uow:
            account = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
            if account is None:
                raise PayoutAccountNotConfiguredError(
                    str(payee_id), "payee has no connected payout account"
                )
            if not account.payouts_enabled:
                raise PayoutsNotEnabledError(str(payee_id))

            requested = account.available_balance if amount is None else amount
            if requested <= 0:
                raise InsufficientFundsError(str(payee_id), requested, account.available_balance)
            if requested < self.policy.minimum_payout:
                raise InvalidInputError(
                    "amount", f"minimum payout is {self.policy.minimum_payout}"
                )

            if not uow.increment(
                ConnectedPayoutAccount,
                {"available_balance": -requested},
                at_least={"available_balance": requested},
                id=account.id,
            ):
                current = uow.get(ConnectedPayoutAccount, account.id)
                raise InsufficientFundsError(
                    str(payee_id), requested, current.available_balance
                )

            payout = uow.add(
                Payout(
                    id=uuid4(),
                    payee_id=payee_id,
                    payout_account_id=account.id,
                    amount=requested,
                    currency=account.currency,
                    method=method.value,
                    status=PayoutStatus.PENDING.value,
                )
            )
            return payout.id, account.external_account_ref, requested, account.currency

    def _fail_and_recredit(self, uow: LedgerSession, payout_id: UUID, reason: str) -> bool:
        payout = uow.get(Payout, payout_id)
        if payout is None:
            raise PayoutNotFoundError(str(payout_id))
        if not uow.transition(
            Payout,
            payout_id,
            from_status=_FAILABLE_PAYOUT_STATUSES,
            to_status=PayoutStatus.FAILED.value,
            failure_reason=reason,
            failed_at=self.clock.now_utc(),
        ):
            return False
        uow.increment(
            ConnectedPayoutAccount,
            {"available_balance": payout.amount},
            id=payout.payout_account_id,
        )
        logger.warning(
            "payout_failed",
            extra={"payout_id": str(payout_id), "amount": payout.amount, "reason": reason},
        )
        return True

    # ------------------------------------------------------------------
    # Processor notifications (called by the Webhook Reconciler)
    # ------------------------------------------------------------------

    def apply_payout_paid(self, uow: LedgerSession, payout: Payout) -> bool:
        """pending / in_transit -> paid."""
        if not uow.transition(
            Payout,
            payout.id,
            from_status=OPEN_PAYOUT_STATUSES,
            to_status=PayoutStatus.PAID.value,
            paid_at=self.clock.now_utc(),
        ):
            return False
        logger.info("payout_paid", extra={"payout_id": str(payout.id)})
        return True

    def apply_payout_failed(self, uow: LedgerSession, payout: Payout, reason: str) -> bool:
        """Any non-terminal or paid payout -> failed, returning the funds once."""
        return self._fail_and_recredit(uow, payout.id, reason)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payout(self, payout_id: UUID) -> PayoutInfo:
        with self.store.unit_of_work("get_payout") as uow:
            payout = uow.get(Payout, payout_id)
            if payout is None:
                raise PayoutNotFoundError(str(payout_id))
            return PayoutInfo.from_model(payout)

    def list_payouts(self, payee_id: UUID) -> list[PayoutInfo]:
        with self.store.unit_of_work("list_payouts") as uow:
            return BalanceSelector(uow.session).list_payouts(payee_id)
