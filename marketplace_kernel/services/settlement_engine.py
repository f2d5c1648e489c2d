"""
SettlementEngine -- deal payments, pending balances and settlement.

Responsibility:
    Charge a payer for an accepted deal through the payment gateway, split
    the gross into platform fee and payee net, and record the outcome in the
    Ledger Store: payment status, deal status, the payee's pending balance
    and the monthly earnings aggregate.  Releases pending funds to the
    available balance once the settlement hold elapses.

Architecture position:
    Kernel > Services.  Depends on the Ledger Store and a PaymentGateway.
    The Webhook Reconciler reuses ``apply_payment_settled``,
    ``apply_payment_declined`` and ``apply_payment_refunded`` so both paths
    converge on the same writes.

Invariants enforced:
    - fee + net == gross for every Payment (``compute_fee_split``).
    - At most one non-failed Payment per deal.  A concurrent second attempt
      loses on the partial unique index and raises PaymentInFlightError.
    - The Payment row is durable in ``pending`` with its intent reference
      before confirmation is attempted; no session is held across a
      gateway call.
    - Success applies four writes in one unit of work (PaymentSettled):
      payment succeeded, deal paid, pending_balance += net, earnings
      upsert.  Guarded by pending -> succeeded, so it happens once.
    - Settlement moves each payment's net from pending to available exactly
      once (``settled_at IS NULL`` guard).  Total funds are unchanged.

Failure modes:
    - DealNotFoundError, InvalidStatusError (deal not accepted).
    - PayoutAccountNotConfiguredError (no account / charges disabled), with
      no writes performed.
    - PaymentInFlightError when the deal already has a live payment.
    - GatewayDeclinedError: the payment is marked failed, the deal untouched.
    - GatewayUnavailableError during confirmation: ambiguous; the payment
      stays pending and the reconciler resolves it.

Audit relevance:
    payment_succeeded / payment_failed / balance_settled log lines carry
    the payment id, deal id and amounts.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from marketplace_kernel.db.store import LedgerSession, LedgerStore
from marketplace_kernel.db.types import normalize_currency
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import (
    BalanceDrift,
    BalanceInfo,
    EarningsSummary,
    PaymentInfo,
    SettlementResult,
)
from marketplace_kernel.domain.fees import compute_fee_split
from marketplace_kernel.domain.policy import SettlementPolicy
from marketplace_kernel.domain.statuses import DealStatus, PaymentStatus
from marketplace_kernel.domain.transaction_intents import PaymentDeclined, PaymentSettled
from marketplace_kernel.exceptions import (
    DealNotFoundError,
    GatewayDeclinedError,
    GatewayError,
    GatewayUnavailableError,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStatusError,
    PaymentInFlightError,
    PaymentNotFoundError,
    PayoutAccountNotConfiguredError,
    PayoutAccountNotFoundError,
)
from marketplace_kernel.gateway.base import PaymentGateway
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.models.deal import Deal
from marketplace_kernel.models.earnings import EarningsRecord
from marketplace_kernel.models.payment import Payment
from marketplace_kernel.models.payout_account import ConnectedPayoutAccount
from marketplace_kernel.selectors.balance_selector import BalanceSelector
from marketplace_kernel.services.base import BaseService
from marketplace_kernel.utils.idempotency import request_key

logger = get_logger("services.settlement_engine")

_LIVE_PAYMENT_STATUSES = (
    PaymentStatus.PENDING.value,
    PaymentStatus.SUCCEEDED.value,
    PaymentStatus.REFUNDED.value,
)


class SettlementEngine(BaseService):
    """
    Payment execution and balance bookkeeping.

    Contract:
        ``execute_payment`` spans three units of work around two gateway
        calls: reserve (insert pending Payment), attach the intent ref, then
        apply the outcome.  Every other public method is one unit of work.
    """

    def __init__(
        self,
        store: LedgerStore,
        gateway: PaymentGateway,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ):
        super().__init__(store, clock, policy)
        self.gateway = gateway

    # ------------------------------------------------------------------
    # Payment execution
    # ------------------------------------------------------------------

    def execute_payment(self, deal_id: UUID, payment_method_ref: str) -> PaymentInfo:
        """
        Charge the payer for an accepted deal.

        Returns the Payment as it stands after confirmation: ``succeeded``
        normally, ``pending`` when the processor reports a non-final status
        (for example ``processing``) that a webhook will finish.

        Raises:
            DealNotFoundError, InvalidStatusError,
            PayoutAccountNotConfiguredError, PaymentInFlightError,
            GatewayDeclinedError, GatewayUnavailableError.
        """
        if not payment_method_ref or not payment_method_ref.strip():
            raise InvalidInputError("payment_method_ref", "a payment method is required")

        with LogContext.bind(deal_id=deal_id):
            payment, destination_ref = self._reserve_payment(deal_id, payment_method_ref)

            with LogContext.bind(payee_id=payment.payee_id):
                intent_ref = self._create_intent(payment, destination_ref, payment_method_ref)
                return self._confirm(payment.id, intent_ref)

    def _reserve_payment(
        self, deal_id: UUID, payment_method_ref: str
    ) -> tuple[PaymentInfo, str]:
        with self.store.unit_of_work("execute_payment.reserve") as uow:
            deal = uow.get(Deal, deal_id)
            if deal is None:
                raise DealNotFoundError(str(deal_id))
            if not deal.is_payable:
                raise InvalidStatusError(
                    "Deal", str(deal_id), deal.status, [DealStatus.ACCEPTED.value]
                )

            account = uow.find_one(ConnectedPayoutAccount, payee_id=deal.payee_id)
            if account is None:
                raise PayoutAccountNotConfiguredError(
                    str(deal.payee_id), "payee has no connected payout account"
                )
            if not account.charges_enabled:
                raise PayoutAccountNotConfiguredError(
                    str(deal.payee_id), "payout account cannot accept charges yet"
                )

            currency = normalize_currency(deal.currency)
            if currency not in self.policy.supported_currencies:
                raise InvalidInputError("currency", f"{currency!r} is not supported")
            split = compute_fee_split(deal.amount, self.policy.platform_fee_percent)

            existing = uow.session.execute(
                select(Payment.id).where(
                    Payment.deal_id == deal_id,
                    Payment.status.in_(_LIVE_PAYMENT_STATUSES),
                )
            ).first()
            if existing is not None:
                raise PaymentInFlightError(str(deal_id))

            payment_id = uuid4()
            try:
                payment = uow.add(
                    Payment(
                        id=payment_id,
                        deal_id=deal.id,
                        payer_id=deal.payer_id,
                        payee_id=deal.payee_id,
                        gross_amount=split.gross,
                        platform_fee=split.fee,
                        net_amount=split.net,
                        currency=currency,
                        payment_method_ref=payment_method_ref,
                        status=PaymentStatus.PENDING.value,
                    )
                )
            except IntegrityError:
                raise PaymentInFlightError(str(deal_id)) from None

            logger.info(
                "payment_reserved",
                extra={
                    "payment_id": str(payment_id),
                    "gross_amount": split.gross,
                    "platform_fee": split.fee,
                    "net_amount": split.net,
                },
            )
            return PaymentInfo.from_model(payment), account.external_account_ref

    def _create_intent(
        self, payment: PaymentInfo, destination_ref: str, payment_method_ref: str
    ) -> str:
        payment_id = payment.id
        try:
            intent = self.gateway.create_payment_intent(
                amount=payment.gross_amount,
                currency=payment.currency,
                destination_account_ref=destination_ref,
                application_fee=payment.platform_fee,
                payment_method_ref=payment_method_ref,
                idempotency_key=request_key("payment_intent.create", payment_id),
                metadata={"payment_id": str(payment_id), "deal_id": str(payment.deal_id)},
            )
        except GatewayDeclinedError as exc:
            self._apply_decline(payment_id, exc)
            raise
        except GatewayError as exc:
            # No charge can exist without an intent; release the deal for a retry
            with self.store.unit_of_work("execute_payment.intent_failed") as uow:
                uow.transition(
                    Payment,
                    payment_id,
                    from_status=PaymentStatus.PENDING.value,
                    to_status=PaymentStatus.FAILED.value,
                    failure_reason=str(exc),
                    failed_at=self.clock.now_utc(),
                )
            logger.warning(
                "payment_intent_creation_failed",
                extra={"payment_id": str(payment_id), "error_code": exc.code},
            )
            raise

        with self.store.unit_of_work("execute_payment.attach_intent") as uow:
            uow.transition(
                Payment,
                payment_id,
                from_status=PaymentStatus.PENDING.value,
                to_status=PaymentStatus.PENDING.value,
                gateway_intent_ref=intent.ref,
            )
        logger.info(
            "payment_intent_created",
            extra={"payment_id": str(payment_id), "intent_ref": intent.ref},
        )
        return intent.ref

    def _confirm(self, payment_id: UUID, intent_ref: str) -> PaymentInfo:
        try:
            confirmation = self.gateway.confirm_payment_intent(
                intent_ref,
                idempotency_key=request_key("payment_intent.confirm", payment_id),
            )
        except GatewayDeclinedError as exc:
            self._apply_decline(payment_id, exc)
            raise
        except GatewayUnavailableError:
            logger.warning(
                "payment_confirmation_ambiguous",
                extra={"payment_id": str(payment_id), "intent_ref": intent_ref},
            )
            raise

        if not confirmation.succeeded:
            logger.info(
                "payment_confirmation_pending",
                extra={"payment_id": str(payment_id), "gateway_status": confirmation.status},
            )
            return self.get_payment(payment_id)

        with self.store.unit_of_work("execute_payment.settle") as uow:
            payment = uow.get(Payment, payment_id)
            self.apply_payment_settled(uow, self.settled_intent_for(payment))
            return PaymentInfo.from_model(uow.get(Payment, payment_id))

    def _apply_decline(self, payment_id: UUID, exc: GatewayDeclinedError) -> None:
        with self.store.unit_of_work("execute_payment.declined") as uow:
            self.apply_payment_declined(
                uow,
                PaymentDeclined(
                    payment_id=payment_id,
                    reason=exc.failure_message,
                    occurred_at=self.clock.now_utc(),
                    failure_code=exc.failure_code,
                ),
            )

    # ------------------------------------------------------------------
    # Intent application (shared with the Webhook Reconciler)
    # ------------------------------------------------------------------

    def settled_intent_for(self, payment: Payment) -> PaymentSettled:
        return PaymentSettled(
            payment_id=payment.id,
            deal_id=payment.deal_id,
            payee_id=payment.payee_id,
            gross=payment.gross_amount,
            fee=payment.platform_fee,
            net=payment.net_amount,
            occurred_at=self.clock.now_utc(),
        )

    def apply_payment_settled(self, uow: LedgerSession, intent: PaymentSettled) -> bool:
        """
        Apply the four success writes inside the caller's unit of work.

        Returns:
            False if the payment had already left ``pending`` (nothing
            written), True otherwise.
        """
        if not uow.transition(
            Payment,
            intent.payment_id,
            from_status=PaymentStatus.PENDING.value,
            to_status=PaymentStatus.SUCCEEDED.value,
            succeeded_at=intent.occurred_at,
        ):
            return False

        if not uow.transition(
            Deal,
            intent.deal_id,
            from_status=DealStatus.ACCEPTED.value,
            to_status=DealStatus.PAID.value,
        ):
            deal = uow.get(Deal, intent.deal_id)
            logger.warning(
                "deal_not_accepted_at_settlement",
                extra={"payment_id": str(intent.payment_id), "deal_status": deal.status},
            )

        if not uow.increment(
            ConnectedPayoutAccount,
            {"pending_balance": intent.net},
            payee_id=intent.payee_id,
        ):
            raise PayoutAccountNotFoundError(str(intent.payee_id))

        self._add_earnings(uow, intent)

        logger.info(
            "payment_succeeded",
            extra={
                "payment_id": str(intent.payment_id),
                "deal_id": str(intent.deal_id),
                "payee_id": str(intent.payee_id),
                "gross_amount": intent.gross,
                "platform_fee": intent.fee,
                "net_amount": intent.net,
            },
        )
        return True

    def _add_earnings(self, uow: LedgerSession, intent: PaymentSettled) -> None:
        year, month = intent.earnings_period
        deltas = {
            "gross_earnings": intent.gross,
            "platform_fees": intent.fee,
            "net_earnings": intent.net,
            "deals_completed": 1,
        }
        criteria = {"payee_id": intent.payee_id, "year": year, "month": month}
        if uow.increment(EarningsRecord, deltas, **criteria):
            return

        # First payment of the period: insert, or lose the race to a
        # concurrent insert and increment the winner's row instead.
        try:
            with uow.savepoint():
                uow.add(
                    EarningsRecord(
                        payee_id=intent.payee_id,
                        year=year,
                        month=month,
                        gross_earnings=intent.gross,
                        platform_fees=intent.fee,
                        net_earnings=intent.net,
                        deals_completed=1,
                    )
                )
        except IntegrityError:
            uow.increment(EarningsRecord, deltas, **criteria)

    def apply_payment_declined(self, uow: LedgerSession, intent: PaymentDeclined) -> bool:
        """pending -> failed with the processor's reason.  The deal is untouched."""
        reason = intent.reason
        if intent.failure_code:
            reason = f"{intent.failure_code}: {reason}"
        if not uow.transition(
            Payment,
            intent.payment_id,
            from_status=PaymentStatus.PENDING.value,
            to_status=PaymentStatus.FAILED.value,
            failure_reason=reason,
            failed_at=intent.occurred_at,
        ):
            return False
        logger.info(
            "payment_failed",
            extra={"payment_id": str(intent.payment_id), "failure_code": intent.failure_code},
        )
        return True

    def apply_payment_refunded(self, uow: LedgerSession, payment: Payment) -> bool:
        """
        succeeded -> refunded.

        An unsettled payment's net leaves pending_balance.  A payment already
        settled leaves balances alone; the difference surfaces in
        ``compare_with_gateway``.  Earnings are never decremented.
        """
        if not uow.transition(
            Payment,
            payment.id,
            from_status=PaymentStatus.SUCCEEDED.value,
            to_status=PaymentStatus.REFUNDED.value,
            refunded_at=self.clock.now_utc(),
        ):
            return False

        if payment.settled_at is None:
            removed = uow.increment(
                ConnectedPayoutAccount,
                {"pending_balance": -payment.net_amount},
                at_least={"pending_balance": payment.net_amount},
                payee_id=payment.payee_id,
            )
            if not removed:
                logger.warning(
                    "refund_pending_balance_short",
                    extra={"payment_id": str(payment.id), "net_amount": payment.net_amount},
                )
        logger.info(
            "payment_refunded",
            extra={"payment_id": str(payment.id), "was_settled": payment.settled_at is not None},
        )
        return True

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def settle_balance(self, payee_id: UUID) -> SettlementResult:
        """
        Move the net of every succeeded payment whose hold has elapsed from
        pending_balance to available_balance.
        """
        cutoff = self.clock.hold_cutoff(self.policy.settlement_hold_days)
        now = self.clock.now_utc()
        settled = 0
        released = 0

        with LogContext.bind(payee_id=payee_id):
            with self.store.unit_of_work("settle_balance") as uow:
                if uow.find_one(ConnectedPayoutAccount, payee_id=payee_id) is None:
                    raise PayoutAccountNotFoundError(str(payee_id))

                for payment in self._due_payments(uow, payee_id, cutoff):
                    if not uow.transition(
                        Payment,
                        payment.id,
                        from_status=PaymentStatus.SUCCEEDED.value,
                        to_status=PaymentStatus.SUCCEEDED.value,
                        conditions=[Payment.settled_at.is_(None)],
                        settled_at=now,
                    ):
                        continue
                    moved = uow.increment(
                        ConnectedPayoutAccount,
                        {
                            "pending_balance": -payment.net_amount,
                            "available_balance": payment.net_amount,
                        },
                        at_least={"pending_balance": payment.net_amount},
                        payee_id=payee_id,
                    )
                    if not moved:
                        account = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
                        raise InsufficientFundsError(
                            str(payee_id), payment.net_amount, account.pending_balance
                        )
                    settled += 1
                    released += payment.net_amount

            if settled:
                logger.info(
                    "balance_settled",
                    extra={"payments_settled": settled, "amount_released": released},
                )
        return SettlementResult(
            payee_id=payee_id, payments_settled=settled, amount_released=released
        )

    def settle_due_balances(self) -> list[SettlementResult]:
        """Run ``settle_balance`` for every payee with a payment past its hold."""
        cutoff = self.clock.hold_cutoff(self.policy.settlement_hold_days)
        with self.store.unit_of_work("settle_due_balances.scan") as uow:
            payee_ids = list(
                uow.session.execute(
                    select(Payment.payee_id)
                    .where(
                        Payment.status == PaymentStatus.SUCCEEDED.value,
                        Payment.settled_at.is_(None),
                        Payment.succeeded_at <= cutoff,
                    )
                    .distinct()
                ).scalars()
            )

        results = [self.settle_balance(payee_id) for payee_id in payee_ids]
        logger.info(
            "settlement_run_completed",
            extra={
                "payees": len(results),
                "amount_released": sum(r.amount_released for r in results),
            },
        )
        return results

    @staticmethod
    def _due_payments(uow: LedgerSession, payee_id: UUID, cutoff: datetime) -> list[Payment]:
        return list(
            uow.session.execute(
                select(Payment)
                .where(
                    Payment.payee_id == payee_id,
                    Payment.status == PaymentStatus.SUCCEEDED.value,
                    Payment.settled_at.is_(None),
                    Payment.succeeded_at <= cutoff,
                )
                .order_by(Payment.succeeded_at, Payment.id)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        with self.store.unit_of_work("get_payment") as uow:
            payment = uow.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            return PaymentInfo.from_model(payment)

    def list_payments(self, payee_id: UUID) -> list[PaymentInfo]:
        with self.store.unit_of_work("list_payments") as uow:
            return BalanceSelector(uow.session).list_payments(payee_id)

    def get_athlete_balance(self, payee_id: UUID) -> BalanceInfo:
        with self.store.unit_of_work("get_athlete_balance") as uow:
            balance = BalanceSelector(uow.session).get_balance(payee_id)
        if balance is None:
            raise PayoutAccountNotFoundError(str(payee_id))
        return balance

    def get_athlete_earnings(self, payee_id: UUID, year: int | None = None) -> EarningsSummary:
        with self.store.unit_of_work("get_athlete_earnings") as uow:
            return BalanceSelector(uow.session).get_earnings(payee_id, year)

    def compare_with_gateway(self, payee_id: UUID) -> BalanceDrift:
        """Read the processor's balance for the payee and report drift.  No writes."""
        with self.store.unit_of_work("compare_with_gateway") as uow:
            account = uow.find_one(ConnectedPayoutAccount, payee_id=payee_id)
            if account is None:
                raise PayoutAccountNotFoundError(str(payee_id))
            ref, currency = account.external_account_ref, account.currency
            local_available, local_pending = account.available_balance, account.pending_balance

        remote = self.gateway.get_account_balance(ref, currency)
        drift = BalanceDrift(
            payee_id=payee_id,
            local_available=local_available,
            local_pending=local_pending,
            gateway_available=remote.available,
            gateway_pending=remote.pending,
        )
        if not drift.in_sync:
            logger.warning(
                "balance_drift_detected",
                extra={
                    "payee_id": str(payee_id),
                    "available_delta": drift.available_delta,
                    "pending_delta": drift.pending_delta,
                },
            )
        return drift
