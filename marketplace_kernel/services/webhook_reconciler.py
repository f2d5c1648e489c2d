"""
WebhookReconciler -- applies processor notifications to the ledger.

Responsibility:
    Verify a notification's signature, then move the matching Payment,
    Payout or ConnectedPayoutAccount to the state the event implies.
    Notifications are delivered at least once, possibly duplicated and in
    any order; every event is keyed by its external reference.

Architecture position:
    Kernel > Services.  Delegates the actual writes to SettlementEngine,
    PayoutService and PayoutAccountService so the synchronous and
    asynchronous paths share one implementation.

Invariants enforced:
    - Each processed event id is recorded (GatewayEventRecord) in the same
      unit of work as its effects.  A redelivery is detected before any
      handler runs and acknowledged as a duplicate.
    - Handlers are compare-and-set transitions toward the event's implied
      terminal status, so a different event with the same effect (e.g. the
      synchronous confirmation already applied the success) is a no-op.
    - A failed payment is never resurrected by a late success event.
    - An ``account.updated`` snapshot older than the last one applied is
      ignored.
    - Unknown event types are recorded and ignored.

Failure modes:
    - WebhookSignatureError: payload not signed with the webhook secret.
    - NotFoundError: the referenced object is unknown locally.  Nothing is
      recorded, so the processor's retry can succeed once the object exists.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from marketplace_kernel.db.store import LedgerSession
from marketplace_kernel.domain.statuses import PaymentStatus
from marketplace_kernel.domain.transaction_intents import PaymentDeclined
from marketplace_kernel.exceptions import (
    InvalidInputError,
    PaymentNotFoundError,
    PayoutNotFoundError,
)
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.models.gateway_event import GatewayEventRecord
from marketplace_kernel.models.payment import Payment
from marketplace_kernel.models.payout import Payout
from marketplace_kernel.services.payout_account_service import PayoutAccountService
from marketplace_kernel.services.payout_service import PayoutService
from marketplace_kernel.services.settlement_engine import SettlementEngine
from marketplace_kernel.utils.idempotency import event_key

logger = get_logger("services.webhook_reconciler")


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReconcileResult:
    event_id: str
    event_type: str
    outcome: ReconcileOutcome
    detail: str | None = None


def _event_object(event: dict[str, Any]) -> dict[str, Any]:
    return (event.get("data") or {}).get("object") or {}


def _event_time(event: dict[str, Any]) -> datetime | None:
    """The event's ``created`` epoch seconds as an aware UTC datetime."""
    created = event.get("created")
    if created is None:
        return None
    try:
        return datetime.fromtimestamp(int(created), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        raise InvalidInputError("created", f"not an epoch timestamp: {created!r}") from None


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


class WebhookReconciler:
    """
    Idempotent processor-notification handler.

    Contract:
        ``handle_payload`` for raw HTTP bodies, ``reconcile`` for events
        that were already verified (e.g. replayed from a dump).  Each event
        is one unit of work.
    """

    def __init__(
        self,
        settlement: SettlementEngine,
        payouts: PayoutService,
        accounts: PayoutAccountService,
    ):
        self.settlement = settlement
        self.payouts = payouts
        self.accounts = accounts
        self.store = settlement.store
        self.gateway = settlement.gateway
        self.clock = settlement.clock
        self._handlers: dict[str, Callable[[LedgerSession, dict[str, Any]], bool]] = {
            "payment_intent.succeeded": self._on_payment_succeeded,
            "payment_intent.payment_failed": self._on_payment_failed,
            "charge.refunded": self._on_charge_refunded,
            "payout.paid": self._on_payout_paid,
            "payout.failed": self._on_payout_failed,
            "account.updated": self._on_account_updated,
        }

    @property
    def handled_event_types(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def handle_payload(self, payload: bytes | str, signature_header: str) -> ReconcileResult:
        """Verify a raw notification and reconcile it."""
        event = self.gateway.construct_event(payload, signature_header)
        return self.reconcile(event)

    def reconcile(self, event: dict[str, Any]) -> ReconcileResult:
        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise InvalidInputError("event", "id and type are required")
        obj = _event_object(event)

        with LogContext.bind(gateway_event_id=event_id):
            handler = self._handlers.get(event_type)
            with self.store.unit_of_work(f"reconcile.{event_type}") as uow:
                record = self._record_event(uow, event_id, event_type, obj.get("id"))
                if record is None:
                    logger.info("webhook_duplicate", extra={"event_type": event_type})
                    return ReconcileResult(event_id, event_type, ReconcileOutcome.DUPLICATE)

                if handler is None:
                    record.outcome = ReconcileOutcome.IGNORED.value
                    uow.session.flush()
                    logger.info("webhook_ignored", extra={"event_type": event_type})
                    return ReconcileResult(
                        event_id, event_type, ReconcileOutcome.IGNORED, "unhandled event type"
                    )

                changed = handler(uow, event)
                outcome = ReconcileOutcome.APPLIED if changed else ReconcileOutcome.DUPLICATE
                record.outcome = outcome.value
                uow.session.flush()

            logger.info(
                "webhook_reconciled",
                extra={"event_type": event_type, "outcome": outcome.value},
            )
        return ReconcileResult(
            event_id,
            event_type,
            outcome,
            None if changed else "target already in the implied state",
        )

    def _record_event(
        self,
        uow: LedgerSession,
        event_id: str,
        event_type: str,
        object_ref: str | None,
    ) -> GatewayEventRecord | None:
        if uow.find_one(GatewayEventRecord, event_id=event_id) is not None:
            return None
        try:
            with uow.savepoint():
                return uow.add(
                    GatewayEventRecord(
                        event_id=event_id,
                        event_type=event_type,
                        idempotency_key=event_key(event_type, event_id),
                        object_ref=object_ref,
                        outcome=ReconcileOutcome.APPLIED.value,
                    )
                )
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            return None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _find_payment(self, uow: LedgerSession, intent_ref: str | None, metadata: dict) -> Payment:
        payment = None
        if intent_ref:
            payment = uow.find_one(Payment, gateway_intent_ref=intent_ref)
        if payment is None:
            payment_id = _parse_uuid((metadata or {}).get("payment_id"))
            if payment_id is not None:
                payment = uow.get(Payment, payment_id)
                if payment is not None and payment.gateway_intent_ref is None and intent_ref:
                    # Notification beat the synchronous path's intent write
                    payment.gateway_intent_ref = intent_ref
                    uow.session.flush()
        if payment is None:
            raise PaymentNotFoundError(intent_ref or str(metadata.get("payment_id")))
        return payment

    def _find_payout(self, uow: LedgerSession, obj: dict[str, Any]) -> Payout:
        ref = obj.get("id")
        payout = uow.find_one(Payout, gateway_payout_ref=ref) if ref else None
        if payout is None:
            payout_id = _parse_uuid((obj.get("metadata") or {}).get("payout_id"))
            if payout_id is not None:
                payout = uow.get(Payout, payout_id)
                if payout is not None and payout.gateway_payout_ref is None and ref:
                    # Creation timed out before the processor ref was recorded
                    payout.gateway_payout_ref = ref
                    uow.session.flush()
        if payout is None:
            raise PayoutNotFoundError(ref or "<missing>")
        return payout

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_payment_succeeded(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        payment = self._find_payment(uow, obj.get("id"), obj.get("metadata") or {})
        if payment.status == PaymentStatus.FAILED.value:
            logger.warning(
                "webhook_success_for_failed_payment",
                extra={"payment_id": str(payment.id), "intent_ref": obj.get("id")},
            )
            return False
        return self.settlement.apply_payment_settled(
            uow, self.settlement.settled_intent_for(payment)
        )

    def _on_payment_failed(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        payment = self._find_payment(uow, obj.get("id"), obj.get("metadata") or {})
        last_error = obj.get("last_payment_error") or {}
        return self.settlement.apply_payment_declined(
            uow,
            PaymentDeclined(
                payment_id=payment.id,
                reason=last_error.get("message") or "payment failed",
                occurred_at=self.clock.now_utc(),
                failure_code=last_error.get("code"),
            ),
        )

    def _on_charge_refunded(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        payment = self._find_payment(uow, obj.get("payment_intent"), obj.get("metadata") or {})
        return self.settlement.apply_payment_refunded(uow, payment)

    def _on_payout_paid(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        return self.payouts.apply_payout_paid(uow, self._find_payout(uow, obj))

    def _on_payout_failed(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        reason = obj.get("failure_message") or obj.get("failure_code") or "payout failed"
        return self.payouts.apply_payout_failed(uow, self._find_payout(uow, obj), reason)

    def _on_account_updated(self, uow: LedgerSession, event: dict[str, Any]) -> bool:
        obj = _event_object(event)
        return self.accounts.apply_capabilities(
            uow, obj.get("id"), obj, as_of=_event_time(event)
        )
