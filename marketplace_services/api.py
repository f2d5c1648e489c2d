"""
marketplace_services.api -- the operation surface exposed to callers.

Responsibility:
    Wrap every kernel operation so callers (HTTP handlers, deal CRUD, jobs)
    always receive a ``ServiceResult``: either ``data`` or an ``error``
    carrying a stable machine-readable ``kind``.  Expected failures never
    escape as exceptions.

Architecture position:
    Services -- outermost layer.  Depends on the orchestrator.

Error kinds (``ServiceError.kind``):
    NOT_FOUND, INVALID_STATUS, ALREADY_PROCESSED,
    PAYOUT_ACCOUNT_NOT_CONFIGURED, PAYOUTS_NOT_ENABLED, INSUFFICIENT_FUNDS,
    GATEWAY_DECLINED, GATEWAY_UNAVAILABLE, INVALID_INPUT,
    WEBHOOK_SIGNATURE_INVALID.  The ledger store being unreachable is
    reported as GATEWAY_UNAVAILABLE with code STORE_UNAVAILABLE.

Messages are short and never include stack traces or storage details.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from functools import wraps
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import InterfaceError, OperationalError

from marketplace_config.schema import SettlementConfig
from marketplace_kernel.domain.clock import Clock
from marketplace_kernel.domain.dtos import (
    BalanceInfo,
    ContractInfo,
    ContractStatusView,
    EarningsSummary,
    PartyInput,
    PaymentInfo,
    PayoutAccountInfo,
    PayoutInfo,
    SignaturePayload,
)
from marketplace_kernel.exceptions import MarketplaceError, StoreUnavailableError
from marketplace_kernel.gateway.base import PaymentGateway
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.services.webhook_reconciler import ReconcileResult
from marketplace_services.orchestrator import SettlementOrchestrator

logger = get_logger("services.api")

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceError:
    kind: str
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: MarketplaceError) -> ServiceError:
        return cls(kind=exc.kind, code=exc.code, message=str(exc))


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Exactly one of ``data`` / ``error`` is meaningful."""

    data: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(data=data)

    @classmethod
    def failure(cls, error: ServiceError) -> ServiceResult[T]:
        return cls(error=error)


def service_operation(func: Callable[..., T]) -> Callable[..., ServiceResult[T]]:
    """
    Convert kernel exceptions raised by ``func`` into error results.

    Each call runs under a correlation id (the caller's, if one is bound)
    so every log line of one operation can be grouped.
    """

    @wraps(func)
    def wrapper(self, *args: Any, **kwargs: Any) -> ServiceResult[T]:
        correlation_id = LogContext.get_all().get("correlation_id") or uuid4().hex
        with LogContext.bind(correlation_id=correlation_id):
            try:
                return ServiceResult.success(func(self, *args, **kwargs))
            except MarketplaceError as exc:
                logger.info(
                    "operation_failed",
                    extra={
                        "operation": func.__name__,
                        "error_kind": exc.kind,
                        "error_code": exc.code,
                    },
                )
                return ServiceResult.failure(ServiceError.from_exception(exc))
            except (OperationalError, InterfaceError):
                logger.error(
                    "operation_store_unavailable",
                    extra={"operation": func.__name__},
                    exc_info=True,
                )
                return ServiceResult.failure(
                    ServiceError.from_exception(StoreUnavailableError(func.__name__))
                )

    return wrapper


def _as_party(value: PartyInput | dict[str, Any]) -> PartyInput:
    return value if isinstance(value, PartyInput) else PartyInput(**value)


def _as_payload(value: SignaturePayload | dict[str, Any]) -> SignaturePayload:
    return value if isinstance(value, SignaturePayload) else SignaturePayload(**value)


class MarketplaceAPI:
    """Result-returning facade over the contract and settlement engines."""

    def __init__(self, orchestrator: SettlementOrchestrator) -> None:
        self.orchestrator = orchestrator

    @classmethod
    def from_config(
        cls,
        config: SettlementConfig,
        *,
        gateway: PaymentGateway | None = None,
        clock: Clock | None = None,
        session_factory=None,
    ) -> MarketplaceAPI:
        return cls(
            SettlementOrchestrator.from_config(
                config, session_factory=session_factory, gateway=gateway, clock=clock
            )
        )

    # Contracts

    @service_operation
    def generate_contract(
        self,
        deal_id: UUID,
        template_kind: str,
        parties: list[PartyInput | dict[str, Any]],
        *,
        requires_guardian_signature: bool = False,
        requires_witness: bool = False,
        title: str | None = None,
        compensation_amount: int | None = None,
        effective_date: date | None = None,
        expiration_date: date | None = None,
        clauses: list[dict] | None = None,
        terms: str | None = None,
    ) -> ContractInfo:
        return self.orchestrator.contracts.generate_contract(
            deal_id,
            template_kind,
            [_as_party(p) for p in parties],
            requires_guardian_signature=requires_guardian_signature,
            requires_witness=requires_witness,
            title=title,
            compensation_amount=compensation_amount,
            effective_date=effective_date,
            expiration_date=expiration_date,
            clauses=clauses,
            terms=terms,
        )

    @service_operation
    def update_contract(
        self,
        contract_id: UUID,
        *,
        title: str | None = None,
        terms: str | None = None,
        clauses: list[dict] | None = None,
        compensation_amount: int | None = None,
        effective_date: date | None = None,
        expiration_date: date | None = None,
    ) -> ContractInfo:
        return self.orchestrator.contracts.update_contract(
            contract_id,
            title=title,
            terms=terms,
            clauses=clauses,
            compensation_amount=compensation_amount,
            effective_date=effective_date,
            expiration_date=expiration_date,
        )

    @service_operation
    def send_for_signature(self, contract_id: UUID) -> ContractInfo:
        return self.orchestrator.contracts.send_for_signature(contract_id)

    @service_operation
    def sign(
        self,
        contract_id: UUID,
        party_type: str,
        payload: SignaturePayload | dict[str, Any],
    ) -> ContractStatusView:
        return self.orchestrator.contracts.sign(contract_id, party_type, _as_payload(payload))

    @service_operation
    def decline(
        self, contract_id: UUID, party_type: str, reason: str | None = None
    ) -> ContractStatusView:
        return self.orchestrator.contracts.decline(contract_id, party_type, reason)

    @service_operation
    def void_contract(self, contract_id: UUID, reason: str) -> ContractInfo:
        return self.orchestrator.contracts.void_contract(contract_id, reason)

    @service_operation
    def get_contract(self, contract_id: UUID) -> ContractInfo:
        return self.orchestrator.contracts.get_contract(contract_id)

    @service_operation
    def get_contract_status(self, contract_id: UUID) -> ContractStatusView:
        return self.orchestrator.contracts.get_contract_status(contract_id)

    @service_operation
    def list_contracts_for_deal(self, deal_id: UUID) -> list[ContractInfo]:
        return self.orchestrator.contracts.list_contracts_for_deal(deal_id)

    @service_operation
    def list_contracts_for_payee(
        self, payee_id: UUID, statuses: list[str] | None = None
    ) -> list[ContractInfo]:
        return self.orchestrator.contracts.list_contracts_for_payee(payee_id, statuses)

    @service_operation
    def list_contracts_for_payer(
        self, payer_id: UUID, statuses: list[str] | None = None
    ) -> list[ContractInfo]:
        return self.orchestrator.contracts.list_contracts_for_payer(payer_id, statuses)

    # Money

    @service_operation
    def execute_payment(self, deal_id: UUID, payment_method_ref: str) -> PaymentInfo:
        return self.orchestrator.settlement.execute_payment(deal_id, payment_method_ref)

    @service_operation
    def request_payout(
        self, payee_id: UUID, amount: int | None = None, method: str = "standard"
    ) -> PayoutInfo:
        return self.orchestrator.payouts.request_payout(payee_id, amount, method)

    @service_operation
    def get_athlete_balance(self, payee_id: UUID) -> BalanceInfo:
        return self.orchestrator.settlement.get_athlete_balance(payee_id)

    @service_operation
    def get_athlete_earnings(self, payee_id: UUID, year: int | None = None) -> EarningsSummary:
        return self.orchestrator.settlement.get_athlete_earnings(payee_id, year)

    @service_operation
    def onboard_payee(
        self, payee_id: UUID, *, email: str | None = None, country: str = "US"
    ) -> PayoutAccountInfo:
        return self.orchestrator.accounts.onboard_payee(payee_id, email=email, country=country)

    # Processor notifications

    @service_operation
    def handle_webhook(self, payload: bytes | str, signature_header: str) -> ReconcileResult:
        return self.orchestrator.reconciler.handle_payload(payload, signature_header)
