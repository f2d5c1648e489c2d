"""
DTOs -- immutable data returned across the kernel boundary.

Responsibility:
    Frozen dataclasses handed back by services and selectors.  Callers never
    receive ORM instances, so nothing outside a unit of work can lazily load
    or mutate persisted state.

Architecture position:
    Kernel > Domain -- pure data.  ``from_model()`` converters are boundary
    helpers invoked only from services/selectors, inside a unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from marketplace_kernel.models.contract import Contract, ContractSignature
    from marketplace_kernel.models.earnings import EarningsRecord
    from marketplace_kernel.models.payment import Payment
    from marketplace_kernel.models.payout import Payout
    from marketplace_kernel.models.payout_account import ConnectedPayoutAccount


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PartyInput:
    """A party to be asked for a signature on a new contract."""

    party_type: str
    name: str
    email: str | None = None
    signer_id: UUID | None = None
    signature_method: str = "typed"


@dataclass(frozen=True)
class SignaturePayload:
    """What a signer submits when signing."""

    signature_data: str
    signer_name: str | None = None
    signature_method: str | None = None
    ip_address: str | None = None


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignatureInfo:
    id: UUID
    contract_id: UUID
    party_type: str
    signer_name: str
    signer_email: str | None
    signer_id: UUID | None
    signature_method: str
    signature_status: str
    signed_at: datetime | None
    declined_at: datetime | None
    decline_reason: str | None

    @classmethod
    def from_model(cls, sig: ContractSignature) -> SignatureInfo:
        return cls(
            id=sig.id,
            contract_id=sig.contract_id,
            party_type=sig.party_type,
            signer_name=sig.signer_name,
            signer_email=sig.signer_email,
            signer_id=sig.signer_id,
            signature_method=sig.signature_method,
            signature_status=sig.signature_status,
            signed_at=sig.signed_at,
            declined_at=sig.declined_at,
            decline_reason=sig.decline_reason,
        )


@dataclass(frozen=True)
class ContractInfo:
    id: UUID
    deal_id: UUID
    template_kind: str
    title: str
    compensation_amount: int
    currency: str
    effective_date: date
    expiration_date: date | None
    clauses: tuple[dict[str, Any], ...]
    requires_guardian_signature: bool
    requires_witness: bool
    status: str
    sent_at: datetime | None
    signed_at: datetime | None
    voided_at: datetime | None
    void_reason: str | None
    signatures: tuple[SignatureInfo, ...] = ()

    @classmethod
    def from_model(
        cls,
        contract: Contract,
        signatures: list[ContractSignature] | None = None,
    ) -> ContractInfo:
        return cls(
            id=contract.id,
            deal_id=contract.deal_id,
            template_kind=contract.template_kind,
            title=contract.title,
            compensation_amount=contract.compensation_amount,
            currency=contract.currency,
            effective_date=contract.effective_date,
            expiration_date=contract.expiration_date,
            clauses=tuple(contract.clauses or ()),
            requires_guardian_signature=contract.requires_guardian_signature,
            requires_witness=contract.requires_witness,
            status=contract.status,
            sent_at=contract.sent_at,
            signed_at=contract.signed_at,
            voided_at=contract.voided_at,
            void_reason=contract.void_reason,
            signatures=tuple(SignatureInfo.from_model(s) for s in signatures or ()),
        )


@dataclass(frozen=True)
class PartySignatureView:
    party_type: str
    name: str
    status: str
    signed_at: datetime | None


@dataclass(frozen=True)
class ContractStatusView:
    """Signing progress as shown to a party deciding whether to sign."""

    contract_id: UUID
    contract_status: str
    signatures: tuple[PartySignatureView, ...]
    all_signed: bool
    can_sign: bool


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentInfo:
    id: UUID
    deal_id: UUID
    payer_id: UUID
    payee_id: UUID
    gross_amount: int
    platform_fee: int
    net_amount: int
    currency: str
    status: str
    gateway_intent_ref: str | None
    failure_reason: str | None
    succeeded_at: datetime | None
    settled_at: datetime | None

    @classmethod
    def from_model(cls, payment: Payment) -> PaymentInfo:
        return cls(
            id=payment.id,
            deal_id=payment.deal_id,
            payer_id=payment.payer_id,
            payee_id=payment.payee_id,
            gross_amount=payment.gross_amount,
            platform_fee=payment.platform_fee,
            net_amount=payment.net_amount,
            currency=payment.currency,
            status=payment.status,
            gateway_intent_ref=payment.gateway_intent_ref,
            failure_reason=payment.failure_reason,
            succeeded_at=payment.succeeded_at,
            settled_at=payment.settled_at,
        )


@dataclass(frozen=True)
class PayoutInfo:
    id: UUID
    payee_id: UUID
    amount: int
    currency: str
    method: str
    status: str
    gateway_payout_ref: str | None
    failure_reason: str | None
    arrival_date: date | None

    @classmethod
    def from_model(cls, payout: Payout) -> PayoutInfo:
        return cls(
            id=payout.id,
            payee_id=payout.payee_id,
            amount=payout.amount,
            currency=payout.currency,
            method=payout.method,
            status=payout.status,
            gateway_payout_ref=payout.gateway_payout_ref,
            failure_reason=payout.failure_reason,
            arrival_date=payout.arrival_date,
        )


@dataclass(frozen=True)
class PayoutAccountInfo:
    id: UUID
    payee_id: UUID
    external_account_ref: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    available_balance: int
    pending_balance: int
    currency: str

    @classmethod
    def from_model(cls, account: ConnectedPayoutAccount) -> PayoutAccountInfo:
        return cls(
            id=account.id,
            payee_id=account.payee_id,
            external_account_ref=account.external_account_ref,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            details_submitted=account.details_submitted,
            available_balance=account.available_balance,
            pending_balance=account.pending_balance,
            currency=account.currency,
        )


@dataclass(frozen=True)
class BalanceInfo:
    payee_id: UUID
    available: int
    pending: int
    currency: str

    @property
    def total(self) -> int:
        return self.available + self.pending


@dataclass(frozen=True)
class EarningsRecordInfo:
    year: int
    month: int
    gross_earnings: int
    platform_fees: int
    net_earnings: int
    deals_completed: int

    @classmethod
    def from_model(cls, record: EarningsRecord) -> EarningsRecordInfo:
        return cls(
            year=record.year,
            month=record.month,
            gross_earnings=record.gross_earnings,
            platform_fees=record.platform_fees,
            net_earnings=record.net_earnings,
            deals_completed=record.deals_completed,
        )


@dataclass(frozen=True)
class EarningsSummary:
    """Monthly records, newest first, plus totals across them."""

    payee_id: UUID
    records: tuple[EarningsRecordInfo, ...]
    total_gross: int
    total_fees: int
    total_net: int
    total_deals: int


@dataclass(frozen=True)
class BalanceDrift:
    """Local balances versus the processor's view of the connected account."""

    payee_id: UUID
    local_available: int
    local_pending: int
    gateway_available: int
    gateway_pending: int

    @property
    def available_delta(self) -> int:
        return self.gateway_available - self.local_available

    @property
    def pending_delta(self) -> int:
        return self.gateway_pending - self.local_pending

    @property
    def in_sync(self) -> bool:
        return self.available_delta == 0 and self.pending_delta == 0


@dataclass(frozen=True)
class SettlementResult:
    payee_id: UUID
    payments_settled: int
    amount_released: int
