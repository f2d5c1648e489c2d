"""
Transaction intents -- the multi-row writes the engines apply atomically.

Responsibility:
    Describe, as frozen data, everything one unit of work must persist.
    Engines build an intent from validated inputs, then apply it inside a
    single LedgerStore unit of work.  Building an intent performs no I/O.

Architecture position:
    Kernel > Domain -- pure value objects.

Intents:
    ContractDraft     contract row + one pending signature per party.  The
                      compensating action (delete the contract) is applied if
                      the signature half fails after the contract half
                      committed.
    PaymentSettled    payment succeeded, deal paid, pending balance credited,
                      monthly earnings incremented.
    PaymentDeclined   payment failed with a reason; deal untouched.
"""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from marketplace_kernel.domain.statuses import PartyType, SignatureMethod


@dataclass(frozen=True)
class SignatureDraft:
    """One pending signature slot on a new contract."""

    party_type: PartyType
    signer_name: str
    signer_email: str | None = None
    signer_id: UUID | None = None
    signature_method: SignatureMethod = SignatureMethod.TYPED


@dataclass(frozen=True)
class ContractDraft:
    """A contract about to be created in ``draft``."""

    contract_id: UUID
    deal_id: UUID
    template_kind: str
    title: str
    compensation_amount: int
    currency: str
    effective_date: date
    expiration_date: date | None
    clauses: tuple[dict, ...]
    requires_guardian_signature: bool
    requires_witness: bool
    signatures: tuple[SignatureDraft, ...]
    terms: str | None = None


@dataclass(frozen=True)
class PaymentSettled:
    """Gateway confirmed a charge; four writes become visible together."""

    payment_id: UUID
    deal_id: UUID
    payee_id: UUID
    gross: int
    fee: int
    net: int
    occurred_at: datetime

    @property
    def earnings_period(self) -> tuple[int, int]:
        return self.occurred_at.year, self.occurred_at.month


@dataclass(frozen=True)
class PaymentDeclined:
    """Gateway refused a charge."""

    payment_id: UUID
    reason: str
    occurred_at: datetime
    failure_code: str | None = None
