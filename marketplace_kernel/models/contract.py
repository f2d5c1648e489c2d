"""
Module: marketplace_kernel.models.contract
Responsibility: ORM persistence for deal contracts and their per-party
    signature slots.
Architecture position: Kernel > Models.  May import from db/ and
    domain/statuses only.

Invariants enforced:
    - One signature row per (contract, party_type) (uq_signature_contract_party).
    - Contract.status is derived from the signature set by the Contract
      Workflow Engine, except for the explicit cancelled / voided
      transitions.
    - A contract is frozen once fully_signed, cancelled or voided; only
      void metadata may change afterwards.
    - Signatures are deleted with their contract (compensation path only).

Failure modes:
    - IntegrityError on a duplicate party signature for the same contract.
    - IntegrityError if deal_id does not reference an existing Deal.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase
from marketplace_kernel.domain.statuses import (
    ContractStatus,
    SignatureMethod,
    SignatureStatus,
)


class Contract(TrackedBase):
    """
    Multi-party agreement attached to a deal.

    Guarantees:
        - requires_guardian_signature / requires_witness are fixed at creation
          and decide which signatures are required.
        - signed_at is set exactly when status becomes fully_signed.
        - voided_at and void_reason are set together.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        CheckConstraint(
            "compensation_amount >= 0", name="ck_contract_compensation_non_negative"
        ),
        Index("idx_contract_deal", "deal_id"),
        Index("idx_contract_status", "status"),
    )

    deal_id: Mapped[UUID] = mapped_column(
        ForeignKey("deals.id"),
        nullable=False,
    )

    template_kind: Mapped[str] = mapped_column(String(40), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    compensation_amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Ordered list of {"title", "content", "is_required"}
    clauses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    requires_guardian_signature: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    requires_witness: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ContractStatus.DRAFT.value,
    )

    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_voided(self) -> bool:
        return self.status == ContractStatus.VOIDED.value

    def __repr__(self) -> str:
        return f"<Contract {self.id}: deal={self.deal_id} ({self.status})>"


class ContractSignature(TrackedBase):
    """
    One required party's signature slot.

    Guarantees:
        - signature_status moves pending -> signed or pending -> declined at
          most once, through a conditional update.
    """

    __tablename__ = "contract_signatures"

    __table_args__ = (
        UniqueConstraint("contract_id", "party_type", name="uq_signature_contract_party"),
        Index("idx_signature_contract", "contract_id"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
    )

    party_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Platform user id of the signer, when known
    signer_id: Mapped[UUID | None] = mapped_column(nullable=True)

    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)

    signer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    signature_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SignatureMethod.TYPED.value,
    )

    # Typed name, drawn-image data URL, or uploaded file reference
    signature_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    signature_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SignatureStatus.PENDING.value,
    )

    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    declined_at: Mapped[datetime | None] = mapped_column(nullable=True)

    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # IPv4 or IPv6 origin address of the signing request
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ContractSignature {self.contract_id}/{self.party_type}: "
            f"{self.signature_status}>"
        )
