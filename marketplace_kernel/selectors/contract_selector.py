"""Read queries over contracts and their signatures."""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from marketplace_kernel.domain.dtos import (
    ContractInfo,
    ContractStatusView,
    PartySignatureView,
)
from marketplace_kernel.domain.statuses import (
    SIGNABLE_CONTRACT_STATUSES,
    ContractStatus,
    SignatureStatus,
)
from marketplace_kernel.models.contract import Contract, ContractSignature
from marketplace_kernel.models.deal import Deal
from marketplace_kernel.selectors.base import BaseSelector

_PARTY_ORDER = {"athlete": 0, "brand": 1, "guardian": 2, "witness": 3}


class ContractSelector(BaseSelector):
    """Contract reads.  Returns None for unknown ids; callers raise."""

    def _signatures(self, contract_id: UUID) -> list[ContractSignature]:
        rows = self._all(
            select(ContractSignature).where(ContractSignature.contract_id == contract_id),
            fresh=True,
        )
        return sorted(rows, key=lambda s: _PARTY_ORDER.get(s.party_type, 99))

    def _contract(self, contract_id: UUID) -> Contract | None:
        return self.session.get(Contract, contract_id, populate_existing=True)

    def get_contract(self, contract_id: UUID) -> ContractInfo | None:
        contract = self._contract(contract_id)
        if contract is None:
            return None
        return ContractInfo.from_model(contract, self._signatures(contract_id))

    def get_status(self, contract_id: UUID) -> ContractStatusView | None:
        """
        Signing progress for a contract.

        ``can_sign`` is True while the contract accepts signatures and at
        least one party is still pending.
        """
        contract = self._contract(contract_id)
        if contract is None:
            return None
        signatures = self._signatures(contract_id)
        views = tuple(
            PartySignatureView(
                party_type=s.party_type,
                name=s.signer_name,
                status=s.signature_status,
                signed_at=s.signed_at,
            )
            for s in signatures
        )
        pending = any(s.signature_status == SignatureStatus.PENDING.value for s in signatures)
        return ContractStatusView(
            contract_id=contract.id,
            contract_status=contract.status,
            signatures=views,
            all_signed=contract.status == ContractStatus.FULLY_SIGNED.value,
            can_sign=contract.status in SIGNABLE_CONTRACT_STATUSES and pending,
        )

    def list_for_deal(self, deal_id: UUID) -> list[ContractInfo]:
        contracts = self._all(
            select(Contract)
            .where(Contract.deal_id == deal_id)
            .order_by(Contract.created_at.desc(), Contract.id),
            fresh=True,
        )
        return [ContractInfo.from_model(c, self._signatures(c.id)) for c in contracts]

    def list_for_payee(
        self, payee_id: UUID, statuses: Iterable[str] | None = None
    ) -> list[ContractInfo]:
        """Contracts on every deal where ``payee_id`` is the athlete, newest first."""
        return self._list_for_party(Deal.payee_id == payee_id, statuses)

    def list_for_payer(
        self, payer_id: UUID, statuses: Iterable[str] | None = None
    ) -> list[ContractInfo]:
        """Contracts on every deal where ``payer_id`` is the brand, newest first."""
        return self._list_for_party(Deal.payer_id == payer_id, statuses)

    def _list_for_party(self, party_clause, statuses: Iterable[str] | None) -> list[ContractInfo]:
        stmt = (
            select(Contract)
            .join(Deal, Deal.id == Contract.deal_id)
            .where(party_clause)
            .order_by(Contract.created_at.desc(), Contract.id)
        )
        if statuses is not None:
            stmt = stmt.where(Contract.status.in_(list(statuses)))
        contracts = self._all(stmt, fresh=True)
        return [ContractInfo.from_model(c, self._signatures(c.id)) for c in contracts]
