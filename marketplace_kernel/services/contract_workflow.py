"""
ContractWorkflowEngine -- multi-party e-signature lifecycle.

Responsibility:
    Create contracts with one pending signature slot per required party,
    move them through draft -> pending_signature -> partially_signed ->
    fully_signed, and handle declines and voids.  Terms stay editable until
    the first signature.

Architecture position:
    Kernel > Services.  Depends on the Ledger Store only.  Contract
    completion is NOT coupled to money movement.

Invariants enforced:
    - Status is recomputed from the full signature set after every
      signature (``derive_contract_status``), never patched incrementally.
    - Each signature leaves ``pending`` at most once: the write is a
      conditional update, so a concurrent duplicate loses with
      SignatureAlreadyProcessedError.
    - The contract row is locked (SELECT ... FOR UPDATE) for the duration of
      a sign / decline / void, serializing concurrent signers of the same
      contract.
    - A core-party (athlete, brand) decline cancels the contract.
    - A contract draft whose signatures fail to persist is deleted.

Failure modes:
    - DealNotFoundError, ContractNotFoundError, SignatureNotFoundError.
    - SignatureAlreadyProcessedError when the party already signed/declined.
    - InvalidStatusError when the contract does not accept the operation.
    - AlreadyVoidedError on a second void.
    - InvalidInputError for malformed party lists or payloads.
"""

from datetime import date
from uuid import UUID, uuid4

from marketplace_kernel.db.store import LedgerSession
from marketplace_kernel.db.types import normalize_currency
from marketplace_kernel.domain.contract_status import derive_contract_status, required_parties
from marketplace_kernel.domain.contract_templates import ContractTemplateKind, standard_clauses
from marketplace_kernel.domain.dtos import (
    ContractInfo,
    ContractStatusView,
    PartyInput,
    SignaturePayload,
)
from marketplace_kernel.domain.statuses import (
    CORE_PARTIES,
    EDITABLE_CONTRACT_STATUSES,
    SIGNABLE_CONTRACT_STATUSES,
    ContractStatus,
    PartyType,
    SignatureMethod,
    SignatureStatus,
)
from marketplace_kernel.domain.transaction_intents import ContractDraft, SignatureDraft
from marketplace_kernel.exceptions import (
    AlreadyVoidedError,
    ContractNotFoundError,
    DealNotFoundError,
    InvalidInputError,
    InvalidStatusError,
    SignatureAlreadyProcessedError,
    SignatureNotFoundError,
)
from marketplace_kernel.logging_config import LogContext, get_logger
from marketplace_kernel.models.contract import Contract, ContractSignature
from marketplace_kernel.models.deal import Deal
from marketplace_kernel.selectors.contract_selector import ContractSelector
from marketplace_kernel.services.base import BaseService

logger = get_logger("services.contract_workflow")

_NON_VOIDED_STATUSES = tuple(
    s.value for s in ContractStatus if s is not ContractStatus.VOIDED
)


def _parse_party_type(value: str) -> PartyType:
    try:
        return PartyType(value)
    except ValueError:
        raise InvalidInputError("party_type", f"unknown party type {value!r}") from None


def _parse_statuses(statuses: list[str] | None) -> tuple[str, ...] | None:
    if statuses is None:
        return None
    try:
        return tuple(ContractStatus(s).value for s in statuses)
    except ValueError:
        raise InvalidInputError("statuses", f"unknown contract status in {statuses!r}") from None


def _check_compensation(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidInputError(
            "compensation_amount", "must be a non-negative integer in minor units"
        )


def _parse_signature_method(value: str) -> SignatureMethod:
    try:
        return SignatureMethod(value)
    except ValueError:
        raise InvalidInputError(
            "signature_method", f"must be one of drawn, typed, uploaded; got {value!r}"
        ) from None


class ContractWorkflowEngine(BaseService):
    """
    Contract signature workflow.

    Contract:
        Every public method is one unit of work, except
        ``generate_contract`` which commits the contract and its signatures
        separately and compensates if the second half fails.

    Guarantees:
        - Returned objects are frozen DTOs.
        - State changes are logged with the contract id bound to LogContext.
    """

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def generate_contract(
        self,
        deal_id: UUID,
        template_kind: ContractTemplateKind | str,
        parties: list[PartyInput],
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
        """
        Create a ``draft`` contract for a deal with one pending signature per
        party.

        Compensation defaults to the deal amount, clauses to the template's
        standard clauses, and the effective date to today.

        Raises:
            InvalidInputError: malformed template, parties, dates or amount.
            DealNotFoundError: no such deal.
        """
        try:
            kind = ContractTemplateKind(template_kind)
        except ValueError:
            raise InvalidInputError("template_kind", f"unknown template {template_kind!r}") from None

        signature_drafts = self._validate_parties(
            parties, requires_guardian_signature, requires_witness
        )
        if compensation_amount is not None:
            _check_compensation(compensation_amount)
        effective = effective_date or self.clock.today()
        if expiration_date is not None and expiration_date < effective:
            raise InvalidInputError("expiration_date", "must not precede the effective date")

        with self.store.unit_of_work("generate_contract") as uow:
            deal = uow.get(Deal, deal_id)
            if deal is None:
                raise DealNotFoundError(str(deal_id))

            draft = ContractDraft(
                contract_id=uuid4(),
                deal_id=deal.id,
                template_kind=kind.value,
                title=title or deal.title or kind.value.replace("_", " ").title(),
                compensation_amount=(
                    deal.amount if compensation_amount is None else compensation_amount
                ),
                currency=normalize_currency(deal.currency),
                effective_date=effective,
                expiration_date=expiration_date,
                clauses=tuple(clauses if clauses is not None else (
                    c.to_dict() for c in standard_clauses(kind)
                )),
                requires_guardian_signature=requires_guardian_signature,
                requires_witness=requires_witness,
                signatures=signature_drafts,
                terms=terms,
            )
            self._insert_contract(uow, draft)

        with LogContext.bind(contract_id=draft.contract_id, deal_id=deal_id):
            try:
                with self.store.unit_of_work("generate_contract.signatures") as uow:
                    self._insert_signatures(uow, draft)
                    info = ContractSelector(uow.session).get_contract(draft.contract_id)
            except Exception:
                self._compensate_draft(draft)
                raise

            logger.info(
                "contract_generated",
                extra={
                    "template_kind": draft.template_kind,
                    "parties": [s.party_type.value for s in draft.signatures],
                },
            )
        return info

    def _validate_parties(
        self,
        parties: list[PartyInput],
        requires_guardian: bool,
        requires_witness: bool,
    ) -> tuple[SignatureDraft, ...]:
        drafts: list[SignatureDraft] = []
        seen: set[PartyType] = set()
        for party in parties:
            party_type = _parse_party_type(party.party_type)
            if party_type in seen:
                raise InvalidInputError("parties", f"duplicate party {party_type.value!r}")
            seen.add(party_type)
            if not party.name or not party.name.strip():
                raise InvalidInputError("parties", f"{party_type.value} signer name is required")
            drafts.append(
                SignatureDraft(
                    party_type=party_type,
                    signer_name=party.name.strip(),
                    signer_email=party.email,
                    signer_id=party.signer_id,
                    signature_method=_parse_signature_method(party.signature_method),
                )
            )

        required = required_parties(requires_guardian, requires_witness)
        missing = required - seen
        if missing:
            raise InvalidInputError(
                "parties",
                "missing required parties: " + ", ".join(sorted(p.value for p in missing)),
            )
        unexpected = seen - required
        if unexpected:
            raise InvalidInputError(
                "parties",
                "parties not required by this contract: "
                + ", ".join(sorted(p.value for p in unexpected)),
            )
        return tuple(drafts)

    def _insert_contract(self, uow: LedgerSession, draft: ContractDraft) -> None:
        uow.add(
            Contract(
                id=draft.contract_id,
                deal_id=draft.deal_id,
                template_kind=draft.template_kind,
                title=draft.title,
                terms=draft.terms,
                compensation_amount=draft.compensation_amount,
                currency=draft.currency,
                effective_date=draft.effective_date,
                expiration_date=draft.expiration_date,
                clauses=list(draft.clauses),
                requires_guardian_signature=draft.requires_guardian_signature,
                requires_witness=draft.requires_witness,
                status=ContractStatus.DRAFT.value,
            )
        )

    def _insert_signatures(self, uow: LedgerSession, draft: ContractDraft) -> None:
        for sig in draft.signatures:
            uow.add(
                ContractSignature(
                    contract_id=draft.contract_id,
                    party_type=sig.party_type.value,
                    signer_id=sig.signer_id,
                    signer_name=sig.signer_name,
                    signer_email=sig.signer_email,
                    signature_method=sig.signature_method.value,
                    signature_status=SignatureStatus.PENDING.value,
                )
            )

    def _compensate_draft(self, draft: ContractDraft) -> None:
        """Delete a contract whose signature slots could not be written."""
        try:
            with self.store.unit_of_work("generate_contract.compensate") as uow:
                contract = uow.get(Contract, draft.contract_id)
                if contract is not None:
                    uow.delete(contract)
        except Exception:
            logger.error("contract_draft_compensation_failed", exc_info=True)
            raise
        logger.warning("contract_draft_compensated")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

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
        """
        Edit a contract that nobody has signed yet.

        Only ``draft`` and ``pending_signature`` contracts can be edited.
        Fields left as None keep their current value.

        Raises:
            InvalidInputError: no fields given, or a field fails validation.
            InvalidStatusError: the contract is past the editable statuses.
        """
        values: dict[str, object] = {}
        if title is not None:
            if not title.strip():
                raise InvalidInputError("title", "must not be blank")
            values["title"] = title.strip()
        if terms is not None:
            values["terms"] = terms
        if clauses is not None:
            values["clauses"] = list(clauses)
        if compensation_amount is not None:
            _check_compensation(compensation_amount)
            values["compensation_amount"] = compensation_amount
        if effective_date is not None:
            values["effective_date"] = effective_date
        if expiration_date is not None:
            values["expiration_date"] = expiration_date
        if not values:
            raise InvalidInputError("updates", "at least one field must be given")

        with LogContext.bind(contract_id=contract_id):
            with self.store.unit_of_work("update_contract") as uow:
                contract = self._lock_contract(uow, contract_id)
                if contract.status not in EDITABLE_CONTRACT_STATUSES:
                    raise InvalidStatusError(
                        "Contract", str(contract_id), contract.status, EDITABLE_CONTRACT_STATUSES
                    )
                effective = values.get("effective_date", contract.effective_date)
                expiration = values.get("expiration_date", contract.expiration_date)
                if expiration is not None and effective is not None and expiration < effective:
                    raise InvalidInputError(
                        "expiration_date", "must not precede the effective date"
                    )

                if not uow.transition(
                    Contract,
                    contract_id,
                    from_status=contract.status,
                    to_status=contract.status,
                    **values,
                ):
                    current = uow.get(Contract, contract_id)
                    raise InvalidStatusError(
                        "Contract", str(contract_id), current.status, EDITABLE_CONTRACT_STATUSES
                    )
                info = ContractSelector(uow.session).get_contract(contract_id)
            logger.info("contract_updated", extra={"updated_fields": sorted(values)})
        return info

    def send_for_signature(self, contract_id: UUID) -> ContractInfo:
        """draft -> pending_signature."""
        with LogContext.bind(contract_id=contract_id):
            with self.store.unit_of_work("send_for_signature") as uow:
                contract = self._lock_contract(uow, contract_id)
                moved = uow.transition(
                    Contract,
                    contract_id,
                    from_status=ContractStatus.DRAFT.value,
                    to_status=ContractStatus.PENDING_SIGNATURE.value,
                    sent_at=self.clock.now_utc(),
                )
                if not moved:
                    raise InvalidStatusError(
                        "Contract", str(contract_id), contract.status, [ContractStatus.DRAFT.value]
                    )
                info = ContractSelector(uow.session).get_contract(contract_id)
            logger.info("contract_sent_for_signature")
        return info

    def sign(
        self,
        contract_id: UUID,
        party_type: PartyType | str,
        payload: SignaturePayload,
    ) -> ContractStatusView:
        """
        Record a party's signature and recompute the contract status.

        Raises:
            SignatureAlreadyProcessedError: the party already signed/declined.
            InvalidStatusError: the contract is not awaiting signatures.
        """
        party = _parse_party_type(party_type)
        if not payload.signature_data:
            raise InvalidInputError("signature_data", "signature payload is required")
        extra_values = {}
        if payload.signature_method is not None:
            extra_values["signature_method"] = _parse_signature_method(
                payload.signature_method
            ).value
        if payload.signer_name:
            extra_values["signer_name"] = payload.signer_name

        with LogContext.bind(contract_id=contract_id):
            with self.store.unit_of_work("sign_contract") as uow:
                contract, signature = self._guard_signable(uow, contract_id, party)
                now = self.clock.now_utc()

                won = uow.transition(
                    ContractSignature,
                    signature.id,
                    status_field="signature_status",
                    from_status=SignatureStatus.PENDING.value,
                    to_status=SignatureStatus.SIGNED.value,
                    signed_at=now,
                    signature_data=payload.signature_data,
                    ip_address=payload.ip_address,
                    **extra_values,
                )
                if not won:
                    current = uow.get(ContractSignature, signature.id)
                    raise SignatureAlreadyProcessedError(
                        str(contract_id), party.value, current.signature_status
                    )

                new_status = self._recompute_status(uow, contract)
                values = {"signed_at": now} if new_status is ContractStatus.FULLY_SIGNED else {}
                if not uow.transition(
                    Contract,
                    contract_id,
                    from_status=SIGNABLE_CONTRACT_STATUSES,
                    to_status=new_status.value,
                    **values,
                ):
                    current = uow.get(Contract, contract_id)
                    raise InvalidStatusError(
                        "Contract", str(contract_id), current.status, SIGNABLE_CONTRACT_STATUSES
                    )
                view = ContractSelector(uow.session).get_status(contract_id)

            logger.info(
                "contract_signed",
                extra={"party_type": party.value, "contract_status": new_status.value},
            )
            if new_status is ContractStatus.FULLY_SIGNED:
                logger.info("contract_fully_signed")
        return view

    def decline(
        self,
        contract_id: UUID,
        party_type: PartyType | str,
        reason: str | None = None,
    ) -> ContractStatusView:
        """
        Record a party's refusal to sign.

        An athlete or brand decline cancels the contract.  A guardian or
        witness decline cancels it only when the policy switch
        ``cancel_on_optional_party_decline`` is on.
        """
        party = _parse_party_type(party_type)

        with LogContext.bind(contract_id=contract_id):
            with self.store.unit_of_work("decline_contract") as uow:
                contract, signature = self._guard_signable(uow, contract_id, party)
                now = self.clock.now_utc()

                won = uow.transition(
                    ContractSignature,
                    signature.id,
                    status_field="signature_status",
                    from_status=SignatureStatus.PENDING.value,
                    to_status=SignatureStatus.DECLINED.value,
                    declined_at=now,
                    decline_reason=reason,
                )
                if not won:
                    current = uow.get(ContractSignature, signature.id)
                    raise SignatureAlreadyProcessedError(
                        str(contract_id), party.value, current.signature_status
                    )

                cancels = party in CORE_PARTIES or self.policy.cancel_on_optional_party_decline
                if cancels and not uow.transition(
                    Contract,
                    contract_id,
                    from_status=SIGNABLE_CONTRACT_STATUSES,
                    to_status=ContractStatus.CANCELLED.value,
                ):
                    current = uow.get(Contract, contract_id)
                    raise InvalidStatusError(
                        "Contract", str(contract_id), current.status, SIGNABLE_CONTRACT_STATUSES
                    )
                view = ContractSelector(uow.session).get_status(contract_id)

            logger.info(
                "contract_declined",
                extra={"party_type": party.value, "contract_cancelled": cancels},
            )
        return view

    def void_contract(self, contract_id: UUID, reason: str) -> ContractInfo:
        """Any non-voided status -> voided, recording reason and time."""
        if not reason or not reason.strip():
            raise InvalidInputError("reason", "a void reason is required")

        with LogContext.bind(contract_id=contract_id):
            with self.store.unit_of_work("void_contract") as uow:
                self._lock_contract(uow, contract_id)
                if not uow.transition(
                    Contract,
                    contract_id,
                    from_status=_NON_VOIDED_STATUSES,
                    to_status=ContractStatus.VOIDED.value,
                    voided_at=self.clock.now_utc(),
                    void_reason=reason.strip(),
                ):
                    raise AlreadyVoidedError(str(contract_id))
                info = ContractSelector(uow.session).get_contract(contract_id)
            logger.info("contract_voided", extra={"void_reason": reason.strip()})
        return info

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_contract(self, contract_id: UUID) -> ContractInfo:
        with self.store.unit_of_work("get_contract") as uow:
            info = ContractSelector(uow.session).get_contract(contract_id)
        if info is None:
            raise ContractNotFoundError(str(contract_id))
        return info

    def get_contract_status(self, contract_id: UUID) -> ContractStatusView:
        with self.store.unit_of_work("get_contract_status") as uow:
            view = ContractSelector(uow.session).get_status(contract_id)
        if view is None:
            raise ContractNotFoundError(str(contract_id))
        return view

    def list_contracts_for_deal(self, deal_id: UUID) -> list[ContractInfo]:
        with self.store.unit_of_work("list_contracts_for_deal") as uow:
            if uow.get(Deal, deal_id) is None:
                raise DealNotFoundError(str(deal_id))
            return ContractSelector(uow.session).list_for_deal(deal_id)

    def list_contracts_for_payee(
        self, payee_id: UUID, statuses: list[str] | None = None
    ) -> list[ContractInfo]:
        """Every contract where the payee is the athlete, optionally by status."""
        wanted = _parse_statuses(statuses)
        with self.store.unit_of_work("list_contracts_for_payee") as uow:
            return ContractSelector(uow.session).list_for_payee(payee_id, wanted)

    def list_contracts_for_payer(
        self, payer_id: UUID, statuses: list[str] | None = None
    ) -> list[ContractInfo]:
        wanted = _parse_statuses(statuses)
        with self.store.unit_of_work("list_contracts_for_payer") as uow:
            return ContractSelector(uow.session).list_for_payer(payer_id, wanted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_contract(self, uow: LedgerSession, contract_id: UUID) -> Contract:
        contract = uow.get_for_update(Contract, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def _guard_signable(
        self, uow: LedgerSession, contract_id: UUID, party: PartyType
    ) -> tuple[Contract, ContractSignature]:
        contract = self._lock_contract(uow, contract_id)
        signature = uow.find_one(
            ContractSignature, contract_id=contract_id, party_type=party.value
        )
        if signature is None:
            raise SignatureNotFoundError(str(contract_id), party.value)
        # Signature status is checked before contract status
        if signature.signature_status != SignatureStatus.PENDING.value:
            raise SignatureAlreadyProcessedError(
                str(contract_id), party.value, signature.signature_status
            )
        if contract.status not in SIGNABLE_CONTRACT_STATUSES:
            raise InvalidStatusError(
                "Contract", str(contract_id), contract.status, SIGNABLE_CONTRACT_STATUSES
            )
        return contract, signature

    def _recompute_status(self, uow: LedgerSession, contract: Contract) -> ContractStatus:
        signatures = uow.list_by(ContractSignature, contract_id=contract.id)
        return derive_contract_status(
            [(s.party_type, s.signature_status) for s in signatures],
            contract.requires_guardian_signature,
            contract.requires_witness,
        )
