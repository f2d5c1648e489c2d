"""
Contract status derivation.

Responsibility:
    Compute a contract's signing status from its signature set and
    requirement flags.  Called after every signature so the stored status is
    always recomputed fresh, never incrementally patched.

Architecture position:
    Kernel > Domain -- pure function, zero I/O.

Invariants enforced:
    - Required parties are athlete and brand, plus guardian and/or witness
      when flagged.
    - All required parties signed -> fully_signed.  A signature from a party
      that is not required never completes a contract, but does count as
      signing activity.
    - Any signed -> partially_signed, else pending_signature.
    - Terminal statuses (cancelled, voided) are set explicitly elsewhere and
      never produced here.
"""

from collections.abc import Iterable, Mapping

from marketplace_kernel.domain.statuses import (
    ContractStatus,
    PartyType,
    SignatureStatus,
)


def required_parties(
    requires_guardian: bool, requires_witness: bool
) -> frozenset[PartyType]:
    """Party types whose signature is needed for the contract to complete."""
    parties = {PartyType.ATHLETE, PartyType.BRAND}
    if requires_guardian:
        parties.add(PartyType.GUARDIAN)
    if requires_witness:
        parties.add(PartyType.WITNESS)
    return frozenset(parties)


def derive_contract_status(
    signatures: Mapping[str, str] | Iterable[tuple[str, str]],
    requires_guardian: bool,
    requires_witness: bool,
) -> ContractStatus:
    """
    Derive the signing status from ``party_type -> signature_status`` pairs.

    Accepts enum members or their string values.
    """
    pairs = signatures.items() if isinstance(signatures, Mapping) else signatures
    statuses = {
        PartyType(party).value: SignatureStatus(status)
        for party, status in pairs
    }

    required = required_parties(requires_guardian, requires_witness)
    if all(statuses.get(p.value) == SignatureStatus.SIGNED for p in required):
        return ContractStatus.FULLY_SIGNED
    if any(s == SignatureStatus.SIGNED for s in statuses.values()):
        return ContractStatus.PARTIALLY_SIGNED
    return ContractStatus.PENDING_SIGNATURE
