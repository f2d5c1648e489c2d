"""
Status and classification enums shared by models, domain logic and services.

Values are persisted as their ``.value`` strings in String(20) columns.
"""

from enum import Enum


class DealStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PAID = "paid"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ContractStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_SIGNED = "fully_signed"
    CANCELLED = "cancelled"
    VOIDED = "voided"


# Statuses in which a party may still sign or decline
SIGNABLE_CONTRACT_STATUSES = (
    ContractStatus.PENDING_SIGNATURE.value,
    ContractStatus.PARTIALLY_SIGNED.value,
)

# Statuses in which terms may still be edited (no signature recorded yet)
EDITABLE_CONTRACT_STATUSES = (
    ContractStatus.DRAFT.value,
    ContractStatus.PENDING_SIGNATURE.value,
)


class PartyType(str, Enum):
    ATHLETE = "athlete"
    BRAND = "brand"
    GUARDIAN = "guardian"
    WITNESS = "witness"


CORE_PARTIES = frozenset({PartyType.ATHLETE, PartyType.BRAND})


class SignatureStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"


class SignatureMethod(str, Enum):
    DRAWN = "drawn"
    TYPED = "typed"
    UPLOADED = "uploaded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"


# Payout statuses the reconciler may still move forward from
OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING.value, PayoutStatus.IN_TRANSIT.value)


class PayoutMethod(str, Enum):
    STANDARD = "standard"
    INSTANT = "instant"
