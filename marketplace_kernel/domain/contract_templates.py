"""
Contract template kinds and their standard clauses.

The clause text is static configuration: contracts generated without an
explicit clause list receive the common clauses followed by the clauses
specific to their template kind.
"""

from dataclasses import dataclass
from enum import Enum


class ContractTemplateKind(str, Enum):
    STANDARD_ENDORSEMENT = "standard_endorsement"
    SOCIAL_MEDIA_CAMPAIGN = "social_media_campaign"
    APPEARANCE_AGREEMENT = "appearance_agreement"
    MERCHANDISE_LICENSING = "merchandise_licensing"
    AUTOGRAPH_SESSION = "autograph_session"
    CAMP_PARTICIPATION = "camp_participation"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Clause:
    title: str
    content: str
    is_required: bool = True

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "is_required": self.is_required,
        }


_COMMON_CLAUSES: tuple[Clause, ...] = (
    Clause(
        "Agreement",
        "This Agreement is entered into between the Brand and the Athlete "
        "as identified in this contract.",
    ),
    Clause(
        "Compensation",
        "The Brand agrees to pay the Athlete the compensation amount "
        "specified in this contract for the services rendered.",
    ),
    Clause(
        "Term",
        "This Agreement shall commence on the Effective Date and continue "
        "until the Expiration Date unless terminated earlier.",
    ),
    Clause(
        "NCAA Compliance",
        "Both parties agree to comply with all applicable NCAA rules and "
        "regulations regarding Name, Image, and Likeness (NIL) activities.",
    ),
    Clause(
        "Termination",
        "Either party may terminate this Agreement with written notice if "
        "the other party materially breaches any term of this Agreement.",
    ),
    Clause(
        "Governing Law",
        "This Agreement shall be governed by the laws of the state where "
        "the Athlete is enrolled as a student.",
    ),
)

_TEMPLATE_CLAUSES: dict[ContractTemplateKind, tuple[Clause, ...]] = {
    ContractTemplateKind.SOCIAL_MEDIA_CAMPAIGN: (
        Clause(
            "Content Requirements",
            "The Athlete agrees to create and post content as specified in "
            "the deliverables section of this contract.",
        ),
        Clause(
            "Content Approval",
            "All content must be submitted to the Brand for approval at "
            "least 48 hours before posting.",
            is_required=False,
        ),
    ),
    ContractTemplateKind.APPEARANCE_AGREEMENT: (
        Clause(
            "Appearance Details",
            "The Athlete agrees to appear at the location, date, and time "
            "specified in this contract.",
        ),
        Clause(
            "Attire and Conduct",
            "The Athlete agrees to dress appropriately and conduct themselves "
            "professionally during the appearance.",
        ),
    ),
    ContractTemplateKind.MERCHANDISE_LICENSING: (
        Clause(
            "License Grant",
            "The Athlete grants the Brand a limited, non-exclusive license to "
            "use their Name, Image, and Likeness on approved merchandise.",
        ),
        Clause(
            "Quality Standards",
            "All merchandise bearing the Athlete's likeness must meet "
            "reasonable quality standards.",
        ),
    ),
}


def standard_clauses(kind: ContractTemplateKind | str) -> list[Clause]:
    """Common clauses followed by the template-specific ones."""
    kind = ContractTemplateKind(kind)
    return [*_COMMON_CLAUSES, *_TEMPLATE_CLAUSES.get(kind, ())]
