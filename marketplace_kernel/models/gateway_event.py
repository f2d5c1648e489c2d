"""
Module: marketplace_kernel.models.gateway_event
Responsibility: Record of every processor notification the reconciler has
    handled, keyed by the processor's event id.
Architecture position: Kernel > Models.

Invariants enforced:
    - event_id is unique; a second delivery of the same event is detected
      before any handler runs.
    - idempotency_key ("gateway:<event_type>:<event_id>") is unique.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketplace_kernel.db.base import TrackedBase


class GatewayEventRecord(TrackedBase):
    """A processed processor notification."""

    __tablename__ = "gateway_events"

    __table_args__ = (
        UniqueConstraint("event_id", name="uq_gateway_event_id"),
        UniqueConstraint("idempotency_key", name="uq_gateway_event_idempotency"),
    )

    event_id: Mapped[str] = mapped_column(String(255), nullable=False)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    idempotency_key: Mapped[str] = mapped_column(String(400), nullable=False)

    # External ref of the object the event was about (pi_..., po_..., acct_...)
    object_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # applied | ignored
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<GatewayEventRecord {self.event_id} {self.event_type}: {self.outcome}>"
