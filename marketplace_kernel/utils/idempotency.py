"""
Idempotency keys for processor requests and processor events.

Outbound: every create/confirm call sent to the processor carries
``marketplace:<operation>:<local record id>``, so retrying a request for the
same Payment or Payout can never produce a second charge or payout.

Inbound: every processed notification is stored under
``gateway:<event type>:<event id>``; the unique index on that column is what
makes a redelivery a no-op.
"""

from uuid import UUID

OUTBOUND_PREFIX = "marketplace"
INBOUND_PREFIX = "gateway"


def request_key(operation: str, record_id: UUID | str) -> str:
    """Key for an outbound processor call made on behalf of a local record."""
    return f"{OUTBOUND_PREFIX}:{operation}:{record_id}"


def event_key(event_type: str, event_id: str) -> str:
    """Key under which an inbound processor event is recorded."""
    return f"{INBOUND_PREFIX}:{event_type}:{event_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Split a key into (prefix, operation or event type, id).

    The id may itself contain colons.

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or parts[0] not in (OUTBOUND_PREFIX, INBOUND_PREFIX):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
