"""
BaseService -- abstract base for all kernel engines and services.

Responsibility:
    Provides the common constructor contract for every service in the
    kernel layer.  A service receives the Ledger Store and an injected
    Clock and owns the unit-of-work boundaries of its public operations.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Every public operation is an independent unit of work.  A service
      never holds a session across a processor call; it commits what must be
      durable first, calls out, then opens a new unit of work.
    - Services never call ``datetime.now()``; time comes from ``self.clock``.
"""

from abc import ABC

from marketplace_kernel.db.store import LedgerStore
from marketplace_kernel.domain.clock import Clock, SystemClock
from marketplace_kernel.domain.policy import SettlementPolicy


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a ``LedgerStore`` and opens ``store.unit_of_work()`` per
        public operation (or per step, when a processor call sits between
        steps).

    Non-goals:
        - Does NOT expose ORM instances to callers; return DTOs.
    """

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        policy: SettlementPolicy | None = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.policy = policy or SettlementPolicy()
