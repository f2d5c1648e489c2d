"""
Module: marketplace_kernel.db.store
Responsibility: The Ledger Store.  Wraps a session factory and hands out
    short-lived units of work (one transaction each) exposing the small set
    of persistence primitives the engines are allowed to use.
Architecture position: Kernel > DB.  Used by services/ and selectors/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Atomic unit of work: every write inside ``unit_of_work()`` commits
      together or not at all.
    - Compare-and-set: state-dependent writes go through ``transition()``,
      a single ``UPDATE ... WHERE status IN (...)`` whose rowcount tells the
      caller whether it won.  Read-then-write races therefore lose cleanly.
    - Relative arithmetic: balance and counter changes go through
      ``increment()`` as ``SET x = x + :n``, optionally guarded by
      ``WHERE x >= :floor``.  No caller ever writes an absolute balance.

Failure modes:
    - StoreUnavailableError when the database cannot be reached (connect,
      execute or commit).  The transaction is rolled back; nothing persists.
    - Every other exception rolls back and propagates unchanged.
"""

from contextlib import contextmanager
from typing import Any, Generator, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from marketplace_kernel.db.base import Base
from marketplace_kernel.exceptions import MarketplaceError, StoreUnavailableError
from marketplace_kernel.logging_config import get_logger

logger = get_logger("db.store")

ModelType = TypeVar("ModelType", bound=Base)


class LedgerSession:
    """
    Persistence primitives bound to one open transaction.

    Contract:
        All writes flush immediately so constraint violations surface at the
        call site.  Commit and rollback belong to ``LedgerStore``.

    Non-goals:
        No business rules.  Callers decide which statuses are legal.
    """

    def __init__(self, session: Session):
        self.session = session

    # Reads

    def get(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        return self.session.get(model, entity_id, populate_existing=True)

    def get_for_update(
        self, model: type[ModelType], entity_id: UUID
    ) -> ModelType | None:
        """Load a row and hold its lock until the unit of work ends."""
        return self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_one(self, model: type[ModelType], **criteria: Any) -> ModelType | None:
        stmt = select(model).execution_options(populate_existing=True)
        for field, value in criteria.items():
            stmt = stmt.where(getattr(model, field) == value)
        return self.session.execute(stmt).scalars().first()

    def list_by(
        self,
        model: type[ModelType],
        *,
        order_by: Iterable[Any] = (),
        **criteria: Any,
    ) -> list[ModelType]:
        stmt = select(model).execution_options(populate_existing=True)
        for field, value in criteria.items():
            stmt = stmt.where(getattr(model, field) == value)
        for clause in order_by:
            stmt = stmt.order_by(clause)
        return list(self.session.execute(stmt).scalars().all())

    # Writes

    def add(self, entity: ModelType) -> ModelType:
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete(self, entity: Base) -> None:
        self.session.delete(entity)
        self.session.flush()

    def transition(
        self,
        model: type[ModelType],
        entity_id: UUID,
        *,
        from_status: str | Iterable[str],
        to_status: str,
        status_field: str = "status",
        conditions: Iterable[Any] = (),
        **values: Any,
    ) -> bool:
        """
        Conditionally move a row from one of ``from_status`` to ``to_status``.

        ``conditions`` adds extra WHERE clauses (e.g. ``settled_at IS NULL``).
        Additional column values are written in the same statement.

        Returns:
            True if exactly this call performed the transition, False if the
            row was missing or no longer in an allowed source status.
        """
        allowed = [from_status] if isinstance(from_status, str) else list(from_status)
        column = getattr(model, status_field)
        stmt = (
            update(model)
            .where(model.id == entity_id, column.in_(allowed), *conditions)
            .values({status_field: to_status, **values})
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def increment(
        self,
        model: type[ModelType],
        deltas: dict[str, int],
        *,
        at_least: dict[str, int] | None = None,
        **criteria: Any,
    ) -> int:
        """
        Apply relative deltas (``SET col = col + :n``) to matching rows.

        ``at_least`` adds ``WHERE col >= :floor`` guards so a decrement can
        never drive a balance negative.

        Returns:
            Number of rows updated (0 when a guard rejected the change).
        """
        stmt = update(model)
        for field, value in criteria.items():
            stmt = stmt.where(getattr(model, field) == value)
        for field, floor in (at_least or {}).items():
            stmt = stmt.where(getattr(model, field) >= floor)
        stmt = stmt.values(
            {field: getattr(model, field) + delta for field, delta in deltas.items()}
        ).execution_options(synchronize_session=False)
        result = self.session.execute(stmt)
        return result.rowcount

    def savepoint(self):
        """Begin a nested transaction (SAVEPOINT)."""
        return self.session.begin_nested()


class LedgerStore:
    """
    Factory for units of work.

    Contract:
        ``unit_of_work()`` yields a LedgerSession on a fresh Session and
        commits when the block exits normally.

    Guarantees:
        - Rollback on any exception, then re-raise.
        - Connectivity failures are converted to StoreUnavailableError.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def unit_of_work(
        self, operation: str = "unit_of_work"
    ) -> Generator[LedgerSession, None, None]:
        session = self._session_factory()
        try:
            yield LedgerSession(session)
            session.commit()
        except (OperationalError, InterfaceError) as exc:
            session.rollback()
            logger.error(
                "ledger_store_unavailable",
                extra={"operation": operation},
                exc_info=True,
            )
            raise StoreUnavailableError(operation) from exc
        except MarketplaceError:
            session.rollback()
            logger.debug("unit_of_work_rolled_back", extra={"operation": operation})
            raise
        except Exception:
            session.rollback()
            logger.warning(
                "unit_of_work_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
        finally:
            session.close()
