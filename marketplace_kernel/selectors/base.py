"""
Base class for read-only selectors.

Selectors run inside the caller's unit of work and return frozen DTOs, never
ORM instances, so nothing read here can be mutated by accident.  They do
not add, flush or commit.

Balances and signature rows are changed by conditional UPDATE statements
that bypass the identity map, so reads of those rows are issued with
``populate_existing`` to see the committed values.
"""

from abc import ABC
from typing import Any

from sqlalchemy import Select
from sqlalchemy.orm import Session


class BaseSelector(ABC):

    def __init__(self, session: Session):
        self.session = session

    def _first(self, stmt: Select, *, fresh: bool = True) -> Any | None:
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _all(self, stmt: Select, *, fresh: bool = False) -> list[Any]:
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())
