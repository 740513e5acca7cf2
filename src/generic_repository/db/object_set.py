"""
generic_repository.db.object_set

Per-entity views over a data context.

Responsibilities:
- `EntityQuery`: composable, lazily-executed SELECT over one entity type.
- `ObjectSet`: register adds/deletes/attaches for one entity type and
  evaluate predicates against it.

Predicates come in two forms:
- SQLAlchemy boolean expressions (`Widget.name == "bolt"`), translated to SQL;
- plain callables (`lambda w: w.name == "bolt"`), evaluated in memory after
  loading every row of the entity type. Prefer expressions for anything but
  small tables.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from sqlalchemy import Select, func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState, make_transient_to_detached
from sqlalchemy.sql import ColumnElement
from sqlalchemy.sql.elements import ClauseElement

from generic_repository.errors import (
    EntityNotTrackedError,
    InvalidArgumentError,
    InvalidOperationError,
)

if TYPE_CHECKING:
    from generic_repository.db.context import DataContext

TEntity = TypeVar("TEntity")

Predicate = Union[ColumnElement[bool], Callable[[TEntity], bool]]


def is_expression(predicate: Any) -> bool:
    # Mapped attributes expose __clause_element__ (e.g. a boolean column).
    return isinstance(predicate, ClauseElement) or hasattr(predicate, "__clause_element__")


class EntityQuery(Generic[TEntity]):
    """
    Immutable query builder; each refinement returns a new instance.

    Nothing is executed until the query is iterated or one of `all`, `first`
    or `count` is called.
    """

    def __init__(self, object_set: ObjectSet[TEntity], statement: Select[Any]) -> None:
        self._object_set = object_set
        self._statement = statement

    @property
    def statement(self) -> Select[Any]:
        return self._statement

    def _derive(self, statement: Select[Any]) -> EntityQuery[TEntity]:
        return EntityQuery(self._object_set, statement)

    def where(self, *criteria: Any) -> EntityQuery[TEntity]:
        for criterion in criteria:
            if not is_expression(criterion):
                raise InvalidArgumentError(
                    "EntityQuery.where only accepts SQL expressions; "
                    "use ObjectSet.filter for callables"
                )
        return self._derive(self._statement.where(*criteria))

    def order_by(self, *clauses: Any) -> EntityQuery[TEntity]:
        return self._derive(self._statement.order_by(*clauses))

    def limit(self, count: int) -> EntityQuery[TEntity]:
        return self._derive(self._statement.limit(count))

    def offset(self, count: int) -> EntityQuery[TEntity]:
        return self._derive(self._statement.offset(count))

    def __iter__(self) -> Iterator[TEntity]:
        return iter(self._object_set.context.session.scalars(self._statement))

    def all(self) -> list[TEntity]:
        return list(self)

    def first(self) -> TEntity | None:
        return self._object_set.context.session.scalars(self._statement.limit(1)).first()

    def count(self) -> int:
        stmt = select(func.count()).select_from(self._statement.subquery())
        return int(self._object_set.context.session.scalar(stmt) or 0)


class ObjectSet(Generic[TEntity]):
    """Queryable, mutable view over one entity type within one context."""

    def __init__(self, context: DataContext, entity_type: type[TEntity]) -> None:
        self._context = context
        self._entity_type = entity_type

    @property
    def context(self) -> DataContext:
        return self._context

    @property
    def entity_type(self) -> type[TEntity]:
        return self._entity_type

    def query(self) -> EntityQuery[TEntity]:
        return EntityQuery(self, select(self._entity_type))

    def __iter__(self) -> Iterator[TEntity]:
        return iter(self.query())

    def filter(self, predicate: Predicate[TEntity]) -> Iterable[TEntity]:
        if is_expression(predicate):
            return self.query().where(predicate)
        if callable(predicate):
            return (entity for entity in self.query() if predicate(entity))
        raise InvalidArgumentError(
            f"predicate must be a SQL expression or a callable, not {type(predicate).__name__}"
        )

    def _check(self, entity: TEntity) -> InstanceState[Any]:
        if not isinstance(entity, self._entity_type):
            raise InvalidArgumentError(
                f"expected {self._entity_type.__name__}, got {type(entity).__name__}"
            )
        state = sa_inspect(entity)
        owner = state.session
        if owner is not None and owner is not self._context.session:
            raise InvalidOperationError(
                f"{type(entity).__name__} is tracked by another context; detach it first"
            )
        return state

    def add_object(self, entity: TEntity) -> None:
        state = self._check(entity)
        if state.persistent or state.deleted:
            raise InvalidOperationError(
                f"{type(entity).__name__} is already tracked by this context"
            )
        self._context.session.add(entity)

    def delete_object(self, entity: TEntity) -> None:
        state = self._check(entity)
        session = self._context.session
        if state.session is None:
            raise EntityNotTrackedError(
                f"cannot delete a {type(entity).__name__} that is not tracked by this context"
            )
        if state.pending:
            # Never written: dropping it from the session is the whole deletion.
            session.expunge(entity)
            return
        session.delete(entity)

    def attach(self, entity: TEntity) -> None:
        """
        Track a detached entity as unchanged.

        Transient instances (built in memory, never loaded) are treated as rows
        that already exist; their primary key must be populated.
        """

        state = self._check(entity)
        if state.session is not None:
            return
        if state.was_deleted:
            raise InvalidOperationError(
                f"cannot attach a {type(entity).__name__} whose row was deleted"
            )
        if state.transient:
            if any(v is None for v in state.mapper.primary_key_from_instance(entity)):
                raise InvalidArgumentError(
                    f"cannot attach a {type(entity).__name__} without a primary key"
                )
            make_transient_to_detached(entity)
        self._context.session.add(entity)

    def detach(self, entity: TEntity) -> None:
        state = self._check(entity)
        if state.session is None:
            return
        self._context.session.expunge(entity)


# --- Module Notes -----------------------------------------------------------
# Object sets hold no state of their own beyond the entity type; all tracking
# lives in the context's session.
