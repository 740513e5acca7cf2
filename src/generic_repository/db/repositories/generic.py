"""
generic_repository.db.repositories.generic

Generic repository over one entity type within one data context.

Responsibilities:
- Expose fetch/find/single/first/add/update/delete/attach over an ObjectSet.
- Persist after each mutating call by default (auto-commit per call), with
  `auto_save=False` / `add_range` for batching.
- Own (or borrow) exactly one DataContext and release it on `dispose()`.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from itertools import islice
from types import TracebackType
from typing import Any, Generic, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState, Mapper

from generic_repository.db.context import DataContext, EntityState, SaveOptions
from generic_repository.db.object_set import EntityQuery, ObjectSet, Predicate, is_expression
from generic_repository.errors import (
    ContextDisposedError,
    EntityNotTrackedError,
    InvalidArgumentError,
    MultipleMatchesError,
)
from generic_repository.observability.logging import get_logger

log = get_logger(__name__)

TEntity = TypeVar("TEntity")
TContext = TypeVar("TContext", bound=DataContext)


class Repository(Generic[TEntity, TContext]):
    """
    CRUD facade for `entity_type` backed by a `DataContext`.

    Either pass an existing context (borrowed: the caller keeps ownership and
    disposes it), or let the repository build one from `context_factory` on
    first use (owned: released by `dispose()`). Both may also be declared as
    class attributes on a subclass:

        class WidgetRepository(Repository[Widget, InventoryContext]):
            entity_type = Widget
            context_factory = InventoryContext

    Arguments are validated before the context is touched, so a bad call never
    opens a connection.

    Not thread-safe; use one repository (and context) per thread.
    """

    entity_type: type[TEntity] | None = None
    context_factory: Callable[[], TContext] | None = None

    def __init__(
        self,
        entity_type: type[TEntity] | None = None,
        context: TContext | None = None,
        *,
        context_factory: Callable[[], TContext] | None = None,
    ) -> None:
        entity_type = entity_type or type(self).entity_type
        if entity_type is None or not isinstance(
            sa_inspect(entity_type, raiseerr=False), Mapper
        ):
            raise InvalidArgumentError(f"{entity_type!r} is not a mapped entity type")

        self.entity_type = entity_type
        self._context: TContext | None = context
        self._owns_context = context is None
        self._context_factory = context_factory or type(self).context_factory or DataContext
        self._object_set: ObjectSet[TEntity] | None = None
        self._disposed = False

    # -- context -------------------------------------------------------------

    @property
    def context(self) -> TContext:
        if self._disposed:
            raise ContextDisposedError(f"repository for {self.entity_type.__name__} is disposed")
        if self._context is None:
            self._context = self._context_factory()
        return self._context

    @property
    def object_set(self) -> ObjectSet[TEntity]:
        if self._object_set is None:
            self._object_set = self.context.create_object_set(self.entity_type)
        return self._object_set

    # -- reads ---------------------------------------------------------------

    def fetch(self) -> EntityQuery[TEntity]:
        """Lazy query over all records; compose with `where`/`order_by`/`limit`."""
        return self.object_set.query()

    def get_all(self) -> list[TEntity]:
        return self.fetch().all()

    def _matches(self, predicate: Predicate[TEntity], limit: int | None = None) -> list[TEntity]:
        self._require_predicate(predicate)
        if is_expression(predicate):
            query = self.fetch().where(predicate)
            return (query.limit(limit) if limit is not None else query).all()
        return list(islice(self.object_set.filter(predicate), limit))

    def find(self, predicate: Predicate[TEntity]) -> list[TEntity]:
        """
        Entities matching `predicate`.

        SQL expressions are filtered by the database. Callables are applied in
        memory to every row of the table.
        """
        return self._matches(predicate)

    def single(self, predicate: Predicate[TEntity]) -> TEntity | None:
        """
        The only entity matching `predicate`, or None.

        Raises:
            MultipleMatchesError: more than one entity matched.
        """
        matches = self._matches(predicate, limit=2)
        if len(matches) > 1:
            raise MultipleMatchesError(
                f"more than one {self.entity_type.__name__} matched the predicate"
            )
        return matches[0] if matches else None

    def first(self, predicate: Predicate[TEntity]) -> TEntity | None:
        # Store order unless the caller composes an ordered query via fetch().
        matches = self._matches(predicate, limit=1)
        return matches[0] if matches else None

    # -- writes --------------------------------------------------------------

    def add(self, entity: TEntity | Iterable[TEntity], auto_save: bool = True) -> None:
        """
        Track `entity` as new and, unless `auto_save` is False, save.

        A list or tuple is treated as a batch (see `add_range`).
        """
        if entity is None:
            raise InvalidArgumentError("entity must not be None")
        if isinstance(entity, (list, tuple)):
            self.add_range(entity, auto_save=auto_save)
            return
        self._require_entity(entity)
        self.object_set.add_object(entity)
        if auto_save:
            self.save_changes()

    def add_range(self, entities: Iterable[TEntity], auto_save: bool = True) -> None:
        if entities is None:
            raise InvalidArgumentError("entities must not be None")
        items = list(entities)
        if not items:
            raise InvalidArgumentError("entities must not be empty")
        for item in items:
            self._require_entity(item)

        for item in items:
            self.object_set.add_object(item)
        if auto_save:
            self.save_changes()

    def update(self, entity: TEntity) -> None:
        """
        Save in-place changes made to a tracked entity.

        `update` copies nothing and attaches nothing: mutate the instance that
        was fetched (or attached) through this repository, then call it.

        Raises:
            EntityNotTrackedError: the entity was never fetched or attached
                through this context.
        """
        if entity is None:
            raise InvalidArgumentError("entity must not be None")
        self._require_entity(entity)
        if self.context.state_of(entity) is EntityState.detached:
            raise EntityNotTrackedError(
                f"cannot update a {self.entity_type.__name__} that is not tracked by this context"
            )
        self.save_changes()

    def delete(self, target: TEntity | Predicate[TEntity]) -> int:
        """
        Delete one entity, or every entity matching a predicate.

        Returns the number of entities marked for deletion.
        """
        if target is None:
            raise InvalidArgumentError("entity must not be None")
        if isinstance(target, self.entity_type):
            self.object_set.delete_object(target)
            self.save_changes()
            return 1
        self._require_predicate(target)
        return self.delete_where(target)

    def delete_where(self, predicate: Predicate[TEntity]) -> int:
        # Materialize first so the result set is not mutated while iterating.
        records = self._matches(predicate)
        for record in records:
            self.object_set.delete_object(record)
        self.save_changes()
        return len(records)

    def attach(self, entity: TEntity) -> None:
        if entity is None:
            raise InvalidArgumentError("entity must not be None")
        self.object_set.attach(entity)

    def detach(self, entity: TEntity) -> None:
        if entity is None:
            raise InvalidArgumentError("entity must not be None")
        self.object_set.detach(entity)

    def state_of(self, entity: TEntity) -> EntityState:
        if entity is None:
            raise InvalidArgumentError("entity must not be None")
        return self.context.state_of(entity)

    def save_changes(self, options: SaveOptions = SaveOptions.default) -> None:
        self.context.save_changes(options)

    def discard_changes(self) -> None:
        self.context.discard_changes()

    def _require_entity(self, entity: Any) -> None:
        if entity is None:
            raise InvalidArgumentError("entities must not contain None")
        if not isinstance(entity, self.entity_type):
            raise InvalidArgumentError(
                f"expected {self.entity_type.__name__}, got {type(entity).__name__}"
            )

    def _require_predicate(self, predicate: Any) -> None:
        if predicate is None:
            raise InvalidArgumentError("predicate must not be None")
        # Classes are callable and mapped instances may be; neither is a predicate.
        if isinstance(predicate, type) or isinstance(
            sa_inspect(predicate, raiseerr=False), (InstanceState, Mapper)
        ):
            raise InvalidArgumentError(
                f"expected an {self.entity_type.__name__} or a predicate, "
                f"got {type(predicate).__name__}"
            )
        if not (is_expression(predicate) or callable(predicate)):
            raise InvalidArgumentError(
                f"predicate must be a SQL expression or a callable, not {type(predicate).__name__}"
            )

    # -- lifetime ------------------------------------------------------------

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _release(self, *, quiet: bool = False) -> None:
        self._disposed = True
        context, self._context, self._object_set = self._context, None, None
        if context is not None and self._owns_context:
            context.dispose(quiet=quiet)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._release()
        log.debug("repository.disposed", entity=self.entity_type.__name__)

    def __enter__(self) -> Repository[TEntity, TContext]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    def __del__(self) -> None:
        # Fallback for forgotten disposal; not a substitute for dispose().
        if getattr(self, "_disposed", True) or sys.is_finalizing():
            return
        self._release(quiet=True)


# --- Module Notes -----------------------------------------------------------
# Every mutating call saves with SaveOptions.default unless told otherwise, so
# a failed save leaves the context holding the tracked-but-unsaved changes.
