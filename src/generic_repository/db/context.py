"""
generic_repository.db.context

Data context: the unit that owns a session and its connection.

Responsibilities:
- Own the SQLAlchemy `Session` (the change-tracking set) and, where it created
  or was handed one, the engine / connection provider behind it.
- Hand out one `ObjectSet` per mapped entity type.
- Report per-entity tracking state and commit pending changes.
"""

from __future__ import annotations

import enum
from types import TracebackType
from typing import Any, TypeVar

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import InstanceState, Mapper, Session
from sqlalchemy.orm.attributes import set_committed_value

from generic_repository.db.connection import ConnectionProvider
from generic_repository.db.object_set import ObjectSet
from generic_repository.db.session import create_engine, create_session
from generic_repository.errors import ContextDisposedError, InvalidArgumentError
from generic_repository.observability.logging import get_logger
from generic_repository.settings import Settings, get_settings

log = get_logger(__name__)

TEntity = TypeVar("TEntity")


class EntityState(enum.StrEnum):
    # Tracking state of an instance relative to one particular context.
    detached = "DETACHED"
    added = "ADDED"
    unchanged = "UNCHANGED"
    modified = "MODIFIED"
    deleted = "DELETED"


class SaveOptions(enum.Flag):
    """
    Controls what `DataContext.save_changes` does.

    Every save commits. The flags only shape what is written and how the
    saved entities are reported afterwards:

    - detect_changes_before_save: include in-place column edits of persistent
      entities. Without it only inserts, deletes and relationship changes are
      written; the edits stay on the instances, which remain `modified`.
    - accept_all_changes_after_save: mark the saved entities unchanged (or
      detached, for deletes). Without it `state_of` keeps reporting their
      pre-save state until `accept_all_changes()` or an accepted save.
    """

    none = 0
    detect_changes_before_save = 1
    accept_all_changes_after_save = 2
    default = 3


class DataContext:
    """
    Session owner bound to a database.

    `bind` may be:
    - None: use `settings.database_url` (the context owns the engine),
    - a URL string: same, with the given URL,
    - a `ConnectionProvider`: the context takes ownership and closes it,
    - an `Engine` or `Connection`: borrowed, never disposed by the context.

    Subclasses typically fix the bind in a no-argument constructor so that a
    repository can build them from the class alone.
    """

    def __init__(
        self,
        bind: Engine | Connection | ConnectionProvider | str | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._owned_engine: Engine | None = None
        self._owned_provider: ConnectionProvider | None = None

        if bind is None:
            bind = settings.database_url
        if isinstance(bind, str):
            bind = self._owned_engine = create_engine(bind, settings)
        elif isinstance(bind, ConnectionProvider):
            self._owned_provider = bind
            bind = bind.connection
        elif not isinstance(bind, (Engine, Connection)):
            raise InvalidArgumentError(f"unsupported bind: {type(bind).__name__}")

        self._session = create_session(bind, settings)
        self._object_sets: dict[type[Any], ObjectSet[Any]] = {}
        self._unaccepted: dict[InstanceState[Any], EntityState] = {}
        self._disposed = False
        log.debug("context.created", context=type(self).__name__)

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def session(self) -> Session:
        if self._disposed:
            raise ContextDisposedError(f"{type(self).__name__} has been disposed")
        return self._session

    def create_object_set(self, entity_type: type[TEntity]) -> ObjectSet[TEntity]:
        if self._disposed:
            raise ContextDisposedError(f"{type(self).__name__} has been disposed")
        if not isinstance(entity_type, type) or not isinstance(
            sa_inspect(entity_type, raiseerr=False), Mapper
        ):
            raise InvalidArgumentError(f"{entity_type!r} is not a mapped entity type")
        object_set = self._object_sets.get(entity_type)
        if object_set is None:
            object_set = self._object_sets[entity_type] = ObjectSet(self, entity_type)
        return object_set

    def state_of(self, entity: Any) -> EntityState:
        state = sa_inspect(entity, raiseerr=False)
        if not isinstance(state, InstanceState):
            raise InvalidArgumentError(f"{type(entity).__name__} is not a mapped entity")

        session = self.session
        saved_as = self._unaccepted.get(state)
        if saved_as is not None:
            return saved_as
        if state.session is not session:
            return EntityState.detached
        if state.pending:
            return EntityState.added
        if state.deleted or entity in session.deleted:
            return EntityState.deleted
        if session.is_modified(entity):
            return EntityState.modified
        return EntityState.unchanged

    def save_changes(self, options: SaveOptions = SaveOptions.default) -> None:
        """
        Commit pending tracked changes to the store.

        Persistence failures raised by SQLAlchemy propagate unchanged; the
        session keeps its tracked state and the caller decides whether to
        `discard_changes()` or dispose the context.
        """

        session = self.session
        withheld = (
            [] if SaveOptions.detect_changes_before_save in options else _withhold_edits(session)
        )
        saved = {sa_inspect(e): EntityState.added for e in session.new}
        saved.update(
            (sa_inspect(e), EntityState.modified) for e in session.dirty if session.is_modified(e)
        )
        saved.update((sa_inspect(e), EntityState.deleted) for e in session.deleted)

        try:
            session.commit()
        finally:
            for entity, key, value in withheld:
                setattr(entity, key, value)

        # Committed deletes stay in the session unless expire_on_commit is set.
        for state, was in saved.items():
            entity = state.obj()
            if was is EntityState.deleted and entity is not None and state.session is session:
                session.expunge(entity)

        if SaveOptions.accept_all_changes_after_save in options:
            self._unaccepted.clear()
        else:
            self._unaccepted.update(saved)

        log.debug(
            "context.save_changes",
            added=sum(1 for s in saved.values() if s is EntityState.added),
            modified=sum(1 for s in saved.values() if s is EntityState.modified),
            deleted=sum(1 for s in saved.values() if s is EntityState.deleted),
            withheld=len(withheld),
            options=options.name,
        )

    def accept_all_changes(self) -> None:
        # Entities saved without acceptance report their pre-save state until now.
        self._unaccepted.clear()

    def discard_changes(self) -> None:
        # Rollback expunges pending instances and expires persistent ones.
        self.session.rollback()

    def dispose(self, *, quiet: bool = False) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._object_sets.clear()
        self._unaccepted.clear()
        self._session.close()
        if self._owned_provider is not None:
            self._owned_provider.close()
        if self._owned_engine is not None:
            self._owned_engine.dispose()
        if not quiet:
            log.debug("context.disposed", context=type(self).__name__)

    def __enter__(self) -> DataContext:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()


def _withhold_edits(session: Session) -> list[tuple[Any, str, Any]]:
    """
    Hide in-place column edits on persistent entities from the next flush.

    Each edited attribute is reset to its loaded value as if committed; the
    returned (entity, key, edited value) triples are re-applied afterwards so
    the entities stay modified in memory.
    """

    withheld: list[tuple[Any, str, Any]] = []
    for entity in list(session.dirty):
        state = sa_inspect(entity)
        for attr in state.mapper.column_attrs:
            history = state.attrs[attr.key].history
            # Without a loaded original there is nothing to reset to.
            if history.added and history.deleted:
                withheld.append((entity, attr.key, history.added[0]))
                set_committed_value(entity, attr.key, history.deleted[0])
    return withheld


# --- Module Notes -----------------------------------------------------------
# A context is not thread-safe: use one per thread, each over its own connection.
