"""
generic_repository.errors

Error taxonomy for the repository layer.

Responsibilities:
- Distinguish caller mistakes (bad arguments, invalid state transitions) from
  persistence failures, which are SQLAlchemy's own exceptions and propagate
  unchanged.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base class for errors raised by this package."""


class InvalidArgumentError(RepositoryError, ValueError):
    """A required argument was missing, empty, or of the wrong kind."""


class InvalidOperationError(RepositoryError, RuntimeError):
    """The requested operation is not valid for the current object state."""


class EntityNotTrackedError(InvalidOperationError):
    """The entity is not tracked by the context the operation targets."""


class ContextDisposedError(InvalidOperationError):
    """The context (or a repository bound to it) has already been disposed."""


class MultipleMatchesError(RepositoryError, LookupError):
    """A single-result lookup matched more than one entity."""


class ConnectionFailedError(RepositoryError, ConnectionError):
    """A connection could not be opened while constructing a provider."""


# --- Module Notes -----------------------------------------------------------
# Integrity/connectivity errors raised during commit are deliberately not wrapped.
