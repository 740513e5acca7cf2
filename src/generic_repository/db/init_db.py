"""
generic_repository.db.init_db

DB initialization helpers (dev/test convenience).

Responsibilities:
- Create tables for local development and tests.
"""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.engine import Connection, Engine

from generic_repository.db.base import Base


def init_db(bind: Engine | Connection, metadata: MetaData | None = None) -> None:
    """
    Dev/test bootstrap: create tables if they don't exist.
    Production schemas are managed outside this package.
    """

    metadata = metadata if metadata is not None else Base.metadata
    if isinstance(bind, Engine):
        # Use a transactional DDL block when supported by the backend.
        with bind.begin() as conn:
            metadata.create_all(conn)
    else:
        metadata.create_all(bind)
        bind.commit()


# --- Module Notes -----------------------------------------------------------
# Callers passing a Connection get the DDL committed on that connection.
