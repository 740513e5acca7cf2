"""
generic_repository.db.session

SQLAlchemy engine + session factory helpers.

Responsibilities:
- Create engines from a URL with settings-driven options.
- Create sessions with the change-tracking defaults the data context relies on.
"""

from __future__ import annotations

from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.orm import Session

from generic_repository.settings import Settings


def create_engine(url: str | URL, settings: Settings, **kwargs) -> Engine:
    return sa_create_engine(url, echo=settings.sql_echo, **kwargs)


def create_session(bind: Engine | Connection, settings: Settings) -> Session:
    # autoflush=False keeps pending adds out of the store until an explicit save.
    return Session(
        bind=bind,
        autoflush=False,
        expire_on_commit=settings.expire_on_commit,
    )


# --- Module Notes -----------------------------------------------------------
# Sessions are owned by `DataContext`; nothing else should hold one long-term.
