"""
generic_repository.db.base

SQLAlchemy declarative base.

Responsibilities:
- Provide a shared DeclarativeBase callers may derive their entities from.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# --- Module Notes -----------------------------------------------------------
# Any mapped class works with the repository; deriving from `Base` only matters
# for `init_db`, which creates tables from `Base.metadata` by default.
