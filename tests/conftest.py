"""
tests.conftest

Shared fixtures: a file-backed SQLite database per test, a borrowed context
over it, and a Widget repository on that context.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog
from sqlalchemy.engine import Engine

from generic_repository.db.context import DataContext
from generic_repository.db.init_db import init_db
from generic_repository.db.repositories.generic import Repository
from generic_repository.db.session import create_engine
from generic_repository.settings import Settings, get_settings
from tests.models import Widget


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite:///{tmp_path / 'widgets.db'}",
        dialect="sqlite",
    )


@pytest.fixture()
def engine(settings: Settings) -> Iterator[Engine]:
    engine = create_engine(settings.database_url, settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def context(engine: Engine, settings: Settings) -> Iterator[DataContext]:
    ctx = DataContext(engine, settings=settings)
    yield ctx
    ctx.dispose()


@pytest.fixture()
def repo(context: DataContext) -> Iterator[Repository[Widget, DataContext]]:
    repository: Repository[Widget, DataContext] = Repository(Widget, context)
    yield repository
    repository.dispose()


@pytest.fixture(autouse=True)
def _reset_global_state() -> Iterator[None]:
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
