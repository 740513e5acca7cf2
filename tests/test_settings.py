"""
tests.test_settings

Env-driven configuration and logging setup.
"""

from __future__ import annotations

import json
import logging

import pytest

from generic_repository.observability.logging import configure_from_settings, get_logger
from generic_repository.settings import Settings, get_settings


def test_env_overrides_defaults(monkeypatch) -> None:
    monkeypatch.setenv("GENREPO_DIALECT", "sqlite")
    monkeypatch.setenv("GENREPO_MULTIPLE_ACTIVE_RESULT_SETS", "false")
    monkeypatch.setenv("GENREPO_CONNECT_TIMEOUT", "3")

    settings = Settings()

    assert settings.dialect == "sqlite"
    assert settings.multiple_active_result_sets is False
    assert settings.connect_timeout == 3


def test_defaults() -> None:
    settings = Settings()

    assert settings.dialect == "mssql+pyodbc"
    assert settings.provider == "System.Data.SqlClient"
    assert settings.expire_on_commit is False


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_invalid_dialect_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("GENREPO_DIALECT", "oracle")
    with pytest.raises(ValueError):
        Settings()


def test_json_logs_carry_service_name(caplog) -> None:
    configure_from_settings(Settings(env="test", service_name="inventory", log_level="DEBUG"))
    caplog.set_level(logging.DEBUG)

    get_logger("tests.logging").info("connection.opened", server="srv01")

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "connection.opened"
    assert payload["service"] == "inventory"
    assert payload["server"] == "srv01"
    assert payload["level"] == "info"
