"""
generic_repository.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the data-access layer.
- Describe how connection strings and engines are built.
- Offer a cached settings instance for callers that do not inject their own.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Env-driven configuration (prefix `GENREPO_`).

    Defaults are safe for local development: a file-backed SQLite database for
    contexts created without an explicit bind, and SQL Server with integrated
    authentication for contexts built through `ConnectionProvider`.
    """

    model_config = SettingsConfigDict(env_prefix="GENREPO_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "generic-repository"
    log_level: str = "INFO"

    # Default bind for a DataContext constructed without arguments.
    database_url: str = "sqlite:///./generic_repository.db"
    sql_echo: bool = False
    # Keep loaded attributes readable after commit without a round trip.
    expire_on_commit: bool = False

    # ConnectionProvider
    dialect: Literal["mssql+pyodbc", "sqlite"] = "mssql+pyodbc"
    provider: str = "System.Data.SqlClient"
    odbc_driver: str = "ODBC Driver 18 for SQL Server"
    multiple_active_result_sets: bool = True
    connect_timeout: int = Field(default=15, ge=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for every context/provider construction.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# No credential fields exist on purpose: connections use integrated security only.
