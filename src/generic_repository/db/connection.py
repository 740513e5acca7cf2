"""
generic_repository.db.connection

Connection descriptor + provider.

Responsibilities:
- Build the provider connection string from server / catalog / model names.
- Translate the same inputs into a SQLAlchemy URL for the configured dialect.
- Open (and own) a live connection as part of provider construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError

from generic_repository.db.session import create_engine
from generic_repository.errors import ConnectionFailedError, InvalidArgumentError
from generic_repository.observability.logging import get_logger
from generic_repository.settings import Settings, get_settings

log = get_logger(__name__)

# Characters that cannot be carried inside the quoted provider connection string.
_FORBIDDEN_CHARS = (";", "'")

_METADATA_TEMPLATE = "res://*/{0}.csdl|res://*/{0}.ssdl|res://*/{0}.msl"


def _validate_part(name: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{name} must be a non-empty string")
    for ch in _FORBIDDEN_CHARS:
        if ch in value:
            raise InvalidArgumentError(f"{name} must not contain {ch!r}")


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """
    Immutable description of a connection target.

    Authentication is always integrated (trusted); there is no
    username/password path.
    """

    server_name: str
    database_name: str
    model_identifier: str
    provider: str = "System.Data.SqlClient"
    multiple_active_result_sets: bool = True

    def __post_init__(self) -> None:
        _validate_part("server_name", self.server_name)
        _validate_part("database_name", self.database_name)
        _validate_part("model_identifier", self.model_identifier)

    @property
    def metadata(self) -> str:
        return _METADATA_TEMPLATE.format(self.model_identifier)

    def provider_connection_string(self) -> str:
        mars = "True" if self.multiple_active_result_sets else "False"
        return (
            f"Data Source={self.server_name};"
            f"Initial Catalog={self.database_name};"
            "Integrated Security=True;"
            f"MultipleActiveResultSets={mars}"
        )

    def connection_string(self) -> str:
        return (
            f"provider={self.provider};"
            f"provider connection string='{self.provider_connection_string()}';"
            f"metadata='{self.metadata}'"
        )

    def odbc_connection_string(self, driver: str) -> str:
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={self.server_name}",
            f"DATABASE={self.database_name}",
            "Trusted_Connection=yes",
        ]
        if self.multiple_active_result_sets:
            parts.append("MARS_Connection=yes")
        return ";".join(parts)

    def to_url(self, settings: Settings) -> URL:
        if settings.dialect == "sqlite":
            # Local stand-in: the server is a directory, the catalog a file in it.
            path = Path(self.server_name) / f"{self.database_name}.db"
            return URL.create("sqlite", database=str(path))
        return URL.create(
            "mssql+pyodbc",
            query={"odbc_connect": self.odbc_connection_string(settings.odbc_driver)},
        )


class ConnectionProvider:
    """
    Builds a connection descriptor and opens its connection immediately.

    Construction fails with `ConnectionFailedError` when the target cannot be
    reached; there is no deferred connect.
    """

    def __init__(
        self,
        server_name: str,
        database_name: str,
        model_identifier: str,
        *,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.descriptor = ConnectionDescriptor(
            server_name=server_name,
            database_name=database_name,
            model_identifier=model_identifier,
            provider=settings.provider,
            multiple_active_result_sets=settings.multiple_active_result_sets,
        )
        self.connection_string = self.descriptor.connection_string()

        self.engine: Engine = create_engine(
            self.descriptor.to_url(settings),
            settings,
            connect_args={"timeout": settings.connect_timeout},
        )
        try:
            self.connection: Connection = self.engine.connect()
        except DBAPIError as exc:
            self.engine.dispose()
            raise ConnectionFailedError(
                f"could not connect to {server_name!r} / {database_name!r}"
            ) from exc
        self._closed = False
        log.info("connection.opened", server=server_name, database=database_name)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.connection.close()
        self.engine.dispose()
        log.info(
            "connection.closed",
            server=self.descriptor.server_name,
            database=self.descriptor.database_name,
        )

    def __enter__(self) -> ConnectionProvider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


# --- Module Notes -----------------------------------------------------------
# `connection_string` is informational (it names the model resources); the live
# connection is opened from the SQLAlchemy URL built by `to_url`.
