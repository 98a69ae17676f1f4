from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mailer.config import ConnectionSettings
from mailer.errors import ConfigurationMissingError

CONNECT_TIMEOUT_SEC = 15


def _import_pyodbc():
    try:
        import pyodbc
    except ImportError as exc:
        raise ConfigurationMissingError(
            "The mssql driver needs pyodbc: pip install 'mailer[mssql]'"
        ) from exc
    return pyodbc


def build_odbc_connection_string(settings: ConnectionSettings) -> str:
    parts = [
        f"DRIVER={{{settings.odbc_driver}}}",
        f"SERVER={settings.host}",
        f"DATABASE={settings.database_name}",
    ]
    if settings.auth_mode == "windows":
        parts.append("Trusted_Connection=yes")
    else:
        parts.append(f"UID={settings.username}")
        parts.append(f"PWD={{{settings.password}}}")
    parts.append("TrustServerCertificate=yes")
    return ";".join(parts) + ";"


def connect_db(settings: ConnectionSettings) -> Any:
    if settings.driver == "sqlite":
        db_path = Path(settings.database_name).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(db_path), timeout=CONNECT_TIMEOUT_SEC)

    pyodbc = _import_pyodbc()
    return pyodbc.connect(build_odbc_connection_string(settings), timeout=CONNECT_TIMEOUT_SEC)


class Database:
    """Opens one DB-API connection per operation; all DML uses ``?`` placeholders."""

    def __init__(self, settings: ConnectionSettings):
        self.settings = settings

    @property
    def dialect(self) -> str:
        return self.settings.driver

    @property
    def errors(self) -> tuple[type[BaseException], ...]:
        if self.dialect == "sqlite":
            return (sqlite3.Error, OSError)
        try:
            import pyodbc
        except ImportError:
            return (OSError,)
        return (pyodbc.Error, OSError)

    def describe(self, table_name: str) -> str:
        if self.dialect == "sqlite":
            return f"SQLite database: {self.settings.database_name} / Table: {table_name}"
        return f"SQL Server database: {self.settings.host} / {self.settings.database_name} / Table: {table_name}"

    @contextmanager
    def connect(self) -> Iterator[Any]:
        connection = connect_db(self.settings)
        try:
            yield connection
        finally:
            connection.close()

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        with self.connect() as connection:
            try:
                yield connection
            except BaseException:
                connection.rollback()
                raise
            connection.commit()

    def execute_script(self, statements: Sequence[str]) -> None:
        with self.transaction() as connection:
            cursor = connection.cursor()
            for statement in statements:
                cursor.execute(statement)

    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[tuple[Any, ...]]:
        with self.connect() as connection:
            cursor = connection.cursor()
            cursor.execute(query, tuple(params))
            return [tuple(row) for row in cursor.fetchall()]

    def adapt_timestamp(self, value: datetime) -> Any:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        utc_value = value.astimezone(timezone.utc)
        if self.dialect == "sqlite":
            return utc_value.isoformat()
        # DATETIME2 carries no offset
        return utc_value.replace(tzinfo=None)
