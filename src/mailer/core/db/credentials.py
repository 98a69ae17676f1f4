from __future__ import annotations

import logging
from collections.abc import Mapping

from mailer.errors import MissingCredentialsError, StoreInitError, StoreReadError, StoreWriteError, ValidationError
from mailer.models import REQUIRED_CREDENTIAL_KEYS, GraphCredentials

from .connection import Database

logger = logging.getLogger("mailer.credentials")

_CREATE_TABLE = {
    "sqlite": [
        """
        CREATE TABLE IF NOT EXISTS [{table}] (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            value TEXT NOT NULL
        )
        """,
    ],
    "mssql": [
        """
        IF NOT EXISTS (SELECT * FROM sys.tables WHERE name = '{table}')
        BEGIN
            CREATE TABLE [{table}] (
                id INT PRIMARY KEY IDENTITY(1,1),
                name NVARCHAR(100) NOT NULL UNIQUE,
                value NVARCHAR(MAX) NOT NULL
            );
        END
        """,
    ],
}

_UPSERT = {
    "sqlite": """
        INSERT INTO [{table}] (name, value)
        VALUES (?, ?)
        ON CONFLICT(name) DO UPDATE SET
            value = excluded.value
    """,
    "mssql": """
        MERGE [{table}] WITH (HOLDLOCK) AS target
        USING (SELECT ? AS name, ? AS value) AS source
        ON target.name = source.name
        WHEN MATCHED THEN UPDATE SET value = source.value
        WHEN NOT MATCHED THEN INSERT (name, value) VALUES (source.name, source.value);
    """,
}


class CredentialStore:
    """Key-value credential rows kept in a single relational table."""

    def __init__(self, database: Database, table_name: str):
        self.database = database
        self.table_name = table_name

    def _sql(self, template: str) -> str:
        return template.format(table=self.table_name)

    def describe(self) -> str:
        return f"{self.database.describe(self.table_name)} (key-value pairs)"

    def initialize(self) -> None:
        statements = [self._sql(item) for item in _CREATE_TABLE[self.database.dialect]]
        try:
            self.database.execute_script(statements)
        except self.database.errors as exc:
            logger.error("Failed to initialize credential table '%s'", self.table_name, exc_info=True)
            raise StoreInitError(f"Failed to initialize table '{self.table_name}': {exc}") from exc
        logger.info("Credential table '%s' initialized", self.table_name)

    def save(self, credentials: Mapping[str, str]) -> None:
        query = self._sql(_UPSERT[self.database.dialect])
        try:
            with self.database.transaction() as connection:
                cursor = connection.cursor()
                for name, value in credentials.items():
                    logger.debug("Upserting credential key: %s", name)
                    cursor.execute(query, (name, value))
        except self.database.errors as exc:
            logger.error("Failed to save credentials to '%s'", self.table_name, exc_info=True)
            raise StoreWriteError(f"Failed to save configuration: {exc}") from exc
        logger.info("Credentials saved to '%s' (%s key-value pairs)", self.table_name, len(credentials))

    def load(self) -> dict[str, str]:
        try:
            rows = self.database.fetch_all(self._sql("SELECT name, value FROM [{table}]"))
        except self.database.errors as exc:
            logger.error("Failed to load credentials from '%s'", self.table_name, exc_info=True)
            raise StoreReadError(
                f"Failed to load configuration from database: {exc}\n"
                "Please check your database connection and run the setup utility:\n"
                "  mailer setup"
            ) from exc
        return {str(name): str(value) for name, value in rows}

    def save_credentials(self, credentials: GraphCredentials) -> None:
        rows = credentials.to_rows()
        empty = [key for key in REQUIRED_CREDENTIAL_KEYS if not rows[key].strip()]
        if empty:
            raise ValidationError(f"All required configuration fields must be provided: {', '.join(empty)}")
        self.save(rows)

    def load_credentials(self) -> GraphCredentials:
        rows = self.load()
        missing = [key for key in REQUIRED_CREDENTIAL_KEYS if not rows.get(key, "").strip()]
        if missing:
            raise MissingCredentialsError(missing)
        credentials = GraphCredentials.from_rows(rows)
        logger.info("Credentials loaded for sender: %s", credentials.sender_email)
        return credentials

    def exists(self) -> bool:
        placeholders = ", ".join("?" for _ in REQUIRED_CREDENTIAL_KEYS)
        # blank values count as missing, matching load_credentials
        query = self._sql(
            f"SELECT COUNT(DISTINCT name) FROM [{{table}}] "
            f"WHERE name IN ({placeholders}) AND LTRIM(RTRIM(value)) <> ''"
        )
        try:
            rows = self.database.fetch_all(query, REQUIRED_CREDENTIAL_KEYS)
        except self.database.errors:
            logger.debug("Credential presence check failed", exc_info=True)
            return False
        return int(rows[0][0]) == len(REQUIRED_CREDENTIAL_KEYS)
