from __future__ import annotations

from datetime import datetime

from mailer.errors import StoreInitError

from .connection import Database

TABLE_NAME = "MailerLogs"

_CREATE_TABLE = {
    "sqlite": [
        f"""
        CREATE TABLE IF NOT EXISTS [{TABLE_NAME}] (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            level TEXT NOT NULL,
            logger TEXT NOT NULL,
            message TEXT NULL,
            exception TEXT NULL,
            properties TEXT NULL
        )
        """,
        f"CREATE INDEX IF NOT EXISTS IX_{TABLE_NAME}_Timestamp ON [{TABLE_NAME}] (timestamp DESC)",
    ],
    "mssql": [
        f"""
        IF NOT EXISTS (SELECT * FROM sys.tables WHERE name = '{TABLE_NAME}' AND schema_id = SCHEMA_ID('dbo'))
        BEGIN
            CREATE TABLE [dbo].[{TABLE_NAME}] (
                id INT PRIMARY KEY IDENTITY(1,1),
                timestamp DATETIME2 NOT NULL,
                level NVARCHAR(16) NOT NULL,
                logger NVARCHAR(128) NOT NULL,
                message NVARCHAR(MAX) NULL,
                exception NVARCHAR(MAX) NULL,
                properties NVARCHAR(MAX) NULL
            );

            CREATE INDEX IX_{TABLE_NAME}_Timestamp ON [dbo].[{TABLE_NAME}] (timestamp DESC);
        END
        """,
    ],
}

_INSERT = (
    f"INSERT INTO [{TABLE_NAME}] (timestamp, level, logger, message, exception, properties) "
    "VALUES (?, ?, ?, ?, ?, ?)"
)


class EventLogTable:
    def __init__(self, database: Database):
        self.database = database

    def initialize(self) -> None:
        try:
            self.database.execute_script(_CREATE_TABLE[self.database.dialect])
        except self.database.errors as exc:
            raise StoreInitError(f"Failed to initialize table '{TABLE_NAME}': {exc}") from exc

    def insert(
        self,
        timestamp: datetime,
        level: str,
        logger_name: str,
        message: str,
        exception: str | None,
        properties: str | None,
    ) -> None:
        with self.database.transaction() as connection:
            connection.cursor().execute(
                _INSERT,
                (self.database.adapt_timestamp(timestamp), level, logger_name, message, exception, properties),
            )
