from __future__ import annotations

import logging
from datetime import datetime

from mailer.errors import StoreInitError
from mailer.models import EmailHistoryRecord

from .connection import Database

logger = logging.getLogger("mailer.history")

TABLE_NAME = "EmailHistory"

_COLUMNS = (
    "timestamp",
    "sender",
    "to_recipients",
    "cc_recipients",
    "bcc_recipients",
    "subject",
    "body_preview",
    "attachment_count",
    "attachment_names",
    "status",
    "error_message",
    "duration_ms",
    "attempt_count",
)

_CREATE_TABLE = {
    "sqlite": [
        f"""
        CREATE TABLE IF NOT EXISTS [{TABLE_NAME}] (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            sender TEXT NOT NULL,
            to_recipients TEXT NOT NULL,
            cc_recipients TEXT NULL,
            bcc_recipients TEXT NULL,
            subject TEXT NOT NULL,
            body_preview TEXT NULL,
            attachment_count INTEGER NOT NULL DEFAULT 0,
            attachment_names TEXT NULL,
            status TEXT NOT NULL,
            error_message TEXT NULL,
            duration_ms INTEGER NOT NULL,
            attempt_count INTEGER NOT NULL DEFAULT 1
        )
        """,
        f"CREATE INDEX IF NOT EXISTS IX_{TABLE_NAME}_Timestamp ON [{TABLE_NAME}] (timestamp DESC)",
        f"CREATE INDEX IF NOT EXISTS IX_{TABLE_NAME}_Sender ON [{TABLE_NAME}] (sender)",
        f"CREATE INDEX IF NOT EXISTS IX_{TABLE_NAME}_Status ON [{TABLE_NAME}] (status)",
    ],
    "mssql": [
        f"""
        IF NOT EXISTS (SELECT * FROM sys.tables WHERE name = '{TABLE_NAME}' AND schema_id = SCHEMA_ID('dbo'))
        BEGIN
            CREATE TABLE [dbo].[{TABLE_NAME}] (
                id INT PRIMARY KEY IDENTITY(1,1),
                timestamp DATETIME2 NOT NULL DEFAULT GETDATE(),
                sender NVARCHAR(255) NOT NULL,
                to_recipients NVARCHAR(MAX) NOT NULL,
                cc_recipients NVARCHAR(MAX) NULL,
                bcc_recipients NVARCHAR(MAX) NULL,
                subject NVARCHAR(500) NOT NULL,
                body_preview NVARCHAR(1000) NULL,
                attachment_count INT NOT NULL DEFAULT 0,
                attachment_names NVARCHAR(MAX) NULL,
                status NVARCHAR(50) NOT NULL,
                error_message NVARCHAR(MAX) NULL,
                duration_ms BIGINT NOT NULL,
                attempt_count INT NOT NULL DEFAULT 1
            );

            CREATE INDEX IX_{TABLE_NAME}_Timestamp ON [dbo].[{TABLE_NAME}] (timestamp DESC);
            CREATE INDEX IX_{TABLE_NAME}_Sender ON [dbo].[{TABLE_NAME}] (sender);
            CREATE INDEX IX_{TABLE_NAME}_Status ON [dbo].[{TABLE_NAME}] (status);
        END
        """,
    ],
}

_SELECT_RECENT = {
    "sqlite": f"SELECT id, {', '.join(_COLUMNS)} FROM [{TABLE_NAME}] ORDER BY id DESC LIMIT ?",
    "mssql": f"SELECT TOP (?) id, {', '.join(_COLUMNS)} FROM [dbo].[{TABLE_NAME}] ORDER BY id DESC",
}


class HistoryRecorder:
    """Append-only audit trail, one row per send operation."""

    def __init__(self, database: Database):
        self.database = database

    def initialize(self) -> None:
        try:
            self.database.execute_script(_CREATE_TABLE[self.database.dialect])
        except self.database.errors as exc:
            logger.error("Failed to initialize %s table", TABLE_NAME, exc_info=True)
            raise StoreInitError(f"Failed to initialize table '{TABLE_NAME}': {exc}") from exc
        logger.debug("%s table initialized", TABLE_NAME)

    def record(self, record: EmailHistoryRecord) -> bool:
        """Insert one row; failures are logged and reported as ``False``, never raised."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        query = f"INSERT INTO [{TABLE_NAME}] ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        params = (
            self.database.adapt_timestamp(record.timestamp),
            record.sender,
            record.to_recipients,
            record.cc_recipients,
            record.bcc_recipients,
            record.subject,
            record.body_preview,
            record.attachment_count,
            record.attachment_names,
            record.status,
            record.error_message,
            record.duration_ms,
            record.attempt_count,
        )
        try:
            with self.database.transaction() as connection:
                connection.cursor().execute(query, params)
        except self.database.errors:
            logger.warning("Failed to log email history for subject: %s", record.subject, exc_info=True)
            return False
        logger.debug("Email history logged: %s to %s", record.subject, record.to_recipients)
        return True

    def recent(self, limit: int = 20) -> list[EmailHistoryRecord]:
        rows = self.database.fetch_all(_SELECT_RECENT[self.database.dialect], (limit,))
        result: list[EmailHistoryRecord] = []
        for row in rows:
            values = dict(zip(("id",) + _COLUMNS, row))
            timestamp = values.pop("timestamp")
            if isinstance(timestamp, str):
                timestamp = datetime.fromisoformat(timestamp)
            result.append(EmailHistoryRecord(timestamp=timestamp, **values))
        return result
