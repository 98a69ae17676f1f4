from __future__ import annotations

import logging
from collections.abc import MutableMapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from mailer.config import ConnectionSettings, parse_log_level
from mailer.core.db import Database, EventLogTable

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(correlation_id)s %(message)s"

_TRACEBACK_FORMATTER = logging.Formatter()


class CorrelationIdFilter(logging.Filter):
    def __init__(self, correlation_id: str):
        super().__init__()
        self._correlation_id = correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = self._correlation_id
        return True


class DatabaseLogHandler(logging.Handler):
    """Writes each record as a row of the MailerLogs table; extras land in a JSON column."""

    def __init__(self, table: EventLogTable, level: int = logging.NOTSET):
        super().__init__(level)
        self.table = table
        self._properties_formatter = jsonlogger.JsonFormatter(fmt="%(correlation_id)s")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            exception = _TRACEBACK_FORMATTER.formatException(record.exc_info) if record.exc_info else None
            self.table.insert(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname,
                logger_name=record.name,
                message=record.getMessage(),
                exception=exception,
                properties=self._properties_formatter.format(_without_exc_info(record)),
            )
        except Exception:  # noqa: BLE001
            self.handleError(record)


def _without_exc_info(record: logging.LogRecord) -> logging.LogRecord:
    # the traceback already has its own column
    copy = logging.makeLogRecord(record.__dict__)
    copy.exc_info = None
    copy.exc_text = None
    return copy


class EventLoggerAdapter(logging.LoggerAdapter):
    """Adds the run context to every event; per-call ``extra`` applies to that event only."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def configure_logging(
    log_dir: Path,
    correlation_id: str,
    settings: ConnectionSettings | None = None,
    database: Database | None = None,
) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    correlation_filter = CorrelationIdFilter(correlation_id)
    text_formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    json_formatter = jsonlogger.JsonFormatter(fmt=JSON_FORMAT)

    handlers: list[logging.Handler] = []

    console_level = parse_log_level(settings.console_log_level) if settings else logging.WARNING
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(console_level)
    stream_handler.setFormatter(text_formatter)
    handlers.append(stream_handler)

    if settings is not None and settings.file_logging_enabled:
        log_dir.mkdir(parents=True, exist_ok=True)
        utc_day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        file_level = parse_log_level(settings.file_log_level)

        text_handler = logging.FileHandler(log_dir / f"mailer-{utc_day}.log", encoding="utf-8")
        text_handler.setLevel(file_level)
        text_handler.setFormatter(text_formatter)

        json_handler = logging.FileHandler(log_dir / f"mailer-{utc_day}.jsonl", encoding="utf-8")
        json_handler.setLevel(file_level)
        json_handler.setFormatter(json_formatter)

        handlers.extend([text_handler, json_handler])

    if settings is not None and settings.db_logging_enabled and database is not None:
        table = EventLogTable(database)
        table.initialize()
        handlers.append(DatabaseLogHandler(table, level=parse_log_level(settings.db_log_level)))

    for handler in handlers:
        handler.addFilter(correlation_filter)
        root.addHandler(handler)
    root.setLevel(min(handler.level for handler in handlers))


def get_logger(name: str, correlation_id: str) -> EventLoggerAdapter:
    base_logger = logging.getLogger(name)
    return EventLoggerAdapter(base_logger, extra={"correlation_id": correlation_id})
