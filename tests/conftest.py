from __future__ import annotations

import logging
from pathlib import Path

import pytest

from mailer.config import ConnectionSettings
from mailer.core.db import CredentialStore, Database, HistoryRecorder
from mailer.errors import TransportError
from mailer.models import OutgoingMessage


class FakeTransport:
    """Fails ``failures`` times with TransportError, then succeeds."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[OutgoingMessage] = []

    def send(self, message: OutgoingMessage) -> None:
        self.calls.append(message)
        if len(self.calls) <= self.failures:
            raise TransportError(f"Graph API 503: attempt {len(self.calls)} failed", status_code=503)


@pytest.fixture(autouse=True)
def _reset_root_logging():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)


@pytest.fixture()
def connection_settings(tmp_path: Path) -> ConnectionSettings:
    return ConnectionSettings(
        host="",
        database_name=str(tmp_path / "mailer.sqlite3"),
        table_name="MailerConfig",
        driver="sqlite",
        file_logging_enabled=False,
        db_logging_enabled=False,
    )


@pytest.fixture()
def database(connection_settings: ConnectionSettings) -> Database:
    return Database(connection_settings)


@pytest.fixture()
def credential_store(database: Database) -> CredentialStore:
    store = CredentialStore(database, "MailerConfig")
    store.initialize()
    return store


@pytest.fixture()
def history(database: Database) -> HistoryRecorder:
    recorder = HistoryRecorder(database)
    recorder.initialize()
    return recorder


@pytest.fixture()
def test_logger() -> logging.Logger:
    logger = logging.getLogger("mailer-test")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.INFO)
    return logger


@pytest.fixture()
def fake_transport_factory():
    return FakeTransport
