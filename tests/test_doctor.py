from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from mailer.config import ConnectionSettings, Settings
from mailer.core.db import CredentialStore, Database, HistoryRecorder
from mailer.services import run_doctor_checks

FULL_SET = {
    "TenantID": "tenant-1",
    "ClientID": "client-1",
    "ClientSec": "secret-1",
    "Sender": "noreply@example.com",
}


def _app_settings(tmp_path: Path, connection_settings: ConnectionSettings) -> Settings:
    config_path = tmp_path / "db.config.json"
    connection_settings.save(config_path)
    return Settings(root_dir=tmp_path, config_path=config_path, logs_dir=tmp_path / "logs")


def _by_name(checks: list[dict[str, str]]) -> dict[str, dict[str, str]]:
    return {check["check"]: check for check in checks}


def test_missing_history_table_is_an_error(tmp_path: Path, connection_settings, credential_store) -> None:  # noqa: ANN001
    credential_store.save(FULL_SET)

    checks = _by_name(run_doctor_checks(_app_settings(tmp_path, connection_settings)))

    assert checks["graph_credentials"]["status"] == "ok"
    assert checks["email_history"]["status"] == "error"


def test_readable_history_table_is_ok(tmp_path: Path, connection_settings, credential_store, database) -> None:  # noqa: ANN001
    credential_store.save(FULL_SET)
    HistoryRecorder(database).initialize()

    checks = _by_name(run_doctor_checks(_app_settings(tmp_path, connection_settings)))

    assert checks["email_history"] == {"check": "email_history", "status": "ok", "detail": "table readable"}


def test_disabled_history_is_a_warning(tmp_path: Path, connection_settings) -> None:  # noqa: ANN001
    settings = replace(connection_settings, history_enabled=False)

    checks = _by_name(run_doctor_checks(_app_settings(tmp_path, settings)))

    assert checks["email_history"]["status"] == "warn"
    assert checks["email_history"]["detail"] == "disabled"


def test_blank_credential_value_is_a_warning(tmp_path: Path, connection_settings, credential_store) -> None:  # noqa: ANN001
    credential_store.save({**FULL_SET, "ClientSec": ""})

    checks = _by_name(run_doctor_checks(_app_settings(tmp_path, connection_settings)))

    assert checks["graph_credentials"]["status"] == "warn"
    assert CredentialStore(Database(connection_settings), "MailerConfig").exists() is False
