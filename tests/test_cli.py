from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mailer import __version__, cli
from mailer.config import ConnectionSettings
from mailer.core.db import CredentialStore, Database, HistoryRecorder
from mailer.models import GraphCredentials

runner = CliRunner()


@pytest.fixture()
def mailer_home(monkeypatch, tmp_path: Path) -> Path:  # noqa: ANN001
    monkeypatch.setenv("MAILER_HOME", str(tmp_path))
    monkeypatch.delenv("MAILER_CONFIG_PATH", raising=False)
    monkeypatch.delenv("MAILER_LOG_DIR", raising=False)
    return tmp_path


@pytest.fixture()
def configured_home(mailer_home: Path) -> Path:
    settings = ConnectionSettings(
        host="",
        database_name=str(mailer_home / "mailer.sqlite3"),
        table_name="MailerConfig",
        driver="sqlite",
        console_log_level="Error",
    )
    settings.save(mailer_home / "db.config.json")
    store = CredentialStore(Database(settings), settings.table_name)
    store.initialize()
    store.save_credentials(
        GraphCredentials(
            tenant_id="tenant-1",
            client_id="client-1",
            client_secret="secret-1",
            sender_email="noreply@example.com",
            default_recipients=["ops@example.com"],
        )
    )
    return mailer_home


def _history(home: Path) -> HistoryRecorder:
    settings = ConnectionSettings.load(home / "db.config.json")
    return HistoryRecorder(Database(settings))


def test_version_exits_zero() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_send_without_settings_exits_one(mailer_home: Path) -> None:
    result = runner.invoke(cli.app, ["send", "--to", "a@x.com", "--subject", "Hi", "--body", "<p>hi</p>"])
    assert result.exit_code == 1
    assert "setup" in result.stdout


def test_send_without_subject_exits_one(configured_home: Path) -> None:
    result = runner.invoke(cli.app, ["send", "--to", "a@x.com", "--body", "<p>hi</p>"])
    assert result.exit_code == 1


def test_send_success_records_history(configured_home: Path, monkeypatch, fake_transport_factory) -> None:  # noqa: ANN001
    transport = fake_transport_factory()
    monkeypatch.setattr(cli, "build_transport", lambda credentials: transport)

    result = runner.invoke(
        cli.app,
        ["send", "--to", "a@x.com,b@x.com", "--cc", "c@x.com", "--subject", "Hi", "--body", "<p>hi</p>"],
    )

    assert result.exit_code == 0, result.stdout
    assert transport.calls[0].to == ["a@x.com", "b@x.com"]
    assert transport.calls[0].cc == ["c@x.com"]
    rows = _history(configured_home).recent()
    assert [row.status for row in rows] == ["Success"]
    assert list((configured_home / "logs").glob("mailer-*.jsonl"))


def test_send_falls_back_to_default_recipients(configured_home: Path, monkeypatch, fake_transport_factory) -> None:  # noqa: ANN001
    transport = fake_transport_factory()
    monkeypatch.setattr(cli, "build_transport", lambda credentials: transport)

    result = runner.invoke(cli.app, ["send", "--subject", "Hi", "--body", "<p>hi</p>"])

    assert result.exit_code == 0, result.stdout
    assert transport.calls[0].to == ["ops@example.com"]


def test_send_failure_exits_one(configured_home: Path, monkeypatch, fake_transport_factory) -> None:  # noqa: ANN001
    transport = fake_transport_factory(failures=10)
    monkeypatch.setattr(cli, "build_transport", lambda credentials: transport)

    result = runner.invoke(
        cli.app,
        ["send", "--to", "a@x.com", "--subject", "Hi", "--body", "<p>hi</p>", "--retries", "0"],
    )

    assert result.exit_code == 1
    assert len(transport.calls) == 1
    rows = _history(configured_home).recent()
    assert [(row.status, row.attempt_count) for row in rows] == [("Failed", 1)]


def test_send_missing_credentials_exits_one(configured_home: Path, monkeypatch, fake_transport_factory) -> None:  # noqa: ANN001
    settings = ConnectionSettings.load(configured_home / "db.config.json")
    Database(settings).execute_script(["DELETE FROM MailerConfig WHERE name = 'ClientSec'"])
    transport = fake_transport_factory()
    monkeypatch.setattr(cli, "build_transport", lambda credentials: transport)

    result = runner.invoke(cli.app, ["send", "--to", "a@x.com", "--subject", "Hi", "--body", "<p>hi</p>"])

    assert result.exit_code == 1
    assert "ClientSec" in result.stdout
    assert transport.calls == []


def test_doctor_reports_checks(configured_home: Path) -> None:
    result = runner.invoke(cli.app, ["doctor"])
    assert result.exit_code == 0
    assert "graph_credentials" in result.stdout


def test_send_with_history_disabled_creates_no_history_table(
    configured_home: Path, monkeypatch, fake_transport_factory  # noqa: ANN001
) -> None:
    config_path = configured_home / "db.config.json"
    settings = replace(ConnectionSettings.load(config_path), history_enabled=False)
    settings.save(config_path)
    transport = fake_transport_factory()
    monkeypatch.setattr(cli, "build_transport", lambda credentials: transport)

    result = runner.invoke(cli.app, ["send", "--to", "a@x.com", "--subject", "Hi", "--body", "<p>hi</p>"])

    assert result.exit_code == 0, result.stdout
    assert len(transport.calls) == 1
    tables = Database(settings).fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    assert ("EmailHistory",) not in tables


def test_setup_exits_one_when_database_is_unreachable(mailer_home: Path) -> None:
    blocker = mailer_home / "not-a-directory"
    blocker.write_text("", encoding="utf-8")

    result = runner.invoke(cli.app, ["setup"], input=f"sqlite\n{blocker / 'mailer.sqlite3'}\nMailerConfig\n")

    assert result.exit_code == 1
    assert "Failed to connect to database" in result.stdout
    assert not (mailer_home / "db.config.json").exists()
