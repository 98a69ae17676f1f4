from __future__ import annotations

from pathlib import Path

from mailer.config import ConnectionSettings
from mailer.core.db import CredentialStore, Database
from mailer.services import SetupWizard


class ScriptedConsole:
    def __init__(self, answers: list[str], confirms: list[bool]):
        self.answers = list(answers)
        self.confirms = list(confirms)
        self.labels: list[str] = []

    def prompt(self, label: str, **kwargs) -> str:  # noqa: ANN003
        self.labels.append(label)
        return self.answers.pop(0)

    def confirm(self, label: str, **kwargs) -> bool:  # noqa: ANN003
        self.labels.append(label)
        return self.confirms.pop(0)


def _wizard(tmp_path: Path, console: ScriptedConsole) -> SetupWizard:
    return SetupWizard(tmp_path / "db.config.json", prompt=console.prompt, confirm=console.confirm)


def _answers(db_path: Path, sender: list[str] | None = None) -> list[str]:
    return [
        "sqlite",
        str(db_path),
        "GraphCredentials",
        "tenant-1",
        "client-1",
        "secret-1",
        *(sender or ["noreply@example.com"]),
        "ops@example.com; dev@example.com",
    ]


def test_wizard_writes_settings_and_credentials(tmp_path: Path) -> None:
    db_path = tmp_path / "mailer.sqlite3"
    console = ScriptedConsole(_answers(db_path, sender=["not-an-email", "noreply@example.com"]), confirms=[False])

    assert _wizard(tmp_path, console).run() is True

    settings = ConnectionSettings.load(tmp_path / "db.config.json")
    assert settings.driver == "sqlite"
    assert settings.table_name == "GraphCredentials"
    credentials = CredentialStore(Database(settings), "GraphCredentials").load_credentials()
    assert credentials.sender_email == "noreply@example.com"
    assert credentials.default_recipients == ["ops@example.com", "dev@example.com"]
    assert console.labels.count("Sender Email Address") == 2


def test_wizard_cancels_when_overwrite_declined(tmp_path: Path) -> None:
    db_path = tmp_path / "mailer.sqlite3"
    assert _wizard(tmp_path, ScriptedConsole(_answers(db_path), confirms=[False])).run() is True

    rerun = ScriptedConsole(["sqlite", str(db_path), "GraphCredentials"], confirms=[False, False])
    assert _wizard(tmp_path, rerun).run() is False

    settings = ConnectionSettings.load(tmp_path / "db.config.json")
    assert CredentialStore(Database(settings), "GraphCredentials").exists() is True
