from __future__ import annotations

import platform
import sys

from mailer.config import ConnectionSettings, Settings
from mailer.core.db import CredentialStore, Database, HistoryRecorder
from mailer.errors import MailerError


def run_doctor_checks(settings: Settings) -> list[dict[str, str]]:
    checks: list[dict[str, str]] = []

    checks.append(
        {
            "check": "python_version",
            "status": "ok" if sys.version_info >= (3, 10) else "warn",
            "detail": platform.python_version(),
        }
    )

    try:
        connection_settings = ConnectionSettings.load(settings.config_path)
    except MailerError as exc:
        checks.append({"check": "connection_settings", "status": "error", "detail": str(exc).splitlines()[0]})
        return checks
    checks.append({"check": "connection_settings", "status": "ok", "detail": str(settings.config_path)})

    database = Database(connection_settings)
    try:
        with database.connect():
            pass
    except (MailerError, *database.errors) as exc:
        checks.append({"check": "database", "status": "error", "detail": str(exc)})
        return checks
    checks.append(
        {"check": "database", "status": "ok", "detail": database.describe(connection_settings.table_name)}
    )

    store = CredentialStore(database, connection_settings.table_name)
    present = store.exists()
    checks.append(
        {
            "check": "graph_credentials",
            "status": "ok" if present else "warn",
            "detail": "all required keys present" if present else "run `mailer setup`",
        }
    )

    if not connection_settings.history_enabled:
        checks.append({"check": "email_history", "status": "warn", "detail": "disabled"})
        return checks
    try:
        HistoryRecorder(database).recent(limit=1)
    except database.errors as exc:
        checks.append({"check": "email_history", "status": "error", "detail": str(exc)})
    else:
        checks.append({"check": "email_history", "status": "ok", "detail": "table readable"})

    return checks
