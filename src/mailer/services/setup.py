from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

import typer
from rich import print

from mailer.config import ConnectionSettings
from mailer.core.db import CredentialStore, Database
from mailer.errors import ConfigurationMissingError, StoreInitError
from mailer.models import GraphCredentials, split_addresses
from mailer.services.sender import is_valid_email

logger = logging.getLogger("mailer.setup")

COMMON_CONNECTION_ISSUES = [
    "Server name or IP address is incorrect",
    "SQL Server is not running or not accessible",
    "Firewall is blocking the connection (port 1433)",
    "Database does not exist",
    "Authentication credentials are incorrect",
    "SQL Server is not configured for remote connections",
]


class SetupWizard:
    """Console prompts that write the connection settings file and the credential rows."""

    def __init__(
        self,
        config_path: Path,
        prompt: Callable[..., Any] = typer.prompt,
        confirm: Callable[..., bool] = typer.confirm,
    ):
        self.config_path = config_path
        self.prompt = prompt
        self.confirm = confirm

    def _ask(self, label: str, secret: bool = False, allow_empty: bool = False, default: str | None = None) -> str:
        while True:
            kwargs: dict[str, Any] = {"hide_input": secret}
            if default is not None or allow_empty:
                kwargs["default"] = default or ""
                kwargs["show_default"] = bool(default)
            value = str(self.prompt(label, **kwargs)).strip()
            if value or allow_empty:
                return value
            print(f"[red]  {label} cannot be empty. Please try again.[/red]")

    def _ask_email(self, label: str) -> str:
        while True:
            value = self._ask(label)
            if is_valid_email(value):
                return value
            print("[red]  Please enter a valid email address.[/red]")

    def _existing_settings(self) -> ConnectionSettings | None:
        try:
            return ConnectionSettings.load(self.config_path)
        except ConfigurationMissingError:
            return None

    def collect_connection_settings(self) -> ConnectionSettings:
        print("[yellow]Step 1: Database Connection Setup[/yellow]")
        existing = self._existing_settings()

        driver = ""
        while driver not in ("mssql", "sqlite"):
            driver = self._ask("Database driver (mssql/sqlite)", default=existing.driver if existing else "mssql").lower()

        if driver == "sqlite":
            host = ""
            database_name = self._ask("Database file path (e.g., data/mailer.sqlite3)")
            auth_mode, username, password = "windows", "", ""
        else:
            host = self._ask("Database Server IP or hostname (e.g., localhost, 192.168.1.100)")
            database_name = self._ask("Database Name (e.g., MailerDB, EmailConfig)")
            use_windows_auth = self.confirm("Use Windows Authentication?", default=True)
            if use_windows_auth:
                auth_mode, username, password = "windows", "", ""
            else:
                auth_mode = "sql"
                username = self._ask("SQL Server Username")
                password = self._ask("SQL Server Password", secret=True)

        table_name = self._ask("Table Name (e.g., MailerConfig, GraphCredentials)")

        fields = {
            "host": host,
            "database_name": database_name,
            "table_name": table_name,
            "auth_mode": auth_mode,
            "username": username,
            "password": password,
            "driver": driver,
        }
        if existing is not None:
            # logging toggles survive a re-run of setup
            return replace(existing, **fields)
        return ConnectionSettings(**fields)

    def _test_connection(self, database: Database) -> None:
        print("Testing database connection...")
        try:
            with database.connect():
                pass
        except database.errors as exc:
            settings = database.settings
            print("[red]Failed to connect to database[/red]")
            print(f"  Exception Type: {exc.__class__.__name__}")
            print(f"  Message: {exc or '(No message provided)'}")
            print(f"  Server: {settings.host or '-'}")
            print(f"  Database: {settings.database_name}")
            auth_label = "Windows Authentication" if settings.auth_mode == "windows" else "SQL Server Authentication"
            print(f"  Authentication: {auth_label}")
            if settings.auth_mode == "sql":
                print(f"  Username: {settings.username}")
            print("Common Issues:")
            for issue in COMMON_CONNECTION_ISSUES:
                print(f"  - {issue}")
            logger.error("Setup connection test failed", exc_info=True)
            raise StoreInitError(f"Failed to connect to database: {exc}") from exc
        print("[green]Database connection successful![/green]")

    def collect_credentials(self) -> GraphCredentials:
        print("Please provide your Microsoft Graph API configuration:")
        return GraphCredentials(
            tenant_id=self._ask("Azure Tenant ID"),
            client_id=self._ask("Azure Client ID (Application ID)"),
            client_secret=self._ask("Azure Client Secret", secret=True),
            sender_email=self._ask_email("Sender Email Address"),
            default_recipients=split_addresses(
                self._ask("Default Recipients (optional, comma-separated)", allow_empty=True)
            ),
        )

    def run(self) -> bool:
        """Returns ``True`` when credentials were written, ``False`` when the operator cancelled."""
        settings = self.collect_connection_settings()
        database = Database(settings)
        self._test_connection(database)

        restrict = self.confirm(f"Restrict {self.config_path.name} to owner read/write?", default=False)
        settings.save(self.config_path, restrict_permissions=restrict)
        print(f"Connection settings saved to: {self.config_path}")

        store = CredentialStore(database, settings.table_name)
        print("Initializing database table...")
        store.initialize()
        print(f"[green]Table '{settings.table_name}' initialized successfully[/green]")

        print("[yellow]Step 2: Microsoft Graph API Configuration[/yellow]")
        if store.exists():
            print("[yellow]Warning: A configuration already exists in the database.[/yellow]")
            print(f"Location: {store.describe()}")
            if not self.confirm("Do you want to overwrite it?", default=False):
                print("Setup cancelled.")
                return False

        credentials = self.collect_credentials()
        print("Saving configuration to database...")
        store.save_credentials(credentials)

        print("[green]Configuration saved successfully![/green]")
        print(f"Graph API credentials stored in: {store.describe()}")
        print("You can now run the mailer application:")
        print('  mailer send --to recipient@example.com --subject "Test" --body "<h1>Hello</h1>"')
        return True
