from __future__ import annotations

import logging
import uuid
from pathlib import Path

import typer
from rich import print

from mailer import __version__
from mailer.config import ConnectionSettings, Settings
from mailer.core.db import CredentialStore, Database, HistoryRecorder
from mailer.core.logging import configure_logging, get_logger
from mailer.errors import MailerError, ValidationError
from mailer.models import GraphCredentials, SendRequest
from mailer.services import MailSender, SetupWizard, run_doctor_checks
from mailer.transport import GraphAuthManager, GraphMailTransport

app = typer.Typer(no_args_is_help=True, help="Mailer: send email through Microsoft Graph")

DEFAULT_RETRIES = 3

logger = logging.getLogger("mailer.cli")


def _load_settings(base_dir: Path | None = None) -> Settings:
    settings = Settings.load(base_dir=base_dir)
    settings.ensure_directories()
    return settings


def build_transport(credentials: GraphCredentials) -> GraphMailTransport:
    auth_manager = GraphAuthManager(
        tenant_id=credentials.tenant_id,
        client_id=credentials.client_id,
        client_secret=credentials.client_secret,
    )
    return GraphMailTransport(auth_manager)


def _fail(exc: Exception, unexpected: bool = False) -> None:
    label = "Unexpected error" if unexpected else "Error"
    print(f"[red]{label}:[/red] {exc}")
    if exc.__cause__ is not None:
        print(f"Inner exception: {exc.__cause__}")
    logger.error("%s: %s", exc.__class__.__name__, exc, exc_info=exc)
    raise typer.Exit(1)


@app.command("send")
def send_command(
    to: list[str] | None = typer.Option(None, "--to", help="Recipient address; repeat or comma-separate"),
    cc: list[str] | None = typer.Option(None, "--cc", help="CC address; repeat or comma-separate"),
    bcc: list[str] | None = typer.Option(None, "--bcc", help="BCC address; repeat or comma-separate"),
    subject: str | None = typer.Option(None, "--subject", help="Email subject (required)"),
    body: str | None = typer.Option(None, "--body", help="HTML body content or path to an HTML file (required)"),
    body_is_file: bool = typer.Option(False, "--body-is-file", help="Treat --body as a file path"),
    attachments: list[str] | None = typer.Option(
        None, "--attachment", "--attachments", "-a", help="File to attach; repeatable"
    ),
    sender: str | None = typer.Option(None, "--from", help="Send as this mailbox instead of the stored sender"),
    retries: int = typer.Option(DEFAULT_RETRIES, "--retries", help="Retries after a failed send (0 = one attempt)"),
) -> None:
    correlation_id = uuid.uuid4().hex
    settings = _load_settings()
    configure_logging(settings.logs_dir, correlation_id=correlation_id)
    logger.info("=== Mailer send started ===")

    try:
        if not subject:
            raise ValidationError("--subject is required")
        if body is None:
            raise ValidationError("--body is required")

        connection_settings = ConnectionSettings.load(settings.config_path)
        database = Database(connection_settings)
        configure_logging(
            settings.logs_dir,
            correlation_id=correlation_id,
            settings=connection_settings,
            database=database,
        )
        send_logger = get_logger("mailer.send", correlation_id)

        credentials = CredentialStore(database, connection_settings.table_name).load_credentials()

        history = None
        if connection_settings.history_enabled:
            history = HistoryRecorder(database)
            history.initialize()

        service = MailSender(
            transport=build_transport(credentials),
            sender_email=credentials.sender_email,
            logger=send_logger,
            history=history,
        )
        request = SendRequest(
            to=to or credentials.default_recipients,
            cc=cc or [],
            bcc=bcc or [],
            subject=subject,
            body=body,
            body_is_file=body_is_file,
            attachments=attachments or [],
            max_retries=retries,
            sender_override=sender,
        )

        print("Sending email...")
        outcome = service.send(request)
    except MailerError as exc:
        _fail(exc)
    except Exception as exc:  # noqa: BLE001
        _fail(exc, unexpected=True)
    finally:
        logger.info("=== Mailer send ended ===")

    print(
        f"[green]Email sent successfully![/green] "
        f"attempts={outcome.attempts_used} duration_ms={outcome.duration_ms} correlation_id={correlation_id}"
    )


@app.command("setup")
def setup_command() -> None:
    settings = _load_settings()
    configure_logging(settings.logs_dir, correlation_id=uuid.uuid4().hex)
    print("[cyan]Mailer - Secure Configuration Setup Utility[/cyan]")

    try:
        SetupWizard(settings.config_path).run()
    except MailerError as exc:
        _fail(exc)


@app.command("doctor")
def doctor_command() -> None:
    settings = _load_settings()
    checks = run_doctor_checks(settings)

    print("Doctor results:")
    for check in checks:
        status = check["status"].upper()
        print(f"- [{status}] {check['check']}: {check['detail']}")


@app.command("version")
def version_command() -> None:
    print(f"mailer {__version__}")


if __name__ == "__main__":
    app()
