from __future__ import annotations

import logging
import mimetypes
import re
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from mailer.core.db import HistoryRecorder
from mailer.errors import ResourceError, TransportError, ValidationError
from mailer.models import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    EmailHistoryRecord,
    FileAttachment,
    OutgoingMessage,
    SendOutcome,
    SendRequest,
    split_addresses,
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
BODY_PREVIEW_LENGTH = 500


class MailTransport(Protocol):
    def send(self, message: OutgoingMessage) -> None: ...


def backoff_delay(attempt: int, max_delay_sec: float | None = None) -> float:
    """Seconds to wait after failed ``attempt`` (1-based): 1, 2, 4, 8, ... uncapped unless asked."""
    delay = float(2 ** (attempt - 1))
    if max_delay_sec is not None:
        return min(delay, max_delay_sec)
    return delay


def is_valid_email(address: str) -> bool:
    return bool(EMAIL_RE.match(address))


def _join(values: list[str]) -> str | None:
    return ", ".join(values) if values else None


class MailSender:
    def __init__(
        self,
        transport: MailTransport,
        sender_email: str,
        logger: logging.Logger | logging.LoggerAdapter,
        history: HistoryRecorder | None = None,
        sleep_func: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_backoff_sec: float | None = None,
    ):
        self.transport = transport
        self.sender_email = sender_email
        self.logger = logger
        self.history = history
        self.sleep_func = sleep_func
        self.clock = clock
        self.max_backoff_sec = max_backoff_sec

    def _validate(self, request: SendRequest) -> tuple[list[str], list[str], list[str]]:
        to = split_addresses(request.to)
        cc = split_addresses(request.cc)
        bcc = split_addresses(request.bcc)
        if not to:
            self.logger.error("Email send failed: no 'To' recipients provided")
            raise ValidationError("At least one 'To' recipient is required.")
        invalid = [address for address in to + cc + bcc if not is_valid_email(address)]
        if invalid:
            raise ValidationError(f"Invalid email address: {', '.join(invalid)}")
        if request.max_retries < 0:
            raise ValidationError("Retry count cannot be negative.")
        sender = request.sender_override or self.sender_email
        if not is_valid_email(sender):
            raise ValidationError(f"Invalid sender address: {sender}")
        return to, cc, bcc

    def _resolve_body(self, request: SendRequest) -> str:
        if not request.body_is_file:
            self.logger.info("Using HTML body from string. Length: %s characters", len(request.body))
            return request.body

        body_path = Path(request.body)
        self.logger.info("Loading HTML body from file: %s", body_path)
        if not body_path.is_file():
            raise ResourceError(f"HTML body file not found: {body_path}")
        try:
            html_body = body_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceError(f"Cannot read HTML body file {body_path}: {exc}") from exc
        self.logger.info("HTML body loaded from file. Length: %s characters", len(html_body))
        return html_body

    def _resolve_attachments(self, paths: list[str]) -> list[FileAttachment]:
        attachments: list[FileAttachment] = []
        for raw_path in paths:
            path = Path(raw_path)
            if not path.is_file():
                raise ResourceError(f"Attachment file not found: {path}")
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise ResourceError(f"Cannot read attachment {path}: {exc}") from exc
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            attachments.append(FileAttachment(name=path.name, content_type=content_type, data=data))
            self.logger.info("Attachment added: %s, Size: %s bytes", path.name, len(data))
        return attachments

    def send(self, request: SendRequest) -> SendOutcome:
        self.logger.info("Starting email send operation. Subject: %s, BodyIsFile: %s", request.subject, request.body_is_file)

        to, cc, bcc = self._validate(request)
        self.logger.info("Recipients - To: %s, CC: %s, BCC: %s", len(to), len(cc), len(bcc))

        message = OutgoingMessage(
            sender=request.sender_override or self.sender_email,
            to=to,
            cc=cc,
            bcc=bcc,
            subject=request.subject,
            html_body=self._resolve_body(request),
            attachments=self._resolve_attachments(request.attachments),
        )

        total_attempts = request.max_retries + 1
        last_error: TransportError | None = None
        attempt = 0
        started = self.clock()
        for attempt in range(1, total_attempts + 1):
            try:
                self.transport.send(message)
            except TransportError as exc:
                last_error = exc
                self.logger.warning("Send attempt %s/%s failed: %s", attempt, total_attempts, exc)
                if attempt <= request.max_retries:
                    delay = backoff_delay(attempt, self.max_backoff_sec)
                    self.logger.info("Retrying in %s seconds", delay)
                    self.sleep_func(delay)
                continue
            last_error = None
            break

        outcome = SendOutcome(
            attempts_used=attempt,
            duration_ms=max(0, int((self.clock() - started) * 1000)),
            success=last_error is None,
            error_message=str(last_error) if last_error is not None else None,
        )
        self._emit_events(message, outcome, last_error)
        self._record_history(message, outcome)

        if last_error is not None:
            raise last_error
        return outcome

    def _emit_events(
        self,
        message: OutgoingMessage,
        outcome: SendOutcome,
        error: TransportError | None,
    ) -> None:
        self.logger.info(
            "Email send took %s ms over %s attempt(s)",
            outcome.duration_ms,
            outcome.attempts_used,
            extra={
                "event_type": "performance",
                "duration_ms": outcome.duration_ms,
                "attempts": outcome.attempts_used,
                "success": outcome.success,
            },
        )

        audit = {
            "event_type": "audit",
            "sender": message.sender,
            "to_recipients": message.to,
            "cc_recipients": message.cc,
            "bcc_recipients": message.bcc,
            "subject": message.subject,
            "attachment_names": [item.name for item in message.attachments],
        }
        if outcome.success:
            audit["body"] = message.html_body
            self.logger.info(
                "Email sent successfully. Subject: %s, To: %s",
                message.subject,
                ", ".join(message.to),
                extra=audit,
            )
        else:
            audit["error_message"] = outcome.error_message
            self.logger.error(
                "Failed to send email. Subject: %s, Error: %s",
                message.subject,
                outcome.error_message,
                exc_info=error,
                extra=audit,
            )

    def _record_history(self, message: OutgoingMessage, outcome: SendOutcome) -> None:
        if self.history is None:
            return
        record = EmailHistoryRecord(
            timestamp=datetime.now(timezone.utc),
            sender=message.sender,
            to_recipients=", ".join(message.to),
            cc_recipients=_join(message.cc),
            bcc_recipients=_join(message.bcc),
            subject=message.subject,
            body_preview=message.html_body[:BODY_PREVIEW_LENGTH],
            attachment_count=len(message.attachments),
            attachment_names=_join([item.name for item in message.attachments]),
            status=STATUS_SUCCESS if outcome.success else STATUS_FAILED,
            error_message=outcome.error_message,
            duration_ms=outcome.duration_ms,
            attempt_count=outcome.attempts_used,
        )
        # audit loss is tolerated; the send outcome stands either way
        if not self.history.record(record):
            self.logger.info("Email history row skipped for subject: %s", message.subject)
