from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

STATUS_SUCCESS = "Success"
STATUS_FAILED = "Failed"

KEY_TENANT_ID = "TenantID"
KEY_CLIENT_ID = "ClientID"
KEY_CLIENT_SECRET = "ClientSec"
KEY_SENDER = "Sender"
KEY_DEFAULT_RECIPIENTS = "To"

REQUIRED_CREDENTIAL_KEYS = (KEY_TENANT_ID, KEY_CLIENT_ID, KEY_CLIENT_SECRET, KEY_SENDER)


def split_addresses(values: list[str] | tuple[str, ...] | str | None) -> list[str]:
    """Flatten repeated and comma/semicolon separated addresses, dropping duplicates in order."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    result: list[str] = []
    seen: set[str] = set()
    for raw in values:
        for chunk in raw.replace(";", ",").split(","):
            address = chunk.strip()
            if address and address.lower() not in seen:
                seen.add(address.lower())
                result.append(address)
    return result


@dataclass(slots=True)
class GraphCredentials:
    tenant_id: str
    client_id: str
    client_secret: str
    sender_email: str
    default_recipients: list[str] = field(default_factory=list)

    def to_rows(self) -> dict[str, str]:
        return {
            KEY_TENANT_ID: self.tenant_id,
            KEY_CLIENT_ID: self.client_id,
            KEY_CLIENT_SECRET: self.client_secret,
            KEY_SENDER: self.sender_email,
            KEY_DEFAULT_RECIPIENTS: ", ".join(self.default_recipients),
        }

    @classmethod
    def from_rows(cls, rows: dict[str, str]) -> GraphCredentials:
        return cls(
            tenant_id=rows[KEY_TENANT_ID],
            client_id=rows[KEY_CLIENT_ID],
            client_secret=rows[KEY_CLIENT_SECRET],
            sender_email=rows[KEY_SENDER],
            default_recipients=split_addresses(rows.get(KEY_DEFAULT_RECIPIENTS, "")),
        )


@dataclass(slots=True)
class SendRequest:
    to: list[str]
    subject: str
    body: str
    body_is_file: bool = False
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    max_retries: int = 3
    sender_override: str | None = None


@dataclass(slots=True)
class FileAttachment:
    name: str
    content_type: str
    data: bytes


@dataclass(slots=True)
class OutgoingMessage:
    sender: str
    to: list[str]
    subject: str
    html_body: str
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    attachments: list[FileAttachment] = field(default_factory=list)


@dataclass(slots=True)
class SendOutcome:
    attempts_used: int
    duration_ms: int
    success: bool
    error_message: str | None = None


@dataclass(slots=True)
class EmailHistoryRecord:
    timestamp: datetime
    sender: str
    to_recipients: str
    subject: str
    status: str
    duration_ms: int
    attempt_count: int
    cc_recipients: str | None = None
    bcc_recipients: str | None = None
    body_preview: str | None = None
    attachment_count: int = 0
    attachment_names: str | None = None
    error_message: str | None = None
    id: int | None = None
