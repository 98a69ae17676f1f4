from __future__ import annotations

import base64
import logging
from typing import Any
from urllib.parse import quote

import requests

from mailer.errors import TransportError
from mailer.models import OutgoingMessage

from .auth import GraphAuthManager

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

logger = logging.getLogger("mailer.transport.graph")


def _recipients(addresses: list[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": address}} for address in addresses]


def build_send_mail_payload(message: OutgoingMessage, save_to_sent_items: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "subject": message.subject,
        "body": {"contentType": "HTML", "content": message.html_body},
        "toRecipients": _recipients(message.to),
    }
    if message.cc:
        payload["ccRecipients"] = _recipients(message.cc)
    if message.bcc:
        payload["bccRecipients"] = _recipients(message.bcc)
    if message.attachments:
        payload["attachments"] = [
            {
                "@odata.type": "#microsoft.graph.fileAttachment",
                "name": attachment.name,
                "contentType": attachment.content_type,
                "contentBytes": base64.b64encode(attachment.data).decode("ascii"),
            }
            for attachment in message.attachments
        ]
    return {"message": payload, "saveToSentItems": save_to_sent_items}


def _describe_error(response: requests.Response) -> str:
    try:
        error = response.json().get("error", {})
    except ValueError:
        error = {}
    if isinstance(error, dict) and error.get("message"):
        code = error.get("code") or "Error"
        return f"Graph API {response.status_code} {code}: {error['message']}"
    text = (response.text or "").strip()
    return f"Graph API {response.status_code}: {text[:500] or response.reason}"


class GraphMailTransport:
    """Single ``sendMail`` call; every failure surfaces as ``TransportError`` and nothing is retried here."""

    def __init__(
        self,
        auth_manager: GraphAuthManager,
        session: requests.Session | None = None,
        base_url: str = GRAPH_BASE_URL,
        timeout_sec: float = 60,
    ):
        self.auth_manager = auth_manager
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec

    def send(self, message: OutgoingMessage) -> None:
        token = self.auth_manager.get_access_token()
        url = f"{self.base_url}/users/{quote(message.sender, safe='@')}/sendMail"
        logger.debug("Posting sendMail for %s (%s attachment(s))", message.sender, len(message.attachments))

        try:
            response = self.session.post(
                url,
                json=build_send_mail_payload(message),
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Network error calling Graph API: {exc}") from exc

        if response.status_code == 401:
            self.auth_manager.invalidate()
        if response.status_code >= 400:
            raise TransportError(_describe_error(response), status_code=response.status_code)
