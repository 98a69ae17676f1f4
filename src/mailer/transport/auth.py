from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests
from oauthlib.oauth2 import BackendApplicationClient, OAuth2Error
from requests_oauthlib import OAuth2Session

from mailer.errors import TransportError

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
# refresh a little before the token actually expires
EXPIRY_SKEW_SEC = 60

logger = logging.getLogger("mailer.transport.auth")


class GraphAuthManager:
    """OAuth2 client-credentials token for Microsoft Graph, cached until it nears expiry."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        session_factory: Callable[[BackendApplicationClient], Any] | None = None,
        clock: Callable[[], float] = time.time,
        timeout_sec: float = 30,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.session_factory = session_factory or (lambda client: OAuth2Session(client=client))
        self.clock = clock
        self.timeout_sec = timeout_sec
        self._token: dict[str, Any] | None = None

    @property
    def token_url(self) -> str:
        return TOKEN_URL_TEMPLATE.format(tenant_id=self.tenant_id)

    def invalidate(self) -> None:
        self._token = None

    def _is_fresh(self) -> bool:
        if not self._token or not self._token.get("access_token"):
            return False
        expires_at = self._token.get("expires_at")
        if expires_at is None:
            return False
        return float(expires_at) - EXPIRY_SKEW_SEC > self.clock()

    def get_access_token(self) -> str:
        if self._is_fresh():
            return str(self._token["access_token"])

        client = BackendApplicationClient(client_id=self.client_id, scope=[GRAPH_SCOPE])
        session = self.session_factory(client)
        logger.debug("Requesting Graph access token for client %s", self.client_id)
        try:
            token = session.fetch_token(
                token_url=self.token_url,
                client_id=self.client_id,
                client_secret=self.client_secret,
                timeout=self.timeout_sec,
            )
        except (OAuth2Error, requests.RequestException, ValueError) as exc:
            raise TransportError(f"Failed to acquire access token: {exc}") from exc

        if "expires_at" not in token and "expires_in" in token:
            token["expires_at"] = self.clock() + float(token["expires_in"])
        self._token = dict(token)
        if not self._token.get("access_token"):
            raise TransportError("Token endpoint returned no access_token")
        return str(self._token["access_token"])
