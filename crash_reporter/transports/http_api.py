"""
Transactional-mail HTTP API transport (Brevo-compatible payload).

Attachments travel base64-encoded inside the JSON body; the API key goes
in the ``api-key`` header.
"""

import base64
from email.utils import parseaddr
from typing import Any, Dict, List, Optional

import requests

from ..constants import DEFAULT_HTTP_API_ENDPOINT
from ..errors import TransportFailure
from ..logging import setup_logger
from ..templates import TemplateRenderer
from .base import Attachment, NotificationSender


def _address(address: str) -> Dict[str, str]:
    name, addr = parseaddr(address)
    entry = {"email": addr or address}
    if name:
        entry["name"] = name
    return entry


class HttpApiNotificationSender(NotificationSender):
    """Posts notifications to an HTTP mail API."""

    name = "http_api"

    def __init__(
        self,
        renderer: TemplateRenderer,
        *,
        api_key: Optional[str] = None,
        endpoint: str = DEFAULT_HTTP_API_ENDPOINT,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(renderer)
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()
        self.logger = setup_logger("crash_reporter.http_api", "transport.log")

    def build_payload(
        self,
        recipients: List[str],
        sender: str,
        subject: str,
        body: str,
        attachments: List[Attachment],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sender": _address(sender),
            "to": [_address(r) for r in recipients],
            "subject": subject,
            "textContent": body,
        }
        if attachments:
            payload["attachment"] = [
                {
                    "name": a.filename,
                    "content": base64.b64encode(a.content.encode("utf-8")).decode("ascii"),
                }
                for a in attachments
            ]
        return payload

    def deliver(
        self,
        recipients: List[str],
        sender: str,
        subject: str,
        body: str,
        attachments: List[Attachment],
    ) -> None:
        payload = self.build_payload(recipients, sender, subject, body, attachments)
        headers = {
            "api-key": self.api_key or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self._session.post(
                self.endpoint, json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportFailure(f"Mail API request to {self.endpoint} failed: {exc}") from exc

        self.logger.info(
            "Sent '%s' via mail API (HTTP %s)",
            subject,
            response.status_code,
            extra={"transport": self.name, "recipients": ", ".join(recipients)},
        )
