"""
Notification transports.

Each module wraps one mail ecosystem behind :class:`NotificationSender`:
- ``smtp``     – stdlib ``smtplib`` with an optional file spool
- ``http_api`` – transactional-mail HTTP API via ``requests``
"""

from typing import Any, Dict, Optional

from ..config import ConfigError, as_bool
from ..constants import (
    DEFAULT_HTTP_API_ENDPOINT,
    DEFAULT_MAIL_BACKEND,
    HTTP_API_BACKENDS,
    SMTP_BACKENDS,
    SPOOL_MAX_ATTEMPTS,
)
from ..templates import TemplateRenderer
from .base import Attachment, NotificationSender
from .http_api import HttpApiNotificationSender
from .smtp import FileSpool, SmtpNotificationSender

__all__ = [
    "Attachment",
    "NotificationSender",
    "SmtpNotificationSender",
    "HttpApiNotificationSender",
    "FileSpool",
    "create_sender",
]


def create_sender(
    settings: Dict[str, Any], renderer: Optional[TemplateRenderer] = None
) -> NotificationSender:
    """Build the sender selected by ``mail_backend`` in the ``crash_reporter`` section."""
    section = settings.get("crash_reporter", settings)
    renderer = renderer or TemplateRenderer()
    backend = section.get("mail_backend", DEFAULT_MAIL_BACKEND)

    if backend in SMTP_BACKENDS:
        smtp = section.get("smtp", {})
        return SmtpNotificationSender(
            renderer,
            host=smtp.get("host", "localhost"),
            port=int(smtp.get("port", 25)),
            username=smtp.get("username") or None,
            password=smtp.get("password") or None,
            starttls=as_bool(smtp.get("starttls", False)),
            timeout=float(smtp.get("timeout", 10)),
            spool_directory=smtp.get("spool_directory") or None,
            spool_max_attempts=int(smtp.get("spool_max_attempts", SPOOL_MAX_ATTEMPTS)),
        )

    if backend in HTTP_API_BACKENDS:
        api = section.get("http_api", {})
        return HttpApiNotificationSender(
            renderer,
            api_key=api.get("api_key") or None,
            endpoint=api.get("endpoint", DEFAULT_HTTP_API_ENDPOINT),
            timeout=float(api.get("timeout", 10)),
        )

    raise ConfigError(f"Unknown mail_backend '{backend}'")
