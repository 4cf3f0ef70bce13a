"""
Assembly of crash-report notifications.

A report is a rendered body plus five plain-text attachments (server
variables, backtrace, request, response, session variables).  Structured
values are dumped with :func:`dump_structure`: keys sorted and
column-aligned, nested values indented, recursion capped at three levels.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .artifacts import BacktraceArtifact
from .config import Configuration
from .constants import (
    ATTACHMENT_BACKTRACE,
    ATTACHMENT_REQUEST,
    ATTACHMENT_RESPONSE,
    ATTACHMENT_SERVER,
    ATTACHMENT_SESSION,
    EXCEPTION_TEMPLATE,
    MAX_DEPTH_MARKER,
    MAX_DUMP_DEPTH,
    REPORT_SUBJECT,
    SESSION_SECURITY_KEYS,
    UPLOAD_FAILED_SUBJECT,
    UPLOAD_FAILED_TEMPLATE,
)
from .snapshots import RequestSnapshot, ResponseSnapshot
from .transports.base import Attachment, NotificationSender


def dump_structure(values: Any, depth: int = 0, max_depth: int = MAX_DUMP_DEPTH) -> str:
    """Render a mapping (or sequence) as indented ``key: value`` lines."""
    if depth >= max_depth:
        return MAX_DEPTH_MARKER
    if isinstance(values, (list, tuple)):
        values = dict(enumerate(values))
    if not values:
        return ""

    width = max(len(str(key)) for key in values) + 1
    out = ""
    for name, value in sorted(values.items(), key=lambda item: str(item[0])):
        if isinstance(value, (Mapping, list, tuple)):
            value = dump_structure(value, depth + 1, max_depth)
        out += "\r\n" + "\t" * depth + f"{str(name) + ':':<{width}} {value}"
    return out


def headers_text(headers: Dict[str, str]) -> str:
    if not headers:
        return ""
    width = max(len(name) for name in headers) + 1
    return "".join(
        f"{name + ':':<{width}} {value}\r\n"
        for name, value in sorted(headers.items(), key=lambda item: item[0].lower())
    )


def request_text(snapshot: RequestSnapshot) -> str:
    """Request line, headers, then non-empty form and query parameters."""
    text = (
        f"{snapshot.method} {snapshot.uri} {snapshot.protocol}\r\n\r\n"
        f"Request headers:\r\n{headers_text(snapshot.headers)}\r\n"
    )
    if snapshot.request:
        text += "Request 'request' variables:" + dump_structure(snapshot.request) + "\r\n"
    if snapshot.query:
        text += "Request 'query' variables:" + dump_structure(snapshot.query)
    return text


def session_text(session_values: Dict[str, Any], cookies: Dict[str, str]) -> str:
    visible = {k: v for k, v in session_values.items() if k not in SESSION_SECURITY_KEYS}
    return (
        "\nSession variables: \n"
        + dump_structure(visible)
        + "\n\nCookie variables: \n"
        + dump_structure(cookies)
    )


def server_text(server: Dict[str, Any]) -> str:
    return "Server variables: \n" + dump_structure(server)


@dataclass
class Notification:
    """A fully assembled message, ready for a :class:`NotificationSender`."""

    recipients: List[str]
    sender: str
    subject: str
    template_id: str
    context: Dict[str, Any]
    attachments: List[Attachment] = field(default_factory=list)


class ReportAssembler:
    """Builds crash reports and hands them to the configured sender."""

    def __init__(self, configuration: Configuration, sender: NotificationSender):
        self.configuration = configuration
        self.sender = sender

    def build_report(
        self,
        request: RequestSnapshot,
        response: ResponseSnapshot,
        session_values: Dict[str, Any],
        backtrace: str,
        error_message: str,
        user: str,
        extra: str = "",
    ) -> Notification:
        """Assemble the report for a redacted *request*."""
        context = {
            "user": user,
            "method": request.method,
            "baseUrl": request.host,
            "requestUri": request.uri,
            "systemVersion": self.configuration.get_system_version(),
            "errorMessage": error_message,
            "extra": extra,
        }
        attachments = [
            Attachment(ATTACHMENT_SERVER, server_text(request.server)),
            Attachment(ATTACHMENT_BACKTRACE, backtrace),
            Attachment(ATTACHMENT_REQUEST, request_text(request)),
            Attachment(ATTACHMENT_RESPONSE, response.header_text()),
            Attachment(ATTACHMENT_SESSION, session_text(session_values, request.cookies)),
        ]
        return Notification(
            recipients=self.configuration.get_receiver(),
            sender=self.configuration.get_sender(),
            subject=REPORT_SUBJECT.format(uri=request.uri),
            template_id=EXCEPTION_TEMPLATE,
            context=context,
            attachments=attachments,
        )

    def build_upload_failed(
        self, error: Optional[BaseException], artifact: BacktraceArtifact
    ) -> Notification:
        """Minimal message carrying the backtrace that could not be stored."""
        return Notification(
            recipients=self.configuration.get_receiver(),
            sender=self.configuration.get_sender(),
            subject=UPLOAD_FAILED_SUBJECT,
            template_id=UPLOAD_FAILED_TEMPLATE,
            context={
                "type": type(error).__name__ if error is not None else None,
                "exception": str(error) if error is not None else "",
                "backtrace": artifact.content,
            },
        )

    def dispatch(self, notification: Notification) -> None:
        self.sender.send(
            notification.recipients,
            notification.sender,
            notification.subject,
            notification.template_id,
            notification.context,
            notification.attachments,
        )
