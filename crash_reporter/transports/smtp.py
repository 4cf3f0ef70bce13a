"""
SMTP transport built on :mod:`smtplib`.

With a ``spool_directory`` configured, every message is first written to
the spool and the whole queue is flushed right away, so a message survives
a transport outage and goes out with the next notification.  Entries left
in flight by a crashed worker are recovered after fifteen minutes.  An
entry that fails ``SPOOL_MAX_ATTEMPTS`` times is parked as ``.eml.failed``
so it cannot hold up the rest of the queue.
"""

import email
import re
import secrets
import smtplib
import time
from email import policy
from email.message import EmailMessage
from pathlib import Path
from typing import Callable, List, Optional

from ..constants import SPOOL_MAX_ATTEMPTS, SPOOL_RECOVER_SECONDS
from ..errors import TransportFailure
from ..logging import setup_logger
from ..templates import TemplateRenderer
from .base import Attachment, NotificationSender

# <time>-<random>[.try<n>].eml
_ATTEMPTS_RE = re.compile(r"\.try(\d+)$")


class FileSpool:
    """Directory of ``.eml`` files waiting for delivery."""

    SUFFIX = ".eml"
    SENDING_SUFFIX = ".eml.sending"
    FAILED_SUFFIX = ".eml.failed"

    def __init__(self, directory, max_attempts: int = SPOOL_MAX_ATTEMPTS):
        self.directory = Path(directory)
        self.max_attempts = max_attempts

    def queue(self, message: EmailMessage) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{int(time.time())}-{secrets.token_hex(8)}{self.SUFFIX}"
        path.write_bytes(message.as_bytes())
        return path

    def pending(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(self.directory.glob(f"*{self.SUFFIX}"))

    def failed(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(self.directory.glob(f"*{self.FAILED_SUFFIX}"))

    def recover(self, timeout: int = SPOOL_RECOVER_SECONDS) -> int:
        """Put in-flight entries older than *timeout* seconds back in the queue."""
        if not self.directory.is_dir():
            return 0
        recovered = 0
        cutoff = time.time() - timeout
        for path in self.directory.glob(f"*{self.SENDING_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.rename(path.with_name(path.name[: -len(".sending")]))
                    recovered += 1
            except FileNotFoundError:
                continue  # finished by another worker
        return recovered

    def flush(self, transmit: Callable[[EmailMessage], None]) -> int:
        """Send every queued message through *transmit*; return how many went out.

        A failing message does not stop the flush.  It goes back into the
        queue with its attempt count raised, or is parked once it reaches
        ``max_attempts``.  After the whole queue was tried, the last failure
        is raised.
        """
        sent = 0
        failures: List[TransportFailure] = []
        for path in self.pending():
            in_flight = path.with_name(path.name + ".sending")
            try:
                path.rename(in_flight)
            except FileNotFoundError:
                continue  # picked up by another worker
            message = email.message_from_bytes(in_flight.read_bytes(), policy=policy.default)
            try:
                transmit(message)
            except TransportFailure as exc:
                failures.append(exc)
                self._requeue(in_flight)
                continue
            in_flight.unlink()
            sent += 1

        if failures:
            raise TransportFailure(
                f"{len(failures)} spooled message(s) not delivered: {failures[-1]}"
            ) from failures[-1]
        return sent

    def _requeue(self, in_flight: Path) -> Path:
        stem = in_flight.name[: -len(self.SENDING_SUFFIX)]
        match = _ATTEMPTS_RE.search(stem)
        attempts = (int(match.group(1)) if match else 0) + 1
        base = _ATTEMPTS_RE.sub("", stem)
        if attempts >= self.max_attempts:
            target = in_flight.with_name(base + self.FAILED_SUFFIX)
        else:
            target = in_flight.with_name(f"{base}.try{attempts}{self.SUFFIX}")
        in_flight.rename(target)
        return target


class SmtpNotificationSender(NotificationSender):
    """Sends notifications as multipart e-mails over SMTP."""

    name = "smtp"

    def __init__(
        self,
        renderer: TemplateRenderer,
        *,
        host: str = "localhost",
        port: int = 25,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = False,
        timeout: float = 10,
        spool_directory: Optional[str] = None,
        spool_max_attempts: int = SPOOL_MAX_ATTEMPTS,
    ):
        super().__init__(renderer)
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout
        self.spool = FileSpool(spool_directory, spool_max_attempts) if spool_directory else None
        self.logger = setup_logger("crash_reporter.smtp", "transport.log")

    def compose(
        self,
        recipients: List[str],
        sender: str,
        subject: str,
        body: str,
        attachments: List[Attachment],
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = sender
        message["To"] = ", ".join(recipients)
        message.set_content(body)
        for attachment in attachments:
            subtype = attachment.mimetype.split("/", 1)[-1]
            message.add_attachment(attachment.content, subtype=subtype, filename=attachment.filename)
        return message

    def deliver(
        self,
        recipients: List[str],
        sender: str,
        subject: str,
        body: str,
        attachments: List[Attachment],
    ) -> None:
        message = self.compose(recipients, sender, subject, body, attachments)
        if self.spool is None:
            self._transmit(message)
            return

        try:
            self.spool.queue(message)
            self.spool.recover()
            sent = self.spool.flush(self._transmit)
        except OSError as exc:
            raise TransportFailure(f"Mail spool {self.spool.directory} is unusable: {exc}") from exc
        self.logger.debug("Flushed %d spooled message(s)", sent, extra={"transport": self.name})

    def _transmit(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportFailure(f"SMTP delivery via {self.host}:{self.port} failed: {exc}") from exc
        self.logger.info(
            "Sent '%s' via SMTP",
            message["Subject"],
            extra={"transport": self.name, "recipients": message["To"]},
        )
