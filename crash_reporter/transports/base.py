"""Contract shared by every notification transport."""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from ..templates import TemplateRenderer


@dataclass(frozen=True)
class Attachment:
    """A text attachment of a notification."""

    filename: str
    content: str
    mimetype: str = "text/plain"


class NotificationSender:
    """Composes a templated message and hands it to a mail transport.

    Subclasses implement :meth:`deliver`; rendering is shared.
    """

    name = "base"

    def __init__(self, renderer: TemplateRenderer):
        self.renderer = renderer

    def send(
        self,
        recipients: Sequence[str],
        sender: str,
        subject: str,
        template_id: str,
        context: Dict[str, Any],
        attachments: Sequence[Attachment] = (),
    ) -> None:
        """Render *template_id* with *context* and deliver the message.

        Raises:
            TransportFailure: the transport rejected or could not send it.
        """
        body = self.renderer.render(template_id, context)
        self.deliver(list(recipients), sender, subject, body, list(attachments))

    def deliver(
        self,
        recipients: List[str],
        sender: str,
        subject: str,
        body: str,
        attachments: List[Attachment],
    ) -> None:
        raise NotImplementedError
