"""
Mailer collaborators.

The identity core only needs "send this message to this address". Delivery
providers implement Mailer.send and raise MailDeliveryError on failure.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import MailDeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    to: str
    subject: str
    html_body: str

    def __repr__(self) -> str:
        # Bodies may carry one-time codes
        return f"EmailMessage(to='{self.to}', subject='{self.subject}')"


class Mailer:
    """Outbound email collaborator."""

    def send(self, message: EmailMessage) -> None:
        """
        Deliver a message.

        Raises:
            MailDeliveryError: If the provider rejects or cannot take the message
        """
        raise NotImplementedError


class MemoryMailer(Mailer):
    """
    Keeps sent messages in an outbox list.

    Set `fail_with` to make the next sends raise, which simulates a provider
    outage.
    """

    def __init__(self):
        self.outbox: List[EmailMessage] = []
        self.fail_with: Optional[Exception] = None

    def send(self, message: EmailMessage) -> None:
        if self.fail_with is not None:
            raise MailDeliveryError(str(self.fail_with)) from self.fail_with
        self.outbox.append(message)

    def messages_to(self, address: str) -> List[EmailMessage]:
        return [m for m in self.outbox if m.to == address]


class LoggingMailer(Mailer):
    """Logs a redacted line instead of delivering (local development)."""

    def __init__(self, log: logging.Logger = logger):
        self._log = log

    def send(self, message: EmailMessage) -> None:
        self._log.info("Mail to %s: %s (%d bytes)", message.to, message.subject, len(message.html_body))


def render_code_email(subject: str, code: str) -> str:
    """HTML body carrying a one-time code."""
    return (
        f"<p>{subject}</p>"
        f"<p>Your code is <strong>{code}</strong>.</p>"
        "<p>If you did not request this, you can ignore this email.</p>"
    )
