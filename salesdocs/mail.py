"""
salesdocs/mail.py

Outgoing email contract.

The real provider lives outside this service. The app talks to whatever
MailSender is registered under ``app.extensions["salesdocs.mail_sender"]``;
the default LoggingMailSender only logs, which is what development and the
test suite want.

A sender must raise on failure. A document is only marked as sent after
``send()`` returned normally.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "salesdocs.mail_sender"


@dataclass
class Attachment:
    filename: str
    path: str


@dataclass
class MailMessage:
    to: str
    sender: str
    subject: str
    html: str
    attachments: List[Attachment] = field(default_factory=list)
    reply_to: Optional[str] = None


class MailSender:
    """Interface: deliver one message, return a provider message id."""

    def send(self, message: MailMessage) -> str:
        raise NotImplementedError


class LoggingMailSender(MailSender):
    def send(self, message: MailMessage) -> str:
        message_id = uuid.uuid4().hex
        logger.info(
            "Email to %s: %s",
            message.to,
            message.subject,
            extra={"message_id": message_id, "attachments": [a.filename for a in message.attachments]},
        )
        return message_id


def init_mail(app, sender: MailSender | None = None) -> None:
    app.extensions[EXTENSION_KEY] = sender or LoggingMailSender()


def get_mail_sender() -> MailSender:
    return current_app.extensions[EXTENSION_KEY]
