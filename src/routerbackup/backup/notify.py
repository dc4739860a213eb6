"""
Failure reporting for backup runs.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import smtplib
import socket
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Sequence

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.errors import NotificationFailed
from routerbackup.backup.models import RunOutcome

logger = logging.getLogger(__name__)


def format_report(outcomes: Sequence[RunOutcome]) -> str:
    """Render outcomes as a plain-text report."""
    failed = [o for o in outcomes if not o.ok]
    lines = [
        f"Router backup finished: {len(outcomes) - len(failed)} succeeded, {len(failed)} failed.",
        "",
    ]
    for outcome in outcomes:
        name = f"{outcome.device_identity} " if outcome.device_identity else ""
        line = f"[{outcome.status.value}] {name}{outcome.device_address}"
        if outcome.detail:
            line += f": {outcome.detail}"
        lines.append(line)
    return "\n".join(lines) + "\n"


class NotificationSink(ABC):
    """Receives the outcomes of a run that had failures."""

    @abstractmethod
    def notify(self, outcomes: Sequence[RunOutcome]) -> None:
        """Deliver the report.

        Raises:
            NotificationFailed: if delivery fails
        """
        pass


class LogNotificationSink(NotificationSink):
    """Writes the report to the log."""

    def notify(self, outcomes: Sequence[RunOutcome]) -> None:
        for line in format_report(outcomes).splitlines():
            if line:
                logger.error(line)


class MailNotificationSink(NotificationSink):
    """Sends the report by e-mail over SMTP."""

    SUBJECT = "Router backup failures"

    def __init__(self, config: BackupConfig):
        self.config = config

    def build_message(self, outcomes: Sequence[RunOutcome]) -> EmailMessage:
        message = EmailMessage()
        failed = sum(1 for o in outcomes if not o.ok)
        message["Subject"] = f"{self.SUBJECT} ({failed} of {len(outcomes)})"
        message["From"] = self.config.mail_from or ""
        message["To"] = ", ".join(self.config.mail_to)
        message.set_content(format_report(outcomes))
        return message

    def notify(self, outcomes: Sequence[RunOutcome]) -> None:
        message = self.build_message(outcomes)
        try:
            with smtplib.SMTP(
                self.config.smtp_host,
                self.config.smtp_port,
                timeout=self.config.commit_timeout,
            ) as smtp:
                smtp.send_message(message)
        except (smtplib.SMTPException, socket.error) as e:
            raise NotificationFailed(f"sending mail via {self.config.smtp_host} failed: {e}") from e

        logger.info(f"Failure report mailed to {', '.join(self.config.mail_to)}")


def get_notification_sink(config: BackupConfig) -> NotificationSink:
    """Mail when enabled in config, log otherwise."""
    if config.mail_enabled:
        return MailNotificationSink(config)
    return LogNotificationSink()
