"""
notifier.py - Alert delivery

A notifier takes a rendered alert (severity, subject, body) and delivers
it to a list of recipients. Delivery is best-effort: the alert service
logs failures and carries on.
"""

from __future__ import annotations

from email.message import EmailMessage
from typing import List, Protocol, runtime_checkable

import aiosmtplib

from hostwatch.config import Settings, SmtpSettings
from hostwatch.errors import NotificationFailure
from hostwatch.schemas import AlertSeverity
from hostwatch.utils.logging import get_logger

logger = get_logger(__name__)

SUBJECT_PREFIX = "[hostwatch]"


@runtime_checkable
class Notifier(Protocol):
    async def send(
        self, severity: AlertSeverity, subject: str, body: str, recipients: List[str]
    ) -> bool: ...


class LogNotifier:
    """Writes notifications to the log instead of sending them anywhere."""

    async def send(
        self, severity: AlertSeverity, subject: str, body: str, recipients: List[str]
    ) -> bool:
        log_method = logger.error if severity == AlertSeverity.CRITICAL else logger.warning
        log_method(
            "Alert notification",
            severity=severity.value,
            subject=subject,
            body=body.strip(),
            recipients=recipients,
        )
        return True


class EmailNotifier:
    """Sends notifications as plain-text email over SMTP."""

    def __init__(self, smtp: SmtpSettings):
        self.smtp = smtp

    def build_message(self, subject: str, body: str, recipients: List[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.smtp.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"{SUBJECT_PREFIX} {subject}"
        msg.set_content(body)
        return msg

    async def send(
        self, severity: AlertSeverity, subject: str, body: str, recipients: List[str]
    ) -> bool:
        if not recipients:
            logger.warning("No recipients configured, email not sent", subject=subject)
            return False

        msg = self.build_message(subject, body, recipients)
        try:
            await aiosmtplib.send(
                msg,
                hostname=self.smtp.host,
                port=self.smtp.port,
                username=self.smtp.username,
                password=self.smtp.password,
                use_tls=self.smtp.use_tls,
                start_tls=self.smtp.start_tls and not self.smtp.use_tls,
                timeout=self.smtp.timeout_seconds,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise NotificationFailure(f"SMTP delivery to {self.smtp.host} failed: {e}") from e

        logger.info("Alert email sent", severity=severity.value, subject=subject, recipients=recipients)
        return True


def build_notifier(settings: Settings) -> Notifier:
    """Email when SMTP is configured, otherwise the log."""
    if settings.smtp.enabled:
        return EmailNotifier(settings.smtp)
    return LogNotifier()
