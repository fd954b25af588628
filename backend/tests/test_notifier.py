"""Tests for alert delivery."""

from __future__ import annotations

import aiosmtplib
import pytest

from hostwatch import notifier as notifier_module
from hostwatch.config import Settings, SmtpSettings
from hostwatch.errors import NotificationFailure
from hostwatch.notifier import EmailNotifier, LogNotifier, build_notifier
from hostwatch.schemas import AlertSeverity


@pytest.fixture
def smtp() -> SmtpSettings:
    return SmtpSettings(enabled=True, host="mail.internal", port=2525, sender="monitor@example.com")


@pytest.mark.asyncio
async def test_log_notifier_always_delivers() -> None:
    assert await LogNotifier().send(AlertSeverity.CRITICAL, "subject", "body", []) is True


def test_email_message_headers(smtp) -> None:
    msg = EmailNotifier(smtp).build_message("CPU hot", "details", ["a@example.com", "b@example.com"])

    assert msg["Subject"] == "[hostwatch] CPU hot"
    assert msg["From"] == "monitor@example.com"
    assert msg["To"] == "a@example.com, b@example.com"
    assert "details" in msg.get_content()


@pytest.mark.asyncio
async def test_email_sent_over_smtp(smtp, monkeypatch) -> None:
    sent = {}

    async def fake_send(message, **kwargs):
        sent["message"] = message
        sent.update(kwargs)
        return {}, "OK"

    monkeypatch.setattr(notifier_module.aiosmtplib, "send", fake_send)

    assert await EmailNotifier(smtp).send(AlertSeverity.WARNING, "Disk", "body", ["ops@example.com"]) is True
    assert sent["hostname"] == "mail.internal"
    assert sent["port"] == 2525
    assert sent["message"]["To"] == "ops@example.com"


@pytest.mark.asyncio
async def test_smtp_errors_become_notification_failures(smtp, monkeypatch) -> None:
    async def refuse(message, **kwargs):
        raise aiosmtplib.SMTPConnectError("connection refused")

    monkeypatch.setattr(notifier_module.aiosmtplib, "send", refuse)

    with pytest.raises(NotificationFailure):
        await EmailNotifier(smtp).send(AlertSeverity.CRITICAL, "CPU", "body", ["ops@example.com"])


@pytest.mark.asyncio
async def test_email_without_recipients_is_not_sent(smtp, monkeypatch) -> None:
    async def explode(message, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(notifier_module.aiosmtplib, "send", explode)

    assert await EmailNotifier(smtp).send(AlertSeverity.CRITICAL, "CPU", "body", []) is False


def test_build_notifier_follows_settings(smtp) -> None:
    assert isinstance(build_notifier(Settings()), LogNotifier)
    assert isinstance(build_notifier(Settings(smtp=smtp)), EmailNotifier)
