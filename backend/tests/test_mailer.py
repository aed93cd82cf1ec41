import pytest

from utils import mailer


@pytest.fixture
def smtp(monkeypatch):
    sent = []

    async def fake_send(message, **kwargs):
        sent.append((message, kwargs))

    monkeypatch.setattr(mailer, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(mailer, "SMTP_PORT", 587)
    monkeypatch.setattr(mailer, "SMTP_FROM_EMAIL", "shop@example.com")
    monkeypatch.setattr(mailer, "SMTP_USER", "mailer")
    monkeypatch.setattr(mailer, "SMTP_PASSWORD", "secret")
    monkeypatch.setattr(mailer.aiosmtplib, "send", fake_send)
    return sent


async def test_sends_plain_and_html_parts(smtp):
    assert await mailer.send_email_simple("buyer@example.com", "Order shipped", "Tracking <soon>") is True

    message, options = smtp[0]
    assert message["To"] == "buyer@example.com"
    assert message["Subject"] == "Order shipped"
    assert message.get_body(("html",)).get_content().strip() == "<p>Tracking &lt;soon&gt;</p>"
    assert options["hostname"] == "smtp.example.com"
    assert options["username"] == "mailer"
    assert options["start_tls"] is True


async def test_unconfigured_smtp_skips(smtp, monkeypatch):
    monkeypatch.setattr(mailer, "SMTP_HOST", "")

    assert await mailer.send_email_simple("buyer@example.com", "Hi", "there") is False
    assert smtp == []


async def test_missing_recipient_skips(smtp):
    assert await mailer.send_email_simple(None, "Hi", "there") is False
    assert smtp == []


async def test_send_failure_is_logged_not_raised(monkeypatch, smtp, caplog):
    async def refuse(message, **kwargs):
        raise ConnectionRefusedError("no smtp")

    monkeypatch.setattr(mailer.aiosmtplib, "send", refuse)

    assert await mailer.send_email_simple("buyer@example.com", "Hi", "there") is False
    assert "EMAIL_SEND_FAILED to=buyer@example.com" in caplog.text
