"""
Tests for the email gateway.

Covers:
- Message construction (sender display name, subject, HTML body, Message-ID)
- Disabled configuration never calls the sender
- Invalid address and SMTP failures become failed attempts
"""

import pytest

from riskescalation.alerting.mail import EmailGateway, SmtpConfig, normalize_email_address


@pytest.mark.asyncio
async def test_send_builds_html_message(email_gateway, smtp):
    attempt = await email_gateway.send(
        " jean@example.com ",
        "Important: Aline's Academic Alert",
        "<p>Hello</p>",
        from_name="Green Hills Academy - EduGuard",
        guardian_name="Jean",
    )

    assert attempt.success is True
    assert attempt.recipient_address == "jean@example.com"
    assert attempt.provider_ref.startswith("<") and attempt.provider_ref.endswith("@school.test>")

    msg = smtp.messages[0]
    assert msg["To"] == "jean@example.com"
    assert msg["Subject"] == "Important: Aline's Academic Alert"
    assert "Green Hills Academy - EduGuard" in msg["From"]
    assert "alerts@school.test" in msg["From"]
    assert msg.get_content_type() == "text/html"
    assert msg["Message-ID"] == attempt.provider_ref


@pytest.mark.asyncio
async def test_disabled_gateway_does_not_send(smtp):
    gateway = EmailGateway(SmtpConfig(), sender=smtp.send)
    attempt = await gateway.send("jean@example.com", "s", "<p>b</p>")

    assert gateway.is_configured is False
    assert attempt.success is False
    assert attempt.error_code == "NOT_CONFIGURED"
    assert smtp.messages == []


@pytest.mark.asyncio
async def test_invalid_address_is_permanent_failure(email_gateway, smtp):
    attempt = await email_gateway.send("not-an-address", "s", "<p>b</p>")

    assert attempt.success is False
    assert attempt.error_code == "INVALID_ADDRESS"
    assert attempt.retryable is False
    assert smtp.messages == []


@pytest.mark.asyncio
async def test_smtp_error_is_retryable_failure(email_gateway, smtp):
    smtp.fail_addresses.add("jean@example.com")
    attempt = await email_gateway.send("jean@example.com", "s", "<p>b</p>")

    assert attempt.success is False
    assert attempt.error_code == "SMTP_ERROR"
    assert attempt.retryable is True


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a@b.com", "a@b.com"),
        ("  a@b.com ", "a@b.com"),
        ("", None),
        ("   ", None),
        ("a@b", None),
        ("a b@c.com", None),
        ("jean@.com", None),
        ("jean@example..com", None),
        ("jean@-bad-.com", None),
        (".jean@example.com", None),
        ("jean@@example.com", None),
        (None, None),
    ],
)
def test_normalize_email_address(raw, expected):
    assert normalize_email_address(raw) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["jean@.com", "jean@example..com", "jean@-bad-.com", ".jean@example.com"])
async def test_malformed_address_never_reaches_smtp(email_gateway, smtp, raw):
    attempt = await email_gateway.send(raw, "s", "<p>b</p>")

    assert attempt.error_code == "INVALID_ADDRESS"
    assert attempt.retryable is False
    assert smtp.messages == []
