"""
Tests for settings parsing and log masking helpers.
"""

import pytest

from riskescalation.alerting.mail import SmtpConfig
from riskescalation.alerting.sms import TwilioConfig
from riskescalation.config import Settings
from riskescalation.logging_config import mask_email, mask_phone


def test_guardian_levels_are_parsed_from_csv():
    cfg = Settings(GUARDIAN_ESCALATION_LEVELS=" high, critical ,,")
    assert cfg.guardian_escalation_levels == ["HIGH", "CRITICAL"]


@pytest.mark.parametrize(
    "url, expected",
    [
        ("postgresql://u:p@db/risk", "postgresql+asyncpg://u:p@db/risk"),
        ("postgres://u:p@db/risk", "postgresql+asyncpg://u:p@db/risk"),
        ("sqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
        ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ],
)
def test_async_database_url(url, expected):
    assert Settings(DATABASE_URL=url).async_database_url == expected


def test_channel_configs_from_settings():
    cfg = Settings(
        TWILIO_ACCOUNT_SID=" AC" + "9" * 32 + " ",
        TWILIO_AUTH_TOKEN="x" * 32,
        TWILIO_PHONE_NUMBER="+15005550006",
        SMS_BULK_INTERVAL_MS=250,
        EMAIL_HOST="smtp.example.com",
        EMAIL_USER="alerts@example.com",
        EMAIL_FROM="",
    )

    twilio = TwilioConfig.from_settings(cfg)
    assert twilio.account_sid.startswith("AC")
    assert twilio.bulk_interval_seconds == 0.25
    assert twilio.disabled_reason() is None

    smtp = SmtpConfig.from_settings(cfg)
    assert smtp.from_address == "alerts@example.com"
    assert smtp.disabled_reason() is None


def test_masking():
    assert mask_phone("+250788123456") == "***456"
    assert mask_phone(None) == ""
    assert mask_email("jean@example.com") == "j***@example.com"
    assert mask_email("not-an-address") == ""
