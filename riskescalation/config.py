"""
Risk Escalation Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "Risk Escalation"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite+aiosqlite:///./risk_escalation.db",
        alias="DATABASE_URL",
    )
    db_pool_size: int = Field(default=10, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, alias="DB_MAX_OVERFLOW")
    db_pool_recycle: int = Field(default=3600, alias="DB_POOL_RECYCLE")

    # ── SMS (Twilio) ─────────────────────────────────────────────────────
    twilio_account_sid: str = Field(default="", alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", alias="TWILIO_AUTH_TOKEN")
    twilio_phone_number: str = Field(default="", alias="TWILIO_PHONE_NUMBER")
    sms_country_code: str = Field(default="250", alias="SMS_COUNTRY_CODE")
    sms_bulk_interval_ms: int = Field(default=100, alias="SMS_BULK_INTERVAL_MS")
    sms_timeout_seconds: float = Field(default=10.0, alias="SMS_TIMEOUT_SECONDS")

    # ── Email (SMTP) ─────────────────────────────────────────────────────
    email_host: str = Field(default="smtp.gmail.com", alias="EMAIL_HOST")
    email_port: int = Field(default=587, alias="EMAIL_PORT")
    email_user: str = Field(default="", alias="EMAIL_USER")
    email_pass: str = Field(default="", alias="EMAIL_PASS")
    email_from: str = Field(default="", alias="EMAIL_FROM")
    email_use_tls: bool = Field(default=True, alias="EMAIL_USE_TLS")
    email_timeout_seconds: float = Field(default=10.0, alias="EMAIL_TIMEOUT_SECONDS")

    # ── Escalation Pipeline ──────────────────────────────────────────────
    dedup_window_hours: int = Field(default=24, alias="DEDUP_WINDOW_HOURS")
    fanout_concurrency: int = Field(default=4, alias="FANOUT_CONCURRENCY")
    channel_timeout_seconds: float = Field(default=15.0, alias="CHANNEL_TIMEOUT_SECONDS")
    batch_concurrency: int = Field(default=4, alias="BATCH_CONCURRENCY")
    # Comma-separated risk levels that also alert guardians
    guardian_escalation_levels_raw: str = Field(
        default="HIGH,CRITICAL",
        alias="GUARDIAN_ESCALATION_LEVELS",
    )
    brand_name: str = Field(default="EduGuard", alias="BRAND_NAME")

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def guardian_escalation_levels(self) -> List[str]:
        return [
            part.strip().upper()
            for part in self.guardian_escalation_levels_raw.split(",")
            if part.strip()
        ]

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite://") and "+aiosqlite" not in url:
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.async_database_url.startswith("sqlite")


settings = Settings()
