"""
Email Gateway — guardian alerts over SMTP (aiosmtplib).

The provider reference of a sent email is its Message-ID header, generated
locally before the hand-off to the SMTP server.
"""

from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Awaitable, Callable, Optional

import aiosmtplib
import structlog
from pydantic import BaseModel, EmailStr, TypeAdapter, ValidationError

from riskescalation.alerting.schemas import (
    INVALID_ADDRESS,
    NOT_CONFIGURED,
    SMTP_ERROR,
    DeliveryAttempt,
    DeliveryChannel,
)
from riskescalation.config import Settings, settings
from riskescalation.exceptions import ChannelNotConfigured, TransportFailure
from riskescalation.logging_config import mask_email

logger = structlog.get_logger(__name__)

EmailSender = Callable[[EmailMessage], Awaitable[None]]


class SmtpConfig(BaseModel):
    host: str = ""
    port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = ""
    use_tls: bool = True
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "SmtpConfig":
        source = source or settings
        return cls(
            host=source.email_host.strip(),
            port=source.email_port,
            username=source.email_user.strip(),
            password=source.email_pass,
            from_address=(source.email_from or source.email_user).strip(),
            use_tls=source.email_use_tls,
            timeout_seconds=source.email_timeout_seconds,
        )

    def disabled_reason(self) -> Optional[str]:
        if not self.host:
            return "SMTP host is not set"
        if not self.from_address:
            return "sender address is not set"
        return None


_EMAIL_ADDRESS = TypeAdapter(EmailStr)


def normalize_email_address(raw: Optional[str]) -> Optional[str]:
    """Trim and validate (pydantic EmailStr); None if the value cannot be an address."""
    address = (raw or "").strip()
    if not address:
        return None
    try:
        return _EMAIL_ADDRESS.validate_python(address)
    except ValidationError:
        return None


class EmailGateway:
    """
    HTML email delivery.

    ``sender`` replaces the SMTP hand-off (tests, alternative providers);
    by default messages go out through ``aiosmtplib.send``.
    """

    channel = DeliveryChannel.EMAIL

    def __init__(
        self,
        config: Optional[SmtpConfig] = None,
        sender: Optional[EmailSender] = None,
    ):
        self._config = config or SmtpConfig.from_settings()
        self._sender = sender or self._smtp_send

        self._disabled_reason = self._config.disabled_reason()
        if self._disabled_reason:
            logger.warning("email_gateway_disabled", reason=self._disabled_reason)

    @property
    def is_configured(self) -> bool:
        return self._disabled_reason is None

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        from_name: Optional[str] = None,
        guardian_name: str = "",
    ) -> DeliveryAttempt:
        """Send one email. Never raises; failures come back as a failed attempt."""
        try:
            address, message_id = await self._deliver(to, subject, html_body, from_name)
        except ChannelNotConfigured as exc:
            return self._failed(guardian_name, to, NOT_CONFIGURED, exc.message)
        except TransportFailure as exc:
            return self._failed(guardian_name, to, exc.provider_code or SMTP_ERROR, exc.message)

        return DeliveryAttempt(
            channel=self.channel,
            guardian_name=guardian_name,
            recipient_address=address,
            success=True,
            provider_ref=message_id,
        )

    async def _deliver(
        self,
        to: str,
        subject: str,
        html_body: str,
        from_name: Optional[str],
    ) -> tuple[str, str]:
        if not self.is_configured:
            raise ChannelNotConfigured("EMAIL", self._disabled_reason)

        address = normalize_email_address(to)
        if address is None:
            raise TransportFailure("EMAIL", f"Invalid email address: {to!r}", provider_code=INVALID_ADDRESS)

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name, self._config.from_address)) if from_name else self._config.from_address
        msg["To"] = address
        msg["Message-ID"] = make_msgid(domain=self._config.from_address.split("@")[-1])
        msg.set_content(html_body, subtype="html")

        try:
            await self._sender(msg)
        except TransportFailure:
            raise
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("email_send_failed", to=mask_email(address), error=str(exc))
            raise TransportFailure("EMAIL", str(exc) or type(exc).__name__, provider_code=SMTP_ERROR) from exc

        logger.info("email_sent", to=mask_email(address), message_id=msg["Message-ID"])
        return address, msg["Message-ID"]

    async def _smtp_send(self, msg: EmailMessage) -> None:
        await aiosmtplib.send(
            msg,
            hostname=self._config.host,
            port=self._config.port,
            username=self._config.username or None,
            password=self._config.password or None,
            start_tls=self._config.use_tls,
            timeout=self._config.timeout_seconds,
        )

    def _failed(self, guardian_name: str, to: str, code: str, detail: str) -> DeliveryAttempt:
        return DeliveryAttempt(
            channel=self.channel,
            guardian_name=guardian_name,
            recipient_address=to or "",
            success=False,
            error_code=code,
            error_detail=detail,
        )
