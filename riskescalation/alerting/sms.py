"""
SMS Gateway — Twilio REST API over httpx.

Sends guardian SMS alerts, bulk sends at a fixed cadence, and looks up
delivery status. The gateway decides ONCE, at construction, whether it is
enabled; a disabled gateway never touches the network and reports every
send as a failed attempt with error code NOT_CONFIGURED.

Usage:
    gateway = SmsGateway(TwilioConfig.from_settings())
    attempt = await gateway.send("0788123456", "Hello")
    await gateway.close()
"""

import asyncio
import re
import time
from typing import Optional, Sequence

import httpx
import structlog
from pydantic import BaseModel

from riskescalation.alerting.schemas import (
    HTTP_ERROR,
    INVALID_ADDRESS,
    NOT_CONFIGURED,
    BulkSendResult,
    DeliveryAttempt,
    DeliveryChannel,
    MessageStatus,
)
from riskescalation.config import Settings, settings
from riskescalation.exceptions import ChannelNotConfigured, TransportFailure
from riskescalation.logging_config import mask_phone

logger = structlog.get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")


# ============================================================================
# CONFIG
# ============================================================================


class TwilioConfig(BaseModel):
    """Twilio credentials and sending behaviour."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    country_code: str = "250"
    bulk_interval_seconds: float = 0.1
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "TwilioConfig":
        source = source or settings
        return cls(
            account_sid=source.twilio_account_sid.strip(),
            auth_token=source.twilio_auth_token.strip(),
            from_number=source.twilio_phone_number.strip(),
            country_code=source.sms_country_code,
            bulk_interval_seconds=source.sms_bulk_interval_ms / 1000.0,
            timeout_seconds=source.sms_timeout_seconds,
        )

    def disabled_reason(self) -> Optional[str]:
        """Why these credentials cannot be used, or None if they look valid."""
        if not (self.account_sid and self.auth_token and self.from_number):
            return "account sid, auth token and sender number are required"
        if not self.account_sid.startswith("AC"):
            return "account sid must start with 'AC'"
        if len(self.auth_token) <= 20:
            return "auth token is too short"
        return None


class SmsRecipient(BaseModel):
    phone: str
    message: str
    guardian_name: str = ""


# ============================================================================
# HELPERS
# ============================================================================


def normalize_phone_number(raw: str, country_code: str = "250") -> str:
    """
    Normalize a locally-entered number to E.164.

    Rules, first match wins (digits = input with non-digits removed):
    1. digits start with the country code → "+" + digits
    2. leading 0 and 10 digits (national format) → "+CC" + digits[1:]
    3. exactly 9 digits (subscriber number) → "+CC" + digits
    4. input already starts with "+" → input unchanged
    5. otherwise → "+" + digits

    Applying it to its own output returns the same value.
    """
    raw = (raw or "").strip()
    digits = _NON_DIGITS.sub("", raw)

    if digits.startswith(country_code):
        return f"+{digits}"
    if digits.startswith("0") and len(digits) == 10:
        return f"+{country_code}{digits[1:]}"
    if len(digits) == 9:
        return f"+{country_code}{digits}"
    if raw.startswith("+"):
        return raw
    return f"+{digits}"


class RateLimiter:
    """Enforces a minimum interval between consecutive acquisitions."""

    def __init__(self, min_interval_seconds: float):
        self.min_interval = max(0.0, min_interval_seconds)
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            if self._last is not None:
                wait = self.min_interval - (now - self._last)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last = time.monotonic()


# ============================================================================
# GATEWAY
# ============================================================================


class SmsGateway:
    """
    SMS delivery via the Twilio Messages API.

    ``transport`` lets tests plug in ``httpx.MockTransport``; production
    uses the default network transport.
    """

    TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
    channel = DeliveryChannel.SMS

    def __init__(
        self,
        config: Optional[TwilioConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self._config = config or TwilioConfig.from_settings()
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self._rate_limiter = rate_limiter or RateLimiter(self._config.bulk_interval_seconds)

        self._disabled_reason = self._config.disabled_reason()
        if self._disabled_reason:
            logger.warning("sms_gateway_disabled", reason=self._disabled_reason)
        else:
            logger.info("sms_gateway_enabled", sender=mask_phone(self._config.from_number))

    @property
    def is_configured(self) -> bool:
        return self._disabled_reason is None

    @property
    def country_code(self) -> str:
        return self._config.country_code

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.TWILIO_API_BASE,
                auth=(self._config.account_sid, self._config.auth_token),
                timeout=httpx.Timeout(self._config.timeout_seconds),
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ========================================================================
    # SENDING
    # ========================================================================

    async def send(self, raw_number: str, message: str, guardian_name: str = "") -> DeliveryAttempt:
        """
        Send one SMS. Never raises; failures come back as a failed attempt.
        """
        to = normalize_phone_number(raw_number, self._config.country_code)
        try:
            sid = await self._deliver(to, message)
        except ChannelNotConfigured as exc:
            return self._failed(guardian_name, to or raw_number, NOT_CONFIGURED, exc.message)
        except TransportFailure as exc:
            return self._failed(guardian_name, to, exc.provider_code or HTTP_ERROR, exc.message)

        return DeliveryAttempt(
            channel=self.channel,
            guardian_name=guardian_name,
            recipient_address=to,
            success=True,
            provider_ref=sid,
        )

    async def _deliver(self, to: str, body: str) -> str:
        """POST to Twilio; returns the message sid or raises."""
        if not self.is_configured:
            raise ChannelNotConfigured("SMS", self._disabled_reason)
        if len(to) < 2:
            raise TransportFailure("SMS", "Empty phone number", provider_code=INVALID_ADDRESS)

        try:
            response = await self._client().post(
                f"/Accounts/{self._config.account_sid}/Messages.json",
                data={"From": self._config.from_number, "To": to, "Body": body},
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("sms_http_error", to=mask_phone(to), error=str(exc))
            raise TransportFailure("SMS", str(exc) or type(exc).__name__, provider_code=HTTP_ERROR) from exc

        if response.is_success:
            logger.info("sms_sent", sid=data.get("sid"), to=mask_phone(to), status=data.get("status"))
            return data.get("sid")

        code = data.get("code")
        logger.error(
            "sms_send_failed",
            to=mask_phone(to),
            http_status=response.status_code,
            error_code=code,
            error_message=data.get("message"),
        )
        raise TransportFailure(
            "SMS",
            data.get("message") or f"HTTP {response.status_code}",
            provider_code=str(code) if code is not None else f"HTTP_{response.status_code}",
        )

    def _failed(self, guardian_name: str, to: str, code: str, detail: str) -> DeliveryAttempt:
        return DeliveryAttempt(
            channel=self.channel,
            guardian_name=guardian_name,
            recipient_address=to,
            success=False,
            error_code=code,
            error_detail=detail,
        )

    async def send_bulk(self, recipients: Sequence[SmsRecipient]) -> BulkSendResult:
        """
        Send sequentially, one message per rate-limiter slot.

        ``success`` is True when at least one message went out.
        """
        if not self.is_configured:
            logger.warning("sms_bulk_skipped", reason=self._disabled_reason, count=len(recipients))
            return BulkSendResult(success=False, sent=0, failed=len(recipients), attempts=[])

        attempts: list[DeliveryAttempt] = []
        for recipient in recipients:
            await self._rate_limiter.acquire()
            attempts.append(
                await self.send(recipient.phone, recipient.message, recipient.guardian_name)
            )

        sent = sum(1 for a in attempts if a.success)
        failed = len(attempts) - sent
        logger.info("sms_bulk_completed", sent=sent, failed=failed)
        return BulkSendResult(success=sent > 0, sent=sent, failed=failed, attempts=attempts)

    # ========================================================================
    # STATUS
    # ========================================================================

    async def check_status(self, provider_ref: str) -> MessageStatus:
        """Provider-side delivery status. Never raises."""
        if not self.is_configured:
            return MessageStatus(status="unknown", error_message=self._disabled_reason)

        try:
            response = await self._client().get(
                f"/Accounts/{self._config.account_sid}/Messages/{provider_ref}.json"
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("sms_status_check_failed", sid=provider_ref, error=str(exc))
            return MessageStatus(status="failed", error_message=str(exc) or type(exc).__name__)

        if not response.is_success:
            return MessageStatus(
                status="failed",
                error_code=str(data.get("code")) if data.get("code") is not None else None,
                error_message=data.get("message") or f"HTTP {response.status_code}",
            )

        code = data.get("error_code")
        return MessageStatus(
            status=data.get("status", "unknown"),
            date_sent=data.get("date_sent"),
            date_updated=data.get("date_updated"),
            error_code=str(code) if code is not None else None,
            error_message=data.get("error_message"),
        )


__all__ = [
    "RateLimiter",
    "SmsGateway",
    "SmsRecipient",
    "TwilioConfig",
    "normalize_phone_number",
]
