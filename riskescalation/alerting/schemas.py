"""
Escalation Schemas — Pydantic models for the escalation pipeline.

Inputs (RiskEvent), read-only directory views (NotifiableStudent,
GuardianContact) and the outcome records every escalator returns.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from riskescalation.exceptions import ErrorDetail, InvalidRiskLevel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ─────────────────────────────────────────────────────────────────


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Any) -> "RiskLevel":
        """Parse a level name (case-insensitive). Never defaults."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidRiskLevel(value)
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise InvalidRiskLevel(value) from None

    @property
    def label(self) -> str:
        """Title-case label used in messages ("High")."""
        return self.value.capitalize()


class NotificationPriority(StrEnum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# LOW never reaches staff
PRIORITY_BY_LEVEL: dict[RiskLevel, NotificationPriority] = {
    RiskLevel.MEDIUM: NotificationPriority.MEDIUM,
    RiskLevel.HIGH: NotificationPriority.HIGH,
    RiskLevel.CRITICAL: NotificationPriority.URGENT,
}


class DeliveryChannel(StrEnum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class GuardianDeliveryStatus(StrEnum):
    DELIVERED = "DELIVERED"      # every attempt succeeded
    PARTIAL = "PARTIAL"          # at least one success, at least one failure
    FAILED = "FAILED"            # no attempt succeeded
    NO_CONTACTS = "NO_CONTACTS"  # nobody reachable


class EscalationAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


# Error codes carried on failed DeliveryAttempts
NOT_CONFIGURED = "NOT_CONFIGURED"
INVALID_ADDRESS = "INVALID_ADDRESS"
TIMEOUT = "TIMEOUT"
HTTP_ERROR = "HTTP_ERROR"
SMTP_ERROR = "SMTP_ERROR"
INTERNAL = "INTERNAL"

# Failures a later replay cannot fix
PERMANENT_ERROR_CODES = frozenset({NOT_CONFIGURED, INVALID_ADDRESS})


# ── Input ─────────────────────────────────────────────────────────────────


class RiskEvent(BaseModel):
    """
    Upstream "student at risk" signal.

    Accepts both snake_case and the camelCase keys of the inbound trigger
    (``studentId``, ``riskLevel``, ``riskType``, ``reason``). A missing or
    unknown level raises InvalidRiskLevel rather than a validation error.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    student_id: str = Field(min_length=1)
    risk_level: RiskLevel
    risk_type: str = "GENERAL"
    reason: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _parse_level(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            key = "riskLevel" if "riskLevel" in data else "risk_level"
            data[key] = RiskLevel.parse(data.get(key))
        return data

    @field_validator("reason", mode="before")
    @classmethod
    def _blank_reason(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("risk_type", mode="before")
    @classmethod
    def _default_risk_type(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "GENERAL"
        return value


# ── Directory views ───────────────────────────────────────────────────────


class GuardianContact(BaseModel):
    """Guardian with optional channels; None means absent (never "")."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    relation: Optional[str] = None
    is_primary: bool = False

    @property
    def has_channel(self) -> bool:
        return self.email is not None or self.phone is not None


class NotifiableStudent(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    display_name: str
    class_id: Optional[str] = None
    class_name: str = "Unknown Class"
    school_id: str
    school_name: str = "Unknown School"
    guardians: list[GuardianContact] = Field(default_factory=list)


# ── Delivery outcomes ─────────────────────────────────────────────────────


class DeliveryAttempt(BaseModel):
    """One send over one channel to one address."""

    channel: DeliveryChannel
    guardian_name: str = ""
    recipient_address: str
    success: bool
    provider_ref: Optional[str] = None
    error_code: Optional[str] = None
    error_detail: Optional[str] = None
    attempted_at: datetime = Field(default_factory=_utcnow)

    @property
    def retryable(self) -> bool:
        return not self.success and self.error_code not in PERMANENT_ERROR_CODES


class BulkSendResult(BaseModel):
    success: bool
    sent: int
    failed: int
    attempts: list[DeliveryAttempt] = Field(default_factory=list)


class MessageStatus(BaseModel):
    """Provider-side status of a previously sent SMS."""

    status: str
    date_sent: Optional[str] = None
    date_updated: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class GuardianNotificationResult(BaseModel):
    student_id: str
    student_name: str
    risk_level: RiskLevel
    description: str = ""
    guardian_count: int = 0
    attempts: list[DeliveryAttempt] = Field(default_factory=list)
    status: GuardianDeliveryStatus

    @classmethod
    def from_attempts(
        cls,
        student: NotifiableStudent,
        risk_level: RiskLevel,
        description: str,
        guardian_count: int,
        attempts: list[DeliveryAttempt],
    ) -> "GuardianNotificationResult":
        if not attempts:
            status = GuardianDeliveryStatus.NO_CONTACTS
        elif all(a.success for a in attempts):
            status = GuardianDeliveryStatus.DELIVERED
        elif any(a.success for a in attempts):
            status = GuardianDeliveryStatus.PARTIAL
        else:
            status = GuardianDeliveryStatus.FAILED
        return cls(
            student_id=student.student_id,
            student_name=student.display_name,
            risk_level=risk_level,
            description=description,
            guardian_count=guardian_count,
            attempts=attempts,
            status=status,
        )

    @property
    def sent(self) -> int:
        return sum(1 for a in self.attempts if a.success)

    @property
    def failed(self) -> int:
        return sum(1 for a in self.attempts if not a.success)

    def attempts_for(self, guardian_name: str) -> list[DeliveryAttempt]:
        return [a for a in self.attempts if a.guardian_name == guardian_name]

    def channel_succeeded(self, channel: DeliveryChannel) -> bool:
        return any(a.success for a in self.attempts if a.channel == channel)


# ── Staff notifications ───────────────────────────────────────────────────


class NotificationMetadata(BaseModel):
    """Typed view of StaffNotification.metadata."""

    risk_level: RiskLevel
    risk_type: str = "GENERAL"
    class_name: Optional[str] = None
    student_name: Optional[str] = None
    updated_at: Optional[datetime] = None


class StaffNotificationView(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    school_id: str
    recipient_type: str
    entity_type: str
    entity_id: str
    type: str
    title: str
    message: str
    priority: NotificationPriority
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value


class StaffNotificationListResponse(BaseModel):
    notifications: list[StaffNotificationView]
    total: int
    unread: int
    limit: int
    offset: int


class AdminEscalationOutcome(BaseModel):
    action: EscalationAction
    notification: Optional[StaffNotificationView] = None
    reason: Optional[str] = None


# ── Batch ─────────────────────────────────────────────────────────────────


class PerEventResult(BaseModel):
    """Admin and guardian outcome for one event; ``error`` if it stopped early."""

    student_id: str
    risk_level: Optional[RiskLevel] = None
    admin: Optional[AdminEscalationOutcome] = None
    guardian: Optional[GuardianNotificationResult] = None
    guardian_skipped_reason: Optional[str] = None
    error: Optional[ErrorDetail] = None

    @property
    def ok(self) -> bool:
        return self.error is None
