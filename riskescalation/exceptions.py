"""
Escalation Exceptions Module.

Centralized exception definitions with:
- Structured error responses
- HTTP status code mapping
- Error codes for client handling

Channel and per-guardian failures are NOT raised past the escalators;
they are folded into DeliveryAttempt records. Only the errors below
propagate (and at most to the per-event result of a batch).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Application error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"

    # Input errors (2xxx)
    INVALID_RISK_LEVEL = "E2000"

    # Resource errors (4xxx)
    STUDENT_NOT_FOUND = "E4000"
    NOTIFICATION_NOT_FOUND = "E4001"

    # External service errors (5xxx)
    CHANNEL_NOT_CONFIGURED = "E5000"
    TRANSPORT_FAILURE = "E5001"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
    request_id: Optional[str] = None
    error_id: Optional[str] = None
    timestamp: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class EscalationError(Exception):
    """Base exception for the escalation pipeline."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(
        self,
        request_id: Optional[str] = None,
        error_id: Optional[str] = None,
    ) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                details=self.details,
            ),
            request_id=request_id,
            error_id=error_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class InvalidRiskLevel(EscalationError):
    """Risk level missing or outside LOW/MEDIUM/HIGH/CRITICAL."""

    def __init__(self, value: Any):
        super().__init__(
            message=f"Invalid risk level: {value!r}",
            code=ErrorCode.INVALID_RISK_LEVEL,
            status_code=400,
            details={"risk_level": None if value is None else str(value)},
        )
        self.value = value


class StudentNotFound(EscalationError):
    """Student id does not resolve to a notifiable student."""

    def __init__(self, student_id: str):
        super().__init__(
            message=f"Student not found: {student_id}",
            code=ErrorCode.STUDENT_NOT_FOUND,
            status_code=404,
            details={"student_id": str(student_id)},
        )
        self.student_id = student_id


class NotificationNotFound(EscalationError):
    """Staff notification id does not exist."""

    def __init__(self, notification_id: str):
        super().__init__(
            message=f"Notification not found: {notification_id}",
            code=ErrorCode.NOTIFICATION_NOT_FOUND,
            status_code=404,
            details={"notification_id": str(notification_id)},
        )


class ChannelNotConfigured(EscalationError):
    """A delivery channel is disabled because its credentials are incomplete."""

    def __init__(self, channel: str, reason: str = "credentials not configured"):
        super().__init__(
            message=f"{channel} channel is not configured: {reason}",
            code=ErrorCode.CHANNEL_NOT_CONFIGURED,
            status_code=503,
            details={"channel": channel, "reason": reason},
        )
        self.channel = channel


class TransportFailure(EscalationError):
    """Provider rejected the message or the network call failed."""

    def __init__(
        self,
        channel: str,
        message: str,
        provider_code: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.TRANSPORT_FAILURE,
            status_code=502,
            details={"channel": channel, "provider_code": provider_code},
        )
        self.channel = channel
        self.provider_code = provider_code


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================


async def escalation_exception_handler(
    request: Request,
    exc: EscalationError,
) -> JSONResponse:
    """Handle EscalationError exceptions."""
    request_id = getattr(request.state, "request_id", None)

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "escalation_error",
        error_code=exc.code.value,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


def register_exception_handlers(app) -> None:
    """Register exception handlers with FastAPI app."""
    app.add_exception_handler(EscalationError, escalation_exception_handler)
