"""
Batch Coordinator — run the admin and guardian paths for many events.

Every event gets its own PerEventResult; one event's failure (unknown
student, invalid level, database error) never affects another. Results
come back in input order.
"""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError

from riskescalation.alerting.admin import AdminEscalator
from riskescalation.alerting.guardian import GuardianEscalator
from riskescalation.alerting.schemas import (
    AdminEscalationOutcome,
    GuardianNotificationResult,
    PerEventResult,
    RiskEvent,
    RiskLevel,
)
from riskescalation.exceptions import ErrorCode, ErrorDetail, EscalationError, InvalidRiskLevel

logger = structlog.get_logger(__name__)


def _error_detail(exc: BaseException) -> ErrorDetail:
    if isinstance(exc, EscalationError):
        return ErrorDetail(code=exc.code.value, message=exc.message, details=exc.details)
    if isinstance(exc, ValidationError):
        return ErrorDetail(code=ErrorCode.VALIDATION_ERROR.value, message=str(exc))
    return ErrorDetail(code=ErrorCode.INTERNAL_ERROR.value, message=str(exc) or type(exc).__name__)


def _known_levels(levels: Iterable[RiskLevel | str]) -> frozenset[RiskLevel]:
    """Parse configured levels; unknown entries are dropped with a warning."""
    known = set()
    for level in levels:
        try:
            known.add(RiskLevel.parse(level))
        except InvalidRiskLevel:
            logger.warning("guardian_level_ignored", level=level)
    return frozenset(known)


class BatchCoordinator:
    def __init__(
        self,
        admin: AdminEscalator,
        guardian: GuardianEscalator,
        guardian_levels: Iterable[RiskLevel | str] = (RiskLevel.HIGH, RiskLevel.CRITICAL),
        concurrency: int = 4,
    ):
        self._admin = admin
        self._guardian = guardian
        self._guardian_levels = _known_levels(guardian_levels)
        self._concurrency = max(1, concurrency)

    async def escalate_event(self, event: RiskEvent) -> PerEventResult:
        """
        Admin and guardian escalation for one event, run concurrently.

        Never raises: errors from either path land in ``error``; the other
        path's outcome is still reported.
        """
        guardian_skipped: Optional[str] = None
        if event.risk_level in self._guardian_levels:
            guardian_call = self._guardian.escalate(event.student_id, event.risk_level, event.reason)
        else:
            guardian_call = None
            guardian_skipped = f"{event.risk_level.value} risk does not notify guardians"

        calls = [self._admin.escalate(event)]
        if guardian_call is not None:
            calls.append(guardian_call)
        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        admin_outcome = outcomes[0]
        guardian_outcome = outcomes[1] if guardian_call is not None else None

        error: Optional[ErrorDetail] = None
        for outcome in (admin_outcome, guardian_outcome):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                if not isinstance(outcome, EscalationError):
                    logger.error(
                        "escalation_event_crashed",
                        student_id=event.student_id,
                        error=str(outcome),
                        exc_info=outcome,
                    )
                error = error or _error_detail(outcome)

        return PerEventResult(
            student_id=event.student_id,
            risk_level=event.risk_level,
            admin=admin_outcome if isinstance(admin_outcome, AdminEscalationOutcome) else None,
            guardian=guardian_outcome if isinstance(guardian_outcome, GuardianNotificationResult) else None,
            guardian_skipped_reason=guardian_skipped,
            error=error,
        )

    async def escalate_batch(
        self,
        events: Sequence[RiskEvent | Mapping[str, Any]],
    ) -> list[PerEventResult]:
        """
        Escalate many events with bounded concurrency.

        Raw mappings are parsed per event, so one malformed trigger only
        fails its own slot.
        """
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(raw: RiskEvent | Mapping[str, Any]) -> PerEventResult:
            try:
                event = raw if isinstance(raw, RiskEvent) else RiskEvent.model_validate(raw)
            except (EscalationError, ValidationError) as exc:
                return PerEventResult(student_id=_raw_student_id(raw), error=_error_detail(exc))
            async with semaphore:
                return await self.escalate_event(event)

        results = list(await asyncio.gather(*(run(raw) for raw in events)))
        logger.info(
            "escalation_batch_completed",
            events=len(results),
            failed=sum(1 for r in results if not r.ok),
        )
        return results

    async def escalate_students(
        self,
        student_ids: Sequence[str],
        risk_level: RiskLevel | str,
        reason: Optional[str] = None,
        risk_type: str = "GENERAL",
    ) -> list[PerEventResult]:
        """Same level and reason for several students."""
        level = RiskLevel.parse(risk_level)
        events = [
            RiskEvent(student_id=sid, risk_level=level, reason=reason, risk_type=risk_type)
            for sid in student_ids
        ]
        return await self.escalate_batch(events)

    async def replay_failed(self, result: PerEventResult) -> PerEventResult:
        """
        Re-send the failed, retryable guardian deliveries of ``result``.

        The staff notification is not touched; it is already deduplicated.
        """
        if result.guardian is None:
            return result
        try:
            guardian = await self._guardian.redeliver(result.guardian)
        except EscalationError as exc:
            return result.model_copy(update={"error": _error_detail(exc)})
        return result.model_copy(update={"guardian": guardian})


def _raw_student_id(raw: Any) -> str:
    if isinstance(raw, Mapping):
        value = raw.get("studentId", raw.get("student_id"))
        return str(value) if value is not None else ""
    return ""
