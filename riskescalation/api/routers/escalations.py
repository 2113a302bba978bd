"""
Escalation API Endpoints.

POST /api/v1/escalations                         — escalate one risk event
POST /api/v1/escalations/batch                   — escalate many risk events
POST /api/v1/escalations/students                — same level for several students
POST /api/v1/escalations/guardians               — guardian alert only
POST /api/v1/escalations/guardians/attendance    — attendance alert to guardians
POST /api/v1/escalations/guardians/performance   — performance alert to guardians
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from riskescalation.alerting.schemas import (
    GuardianNotificationResult,
    PerEventResult,
    RiskEvent,
)
from riskescalation.api.deps import get_pipeline
from riskescalation.config import settings
from riskescalation.pipeline import EscalationPipeline

router = APIRouter(prefix=f"{settings.api_prefix}/escalations", tags=["escalations"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# Levels stay plain strings here so an unknown or missing level surfaces
# as InvalidRiskLevel (400) instead of a generic 422.
class RiskEventRequest(_CamelModel):
    student_id: str = Field(min_length=1)
    risk_level: Optional[str] = None
    risk_type: Optional[str] = None
    reason: Optional[str] = None

    def to_event(self) -> RiskEvent:
        return RiskEvent(
            student_id=self.student_id,
            risk_level=self.risk_level,
            risk_type=self.risk_type,
            reason=self.reason,
        )


class BatchEscalationRequest(_CamelModel):
    events: list[dict[str, Any]] = Field(min_length=1, max_length=500)


class StudentsEscalationRequest(_CamelModel):
    student_ids: list[str] = Field(min_length=1, max_length=500)
    risk_level: Optional[str] = None
    risk_type: Optional[str] = None
    reason: Optional[str] = None


class BatchEscalationResponse(BaseModel):
    results: list[PerEventResult]
    total: int
    failed: int


class GuardianAlertRequest(_CamelModel):
    student_id: str = Field(min_length=1)
    risk_level: Optional[str] = None
    reason: Optional[str] = None


class AttendanceAlertRequest(_CamelModel):
    student_id: str = Field(min_length=1)
    absent_days: int = Field(ge=0)
    period_days: int = Field(gt=0)
    attendance_rate: float = Field(ge=0, le=100)


class PerformanceAlertRequest(_CamelModel):
    student_id: str = Field(min_length=1)
    decline_reason: str = Field(min_length=1)
    current_average: float = Field(ge=0, le=100)


def _batch_response(results: list[PerEventResult]) -> BatchEscalationResponse:
    return BatchEscalationResponse(
        results=results,
        total=len(results),
        failed=sum(1 for r in results if not r.ok),
    )


@router.post("", response_model=PerEventResult)
async def escalate_event(
    body: RiskEventRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    """Admin notification plus (for configured levels) guardian alerts."""
    return await pipeline.batch.escalate_event(body.to_event())


@router.post("/batch", response_model=BatchEscalationResponse)
async def escalate_batch(
    body: BatchEscalationRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    """Each event is validated and escalated independently."""
    return _batch_response(await pipeline.batch.escalate_batch(body.events))


@router.post("/students", response_model=BatchEscalationResponse)
async def escalate_students(
    body: StudentsEscalationRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    results = await pipeline.batch.escalate_students(
        body.student_ids,
        body.risk_level,
        reason=body.reason,
        risk_type=body.risk_type or "GENERAL",
    )
    return _batch_response(results)


@router.post("/guardians", response_model=GuardianNotificationResult)
async def alert_guardians(
    body: GuardianAlertRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    return await pipeline.guardian.escalate(body.student_id, body.risk_level, body.reason)


@router.post("/guardians/attendance", response_model=GuardianNotificationResult)
async def alert_guardians_attendance(
    body: AttendanceAlertRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    return await pipeline.guardian.notify_attendance(
        body.student_id, body.absent_days, body.period_days, body.attendance_rate
    )


@router.post("/guardians/performance", response_model=GuardianNotificationResult)
async def alert_guardians_performance(
    body: PerformanceAlertRequest,
    pipeline: EscalationPipeline = Depends(get_pipeline),
):
    return await pipeline.guardian.notify_performance(
        body.student_id, body.decline_reason, body.current_average
    )
