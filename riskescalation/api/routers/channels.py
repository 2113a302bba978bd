"""
Channel API Endpoints.

GET /api/v1/channels                    — which delivery channels are enabled
GET /api/v1/channels/sms/status/{sid}   — provider-side status of a sent SMS
"""

from fastapi import APIRouter, Depends

from riskescalation.alerting.schemas import MessageStatus
from riskescalation.api.deps import get_pipeline
from riskescalation.config import settings
from riskescalation.pipeline import EscalationPipeline

router = APIRouter(prefix=f"{settings.api_prefix}/channels", tags=["channels"])


@router.get("")
async def channel_status(pipeline: EscalationPipeline = Depends(get_pipeline)):
    return {
        "sms": {"enabled": pipeline.sms.is_configured},
        "email": {"enabled": pipeline.email.is_configured},
    }


@router.get("/sms/status/{sid}", response_model=MessageStatus)
async def sms_status(sid: str, pipeline: EscalationPipeline = Depends(get_pipeline)):
    """Soft lookup: 'unknown' when SMS is disabled, 'failed' when the provider errors."""
    return await pipeline.sms.check_status(sid)
