"""
Pipeline wiring.

Builds the gateways once and injects them into the escalators. Anything
not passed in is created from ``settings``.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskescalation.alerting.admin import AdminEscalator
from riskescalation.alerting.batch import BatchCoordinator
from riskescalation.alerting.dedup import DeduplicationStore
from riskescalation.alerting.guardian import GuardianEscalator
from riskescalation.alerting.mail import EmailGateway
from riskescalation.alerting.resolver import GuardianResolver, SqlStudentDirectory, StudentDirectory
from riskescalation.alerting.sms import SmsGateway
from riskescalation.config import Settings, settings as default_settings
from riskescalation.db.engine import get_session_factory

logger = structlog.get_logger(__name__)


@dataclass
class EscalationPipeline:
    session_factory: async_sessionmaker[AsyncSession]
    sms: SmsGateway
    email: EmailGateway
    resolver: GuardianResolver
    store: DeduplicationStore
    admin: AdminEscalator
    guardian: GuardianEscalator
    batch: BatchCoordinator

    async def close(self) -> None:
        await self.sms.close()


def build_pipeline(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    sms: Optional[SmsGateway] = None,
    email: Optional[EmailGateway] = None,
    directory: Optional[StudentDirectory] = None,
    store: Optional[DeduplicationStore] = None,
    config: Optional[Settings] = None,
) -> EscalationPipeline:
    cfg = config or default_settings
    session_factory = session_factory or get_session_factory()

    sms = sms or SmsGateway()
    email = email or EmailGateway()
    resolver = GuardianResolver(directory or SqlStudentDirectory(session_factory))
    store = store or DeduplicationStore(
        session_factory,
        window=timedelta(hours=cfg.dedup_window_hours),
    )

    admin = AdminEscalator(resolver, store)
    guardian = GuardianEscalator(
        resolver,
        email_gateway=email,
        sms_gateway=sms,
        concurrency=cfg.fanout_concurrency,
        channel_timeout=cfg.channel_timeout_seconds,
        brand=cfg.brand_name,
    )
    batch = BatchCoordinator(
        admin,
        guardian,
        guardian_levels=cfg.guardian_escalation_levels,
        concurrency=cfg.batch_concurrency,
    )

    logger.info(
        "escalation_pipeline_ready",
        sms_enabled=sms.is_configured,
        email_enabled=email.is_configured,
        guardian_levels=cfg.guardian_escalation_levels,
    )
    return EscalationPipeline(
        session_factory=session_factory,
        sms=sms,
        email=email,
        resolver=resolver,
        store=store,
        admin=admin,
        guardian=guardian,
        batch=batch,
    )
