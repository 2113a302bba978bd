"""
Guardian Escalator — email + SMS fan-out to every reachable guardian.

One delivery attempt per (guardian, channel). Attempts run concurrently
under a semaphore, each with its own timeout; a failed or slow channel
never affects the others. Partial delivery is a normal outcome.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from riskescalation.alerting import templates
from riskescalation.alerting.mail import EmailGateway
from riskescalation.alerting.resolver import GuardianResolver
from riskescalation.alerting.schemas import (
    INTERNAL,
    TIMEOUT,
    DeliveryAttempt,
    DeliveryChannel,
    GuardianNotificationResult,
    NotifiableStudent,
    RiskLevel,
)
from riskescalation.alerting.sms import SmsGateway
from riskescalation.config import settings

logger = structlog.get_logger(__name__)


@dataclass
class _DeliveryJob:
    channel: DeliveryChannel
    guardian_name: str
    address: str
    send: Callable[[], Awaitable[DeliveryAttempt]]


class GuardianEscalator:
    def __init__(
        self,
        resolver: GuardianResolver,
        email_gateway: EmailGateway,
        sms_gateway: SmsGateway,
        concurrency: int = 4,
        channel_timeout: float = 15.0,
        brand: Optional[str] = None,
    ):
        self._resolver = resolver
        self._email = email_gateway
        self._sms = sms_gateway
        self._concurrency = max(1, concurrency)
        self._channel_timeout = channel_timeout
        self._brand = brand or settings.brand_name

    async def escalate(
        self,
        student_id: str,
        risk_level: RiskLevel | str,
        reason: Optional[str] = None,
    ) -> GuardianNotificationResult:
        """
        Alert every guardian of ``student_id`` over every channel they have.

        Raises:
            InvalidRiskLevel: ``risk_level`` is not a known level.
            StudentNotFound: the student id does not resolve.
        """
        level = RiskLevel.parse(risk_level)
        student = await self._resolver.resolve(student_id)
        description = (reason or "").strip() or templates.default_guardian_description(level)

        jobs = []
        for guardian in student.guardians:
            if guardian.email:
                jobs.append(self._job(DeliveryChannel.EMAIL, guardian.name, guardian.email, student, level, description))
            if guardian.phone:
                jobs.append(self._job(DeliveryChannel.SMS, guardian.name, guardian.phone, student, level, description))

        attempts = await self._fan_out(jobs)
        return self._finish(student, level, description, attempts)

    async def notify_attendance(
        self,
        student_id: str,
        absent_days: int,
        period_days: int,
        attendance_rate: float,
    ) -> GuardianNotificationResult:
        description = templates.attendance_description(absent_days, period_days, attendance_rate)
        return await self.escalate(student_id, RiskLevel.MEDIUM, description)

    async def notify_performance(
        self,
        student_id: str,
        decline_reason: str,
        current_average: float,
    ) -> GuardianNotificationResult:
        description = templates.performance_description(decline_reason, current_average)
        return await self.escalate(student_id, RiskLevel.MEDIUM, description)

    async def redeliver(self, previous: GuardianNotificationResult) -> GuardianNotificationResult:
        """
        Re-send the retryable failures of ``previous``.

        Successful and permanently failed attempts are kept as they were;
        retried ones are replaced in place by their new outcome.
        """
        retry_idx = [i for i, a in enumerate(previous.attempts) if a.retryable]
        if not retry_idx:
            return previous

        student = await self._resolver.resolve(previous.student_id)
        jobs = [
            self._job(
                previous.attempts[i].channel,
                previous.attempts[i].guardian_name,
                previous.attempts[i].recipient_address,
                student,
                previous.risk_level,
                previous.description,
            )
            for i in retry_idx
        ]
        fresh = await self._fan_out(jobs)

        attempts = list(previous.attempts)
        for i, attempt in zip(retry_idx, fresh):
            attempts[i] = attempt
        logger.info("guardian_redelivery", student_id=previous.student_id, retried=len(jobs))
        return self._finish(
            student, previous.risk_level, previous.description, attempts,
            guardian_count=previous.guardian_count,
        )

    # ── internals ─────────────────────────────────────────────────────

    def _job(
        self,
        channel: DeliveryChannel,
        guardian_name: str,
        address: str,
        student: NotifiableStudent,
        level: RiskLevel,
        description: str,
    ) -> _DeliveryJob:
        if channel == DeliveryChannel.EMAIL:
            subject = templates.guardian_email_subject(student.display_name, student.school_name, level)
            html = templates.guardian_email_html(
                guardian_name, student.display_name, student.school_name, level, description, self._brand
            )
            from_name = templates.sender_display_name(student.school_name, self._brand)

            def send():
                return self._email.send(address, subject, html, from_name=from_name, guardian_name=guardian_name)
        else:
            text = templates.guardian_sms_text(student.display_name, student.school_name, level, self._brand)

            def send():
                return self._sms.send(address, text, guardian_name=guardian_name)

        return _DeliveryJob(channel=channel, guardian_name=guardian_name, address=address, send=send)

    async def _fan_out(self, jobs: list[_DeliveryJob]) -> list[DeliveryAttempt]:
        """Run every job; results come back in job order."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(job: _DeliveryJob) -> DeliveryAttempt:
            async with semaphore:
                try:
                    return await asyncio.wait_for(job.send(), timeout=self._channel_timeout)
                except asyncio.TimeoutError:
                    logger.warning("guardian_delivery_timeout", channel=job.channel.value, timeout=self._channel_timeout)
                    return self._failed(job, TIMEOUT, f"No response within {self._channel_timeout:g}s")
                except Exception as exc:
                    logger.exception("guardian_delivery_crashed", channel=job.channel.value)
                    return self._failed(job, INTERNAL, str(exc) or type(exc).__name__)

        return list(await asyncio.gather(*(run(job) for job in jobs)))

    @staticmethod
    def _failed(job: _DeliveryJob, code: str, detail: str) -> DeliveryAttempt:
        return DeliveryAttempt(
            channel=job.channel,
            guardian_name=job.guardian_name,
            recipient_address=job.address,
            success=False,
            error_code=code,
            error_detail=detail,
        )

    def _finish(
        self,
        student: NotifiableStudent,
        level: RiskLevel,
        description: str,
        attempts: list[DeliveryAttempt],
        guardian_count: Optional[int] = None,
    ) -> GuardianNotificationResult:
        result = GuardianNotificationResult.from_attempts(
            student,
            level,
            description,
            len(student.guardians) if guardian_count is None else guardian_count,
            attempts,
        )
        logger.info(
            "guardian_escalation_completed",
            student_id=student.student_id,
            risk_level=level.value,
            status=result.status.value,
            sent=result.sent,
            failed=result.failed,
        )
        return result
