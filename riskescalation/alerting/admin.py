"""
Admin Escalator — in-app notification for school staff.

Only MEDIUM and above reach staff. Repeated events for the same student
inside the dedup window refresh one notification instead of stacking new
ones.
"""

import structlog

from riskescalation.alerting import templates
from riskescalation.alerting.dedup import DedupKey, DeduplicationStore, NotificationDraft
from riskescalation.alerting.resolver import GuardianResolver
from riskescalation.alerting.schemas import (
    PRIORITY_BY_LEVEL,
    AdminEscalationOutcome,
    EscalationAction,
    NotificationMetadata,
    RiskEvent,
    StaffNotificationView,
)

logger = structlog.get_logger(__name__)


class AdminEscalator:
    def __init__(self, resolver: GuardianResolver, store: DeduplicationStore):
        self._resolver = resolver
        self._store = store

    async def escalate(self, event: RiskEvent) -> AdminEscalationOutcome:
        """
        Create or refresh the staff notification for ``event``.

        Raises:
            StudentNotFound: the student id does not resolve.
        """
        level = event.risk_level
        priority = PRIORITY_BY_LEVEL.get(level)
        if priority is None:
            logger.debug("admin_escalation_skipped", student_id=event.student_id, risk_level=level)
            return AdminEscalationOutcome(
                action=EscalationAction.SKIPPED,
                reason=f"{level.value} risk does not notify staff",
            )

        student = await self._resolver.resolve(event.student_id)
        action_url = templates.admin_action_url(student.class_id)

        draft = NotificationDraft(
            title=templates.admin_title(student.display_name),
            message=templates.admin_message(
                student.display_name, student.class_name, level, event.reason
            ),
            priority=priority,
            metadata=NotificationMetadata(
                risk_level=level,
                risk_type=event.risk_type,
                class_name=student.class_name,
                student_name=student.display_name,
            ),
            action_url=action_url,
            action_text="View Class" if action_url else None,
        )

        row, action = await self._store.upsert(
            DedupKey(school_id=student.school_id, entity_id=student.student_id),
            draft,
        )

        logger.info(
            "admin_escalation_completed",
            student_id=student.student_id,
            school_id=student.school_id,
            action=action.value,
            priority=priority.value,
        )
        return AdminEscalationOutcome(
            action=action,
            notification=StaffNotificationView.model_validate(row),
        )
