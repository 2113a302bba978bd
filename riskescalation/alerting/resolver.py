"""
Guardian Resolver — who is this student, and how can their guardians be reached?

The directory (school admin database) stores contacts loosely: empty
strings, whitespace, guardians with no channel at all. The resolver is the
boundary where that becomes a clean NotifiableStudent: blank fields are
None, unreachable guardians are dropped, order is preserved.
"""

from typing import Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from riskescalation.alerting.schemas import GuardianContact, NotifiableStudent
from riskescalation.alerting.templates import student_display_name
from riskescalation.db.models import Student
from riskescalation.exceptions import StudentNotFound

logger = structlog.get_logger(__name__)


class StudentDirectory(Protocol):
    """Read-only source of students and their guardian contacts."""

    async def get_student_with_guardians(self, student_id: str) -> Optional[NotifiableStudent]:
        ...


class SqlStudentDirectory:
    """StudentDirectory over the school admin tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_student_with_guardians(self, student_id: str) -> Optional[NotifiableStudent]:
        stmt = (
            select(Student)
            .where(Student.id == student_id)
            .options(
                selectinload(Student.school),
                selectinload(Student.school_class),
                selectinload(Student.guardians),
            )
        )
        async with self._session_factory() as session:
            student = (await session.execute(stmt)).scalar_one_or_none()

        if student is None:
            return None

        return NotifiableStudent(
            student_id=student.id,
            display_name=student_display_name(
                student.first_name, student.middle_name, student.last_name
            ),
            class_id=student.class_id,
            class_name=student.school_class.name if student.school_class else "Unknown Class",
            school_id=student.school_id,
            school_name=student.school.name if student.school else "Unknown School",
            guardians=[
                GuardianContact(
                    name=g.name or "",
                    email=g.email,
                    phone=g.phone,
                    relation=g.relation,
                    is_primary=g.is_primary,
                )
                for g in student.guardians
            ],
        )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class GuardianResolver:
    """Loads a student and normalizes the guardian list."""

    def __init__(self, directory: StudentDirectory):
        self._directory = directory

    async def resolve(self, student_id: str) -> NotifiableStudent:
        """
        Raises:
            StudentNotFound: the directory has no such student.
        """
        student = await self._directory.get_student_with_guardians(student_id)
        if student is None:
            logger.warning("student_not_found", student_id=student_id)
            raise StudentNotFound(student_id)

        guardians = []
        for guardian in student.guardians:
            cleaned = GuardianContact(
                name=(guardian.name or "").strip(),
                email=_clean(guardian.email),
                phone=_clean(guardian.phone),
                relation=_clean(guardian.relation),
                is_primary=guardian.is_primary,
            )
            if cleaned.has_channel:
                guardians.append(cleaned)

        dropped = len(student.guardians) - len(guardians)
        if dropped:
            logger.debug("guardians_without_contact", student_id=student_id, dropped=dropped)

        return student.model_copy(
            update={
                "display_name": student.display_name.strip() or student_id,
                "class_name": _clean(student.class_name) or "Unknown Class",
                "school_name": _clean(student.school_name) or "Unknown School",
                "guardians": guardians,
            }
        )
