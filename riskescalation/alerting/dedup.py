"""
Staff Notification Deduplication — one live notification per student.

A notification is "active" while it is unread and younger than the window
(24h by default, measured from its creation; updates do not extend it).
A new qualifying event for the same (school, student, type) updates the
active row in place instead of creating another one.

Concurrency:
1. In-process: writers for the same key are serialized by an asyncio.Lock.
2. Cross-process: the unique ``active_key`` column rejects a second active
   row; the losing transaction is retried and then takes the update path.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskescalation.alerting.schemas import (
    EscalationAction,
    NotificationMetadata,
    NotificationPriority,
)
from riskescalation.db.engine import session_scope
from riskescalation.db.models import StaffNotification
from riskescalation.db.repositories import StaffNotificationRepository

logger = structlog.get_logger(__name__)

STUDENT_AT_RISK = "STUDENT_AT_RISK"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DedupKey(NamedTuple):
    school_id: str
    entity_id: str
    type: str = STUDENT_AT_RISK

    @property
    def active_key(self) -> str:
        return f"{self.school_id}:{self.entity_id}:{self.type}"


class NotificationDraft(NamedTuple):
    """Content for the create path; the update path only uses priority/message/metadata."""

    title: str
    message: str
    priority: NotificationPriority
    metadata: NotificationMetadata
    action_url: Optional[str] = None
    action_text: Optional[str] = None


class DeduplicationStore:
    """Atomic find-or-create-or-update of the active staff notification."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
        repository: Optional[StaffNotificationRepository] = None,
        max_attempts: int = 3,
    ):
        self._session_factory = session_factory
        self.window = window
        self._clock = clock
        self._repo = repository or StaffNotificationRepository()
        self._max_attempts = max_attempts
        # active_key -> (lock, writers holding or waiting on it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _key_lock(self, key: DedupKey) -> AsyncIterator[None]:
        """Serialize writers per key; the lock is dropped when the last writer leaves."""
        name = key.active_key
        lock, users = self._locks.get(name, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[name] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[name]
            if users == 1:
                del self._locks[name]
            else:
                self._locks[name] = (lock, users - 1)

    @property
    def tracked_keys(self) -> int:
        return len(self._locks)

    async def upsert(
        self,
        key: DedupKey,
        draft: NotificationDraft,
    ) -> tuple[StaffNotification, EscalationAction]:
        """
        Update the active notification for ``key`` or create one.

        Returns the row and whether it was CREATED or UPDATED.
        """
        async with self._key_lock(key):
            for attempt in range(1, self._max_attempts + 1):
                try:
                    async with session_scope(self._session_factory) as db:
                        return await self._upsert_once(db, key, draft)
                except IntegrityError:
                    if attempt == self._max_attempts:
                        raise
                    logger.warning(
                        "dedup_upsert_conflict",
                        key=key.active_key,
                        attempt=attempt,
                    )

    async def _upsert_once(
        self,
        db: AsyncSession,
        key: DedupKey,
        draft: NotificationDraft,
    ) -> tuple[StaffNotification, EscalationAction]:
        now = self._clock()
        metadata = draft.metadata.model_dump(mode="json", exclude_none=True)

        existing = await self._repo.find_active(db, key.active_key, for_update=True)

        # ── 1. Active row inside the window: update in place ──────────
        if existing is not None and not existing.is_read and existing.created_at >= now - self.window:
            merged = dict(existing.metadata_ or {})
            merged.update(metadata)
            merged["updated_at"] = now.isoformat()

            existing.priority = draft.priority.value
            existing.message = draft.message
            existing.metadata_ = merged
            existing.updated_at = now
            await db.flush()

            logger.info(
                "staff_notification_updated",
                notification_id=str(existing.id),
                key=key.active_key,
                priority=existing.priority,
            )
            return existing, EscalationAction.UPDATED

        # ── 2. Stale slot holder: release it ──────────────────────────
        if existing is not None:
            await self._repo.retire(db, existing)
            logger.debug("staff_notification_retired", notification_id=str(existing.id))

        # ── 3. Create ─────────────────────────────────────────────────
        created = await self._repo.create(
            db,
            school_id=key.school_id,
            recipient_type="ADMIN",
            entity_type="STUDENT",
            entity_id=key.entity_id,
            type=key.type,
            title=draft.title,
            message=draft.message,
            priority=draft.priority.value,
            action_url=draft.action_url,
            action_text=draft.action_text,
            metadata_=metadata,
            is_read=False,
            active_key=key.active_key,
            created_at=now,
            updated_at=now,
        )
        logger.info(
            "staff_notification_created",
            notification_id=str(created.id),
            key=key.active_key,
            priority=created.priority,
        )
        return created, EscalationAction.CREATED

    async def find_active(self, key: DedupKey) -> Optional[StaffNotification]:
        """The active notification for ``key`` inside the window, if any."""
        async with self._session_factory() as db:
            row = await self._repo.find_active(db, key.active_key)
        if row is None or row.is_read or row.created_at < self._clock() - self.window:
            return None
        return row
