"""
Staff notification repository.

Async queries over ``staff_notifications``. Every method takes the session
explicitly; transaction boundaries belong to the caller.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from riskescalation.db.models import StaffNotification

ADMIN = "ADMIN"


class StaffNotificationRepository:
    model = StaffNotification

    async def get(self, db: AsyncSession, notification_id: uuid.UUID) -> Optional[StaffNotification]:
        result = await db.execute(select(self.model).where(self.model.id == notification_id))
        return result.scalar_one_or_none()

    async def find_active(
        self,
        db: AsyncSession,
        active_key: str,
        for_update: bool = False,
    ) -> Optional[StaffNotification]:
        """The live row for a dedup key, if any. Locks it when asked."""
        stmt = select(self.model).where(self.model.active_key == active_key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, db: AsyncSession, **values: Any) -> StaffNotification:
        obj = self.model(**values)
        db.add(obj)
        await db.flush()
        return obj

    async def retire(self, db: AsyncSession, obj: StaffNotification) -> None:
        """Release the dedup slot without touching read state."""
        obj.active_key = None
        await db.flush()

    def _feed_filter(self, stmt, school_id: str, is_read: Optional[bool]):
        stmt = stmt.where(
            self.model.school_id == school_id,
            self.model.recipient_type == ADMIN,
        )
        if is_read is not None:
            stmt = stmt.where(self.model.is_read.is_(is_read))
        return stmt

    async def list_for_school(
        self,
        db: AsyncSession,
        school_id: str,
        is_read: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[StaffNotification]:
        """Admin feed for a school, newest first."""
        stmt = self._feed_filter(select(self.model), school_id, is_read)
        stmt = stmt.order_by(self.model.created_at.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def count_for_school(
        self,
        db: AsyncSession,
        school_id: str,
        is_read: Optional[bool] = None,
    ) -> int:
        stmt = self._feed_filter(select(func.count()).select_from(self.model), school_id, is_read)
        result = await db.execute(stmt)
        return result.scalar_one()

    async def mark_read(
        self,
        db: AsyncSession,
        notification_id: uuid.UUID,
        now: datetime,
    ) -> Optional[StaffNotification]:
        obj = await self.get(db, notification_id)
        if obj is None:
            return None
        if not obj.is_read:
            obj.is_read = True
            obj.read_at = now
            obj.active_key = None
            obj.updated_at = now
            await db.flush()
        return obj

    async def mark_all_read(self, db: AsyncSession, school_id: str, now: datetime) -> int:
        stmt = (
            update(self.model)
            .where(
                self.model.school_id == school_id,
                self.model.recipient_type == ADMIN,
                self.model.is_read.is_(False),
            )
            .values(is_read=True, read_at=now, active_key=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount or 0
