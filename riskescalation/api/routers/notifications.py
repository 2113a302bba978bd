"""
Staff Notification API Endpoints.

GET /api/v1/notifications                         — admin feed for a school
GET /api/v1/notifications/unread-count            — unread badge count
PUT /api/v1/notifications/read-all                — mark every unread as read
PUT /api/v1/notifications/{notification_id}/read  — mark one as read
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from riskescalation.alerting.schemas import StaffNotificationListResponse, StaffNotificationView
from riskescalation.api.deps import get_db
from riskescalation.config import settings
from riskescalation.db.repositories import StaffNotificationRepository
from riskescalation.exceptions import NotificationNotFound

router = APIRouter(prefix=f"{settings.api_prefix}/notifications", tags=["notifications"])

_repo = StaffNotificationRepository()


class UnreadCountResponse(BaseModel):
    school_id: str
    unread: int


class MarkAllReadResponse(BaseModel):
    school_id: str
    updated: int


@router.get("", response_model=StaffNotificationListResponse)
async def list_notifications(
    school_id: str = Query(..., min_length=1),
    is_read: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Admin notifications for a school, newest first."""
    rows = await _repo.list_for_school(db, school_id, is_read=is_read, limit=limit, offset=offset)
    total = await _repo.count_for_school(db, school_id, is_read=is_read)
    unread = await _repo.count_for_school(db, school_id, is_read=False)
    return StaffNotificationListResponse(
        notifications=[StaffNotificationView.model_validate(r) for r in rows],
        total=total,
        unread=unread,
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    school_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    unread = await _repo.count_for_school(db, school_id, is_read=False)
    return UnreadCountResponse(school_id=school_id, unread=unread)


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    school_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    updated = await _repo.mark_all_read(db, school_id, datetime.now(timezone.utc))
    return MarkAllReadResponse(school_id=school_id, updated=updated)


@router.put("/{notification_id}/read", response_model=StaffNotificationView)
async def mark_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Mark as read. The next qualifying event for the student opens a new notification."""
    row = await _repo.mark_read(db, notification_id, datetime.now(timezone.utc))
    if row is None:
        raise NotificationNotFound(str(notification_id))
    return StaffNotificationView.model_validate(row)
