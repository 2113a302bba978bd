"""
SQLAlchemy Models.

Two groups of tables:
- Directory tables (schools, classes, students, guardian contacts), owned
  by the surrounding school administration app. The pipeline only reads
  them.
- ``staff_notifications``, written by the admin escalation path.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from riskescalation.db.compat import GUID, JSONType, UTCDateTime
from riskescalation.db.engine import Base


def _genuuid():
    return uuid.uuid4()


def _utcnow():
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────────────────────
# 1. School directory (read-only for this service)
# ──────────────────────────────────────────────────────────────────────────────


class School(Base):
    __tablename__ = "schools"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class SchoolClass(Base):
    __tablename__ = "school_classes"
    __table_args__ = (Index("ix_school_classes_school_id", "school_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_id: Mapped[str] = mapped_column(String(64), ForeignKey("schools.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        Index("ix_students_school_id", "school_id"),
        Index("ix_students_class_id", "class_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    school_id: Mapped[str] = mapped_column(String(64), ForeignKey("schools.id"), nullable=False)
    class_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("school_classes.id"))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    school: Mapped[School] = relationship(lazy="raise")
    school_class: Mapped[Optional[SchoolClass]] = relationship(lazy="raise")
    guardians: Mapped[list["GuardianContactRecord"]] = relationship(
        lazy="raise",
        order_by="GuardianContactRecord.position",
    )


class GuardianContactRecord(Base):
    """One guardian of a student; ``position`` preserves the entered order."""

    __tablename__ = "guardian_contacts"
    __table_args__ = (Index("ix_guardian_contacts_student_id", "student_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    student_id: Mapped[str] = mapped_column(String(64), ForeignKey("students.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    relation: Mapped[Optional[str]] = mapped_column(String(50))
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


# ──────────────────────────────────────────────────────────────────────────────
# 2. Staff notifications
# ──────────────────────────────────────────────────────────────────────────────


class StaffNotification(Base):
    """
    In-app notification for school staff.

    ``active_key`` holds ``"{school_id}:{entity_id}:{type}"`` while the row
    is the live notification for that student, and NULL once it is read or
    superseded. The unique constraint on it guarantees at most one active
    row per (school, student, type) even with concurrent writers.
    """

    __tablename__ = "staff_notifications"
    __table_args__ = (
        Index(
            "ix_staff_notifications_feed",
            "school_id",
            "recipient_type",
            "is_read",
            "created_at",
        ),
        Index("ix_staff_notifications_entity", "entity_type", "entity_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    school_id: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient_type: Mapped[str] = mapped_column(String(20), nullable=False, default="ADMIN")
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False, default="STUDENT")
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="STUDENT_AT_RISK")

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="MEDIUM")
    action_url: Mapped[Optional[str]] = mapped_column(String(500))
    action_text: Mapped[Optional[str]] = mapped_column(String(100))
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType(), nullable=False, default=dict)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    active_key: Mapped[Optional[str]] = mapped_column(String(200), unique=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )
