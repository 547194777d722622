"""SQLAlchemy models for eventhub."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()

KIND_PRIVATE = "private"
KIND_PUBLIC = "public"
EVENT_KINDS = {KIND_PRIVATE, KIND_PUBLIC}

PHASE_SCHEDULED = "scheduled"
PHASE_ONGOING = "ongoing"
PHASE_COMPLETED = "completed"
PHASE_CANCELLED = "cancelled"
EVENT_PHASES = {PHASE_SCHEDULED, PHASE_ONGOING, PHASE_COMPLETED, PHASE_CANCELLED}

ROLE_OWNER = "owner"
ROLE_LEAD = "lead"
ROLE_MEMBER = "member"
MEMBER_ROLES = (ROLE_OWNER, ROLE_LEAD, ROLE_MEMBER)

MEMBER_ACTIVE = "active"
MEMBER_INACTIVE = "inactive"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (UniqueConstraint("join_code", name="uq_events_join_code"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    kind = Column(String(16), nullable=False, default=KIND_PRIVATE, index=True)
    description = Column(Text, nullable=True)
    organizer_name = Column(String(255), nullable=False)
    start_at = Column(DateTime, nullable=True, index=True)
    end_at = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    images = Column(JSON, nullable=False, default=list)
    phase = Column(String(16), nullable=False, default=PHASE_SCHEDULED, index=True)
    join_code = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    members = relationship("EventMember", back_populates="event")


class EventMember(Base):
    __tablename__ = "event_members"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_members_event_user"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(16), nullable=False, default=ROLE_MEMBER)
    status = Column(String(16), nullable=False, default=MEMBER_ACTIVE)
    created_at = Column(DateTime, default=_now, nullable=False)

    event = relationship("Event", back_populates="members")
