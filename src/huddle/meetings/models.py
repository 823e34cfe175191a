"""Persistence models for meetings, the activity log, and notifications.

Three SQLAlchemy models:
- MeetingModel: Meeting record with its task sequence embedded as JSON and a
  ``version`` column used for optimistic concurrency on save
- ActivityLogModel: Append-only audit rows for neutralization outcomes
- NotificationModel: Inbox notifications

Tasks have no table of their own; they only exist inside their meeting and
are round-tripped through Pydantic model_dump()/model_validate().
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.huddle.core.database import Base


class MeetingModel(Base):
    """Meeting with lifecycle status, audio reference, summary and tasks."""

    __tablename__ = "meetings"
    __table_args__ = (Index("ix_meetings_date", "date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default="scheduled",
        server_default=text("'scheduled'"),
    )
    participants_data: Mapped[list] = mapped_column(JSON, default=list)
    allow_ai: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    ai_joined: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    audio_ref: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    summary: Mapped[str] = mapped_column(Text, default="", server_default=text("''"))
    tasks_data: Mapped[list] = mapped_column(JSON, default=list)
    version: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ActivityLogModel(Base):
    """Audit row written once per terminal neutralization outcome."""

    __tablename__ = "activity_log"
    __table_args__ = (
        Index("ix_activity_log_meeting_task", "meeting_id", "task_id"),
        Index("ix_activity_log_actor", "actor_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(200), nullable=False)
    actor_name: Mapped[str] = mapped_column(String(300), default="")
    task_id: Mapped[str] = mapped_column(String(36), nullable=False)
    meeting_id: Mapped[str] = mapped_column(String(36), nullable=False)
    previous_state: Mapped[str] = mapped_column(String(50), nullable=False)
    new_state: Mapped[str] = mapped_column(String(50), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    agent_output: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class NotificationModel(Base):
    """Inbox notification."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_created_at", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str] = mapped_column(String(1000), default="")
    metadata_data: Mapped[dict] = mapped_column(JSON, default=dict)
    unread: Mapped[bool] = mapped_column(Boolean, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
