"""Pydantic v2 schemas for the meeting domain.

Defines the data contracts for meetings, their embedded tasks, the actor
performing an operation, audit entries, notifications, and the summary
status payload returned to pollers. Every other meetings/tasks module
imports from here.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

UNASSIGNED = "Unassigned"
ERROR_PREFIX = "Error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ── Enums ────────────────────────────────────────────────────────────────────


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting from scheduling through summarization."""

    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    FAILED = "failed"
    SUMMARIZED = "summarized"


class TaskStatus(str, Enum):
    """Per-task neutralization state."""

    PENDING = "pending"
    NEUTRALIZING = "neutralizing"
    DONE = "done"
    FAILED = "failed"


class SummaryState(str, Enum):
    """Summary availability reported to pollers."""

    READY = "ready"
    PROCESSING = "processing"
    FAILED = "failed"
    NOT_STARTED = "not_started"


class ActorKind(str, Enum):
    USER = "user"
    ANONYMOUS = "anonymous"
    SYSTEM = "system"


class NotificationKind(str, Enum):
    SUMMARY = "summary"
    TASK = "task"
    REMINDER = "reminder"
    SYSTEM = "system"


class ActivityOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# ── Actor ────────────────────────────────────────────────────────────────────


class Actor(BaseModel):
    """Resolved identity performing an operation.

    Anonymous and system identities are explicit variants; nothing is
    looked up or created on their behalf.
    """

    id: str
    display_name: str
    kind: ActorKind = ActorKind.USER

    @classmethod
    def anonymous(cls) -> Actor:
        return cls(id="anonymous", display_name="Anonymous", kind=ActorKind.ANONYMOUS)


# ── Task ─────────────────────────────────────────────────────────────────────


class Task(BaseModel):
    """An action item extracted from a meeting summary.

    Owned by its parent Meeting; ``id`` is only unique within that meeting.
    The agent_* fields are written exclusively by the neutralization engine.
    """

    id: str = Field(default_factory=_new_id)
    description: str
    assignee: str = UNASSIGNED
    due_date: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    agent_output: str = ""
    confidence_score: int = Field(default=0, ge=0, le=100)
    next_steps: list[str] = Field(default_factory=list)
    failure_reason: str = ""


# ── Meeting ──────────────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """Full meeting entity with its owned task sequence."""

    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    date: datetime = Field(default_factory=_utcnow)
    status: MeetingStatus = MeetingStatus.SCHEDULED
    participants: list[str] = Field(default_factory=list)
    allow_ai: bool = False
    ai_joined: bool = False
    audio_ref: str | None = None
    summary: str = ""
    tasks: list[Task] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    ended_at: datetime | None = None

    def find_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    @property
    def has_summary(self) -> bool:
        """True when summary holds real content rather than an error sentinel."""
        text = self.summary.strip()
        return bool(text) and not text.startswith(ERROR_PREFIX)


class TaskView(Task):
    """Task flattened with its parent meeting, for cross-meeting listings."""

    meeting_id: str
    meeting_title: str


# ── Audit & Notifications ────────────────────────────────────────────────────


class ActivityLogEntry(BaseModel):
    """Append-only audit record for a terminal neutralization outcome."""

    id: str = Field(default_factory=_new_id)
    kind: str = "neutralization"
    action: str
    actor_id: str
    actor_name: str = ""
    task_id: str
    meeting_id: str
    previous_state: str
    new_state: str
    outcome: ActivityOutcome
    error: str | None = None
    agent_output: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class Notification(BaseModel):
    """Inbox notification emitted by the pipeline and the engine."""

    id: str = Field(default_factory=_new_id)
    kind: NotificationKind
    title: str
    message: str
    link: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    unread: bool = True
    created_at: datetime = Field(default_factory=_utcnow)


# ── Request / Result Models ──────────────────────────────────────────────────


class MeetingCreate(BaseModel):
    """Request schema for creating a new meeting."""

    title: str = "Untitled Meeting"
    description: str = ""
    date: datetime | None = None
    allow_ai: bool = False
    participants: list[str] = Field(default_factory=list)


class TaskCreate(BaseModel):
    """Request schema for manually adding a task to a meeting."""

    description: str
    assignee: str = UNASSIGNED
    due_date: str | None = None


class SummaryStatus(BaseModel):
    """Result of a summary status query."""

    status: SummaryState
    payload: dict[str, Any] = Field(default_factory=dict)


class SummaryResult(BaseModel):
    """Result of a manual summary trigger."""

    meeting_id: str
    status: MeetingStatus
    summary: str
    cached: bool = False
    task_count: int = 0
