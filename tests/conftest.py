"""Shared test doubles and fixtures.

Provides:
- InMemoryMeetingRepository: get/save with the same optimistic version
  check as MeetingRepository, plus create/list for controller tests
- InMemoryActivityLog and InMemoryNotificationStore
- A mock inference service (AsyncMock ``generate``)
- A real AudioArtifactStore rooted in tmp_path
- A sample generated summary with an Action Items section
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.huddle.events.notifications import Notifier
from src.huddle.meetings.artifacts import AudioArtifactStore
from src.huddle.meetings.errors import ConflictError, NotFoundError
from src.huddle.meetings.repository import flatten_tasks
from src.huddle.meetings.schemas import (
    ActivityLogEntry,
    Meeting,
    MeetingCreate,
    Notification,
    TaskView,
)

SAMPLE_SUMMARY = """## 1. Meeting Overview
Title: Q3 Planning
Purpose: Agree the Q3 roadmap.

## 2. Key Discussion Points
- Hiring plan
- Vendor contracts

## 3. Decisions Taken
- Freeze scope on Friday

## 4. Action Items
- Draft the Q3 budget • Assigned To: Ana • Deadline: Friday
- **Call the vendor** • Assigned To: Unassigned • Deadline: None
- Book the offsite venue
(If no assignee or deadline is mentioned, write "Unassigned" or "None" respectively)

## 5. Deadlines / Timeline
- Budget due Friday

## 6. Conclusion
Productive session.
"""

RESOLUTION_JSON = (
    '{"summary": "Drafted the budget", "resolution": "Budget draft v1", '
    '"confidence": 85, "nextSteps": ["Review with finance"]}'
)


# ── Test Doubles ─────────────────────────────────────────────────────────────


class InMemoryMeetingRepository:
    """In-memory test double for MeetingRepository.

    Stores deep copies so callers can never mutate persisted state by
    accident. ``before_save`` runs just before the version check and can
    simulate a concurrent writer.
    """

    def __init__(self) -> None:
        self.meetings: dict[str, Meeting] = {}
        self.save_calls = 0
        self.before_save: Callable[[Meeting], None] | None = None

    def put(self, meeting: Meeting) -> Meeting:
        self.meetings[meeting.id] = meeting.model_copy(deep=True)
        return meeting

    async def create(self, data: MeetingCreate) -> Meeting:
        now = datetime.now(timezone.utc)
        meeting = Meeting(
            title=data.title,
            description=data.description,
            date=data.date or now,
            allow_ai=data.allow_ai,
            participants=data.participants,
        )
        return self.put(meeting)

    async def get(self, meeting_id: str) -> Meeting:
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            raise NotFoundError("meeting", meeting_id)
        return meeting.model_copy(deep=True)

    async def save(self, meeting: Meeting) -> Meeting:
        self.save_calls += 1
        if self.before_save is not None:
            hook, self.before_save = self.before_save, None
            hook(meeting)
        stored = self.meetings.get(meeting.id)
        if stored is None:
            raise NotFoundError("meeting", meeting.id)
        if stored.version != meeting.version:
            raise ConflictError(f"Meeting {meeting.id} was modified concurrently")
        saved = meeting.model_copy(
            update={"version": meeting.version + 1, "updated_at": datetime.now(timezone.utc)},
            deep=True,
        )
        self.meetings[meeting.id] = saved
        return saved.model_copy(deep=True)

    async def list_meetings(self) -> list[Meeting]:
        return sorted(
            (m.model_copy(deep=True) for m in self.meetings.values()),
            key=lambda m: m.date,
            reverse=True,
        )

    async def list_tasks(self) -> list[TaskView]:
        return flatten_tasks(await self.list_meetings())


class InMemoryActivityLog:
    """Append-only audit double; ``fail`` makes every append raise."""

    def __init__(self) -> None:
        self.entries: list[ActivityLogEntry] = []
        self.fail = False

    async def append(self, entry: ActivityLogEntry) -> None:
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.entries.append(entry)


class InMemoryNotificationStore:
    """Notification store double mirroring NotificationRepository."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.fail = False

    async def add(self, notification: Notification) -> Notification:
        if self.fail:
            raise RuntimeError("notification store unavailable")
        self.notifications.append(notification)
        return notification

    async def list_recent(self, limit: int = 100) -> list[Notification]:
        return sorted(self.notifications, key=lambda n: n.created_at, reverse=True)[:limit]

    async def mark_read(self, notification_id: str) -> Notification:
        for i, n in enumerate(self.notifications):
            if n.id == notification_id:
                self.notifications[i] = n.model_copy(update={"unread": False})
                return self.notifications[i]
        raise NotFoundError("notification", notification_id)

    async def mark_all_read(self) -> int:
        unread = [n for n in self.notifications if n.unread]
        self.notifications = [n.model_copy(update={"unread": False}) for n in self.notifications]
        return len(unread)

    async def delete(self, notification_id: str) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def sample_summary() -> str:
    return SAMPLE_SUMMARY


@pytest.fixture
def resolution_json() -> str:
    return RESOLUTION_JSON


@pytest.fixture
def repo() -> InMemoryMeetingRepository:
    return InMemoryMeetingRepository()


@pytest.fixture
def activity_log() -> InMemoryActivityLog:
    return InMemoryActivityLog()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def notifier(notification_store) -> Notifier:
    return Notifier(notification_store)


@pytest.fixture
def inference() -> MagicMock:
    """Inference double; set ``inference.generate`` return_value/side_effect per test."""
    service = MagicMock()
    service.available = True
    service.generate = AsyncMock(return_value=SAMPLE_SUMMARY)
    return service


@pytest.fixture
def artifacts(tmp_path) -> AudioArtifactStore:
    return AudioArtifactStore(tmp_path / "meetings")


@pytest.fixture
def make_meeting(repo) -> Callable[..., Meeting]:
    """Store a meeting built from keyword overrides and return it."""

    def _make(**overrides) -> Meeting:
        fields = {"title": "Q3 Planning", "description": "Quarterly roadmap"}
        fields.update(overrides)
        return repo.put(Meeting(**fields))

    return _make
