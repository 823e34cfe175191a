"""Meeting repository -- async read/save of meeting records.

Provides MeetingRepository with the session_factory callable pattern.
Handles serialization between the Meeting schema (with its embedded Task
sequence) and MeetingModel rows.

``save`` is an optimistic compare-and-swap on the ``version`` column: it
only succeeds when the stored version equals the version the caller read,
and raises ConflictError otherwise. ``update_meeting`` wraps that in a
bounded re-read/re-apply loop and is the only way the core mutates task
sub-state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.huddle.meetings.errors import ConflictError, NotFoundError
from src.huddle.meetings.models import MeetingModel
from src.huddle.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingStatus,
    Task,
    TaskView,
)

logger = structlog.get_logger(__name__)

MAX_SAVE_ATTEMPTS = 3


class MeetingStore(Protocol):
    """The storage contract the core depends on."""

    async def get(self, meeting_id: str) -> Meeting: ...

    async def save(self, meeting: Meeting) -> Meeting: ...


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_meeting(model: MeetingModel) -> Meeting:
    """Convert MeetingModel to Meeting schema."""
    return Meeting(
        id=model.id,
        title=model.title,
        description=model.description or "",
        date=model.date,
        status=MeetingStatus(model.status),
        participants=list(model.participants_data or []),
        allow_ai=bool(model.allow_ai),
        ai_joined=bool(model.ai_joined),
        audio_ref=model.audio_ref,
        summary=model.summary or "",
        tasks=[Task.model_validate(t) for t in (model.tasks_data or [])],
        version=model.version or 0,
        created_at=model.created_at,
        updated_at=model.updated_at or model.created_at,
        ended_at=model.ended_at,
    )


def _meeting_to_values(meeting: Meeting) -> dict[str, Any]:
    """Column values for a meeting, excluding id, version and timestamps."""
    return {
        "title": meeting.title,
        "description": meeting.description,
        "date": meeting.date,
        "status": meeting.status.value,
        "participants_data": list(meeting.participants),
        "allow_ai": meeting.allow_ai,
        "ai_joined": meeting.ai_joined,
        "audio_ref": meeting.audio_ref,
        "summary": meeting.summary,
        "tasks_data": [t.model_dump(mode="json") for t in meeting.tasks],
        "ended_at": meeting.ended_at,
    }


# ── Repository ──────────────────────────────────────────────────────────────


class MeetingRepository:
    """Async persistence for Meeting records.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create(self, data: MeetingCreate) -> Meeting:
        """Persist a new scheduled meeting.

        Args:
            data: MeetingCreate with title, description, date and consent flag.

        Returns:
            Meeting with all persisted fields.
        """
        now = datetime.now(timezone.utc)
        meeting = Meeting(
            title=data.title,
            description=data.description,
            date=data.date or now,
            allow_ai=data.allow_ai,
            participants=data.participants,
            created_at=now,
            updated_at=now,
        )
        async for session in self._session_factory():
            model = MeetingModel(
                id=meeting.id,
                version=0,
                created_at=now,
                updated_at=now,
                **_meeting_to_values(meeting),
            )
            session.add(model)
            await session.commit()
            logger.info("meeting_created", meeting_id=meeting.id, title=meeting.title)
            return meeting

    async def get(self, meeting_id: str) -> Meeting:
        """Load a meeting by ID.

        Raises:
            NotFoundError: If no meeting has this ID.
        """
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel).where(MeetingModel.id == meeting_id)
            )
            model = result.scalar_one_or_none()
            if model is None:
                raise NotFoundError("meeting", meeting_id)
            return _model_to_meeting(model)

    async def save(self, meeting: Meeting) -> Meeting:
        """Write a meeting if nobody else saved it since it was read.

        Args:
            meeting: Meeting carrying the ``version`` it was read at.

        Returns:
            The meeting with its bumped version.

        Raises:
            NotFoundError: If the meeting no longer exists.
            ConflictError: If the stored version moved on.
        """
        now = datetime.now(timezone.utc)
        async for session in self._session_factory():
            stmt = (
                update(MeetingModel)
                .where(
                    MeetingModel.id == meeting.id,
                    MeetingModel.version == meeting.version,
                )
                .values(
                    **_meeting_to_values(meeting),
                    version=meeting.version + 1,
                    updated_at=now,
                )
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                exists = await session.scalar(
                    select(MeetingModel.id).where(MeetingModel.id == meeting.id)
                )
                if exists is None:
                    raise NotFoundError("meeting", meeting.id)
                raise ConflictError(
                    f"Meeting {meeting.id} was modified concurrently "
                    f"(expected version {meeting.version})"
                )
            await session.commit()
            return meeting.model_copy(
                update={"version": meeting.version + 1, "updated_at": now}
            )

    async def list_meetings(self) -> list[Meeting]:
        """All meetings, most recent date first."""
        async for session in self._session_factory():
            result = await session.execute(
                select(MeetingModel).order_by(MeetingModel.date.desc())
            )
            return [_model_to_meeting(m) for m in result.scalars().all()]

    async def list_tasks(self) -> list[TaskView]:
        """Every task across all meetings, tagged with its meeting."""
        meetings = await self.list_meetings()
        return flatten_tasks(meetings)


# ── Module-Level Helpers ─────────────────────────────────────────────────────


def flatten_tasks(meetings: list[Meeting]) -> list[TaskView]:
    """Flatten meeting task sequences into TaskView rows, preserving order."""
    views: list[TaskView] = []
    for meeting in meetings:
        for task in meeting.tasks:
            views.append(
                TaskView(
                    **task.model_dump(),
                    meeting_id=meeting.id,
                    meeting_title=meeting.title,
                )
            )
    return views


async def update_meeting(
    store: MeetingStore,
    meeting_id: str,
    mutate: Callable[[Meeting], Meeting | None],
) -> Meeting:
    """Read-modify-write a meeting, re-reading and re-applying on conflict.

    ``mutate`` receives a freshly read meeting and returns the meeting to
    save, or None to leave the record untouched. Exceptions raised by
    ``mutate`` propagate without any write.

    Args:
        store: Anything implementing get/save.
        meeting_id: Meeting to update.
        mutate: Pure function applied to each fresh read.

    Returns:
        The saved meeting, or the unchanged read when ``mutate`` returned None.

    Raises:
        NotFoundError: If the meeting does not exist.
        ConflictError: If every attempt lost the race.
    """
    for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
        current = await store.get(meeting_id)
        updated = mutate(current)
        if updated is None:
            return current
        try:
            return await store.save(updated)
        except ConflictError:
            logger.info(
                "meeting_save_conflict",
                meeting_id=meeting_id,
                attempt=attempt,
            )
    raise ConflictError(
        f"Meeting {meeting_id} kept changing; gave up after {MAX_SAVE_ATTEMPTS} attempts"
    )
