"""Append-only audit log for neutralization outcomes.

ActivityLogRepository persists entries; ``record_activity`` is the
tolerant entry point used by the engine: it is always called on terminal
outcomes, and a failure to write is logged rather than raised.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from src.huddle.meetings.models import ActivityLogModel
from src.huddle.meetings.schemas import ActivityLogEntry

logger = structlog.get_logger(__name__)


class ActivityLog(Protocol):
    async def append(self, entry: ActivityLogEntry) -> None: ...


class ActivityLogRepository:
    """SQLAlchemy-backed audit store. Rows are never updated or deleted.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def append(self, entry: ActivityLogEntry) -> None:
        async for session in self._session_factory():
            session.add(
                ActivityLogModel(
                    id=entry.id,
                    kind=entry.kind,
                    action=entry.action,
                    actor_id=entry.actor_id,
                    actor_name=entry.actor_name,
                    task_id=entry.task_id,
                    meeting_id=entry.meeting_id,
                    previous_state=entry.previous_state,
                    new_state=entry.new_state,
                    outcome=entry.outcome.value,
                    error=entry.error,
                    agent_output=entry.agent_output,
                    timestamp=entry.timestamp,
                )
            )
            await session.commit()


async def record_activity(activity_log: ActivityLog, entry: ActivityLogEntry) -> bool:
    """Append an audit entry; log and return False if the write fails."""
    try:
        await activity_log.append(entry)
    except Exception:
        logger.error(
            "activity_log_append_failed",
            meeting_id=entry.meeting_id,
            task_id=entry.task_id,
            action=entry.action,
            exc_info=True,
        )
        return False
    return True
