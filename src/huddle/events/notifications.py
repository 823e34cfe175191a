"""Inbox notifications.

NotificationRepository stores and lists notifications. Notifier is the
fire-and-forget facade the pipeline and engine call: delivery failures are
logged and swallowed, never surfaced to the caller.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any, Protocol

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.huddle.meetings.errors import NotFoundError
from src.huddle.meetings.models import NotificationModel
from src.huddle.meetings.schemas import Notification, NotificationKind

logger = structlog.get_logger(__name__)


class NotificationStore(Protocol):
    async def add(self, notification: Notification) -> Notification: ...


def _model_to_notification(model: NotificationModel) -> Notification:
    return Notification(
        id=model.id,
        kind=NotificationKind(model.kind),
        title=model.title,
        message=model.message,
        link=model.link or "",
        metadata=dict(model.metadata_data or {}),
        unread=bool(model.unread),
        created_at=model.created_at,
    )


class NotificationRepository:
    """Async CRUD for inbox notifications.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def add(self, notification: Notification) -> Notification:
        async for session in self._session_factory():
            session.add(
                NotificationModel(
                    id=notification.id,
                    kind=notification.kind.value,
                    title=notification.title,
                    message=notification.message,
                    link=notification.link,
                    metadata_data=notification.metadata,
                    unread=notification.unread,
                    created_at=notification.created_at,
                )
            )
            await session.commit()
            return notification

    async def list_recent(self, limit: int = 100) -> list[Notification]:
        async for session in self._session_factory():
            result = await session.execute(
                select(NotificationModel)
                .order_by(NotificationModel.created_at.desc())
                .limit(limit)
            )
            return [_model_to_notification(m) for m in result.scalars().all()]

    async def mark_read(self, notification_id: str) -> Notification:
        async for session in self._session_factory():
            model = await session.get(NotificationModel, notification_id)
            if model is None:
                raise NotFoundError("notification", notification_id)
            model.unread = False
            await session.commit()
            return _model_to_notification(model)

    async def mark_all_read(self) -> int:
        async for session in self._session_factory():
            result = await session.execute(
                update(NotificationModel)
                .where(NotificationModel.unread.is_(True))
                .values(unread=False)
            )
            await session.commit()
            return result.rowcount

    async def delete(self, notification_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                delete(NotificationModel).where(NotificationModel.id == notification_id)
            )
            await session.commit()


class Notifier:
    """Fire-and-forget notification emitter.

    Args:
        store: Anything with an async ``add(Notification)``; None disables
            delivery (notifications are then only logged).
    """

    def __init__(self, store: NotificationStore | None) -> None:
        self._store = store

    async def create(
        self,
        kind: NotificationKind,
        title: str,
        message: str,
        link: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Notification | None:
        """Create a notification; returns None when delivery failed."""
        notification = Notification(
            kind=kind,
            title=title,
            message=message,
            link=link,
            metadata=metadata or {},
        )
        if self._store is None:
            logger.info("notification_skipped_no_store", kind=kind.value, title=title)
            return None
        try:
            return await self._store.add(notification)
        except Exception:
            logger.warning(
                "notification_create_failed",
                kind=kind.value,
                title=title,
                exc_info=True,
            )
            return None
