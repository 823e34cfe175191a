"""Inbox endpoints for notifications emitted by the pipeline and the engine."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel

from src.huddle.api.deps import get_current_actor, http_error
from src.huddle.meetings.errors import MeetingError
from src.huddle.meetings.schemas import Actor, Notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


class MarkAllReadResponse(BaseModel):
    updated: int


def _get_notification_repository(request: Request) -> Any:
    """Retrieve NotificationRepository from app.state, 503 if not available."""
    repo = getattr(request.app.state, "notification_repository", None)
    if repo is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification store not initialized",
        )
    return repo


@router.get("", response_model=list[Notification])
async def list_notifications(
    request: Request,
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
) -> list[Notification]:
    """Most recent notifications first."""
    repo = _get_notification_repository(request)
    return await repo.list_recent(limit=limit)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> MarkAllReadResponse:
    repo = _get_notification_repository(request)
    updated = await repo.mark_all_read()
    return MarkAllReadResponse(updated=updated)


@router.patch("/{notification_id}", response_model=Notification)
async def mark_read(
    notification_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Notification:
    repo = _get_notification_repository(request)
    try:
        return await repo.mark_read(notification_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Response:
    repo = _get_notification_repository(request)
    await repo.delete(notification_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
