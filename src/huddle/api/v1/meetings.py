"""REST endpoints for meetings, summaries, and task neutralization.

Components live on ``app.state`` (wired in the lifespan); an endpoint whose
component is missing answers 503. Domain errors are translated to HTTP
status codes by ``http_error``.

Audio upload returns as soon as the artifact is stored and the meeting is
ended; summarization runs in the background and is observed through
``GET /meetings/{id}/summary``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from pydantic import BaseModel

from src.huddle.api.deps import get_current_actor, http_error
from src.huddle.meetings.assistant import ChatRequest
from src.huddle.meetings.errors import MeetingError
from src.huddle.meetings.intake import EmailIntakeRequest, IntakeResult
from src.huddle.meetings.schemas import (
    Actor,
    Meeting,
    MeetingCreate,
    SummaryResult,
    SummaryStatus,
    Task,
    TaskCreate,
    TaskStatus,
    TaskView,
)
from src.huddle.services.llm import InferenceError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class AiPermissionRequest(BaseModel):
    allow: bool


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class ChatResponse(BaseModel):
    reply: str


class AudioUploadResponse(BaseModel):
    meeting_id: str
    audio_ref: str
    status: str
    message: str = "Audio uploaded. Summary generation started."


# ── Dependency Injection Helpers ─────────────────────────────────────────────


def _get_component(request: Request, name: str, label: str) -> Any:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def _get_controller(request: Request) -> Any:
    """Retrieve MeetingLifecycleController from app.state, 503 if not available."""
    return _get_component(request, "meeting_controller", "Meeting controller")


def _get_engine(request: Request) -> Any:
    """Retrieve TaskNeutralizationEngine from app.state, 503 if not available."""
    return _get_component(request, "neutralization_engine", "Neutralization engine")


def _get_artifact_store(request: Request) -> Any:
    """Retrieve AudioArtifactStore from app.state, 503 if not available."""
    return _get_component(request, "artifact_store", "Artifact store")


def _get_assistant(request: Request) -> Any:
    """Retrieve MeetingAssistant from app.state, 503 if not available."""
    return _get_component(request, "meeting_assistant", "Meeting assistant")


def _get_intake(request: Request) -> Any:
    """Retrieve EmailIntakeService from app.state, 503 if not available."""
    return _get_component(request, "email_intake", "Email intake")


# ── Collection Endpoints ─────────────────────────────────────────────────────


@router.post("", response_model=Meeting, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    body: MeetingCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Meeting:
    """Schedule a new meeting."""
    controller = _get_controller(request)
    return await controller.create_meeting(body)


@router.get("", response_model=list[Meeting])
async def list_meetings(
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> list[Meeting]:
    """All meetings, most recent first."""
    controller = _get_controller(request)
    return await controller.list_meetings()


@router.get("/tasks/all", response_model=list[TaskView])
async def list_all_tasks(
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> list[TaskView]:
    """Every task across all meetings, tagged with its meeting."""
    controller = _get_controller(request)
    return await controller.list_tasks()


@router.post("/intake/email", response_model=IntakeResult)
async def process_email(
    body: EmailIntakeRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> IntakeResult:
    """Create a meeting when an email asks for one."""
    intake = _get_intake(request)
    try:
        return await intake.process(body.email_content)
    except (MeetingError, InferenceError) as exc:
        logger.error("email_intake_failed", error=str(exc))
        raise http_error(exc) from exc


# ── Meeting Endpoints ────────────────────────────────────────────────────────


@router.get("/{meeting_id}", response_model=Meeting)
async def get_meeting(
    meeting_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Meeting:
    """Get meeting details by ID."""
    controller = _get_controller(request)
    try:
        return await controller.get_meeting(meeting_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/join", response_model=Meeting)
async def join_meeting(
    meeting_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Meeting:
    """Move a scheduled meeting to live."""
    controller = _get_controller(request)
    try:
        return await controller.join(meeting_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/end", response_model=Meeting)
async def end_meeting(
    meeting_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Meeting:
    """End a meeting without uploading audio."""
    controller = _get_controller(request)
    try:
        return await controller.end(meeting_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/ai-permission", response_model=Meeting)
async def set_ai_permission(
    meeting_id: str,
    body: AiPermissionRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Meeting:
    """Grant or revoke consent for the AI agent to join."""
    controller = _get_controller(request)
    try:
        return await controller.set_ai_permission(meeting_id, body.allow)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/audio", response_model=AudioUploadResponse)
async def upload_audio(
    meeting_id: str,
    request: Request,
    audio: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
) -> AudioUploadResponse:
    """Store recorded audio, end the meeting, and queue summarization."""
    controller = _get_controller(request)
    artifacts = _get_artifact_store(request)

    data = await audio.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No audio file uploaded",
        )

    try:
        await controller.get_meeting(meeting_id)
        ref = await artifacts.save(meeting_id, data, audio.filename or "")
        meeting = await controller.attach_audio(meeting_id, ref)
    except MeetingError as exc:
        raise http_error(exc) from exc

    return AudioUploadResponse(
        meeting_id=meeting.id,
        audio_ref=ref,
        status=meeting.status.value,
    )


# ── Summary Endpoints ────────────────────────────────────────────────────────


@router.get("/{meeting_id}/summary", response_model=SummaryStatus)
async def get_summary(
    meeting_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> SummaryStatus:
    """Poll summary availability (may lazily queue a run)."""
    controller = _get_controller(request)
    try:
        return await controller.get_summary_status(meeting_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/summary", response_model=SummaryResult)
async def trigger_summary(
    meeting_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> SummaryResult:
    """Generate the summary now, or return the cached one."""
    controller = _get_controller(request)
    try:
        return await controller.trigger_summary(meeting_id)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/chat", response_model=ChatResponse)
async def chat_with_meeting(
    meeting_id: str,
    body: ChatRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> ChatResponse:
    """Ask the assistant about a summarized meeting."""
    assistant = _get_assistant(request)
    try:
        reply = await assistant.chat(meeting_id, body)
    except (MeetingError, InferenceError) as exc:
        raise http_error(exc) from exc
    return ChatResponse(reply=reply)


# ── Task Endpoints ───────────────────────────────────────────────────────────


@router.post("/{meeting_id}/tasks", response_model=Task, status_code=status.HTTP_201_CREATED)
async def add_task(
    meeting_id: str,
    body: TaskCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Task:
    """Add a task manually."""
    controller = _get_controller(request)
    try:
        return await controller.add_task(meeting_id, body)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.patch("/{meeting_id}/tasks/{task_id}/status", response_model=Task)
async def update_task_status(
    meeting_id: str,
    task_id: str,
    body: TaskStatusUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Task:
    """Manually override a task's status."""
    controller = _get_controller(request)
    try:
        return await controller.update_task_status(meeting_id, task_id, body.status)
    except MeetingError as exc:
        raise http_error(exc) from exc


@router.post("/{meeting_id}/tasks/{task_id}/neutralize", response_model=Task)
async def neutralize_task(
    meeting_id: str,
    task_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
) -> Task:
    """Have the agent resolve a task."""
    engine = _get_engine(request)
    logger.info(
        "neutralization_requested",
        meeting_id=meeting_id,
        task_id=task_id,
        actor_id=actor.id,
    )
    try:
        return await engine.neutralize(meeting_id, task_id, actor)
    except MeetingError as exc:
        raise http_error(exc) from exc
