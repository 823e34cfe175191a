"""MeetingLifecycleController -- meeting status transitions and summary triggers.

Owns every meeting-level status change (scheduled/live/ended, validated
against VALID_TRANSITIONS) and decides when the summarization pipeline
runs:
1. Right after audio is attached (background, via SummaryWorker)
2. On explicit request, unless the meeting is already summarized, in
   which case the cached summary is returned without inference
3. Lazily when a status poll finds audio but no summary on a meeting that
   has not failed and has no run in flight

The pipeline's own writes (summarized/failed) happen inside the pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.huddle.meetings.errors import InvalidStateError, NotFoundError
from src.huddle.meetings.repository import MeetingRepository, update_meeting
from src.huddle.meetings.schemas import (
    Meeting,
    MeetingCreate,
    MeetingStatus,
    SummaryResult,
    SummaryState,
    SummaryStatus,
    Task,
    TaskCreate,
    TaskStatus,
    TaskView,
)
from src.huddle.meetings.summary.pipeline import NO_AUDIO_MESSAGE
from src.huddle.meetings.summary.worker import SummaryWorker
from src.huddle.meetings.transitions import validate_transition

logger = structlog.get_logger(__name__)

MANUAL_RESOLUTION_OUTPUT = "Resolved manually."
MANUAL_TASK_STATUSES = {TaskStatus.PENDING, TaskStatus.DONE, TaskStatus.FAILED}


class MeetingLifecycleController:
    """Meeting-level operations exposed to the HTTP layer.

    Args:
        repository: MeetingRepository (or a compatible test double).
        worker: SummaryWorker that runs the summarization pipeline.
    """

    def __init__(self, repository: MeetingRepository, worker: SummaryWorker) -> None:
        self._repository = repository
        self._worker = worker

    # ── Queries ──────────────────────────────────────────────────────────

    async def create_meeting(self, data: MeetingCreate) -> Meeting:
        return await self._repository.create(data)

    async def get_meeting(self, meeting_id: str) -> Meeting:
        return await self._repository.get(meeting_id)

    async def list_meetings(self) -> list[Meeting]:
        return await self._repository.list_meetings()

    async def list_tasks(self) -> list[TaskView]:
        return await self._repository.list_tasks()

    # ── Status Transitions ───────────────────────────────────────────────

    async def join(self, meeting_id: str) -> Meeting:
        """scheduled -> live."""
        meeting = await self._transition(meeting_id, MeetingStatus.LIVE)
        logger.info("meeting_joined", meeting_id=meeting_id)
        return meeting

    async def end(self, meeting_id: str) -> Meeting:
        """scheduled|live -> ended, without audio."""
        meeting = await self._transition(meeting_id, MeetingStatus.ENDED)
        logger.info("meeting_ended", meeting_id=meeting_id)
        return meeting

    async def set_ai_permission(self, meeting_id: str, allow: bool) -> Meeting:
        """Record explicit consent for the AI agent to join."""

        def _mutate(current: Meeting) -> Meeting:
            return current.model_copy(update={"allow_ai": allow, "ai_joined": allow})

        meeting = await update_meeting(self._repository, meeting_id, _mutate)
        logger.info("meeting_ai_permission_set", meeting_id=meeting_id, allow_ai=allow)
        return meeting

    async def attach_audio(self, meeting_id: str, artifact_ref: str) -> Meeting:
        """Attach recorded audio, end the meeting, and queue summarization.

        Any previous summary is cleared so pollers see ``processing`` until
        the new audio is summarized. A run already in flight for older audio
        is followed by a fresh one.

        Returns without waiting for the pipeline; its outcome is visible
        through get_summary_status.
        """
        now = datetime.now(timezone.utc)

        def _mutate(current: Meeting) -> Meeting:
            validate_transition(current.status, MeetingStatus.ENDED)
            return current.model_copy(
                update={
                    "audio_ref": artifact_ref,
                    "summary": "",
                    "status": MeetingStatus.ENDED,
                    "ended_at": current.ended_at or now,
                }
            )

        meeting = await update_meeting(self._repository, meeting_id, _mutate)
        queued = self._worker.submit(meeting_id, rerun=True)
        logger.info(
            "meeting_audio_attached",
            meeting_id=meeting_id,
            audio_ref=artifact_ref,
            summary_queued=queued,
        )
        return meeting

    # ── Summary ──────────────────────────────────────────────────────────

    async def trigger_summary(self, meeting_id: str) -> SummaryResult:
        """Explicit summary request.

        Raises:
            NotFoundError: Unknown meeting.
            InvalidStateError: No audio attached.
            ConflictError: A run for this meeting is already in flight.
        """
        meeting = await self._repository.get(meeting_id)
        if not meeting.audio_ref:
            raise InvalidStateError(NO_AUDIO_MESSAGE)

        if meeting.status == MeetingStatus.SUMMARIZED and meeting.has_summary:
            logger.info("summary_cache_hit", meeting_id=meeting_id)
            return SummaryResult(
                meeting_id=meeting_id,
                status=meeting.status,
                summary=meeting.summary,
                cached=True,
                task_count=len(meeting.tasks),
            )

        result = await self._worker.run_now(meeting_id)
        return SummaryResult(
            meeting_id=meeting_id,
            status=result.status,
            summary=result.summary,
            cached=False,
            task_count=len(result.tasks),
        )

    async def get_summary_status(self, meeting_id: str) -> SummaryStatus:
        """Report summary availability, lazily queuing a run when one is due."""
        meeting = await self._repository.get(meeting_id)

        if meeting.status == MeetingStatus.SUMMARIZED and meeting.has_summary:
            return SummaryStatus(
                status=SummaryState.READY,
                payload={"summary": meeting.summary, "meeting_title": meeting.title},
            )

        if meeting.status == MeetingStatus.FAILED:
            return SummaryStatus(
                status=SummaryState.FAILED,
                payload={"error": meeting.summary or "Summary generation failed"},
            )

        if meeting.audio_ref or meeting.status == MeetingStatus.ENDED:
            if meeting.audio_ref and not meeting.summary.strip():
                if self._worker.submit(meeting_id):
                    logger.info("summary_lazily_triggered", meeting_id=meeting_id)
            return SummaryStatus(status=SummaryState.PROCESSING)

        if meeting.status == MeetingStatus.LIVE:
            message = "Meeting is live. Waiting for it to end."
        else:
            message = "Meeting has not started yet."
        return SummaryStatus(status=SummaryState.NOT_STARTED, payload={"message": message})

    # ── Tasks ────────────────────────────────────────────────────────────

    async def add_task(self, meeting_id: str, data: TaskCreate) -> Task:
        """Append a manually created pending task."""
        task = Task(
            description=data.description,
            assignee=data.assignee,
            due_date=data.due_date,
        )

        def _mutate(current: Meeting) -> Meeting:
            return current.model_copy(update={"tasks": [*current.tasks, task]})

        await update_meeting(self._repository, meeting_id, _mutate)
        logger.info("task_added", meeting_id=meeting_id, task_id=task.id)
        return task

    async def update_task_status(
        self, meeting_id: str, task_id: str, status: TaskStatus
    ) -> Task:
        """Manual status override. Bypasses the engine; writes no audit entry.

        Raises:
            NotFoundError: Unknown meeting or task.
            InvalidStateError: Target is ``neutralizing``, or the task is
                ``neutralizing``/``done``.
        """
        if status not in MANUAL_TASK_STATUSES:
            raise InvalidStateError(f"Task status cannot be set manually to {status.value}")

        updated: dict[str, Task] = {}

        def _mutate(current: Meeting) -> Meeting | None:
            task = current.find_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            if task.status == status:
                updated["task"] = task
                return None
            if task.status == TaskStatus.NEUTRALIZING:
                raise InvalidStateError("Task is being neutralized; try again once it finishes")
            if task.status == TaskStatus.DONE:
                raise InvalidStateError("Objective already neutralized.")

            changes: dict = {"status": status}
            if status == TaskStatus.DONE and not task.agent_output:
                changes["agent_output"] = MANUAL_RESOLUTION_OUTPUT
            new_task = task.model_copy(update=changes)
            updated["task"] = new_task
            return current.model_copy(
                update={"tasks": [new_task if t.id == task_id else t for t in current.tasks]}
            )

        await update_meeting(self._repository, meeting_id, _mutate)
        logger.info(
            "task_status_overridden",
            meeting_id=meeting_id,
            task_id=task_id,
            status=status.value,
        )
        return updated["task"]

    # ── Internals ────────────────────────────────────────────────────────

    async def _transition(self, meeting_id: str, target: MeetingStatus) -> Meeting:
        now = datetime.now(timezone.utc)

        def _mutate(current: Meeting) -> Meeting | None:
            if current.status == target:
                return None
            validate_transition(current.status, target)
            changes: dict = {"status": target}
            if target == MeetingStatus.ENDED:
                changes["ended_at"] = now
            return current.model_copy(update=changes)

        return await update_meeting(self._repository, meeting_id, _mutate)
