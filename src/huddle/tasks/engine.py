"""TaskNeutralizationEngine -- autonomous resolution of a single task.

Per-task state machine: pending -> neutralizing -> done | failed, with
failed -> neutralizing as a retry and done terminal.

A run:
1. Spends one quota slot for the actor (denial mutates nothing)
2. Claims the task by persisting ``neutralizing`` through the optimistic
   save; whoever observes ``neutralizing`` first loses with ConflictError
3. Calls inference under a hard timeout, retrying exactly once
4. Writes the outcome only while the task is still ``neutralizing``, then
   appends an audit entry and emits a notification

No in-process lock is held across inference; the persisted marker plus
the version check are the only exclusion.
"""

from __future__ import annotations

import asyncio

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from src.huddle.events.activity import ActivityLog, record_activity
from src.huddle.events.notifications import Notifier
from src.huddle.meetings.errors import (
    ConflictError,
    InvalidStateError,
    NeutralizationFailedError,
    NotFoundError,
    QuotaExceededError,
)
from src.huddle.meetings.repository import MeetingStore, update_meeting
from src.huddle.meetings.schemas import (
    ActivityLogEntry,
    ActivityOutcome,
    Actor,
    Meeting,
    NotificationKind,
    Task,
    TaskStatus,
)
from src.huddle.services.llm import InferenceError, InferenceService, InferenceTimeoutError
from src.huddle.tasks.prompts import (
    RESOLUTION_SYSTEM_PROMPT,
    ResolutionPayload,
    build_resolution_prompt,
    parse_resolution,
)
from src.huddle.tasks.quota import QuotaLimiter

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 2
ALREADY_DONE_MESSAGE = "Objective already neutralized."
DISCARDED_REASON = "Task changed while it was being neutralized; result discarded"
CANCELLED_REASON = "Neutralization was cancelled before it finished"


class _ResultDiscarded(Exception):
    """The task left ``neutralizing`` before the result could be written."""


def _replace_task(meeting: Meeting, task: Task) -> Meeting:
    return meeting.model_copy(
        update={"tasks": [task if t.id == task.id else t for t in meeting.tasks]}
    )


def _task_link(meeting_id: str) -> str:
    return f"/dashboard/meetings/{meeting_id}"


class TaskNeutralizationEngine:
    """Drives one task through neutralization.

    Args:
        repository: Meeting store (get/save).
        inference: Inference capability.
        quota: Per-actor limiter consulted before anything else.
        activity_log: Append-only audit store.
        notifier: Fire-and-forget notification emitter.
        timeout: Seconds allowed per inference attempt.
        max_attempts: Total inference attempts (first try + retries).
    """

    def __init__(
        self,
        repository: MeetingStore,
        inference: InferenceService,
        quota: QuotaLimiter,
        activity_log: ActivityLog,
        notifier: Notifier,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repository = repository
        self._inference = inference
        self._quota = quota
        self._activity_log = activity_log
        self._notifier = notifier
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)

    async def neutralize(self, meeting_id: str, task_id: str, actor: Actor) -> Task:
        """Resolve a task with the agent.

        Returns:
            The task as persisted in ``done``.

        Raises:
            QuotaExceededError: The actor's window is used up; nothing changed.
            NotFoundError: Unknown meeting or task; nothing changed.
            InvalidStateError: The task is already done; nothing changed.
            ConflictError: Another run holds the task.
            NeutralizationFailedError: Inference failed terminally; the task
                was rolled back to ``failed`` and the failure audited.
            asyncio.CancelledError: Propagated after the same rollback and audit.
        """
        if not await self._quota.allow(actor.id):
            raise QuotaExceededError(actor.id, self._quota.limit)

        meeting, task, previous_state = await self._claim(meeting_id, task_id)
        log = logger.bind(meeting_id=meeting_id, task_id=task_id, actor_id=actor.id)
        log.info("neutralization_started", previous_state=previous_state.value)

        try:
            payload = await self._resolve(meeting.title, task, log)
            done_task = await self._complete(meeting_id, task_id, payload)
        except asyncio.CancelledError as exc:
            # Shielded so the rollback completes while the caller unwinds
            await asyncio.shield(
                self._fail(meeting_id, task, actor, previous_state, exc, log)
            )
            raise
        except Exception as exc:
            await self._fail(meeting_id, task, actor, previous_state, exc, log)
            raise NeutralizationFailedError(str(exc) or type(exc).__name__) from exc

        log.info("neutralization_completed", confidence=done_task.confidence_score)
        await record_activity(
            self._activity_log,
            ActivityLogEntry(
                action="task_complete",
                actor_id=actor.id,
                actor_name=actor.display_name,
                task_id=task_id,
                meeting_id=meeting_id,
                previous_state=previous_state.value,
                new_state=TaskStatus.DONE.value,
                outcome=ActivityOutcome.SUCCESS,
                agent_output=payload.summary or payload.resolution,
            ),
        )
        await self._notifier.create(
            NotificationKind.TASK,
            "Objective Neutralized",
            f'"{task.description}" was resolved with '
            f"{done_task.confidence_score}% confidence.",
            link=_task_link(meeting_id),
            metadata={"meeting_id": meeting_id, "task_id": task_id},
        )
        return done_task

    # ── Steps ────────────────────────────────────────────────────────────

    async def _claim(
        self, meeting_id: str, task_id: str
    ) -> tuple[Meeting, Task, TaskStatus]:
        """Persist ``neutralizing`` on a pending or failed task."""
        claimed: dict = {}

        def _mutate(current: Meeting) -> Meeting:
            task = current.find_task(task_id)
            if task is None:
                raise NotFoundError("task", task_id)
            if task.status == TaskStatus.DONE:
                raise InvalidStateError(ALREADY_DONE_MESSAGE)
            if task.status == TaskStatus.NEUTRALIZING:
                raise ConflictError("Task is already being neutralized")
            locked = task.model_copy(
                update={"status": TaskStatus.NEUTRALIZING, "failure_reason": ""}
            )
            claimed["previous"] = task.status
            claimed["task"] = locked
            return _replace_task(current, locked)

        meeting = await update_meeting(self._repository, meeting_id, _mutate)
        return meeting, claimed["task"], claimed["previous"]

    async def _resolve(self, meeting_title: str, task: Task, log) -> ResolutionPayload:
        prompt = build_resolution_prompt(meeting_title, task)

        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            log.warning(
                "neutralization_retry",
                attempt=state.attempt_number,
                error=str(exc),
                error_type=type(exc).__name__,
            )

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type(InferenceError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._attempt(prompt)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _attempt(self, prompt: str) -> ResolutionPayload:
        try:
            text = await asyncio.wait_for(
                self._inference.generate(prompt, system=RESOLUTION_SYSTEM_PROMPT),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise InferenceTimeoutError("AI Pipeline Timeout") from exc
        return parse_resolution(text)

    async def _complete(
        self, meeting_id: str, task_id: str, payload: ResolutionPayload
    ) -> Task:
        done: dict = {}

        def _mutate(current: Meeting) -> Meeting:
            task = current.find_task(task_id)
            if task is None or task.status != TaskStatus.NEUTRALIZING:
                raise _ResultDiscarded(DISCARDED_REASON)
            done["task"] = task.model_copy(
                update={
                    "status": TaskStatus.DONE,
                    "agent_output": payload.resolution,
                    "confidence_score": payload.confidence,
                    "next_steps": payload.next_steps,
                    "failure_reason": "",
                }
            )
            return _replace_task(current, done["task"])

        await update_meeting(self._repository, meeting_id, _mutate)
        return done["task"]

    async def _fail(
        self,
        meeting_id: str,
        task: Task,
        actor: Actor,
        previous_state: TaskStatus,
        exc: BaseException,
        log,
    ) -> None:
        """Roll back to ``failed``, then audit and notify regardless of the write."""
        if isinstance(exc, asyncio.CancelledError):
            reason = CANCELLED_REASON
        else:
            reason = str(exc) or type(exc).__name__
        log.error("neutralization_failed", error=reason, error_type=type(exc).__name__)

        def _mutate(current: Meeting) -> Meeting | None:
            current_task = current.find_task(task.id)
            if current_task is None or current_task.status != TaskStatus.NEUTRALIZING:
                return None
            return _replace_task(
                current,
                current_task.model_copy(
                    update={"status": TaskStatus.FAILED, "failure_reason": reason}
                ),
            )

        try:
            await update_meeting(self._repository, meeting_id, _mutate)
        except Exception:
            log.error("neutralization_rollback_failed", exc_info=True)

        await record_activity(
            self._activity_log,
            ActivityLogEntry(
                action="task_failed",
                actor_id=actor.id,
                actor_name=actor.display_name,
                task_id=task.id,
                meeting_id=meeting_id,
                previous_state=previous_state.value,
                new_state=TaskStatus.FAILED.value,
                outcome=ActivityOutcome.FAILURE,
                error=reason,
            ),
        )
        await self._notifier.create(
            NotificationKind.SYSTEM,
            "Neutralization Failed",
            f'"{task.description}" could not be resolved: {reason}',
            link=_task_link(meeting_id),
            metadata={"meeting_id": meeting_id, "task_id": task.id, "error": reason},
        )
