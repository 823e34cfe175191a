"""SummarizationPipeline -- recorded audio to summary and task list.

One run: load the meeting's audio artifact, prompt the inference
capability with the audio attached, extract the Action Items section into
pending tasks, then persist summary + tasks + ``summarized`` in a single
write. Any failure is persisted as an error summary + ``failed`` instead,
with the task list left as it was.

Both final writes go through ``update_meeting`` so they re-read the record
first; a meeting fetched at the start of a long inference call is never
written back stale. Neither write happens if the meeting's audio was
replaced during the run; the newer audio gets its own run. Re-running
replaces summary and tasks wholesale.
"""

from __future__ import annotations

import structlog

from src.huddle.events.notifications import Notifier
from src.huddle.meetings.artifacts import ArtifactNotFoundError, AudioArtifactStore
from src.huddle.meetings.errors import InvalidStateError
from src.huddle.meetings.repository import MeetingStore, update_meeting
from src.huddle.meetings.schemas import (
    ERROR_PREFIX,
    Meeting,
    MeetingStatus,
    NotificationKind,
    Task,
)
from src.huddle.meetings.summary.parser import parse_action_items
from src.huddle.meetings.summary.prompts import build_summary_prompt
from src.huddle.meetings.transitions import can_transition, validate_transition
from src.huddle.services.llm import InferenceQuotaExceededError, InferenceService

logger = structlog.get_logger(__name__)

NO_AUDIO_MESSAGE = "No audio available to summarize. Please upload meeting audio first."
QUOTA_ERROR_SUMMARY = f"{ERROR_PREFIX}: AI Quota Exceeded. Please try again later."
MISSING_AUDIO_SUMMARY = f"{ERROR_PREFIX}: Audio file not found on server."


def summary_error_text(exc: BaseException) -> str:
    """Human-readable error stored in ``summary`` for a failed run."""
    if isinstance(exc, InferenceQuotaExceededError):
        return QUOTA_ERROR_SUMMARY
    if isinstance(exc, ArtifactNotFoundError):
        return MISSING_AUDIO_SUMMARY
    return f"{ERROR_PREFIX} generating summary: {exc}"


def summary_link(meeting_id: str) -> str:
    return f"/dashboard/meetings/{meeting_id}/summary"


class _AudioReplaced(Exception):
    """New audio was attached while this run was summarizing the old one."""


class SummarizationPipeline:
    """Turns a meeting's recorded audio into a summary and ordered tasks.

    Args:
        repository: Meeting store (get/save).
        inference: Inference capability used with the audio attached.
        artifacts: Audio artifact store resolving ``audio_ref``.
        notifier: Fire-and-forget notification emitter.
    """

    def __init__(
        self,
        repository: MeetingStore,
        inference: InferenceService,
        artifacts: AudioArtifactStore,
        notifier: Notifier,
    ) -> None:
        self._repository = repository
        self._inference = inference
        self._artifacts = artifacts
        self._notifier = notifier

    async def run(self, meeting_id: str) -> Meeting:
        """Summarize a meeting and persist the outcome.

        Returns:
            The meeting as persisted after the run (``summarized`` or
            ``failed``). If new audio was attached meanwhile, nothing is
            written and the current record is returned.

        Raises:
            NotFoundError: If the meeting does not exist.
            InvalidStateError: If the meeting has no audio; nothing is written.
        """
        meeting = await self._repository.get(meeting_id)
        if not meeting.audio_ref:
            raise InvalidStateError(NO_AUDIO_MESSAGE)

        audio_ref = meeting.audio_ref
        logger.info("summary_job_started", meeting_id=meeting_id, audio_ref=audio_ref)

        try:
            attachment = await self._artifacts.load(
                audio_ref, display_name=f"Meeting {meeting.title}"
            )
            summary_text = await self._inference.generate(
                build_summary_prompt(meeting), attachment
            )
            tasks = parse_action_items(summary_text)
            saved = await update_meeting(
                self._repository,
                meeting_id,
                lambda current: _apply_summary(current, audio_ref, summary_text, tasks),
            )
        except _AudioReplaced:
            logger.info("summary_superseded", meeting_id=meeting_id, audio_ref=audio_ref)
            return await self._repository.get(meeting_id)
        except Exception as exc:
            return await self._record_failure(meeting_id, audio_ref, exc)

        logger.info(
            "summary_generated",
            meeting_id=meeting_id,
            task_count=len(tasks),
        )
        await self._notifier.create(
            NotificationKind.SUMMARY,
            "Intelligence Extraction Complete",
            f'Session "{saved.title}" has been summarized. '
            f"{len(tasks)} objectives identified.",
            link=summary_link(meeting_id),
            metadata={"meeting_id": meeting_id, "task_count": len(tasks)},
        )
        return saved

    async def _record_failure(
        self, meeting_id: str, audio_ref: str, exc: Exception
    ) -> Meeting:
        error_text = summary_error_text(exc)
        logger.error(
            "summary_generation_failed",
            meeting_id=meeting_id,
            error=str(exc),
            error_type=type(exc).__name__,
            quota=isinstance(exc, InferenceQuotaExceededError),
        )

        recorded = False

        def _mark_failed(current: Meeting) -> Meeting | None:
            nonlocal recorded
            recorded = False
            if current.audio_ref != audio_ref:
                logger.info("summary_failure_superseded", meeting_id=meeting_id)
                return None
            if not can_transition(current.status, MeetingStatus.FAILED):
                # A re-run on a summarized meeting keeps its good summary
                logger.warning(
                    "summary_failure_not_recorded",
                    meeting_id=meeting_id,
                    status=current.status.value,
                )
                return None
            recorded = True
            return current.model_copy(
                update={"summary": error_text, "status": MeetingStatus.FAILED}
            )

        saved = await update_meeting(self._repository, meeting_id, _mark_failed)
        if not recorded:
            return saved
        await self._notifier.create(
            NotificationKind.SYSTEM,
            "Synthesis Protocol Failed",
            f'Summary generation for "{saved.title}" encountered a terminal error.',
            link=summary_link(meeting_id),
            metadata={"meeting_id": meeting_id},
        )
        return saved


def _apply_summary(
    current: Meeting, audio_ref: str, summary_text: str, tasks: list[Task]
) -> Meeting:
    if current.audio_ref != audio_ref:
        raise _AudioReplaced(current.audio_ref)
    validate_transition(current.status, MeetingStatus.SUMMARIZED)
    return current.model_copy(
        update={
            "summary": summary_text,
            "tasks": [t.model_copy() for t in tasks],
            "status": MeetingStatus.SUMMARIZED,
        }
    )
