"""Tests for MeetingLifecycleController.

Status transitions run against the in-memory repository with a mocked
worker; summary triggers use the real pipeline behind a real worker so
cache hits can be checked against inference call counts.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from src.huddle.meetings.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from src.huddle.meetings.lifecycle import MANUAL_RESOLUTION_OUTPUT, MeetingLifecycleController
from src.huddle.meetings.schemas import (
    MeetingCreate,
    MeetingStatus,
    SummaryState,
    Task,
    TaskCreate,
    TaskStatus,
)
from src.huddle.meetings.summary.pipeline import SummarizationPipeline
from src.huddle.meetings.summary.worker import SummaryWorker


@pytest.fixture
def worker() -> MagicMock:
    mock = MagicMock()
    mock.submit = MagicMock(return_value=True)
    mock.run_now = AsyncMock()
    return mock


@pytest.fixture
def controller(repo, worker) -> MeetingLifecycleController:
    return MeetingLifecycleController(repo, worker)


class TestMeetingTransitions:

    async def test_create_meeting_is_scheduled(self, controller):
        meeting = await controller.create_meeting(MeetingCreate(title="Standup"))

        assert meeting.status == MeetingStatus.SCHEDULED
        assert (await controller.get_meeting(meeting.id)).title == "Standup"

    async def test_join_then_end(self, controller, make_meeting):
        meeting = make_meeting()

        live = await controller.join(meeting.id)
        ended = await controller.end(meeting.id)

        assert live.status == MeetingStatus.LIVE
        assert ended.status == MeetingStatus.ENDED
        assert ended.ended_at is not None

    async def test_scheduled_can_end_directly(self, controller, make_meeting):
        meeting = make_meeting()

        ended = await controller.end(meeting.id)

        assert ended.status == MeetingStatus.ENDED

    async def test_join_after_end_is_rejected(self, controller, make_meeting):
        meeting = make_meeting(status=MeetingStatus.ENDED)

        with pytest.raises(InvalidTransitionError):
            await controller.join(meeting.id)

    async def test_join_is_idempotent(self, controller, repo, make_meeting):
        meeting = make_meeting(status=MeetingStatus.LIVE)

        await controller.join(meeting.id)

        assert repo.save_calls == 0

    async def test_unknown_meeting(self, controller):
        with pytest.raises(NotFoundError):
            await controller.join("missing")

    async def test_set_ai_permission(self, controller, make_meeting):
        meeting = make_meeting()

        updated = await controller.set_ai_permission(meeting.id, True)

        assert updated.allow_ai is True
        assert updated.ai_joined is True


class TestAttachAudio:

    async def test_attach_audio_ends_and_queues(self, controller, worker, make_meeting):
        meeting = make_meeting(status=MeetingStatus.LIVE)

        updated = await controller.attach_audio(meeting.id, "meetings/a.webm")

        assert updated.status == MeetingStatus.ENDED
        assert updated.audio_ref == "meetings/a.webm"
        assert updated.ended_at is not None
        worker.submit.assert_called_once_with(meeting.id, rerun=True)

    async def test_reattach_on_summarized_meeting(self, controller, make_meeting):
        meeting = make_meeting(status=MeetingStatus.SUMMARIZED, summary="## ok")

        updated = await controller.attach_audio(meeting.id, "meetings/b.webm")

        assert updated.status == MeetingStatus.ENDED
        assert updated.summary == ""

    async def test_reattach_then_lost_job_is_lazily_resubmitted(
        self, controller, worker, make_meeting
    ):
        meeting = make_meeting(
            status=MeetingStatus.SUMMARIZED, summary="## ok", audio_ref="meetings/a.webm"
        )
        await controller.attach_audio(meeting.id, "meetings/b.webm")

        result = await controller.get_summary_status(meeting.id)

        assert result.status == SummaryState.PROCESSING
        assert worker.submit.call_args_list == [call(meeting.id, rerun=True), call(meeting.id)]


class TestSummaryStatus:

    async def test_ready(self, controller, make_meeting):
        meeting = make_meeting(status=MeetingStatus.SUMMARIZED, summary="## Summary")

        result = await controller.get_summary_status(meeting.id)

        assert result.status == SummaryState.READY
        assert result.payload["summary"] == "## Summary"
        assert result.payload["meeting_title"] == meeting.title

    async def test_failed(self, controller, worker, make_meeting):
        meeting = make_meeting(
            status=MeetingStatus.FAILED,
            audio_ref="meetings/a.webm",
            summary="Error generating summary: boom",
        )

        result = await controller.get_summary_status(meeting.id)

        assert result.status == SummaryState.FAILED
        assert "boom" in result.payload["error"]
        worker.submit.assert_not_called()

    async def test_processing_lazily_submits(self, controller, worker, make_meeting):
        meeting = make_meeting(status=MeetingStatus.ENDED, audio_ref="meetings/a.webm")

        result = await controller.get_summary_status(meeting.id)

        assert result.status == SummaryState.PROCESSING
        worker.submit.assert_called_once_with(meeting.id)

    async def test_processing_without_audio_does_not_submit(
        self, controller, worker, make_meeting
    ):
        meeting = make_meeting(status=MeetingStatus.ENDED)

        result = await controller.get_summary_status(meeting.id)

        assert result.status == SummaryState.PROCESSING
        worker.submit.assert_not_called()

    async def test_not_started_messages(self, controller, make_meeting):
        scheduled = make_meeting()
        live = make_meeting(status=MeetingStatus.LIVE)

        scheduled_status = await controller.get_summary_status(scheduled.id)
        live_status = await controller.get_summary_status(live.id)

        assert scheduled_status.status == SummaryState.NOT_STARTED
        assert live_status.status == SummaryState.NOT_STARTED
        assert scheduled_status.payload["message"] != live_status.payload["message"]
        assert "live" in live_status.payload["message"]


class TestTriggerSummary:

    @pytest.fixture
    async def real_worker(self, repo, inference, artifacts, notifier):
        worker = SummaryWorker(SummarizationPipeline(repo, inference, artifacts, notifier))
        await worker.start()
        yield worker
        await worker.stop()

    @pytest.fixture
    def real_controller(self, repo, real_worker) -> MeetingLifecycleController:
        return MeetingLifecycleController(repo, real_worker)

    async def test_second_trigger_is_cached(
        self, real_controller, repo, inference, artifacts, make_meeting
    ):
        meeting = make_meeting(status=MeetingStatus.ENDED)
        repo.meetings[meeting.id].audio_ref = await artifacts.save(meeting.id, b"a", "a.webm")

        first = await real_controller.trigger_summary(meeting.id)
        second = await real_controller.trigger_summary(meeting.id)

        assert first.cached is False
        assert first.status == MeetingStatus.SUMMARIZED
        assert first.task_count == 3
        assert second.cached is True
        assert second.summary == first.summary
        assert inference.generate.await_count == 1

    async def test_trigger_without_audio(self, real_controller, make_meeting):
        meeting = make_meeting(status=MeetingStatus.ENDED)

        with pytest.raises(InvalidStateError):
            await real_controller.trigger_summary(meeting.id)

    async def test_trigger_reports_failure(
        self, real_controller, repo, inference, artifacts, make_meeting
    ):
        meeting = make_meeting(status=MeetingStatus.ENDED)
        repo.meetings[meeting.id].audio_ref = await artifacts.save(meeting.id, b"a", "a.webm")
        inference.generate.side_effect = RuntimeError("provider down")

        result = await real_controller.trigger_summary(meeting.id)

        assert result.status == MeetingStatus.FAILED
        assert result.summary.startswith("Error")

    async def test_audio_replaced_mid_run_is_summarized(
        self, real_controller, real_worker, repo, inference, artifacts, make_meeting
    ):
        meeting = make_meeting(status=MeetingStatus.LIVE)
        first_run_started = asyncio.Event()
        release = asyncio.Event()
        heard: list[bytes] = []

        async def gated_generate(prompt, attachment=None, **kwargs):
            heard.append(attachment.data)
            if len(heard) == 1:
                first_run_started.set()
                await release.wait()
                return "## Summary of the first recording"
            return "## Summary of the second recording"

        inference.generate.side_effect = gated_generate

        first_ref = await artifacts.save(meeting.id, b"AUDIO-A", "a.webm")
        await real_controller.attach_audio(meeting.id, first_ref)
        await first_run_started.wait()
        second_ref = await artifacts.save(meeting.id, b"AUDIO-B", "b.ogg")
        await real_controller.attach_audio(meeting.id, second_ref)
        release.set()
        await real_worker.drain()

        assert heard == [b"AUDIO-A", b"AUDIO-B"]
        stored = repo.meetings[meeting.id]
        assert stored.audio_ref == second_ref
        assert stored.status == MeetingStatus.SUMMARIZED
        assert stored.summary == "## Summary of the second recording"
        status = await real_controller.get_summary_status(meeting.id)
        assert status.status == SummaryState.READY


class TestTasks:

    async def test_add_task(self, controller, repo, make_meeting):
        meeting = make_meeting()

        task = await controller.add_task(
            meeting.id, TaskCreate(description="Write notes", assignee="Ana")
        )

        stored = await repo.get(meeting.id)
        assert stored.tasks[-1].id == task.id
        assert task.status == TaskStatus.PENDING

    async def test_manual_done_sets_output(self, controller, make_meeting):
        task = Task(description="Ship it")
        meeting = make_meeting(tasks=[task])

        updated = await controller.update_task_status(meeting.id, task.id, TaskStatus.DONE)

        assert updated.status == TaskStatus.DONE
        assert updated.agent_output == MANUAL_RESOLUTION_OUTPUT

    async def test_manual_cannot_set_neutralizing(self, controller, make_meeting):
        task = Task(description="Ship it")
        meeting = make_meeting(tasks=[task])

        with pytest.raises(InvalidStateError):
            await controller.update_task_status(meeting.id, task.id, TaskStatus.NEUTRALIZING)

    async def test_manual_cannot_reopen_done(self, controller, make_meeting):
        task = Task(description="Ship it", status=TaskStatus.DONE, agent_output="done")
        meeting = make_meeting(tasks=[task])

        with pytest.raises(InvalidStateError):
            await controller.update_task_status(meeting.id, task.id, TaskStatus.PENDING)

    async def test_manual_cannot_touch_neutralizing_task(self, controller, make_meeting):
        task = Task(description="Ship it", status=TaskStatus.NEUTRALIZING)
        meeting = make_meeting(tasks=[task])

        with pytest.raises(InvalidStateError):
            await controller.update_task_status(meeting.id, task.id, TaskStatus.FAILED)

    async def test_unknown_task(self, controller, make_meeting):
        meeting = make_meeting()

        with pytest.raises(NotFoundError):
            await controller.update_task_status(meeting.id, "nope", TaskStatus.DONE)

    async def test_list_tasks_flattens(self, controller, make_meeting):
        make_meeting(title="A", tasks=[Task(description="a1"), Task(description="a2")])
        make_meeting(title="B", tasks=[Task(description="b1")])

        views = await controller.list_tasks()

        assert sorted(v.description for v in views) == ["a1", "a2", "b1"]
        assert {v.meeting_title for v in views} == {"A", "B"}
