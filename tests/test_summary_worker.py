"""Tests for SummaryWorker queueing, in-flight guard, and supervision."""

from __future__ import annotations

import asyncio

import pytest

from src.huddle.meetings.errors import ConflictError
from src.huddle.meetings.schemas import Meeting, MeetingStatus
from src.huddle.meetings.summary.worker import SummaryWorker


class FakePipeline:
    """Records runs; ``gate`` blocks each run until set."""

    def __init__(self) -> None:
        self.runs: list[str] = []
        self.gate = asyncio.Event()
        self.gate.set()
        self.error: Exception | None = None

    async def run(self, meeting_id: str) -> Meeting:
        self.runs.append(meeting_id)
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return Meeting(id=meeting_id, title="t", status=MeetingStatus.SUMMARIZED)


@pytest.fixture
async def worker_and_pipeline():
    pipeline = FakePipeline()
    worker = SummaryWorker(pipeline, concurrency=2)
    await worker.start()
    yield worker, pipeline
    await worker.stop()


class TestSummaryWorker:

    async def test_submit_runs_in_background(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline

        assert worker.submit("m-1") is True
        await asyncio.wait_for(worker.drain(), timeout=1)

        assert pipeline.runs == ["m-1"]
        assert not worker.is_in_flight("m-1")

    async def test_duplicate_submit_while_in_flight(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline
        pipeline.gate.clear()

        assert worker.submit("m-1") is True
        assert worker.submit("m-1") is False
        assert worker.is_in_flight("m-1")

        pipeline.gate.set()
        await asyncio.wait_for(worker.drain(), timeout=1)
        assert pipeline.runs == ["m-1"]
        assert worker.submit("m-1") is True
        await asyncio.wait_for(worker.drain(), timeout=1)

    async def test_run_now_conflicts_with_background_run(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline
        pipeline.gate.clear()
        worker.submit("m-1")

        with pytest.raises(ConflictError):
            await worker.run_now("m-1")

        pipeline.gate.set()
        await asyncio.wait_for(worker.drain(), timeout=1)

    async def test_run_now_returns_result_and_clears_guard(self, worker_and_pipeline):
        worker, _ = worker_and_pipeline

        meeting = await worker.run_now("m-2")

        assert meeting.status == MeetingStatus.SUMMARIZED
        assert not worker.is_in_flight("m-2")

    async def test_crash_is_recorded_and_worker_survives(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline
        pipeline.error = RuntimeError("boom")

        worker.submit("m-1")
        await asyncio.wait_for(worker.drain(), timeout=1)

        assert "boom" in worker.last_errors["m-1"]
        assert worker.running

        pipeline.error = None
        worker.submit("m-1")
        await asyncio.wait_for(worker.drain(), timeout=1)
        assert "m-1" not in worker.last_errors

    async def test_rerun_requested_while_running(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline
        pipeline.gate.clear()
        worker.submit("m-1")
        while not pipeline.runs:
            await asyncio.sleep(0)

        assert worker.submit("m-1", rerun=True) is True

        pipeline.gate.set()
        await asyncio.wait_for(worker.drain(), timeout=1)
        assert pipeline.runs == ["m-1", "m-1"]
        assert not worker.is_in_flight("m-1")

    async def test_rerun_for_queued_job_runs_once(self):
        pipeline = FakePipeline()
        worker = SummaryWorker(pipeline)
        worker.submit("m-1")

        assert worker.submit("m-1", rerun=True) is True

        await worker.start()
        await asyncio.wait_for(worker.drain(), timeout=1)
        await worker.stop()
        assert pipeline.runs == ["m-1"]

    async def test_rerun_after_run_now_is_queued(self, worker_and_pipeline):
        worker, pipeline = worker_and_pipeline
        pipeline.gate.clear()
        direct = asyncio.create_task(worker.run_now("m-3"))
        while not pipeline.runs:
            await asyncio.sleep(0)

        worker.submit("m-3", rerun=True)
        pipeline.gate.set()
        await direct
        await asyncio.wait_for(worker.drain(), timeout=1)

        assert pipeline.runs == ["m-3", "m-3"]

    async def test_stop_cancels_consumers(self):
        worker = SummaryWorker(FakePipeline())
        await worker.start()
        assert worker.running

        await worker.stop()

        assert not worker.running
