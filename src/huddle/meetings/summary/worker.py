"""Supervised background runner for the summarization pipeline.

Audio attach and lazy status polls submit meeting ids here instead of
spawning detached coroutines. A fixed set of consumer tasks drains an
asyncio.Queue; each job's outcome is logged, and unexpected errors are kept
in ``last_errors`` so they stay observable to the submitter.

A meeting id stays in the in-flight set from submission until its run
finishes, so neither a second submission nor a synchronous ``run_now``
can start an overlapping pipeline run for the same meeting. A submission
with ``rerun=True`` against an in-flight meeting (new audio attached
mid-run) is remembered and queued again as soon as the current run ends.
"""

from __future__ import annotations

import asyncio

import structlog

from src.huddle.meetings.errors import ConflictError
from src.huddle.meetings.schemas import Meeting
from src.huddle.meetings.summary.pipeline import SummarizationPipeline

logger = structlog.get_logger(__name__)


class SummaryWorker:
    """Queue + supervising consumers for pipeline runs.

    Args:
        pipeline: The SummarizationPipeline to execute.
        concurrency: Number of consumer tasks.
    """

    def __init__(self, pipeline: SummarizationPipeline, concurrency: int = 2) -> None:
        self._pipeline = pipeline
        self._concurrency = max(1, concurrency)
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._in_flight: set[str] = set()
        self._running: set[str] = set()
        self._rerun: set[str] = set()
        self._consumers: list[asyncio.Task] = []
        self.last_errors: dict[str, str] = {}

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._consumers)

    async def start(self) -> None:
        if self.running:
            return
        self._consumers = [
            asyncio.create_task(self._consume(i), name=f"summary-worker-{i}")
            for i in range(self._concurrency)
        ]
        logger.info("summary_worker_started", concurrency=self._concurrency)

    async def stop(self) -> None:
        for consumer in self._consumers:
            consumer.cancel()
        await asyncio.gather(*self._consumers, return_exceptions=True)
        self._consumers = []
        logger.info("summary_worker_stopped", pending=self._queue.qsize())

    async def drain(self) -> None:
        """Wait until every submitted job has finished."""
        await self._queue.join()

    # ── Submission ───────────────────────────────────────────────────────

    def is_in_flight(self, meeting_id: str) -> bool:
        return meeting_id in self._in_flight

    def submit(self, meeting_id: str, rerun: bool = False) -> bool:
        """Queue a background run.

        Args:
            meeting_id: Meeting to summarize.
            rerun: When a run is already in flight, run once more after it.

        Returns:
            False when a run for this meeting is already queued or running
            and no follow-up run was requested.
        """
        if meeting_id in self._in_flight:
            if rerun and meeting_id not in self._running:
                # Still queued; that run will read the latest audio
                return True
            if rerun:
                self._rerun.add(meeting_id)
                logger.info("summary_rerun_requested", meeting_id=meeting_id)
                return True
            logger.info("summary_job_already_in_flight", meeting_id=meeting_id)
            return False
        self._in_flight.add(meeting_id)
        self._queue.put_nowait(meeting_id)
        logger.info("summary_job_submitted", meeting_id=meeting_id, queued=self._queue.qsize())
        return True

    async def run_now(self, meeting_id: str) -> Meeting:
        """Run the pipeline in the caller's task, honoring the in-flight guard.

        Raises:
            ConflictError: If a run for this meeting is already in flight.
        """
        if meeting_id in self._in_flight:
            raise ConflictError("Summary generation is already in progress for this meeting")
        self._in_flight.add(meeting_id)
        self._running.add(meeting_id)
        try:
            return await self._pipeline.run(meeting_id)
        finally:
            self._release(meeting_id)

    # ── Consumers ────────────────────────────────────────────────────────

    async def _consume(self, index: int) -> None:
        while True:
            meeting_id = await self._queue.get()
            self._running.add(meeting_id)
            try:
                meeting = await self._pipeline.run(meeting_id)
                self.last_errors.pop(meeting_id, None)
                logger.info(
                    "summary_job_finished",
                    meeting_id=meeting_id,
                    status=meeting.status.value,
                    worker=index,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.last_errors[meeting_id] = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "summary_job_crashed",
                    meeting_id=meeting_id,
                    worker=index,
                    exc_info=True,
                )
            finally:
                self._release(meeting_id)
                self._queue.task_done()

    def _release(self, meeting_id: str) -> None:
        """End a run; requeue it if a rerun was requested meanwhile."""
        self._running.discard(meeting_id)
        if meeting_id in self._rerun:
            self._rerun.discard(meeting_id)
            self._queue.put_nowait(meeting_id)
            logger.info("summary_rerun_queued", meeting_id=meeting_id)
            return
        self._in_flight.discard(meeting_id)
