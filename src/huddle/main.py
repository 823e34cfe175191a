"""FastAPI application factory.

Creates the app with logging middleware, CORS, lifespan wiring of the
meeting components onto ``app.state``, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.huddle.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.huddle.api.v1.router import router as v1_router
from src.huddle.config import Settings, get_settings
from src.huddle.core.database import close_db, get_session, init_db
from src.huddle.core.redis import close_redis, get_redis_pool
from src.huddle.tasks.quota import InMemoryQuotaLimiter, QuotaLimiter, RedisQuotaLimiter

log = structlog.get_logger(__name__)


async def build_quota_limiter(settings: Settings) -> QuotaLimiter:
    """Redis-backed quota when Redis answers, otherwise the in-process fallback."""
    if settings.REDIS_URL:
        try:
            redis = get_redis_pool()
            await redis.ping()
            log.info("quota.redis_limiter_initialized")
            return RedisQuotaLimiter(
                redis,
                limit=settings.NEUTRALIZE_QUOTA_LIMIT,
                window_seconds=settings.NEUTRALIZE_QUOTA_WINDOW_SECONDS,
            )
        except Exception:
            log.warning("quota.redis_unavailable_using_memory", exc_info=True)
    return InMemoryQuotaLimiter(
        limit=settings.NEUTRALIZE_QUOTA_LIMIT,
        window_seconds=settings.NEUTRALIZE_QUOTA_WINDOW_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and meeting components, stop them on shutdown."""
    settings = get_settings()
    configure_structlog()

    try:
        await init_db()
    except Exception:
        log.warning("database.init_failed", exc_info=True)

    # ── Events: notifications and audit log ──────────────────────────────
    try:
        from src.huddle.events.activity import ActivityLogRepository
        from src.huddle.events.notifications import NotificationRepository, Notifier

        app.state.notification_repository = NotificationRepository(session_factory=get_session)
        app.state.activity_log = ActivityLogRepository(session_factory=get_session)
        app.state.notifier = Notifier(app.state.notification_repository)
        log.info("events.initialized")
    except Exception:
        log.warning("events.init_failed", exc_info=True)
        app.state.notification_repository = None
        app.state.activity_log = None
        app.state.notifier = None

    # ── Meetings: repository, artifacts, summary pipeline ────────────────
    try:
        from src.huddle.events.notifications import Notifier
        from src.huddle.meetings.artifacts import AudioArtifactStore
        from src.huddle.meetings.assistant import MeetingAssistant
        from src.huddle.meetings.intake import EmailIntakeService
        from src.huddle.meetings.lifecycle import MeetingLifecycleController
        from src.huddle.meetings.repository import MeetingRepository
        from src.huddle.meetings.summary.pipeline import SummarizationPipeline
        from src.huddle.meetings.summary.worker import SummaryWorker
        from src.huddle.services.llm import get_inference_service

        meeting_repo = MeetingRepository(session_factory=get_session)
        inference = get_inference_service()
        artifact_store = AudioArtifactStore(settings.UPLOAD_DIR)
        notifier = getattr(app.state, "notifier", None) or Notifier(None)

        pipeline = SummarizationPipeline(
            repository=meeting_repo,
            inference=inference,
            artifacts=artifact_store,
            notifier=notifier,
        )
        worker = SummaryWorker(pipeline)
        await worker.start()

        app.state.meeting_repository = meeting_repo
        app.state.inference_service = inference
        app.state.artifact_store = artifact_store
        app.state.summary_worker = worker
        app.state.meeting_controller = MeetingLifecycleController(meeting_repo, worker)
        app.state.meeting_assistant = MeetingAssistant(
            meeting_repo,
            inference,
            max_summary_chars=settings.CHAT_SUMMARY_MAX_CHARS,
        )
        app.state.email_intake = EmailIntakeService(meeting_repo, inference)
        log.info("meetings.initialized", inference_available=inference.available)
    except Exception as exc:
        log.warning("meetings.init_failed", error=str(exc), exc_info=True)
        app.state.meeting_repository = None
        app.state.inference_service = None
        app.state.artifact_store = None
        app.state.summary_worker = None
        app.state.meeting_controller = None
        app.state.meeting_assistant = None
        app.state.email_intake = None

    # ── Tasks: neutralization engine ─────────────────────────────────────
    try:
        from src.huddle.tasks.engine import TaskNeutralizationEngine

        if app.state.meeting_repository is None or app.state.activity_log is None:
            raise RuntimeError("meeting repository and activity log are required")

        app.state.neutralization_engine = TaskNeutralizationEngine(
            repository=app.state.meeting_repository,
            inference=app.state.inference_service,
            quota=await build_quota_limiter(settings),
            activity_log=app.state.activity_log,
            notifier=app.state.notifier,
            timeout=settings.NEUTRALIZE_TIMEOUT_SECONDS,
            max_attempts=settings.NEUTRALIZE_MAX_ATTEMPTS,
        )
        log.info("tasks.neutralization_engine_initialized")
    except Exception as exc:
        log.warning("tasks.neutralization_engine_init_failed", error=str(exc))
        app.state.neutralization_engine = None

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    worker = getattr(app.state, "summary_worker", None)
    if worker is not None:
        await worker.stop()

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Huddle API",
        version="0.1.0",
        description="Meeting lifecycle, audio summarization, and autonomous task resolution",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (outermost -- logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    return app


# Module-level app for uvicorn
app = create_app()
