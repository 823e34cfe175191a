"""Email intake -- decide from an email whether a meeting is needed.

The model answers with a JSON decision; when a meeting is required it is
created as ``scheduled`` with AI participation allowed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from src.huddle.meetings.schemas import Meeting, MeetingCreate
from src.huddle.services.llm import (
    InferenceService,
    MalformedResponseError,
    parse_json_response,
    sanitize_text,
)

logger = structlog.get_logger(__name__)

DEFAULT_EMAIL_TITLE = "Email Generated Meeting"
NO_MEETING_MESSAGE = "No meeting detected in this email."


class MeetingCreator(Protocol):
    async def create(self, data: MeetingCreate) -> Meeting: ...


class EmailIntakeRequest(BaseModel):
    email_content: str = Field(min_length=1, alias="emailContent")

    model_config = {"populate_by_name": True}


class MeetingDecision(BaseModel):
    """Model answer for one email."""

    meeting_required: bool = Field(default=False, alias="meetingRequired")
    title: str | None = None
    description: str | None = None
    recommended_date_time: str | None = Field(default=None, alias="recommendedDateTime")
    participants: list[str] = Field(default_factory=list)
    reason: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("meeting_required", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return value is True or (isinstance(value, str) and value.strip().lower() == "true")

    @field_validator("participants", mode="before")
    @classmethod
    def _coerce_participants(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        return [str(p) for p in value]


class IntakeResult(BaseModel):
    meeting_created: bool
    message: str
    meeting_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


def build_intake_prompt(email_content: str, now: datetime) -> str:
    return f'''You are an AI assistant for a meeting scheduling application.

Carefully analyze the email below.

Current Time: {now.isoformat()}

A meeting IS REQUIRED if the email includes:
- phrases like "let's meet", "schedule a meeting", "schedule a call"
- discussion requests
- suggested date, time, or participants

If a meeting is required, respond ONLY in valid JSON:

{{
  "meetingRequired": true,
  "title": "string",
  "description": "string",
  "recommendedDateTime": "string (ISO 8601 format)",
  "participants": []
}}

If a meeting is NOT required, respond ONLY in valid JSON:

{{
  "meetingRequired": false,
  "reason": "string"
}}

Rules:
- NO explanations
- NO markdown
- NO extra text

Email:
"""{sanitize_text(email_content)}"""'''


def parse_recommended_date(value: str | None, fallback: datetime) -> datetime:
    """ISO 8601 date from the model, or ``fallback`` when absent or unparseable."""
    if not value:
        return fallback
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("intake_date_unparseable", value=value)
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EmailIntakeService:
    """Turns meeting requests found in email into scheduled meetings.

    Args:
        repository: Anything with ``create(MeetingCreate)``.
        inference: Inference capability.
    """

    def __init__(self, repository: MeetingCreator, inference: InferenceService) -> None:
        self._repository = repository
        self._inference = inference

    async def process(self, email_content: str) -> IntakeResult:
        """Analyze one email and create a meeting when one is required.

        Raises:
            MalformedResponseError: The decision could not be decoded.
            InferenceError: The inference call failed.
        """
        now = datetime.now(timezone.utc)
        text = await self._inference.generate(build_intake_prompt(email_content, now))
        try:
            decision = MeetingDecision.model_validate(parse_json_response(text))
        except ValidationError as exc:
            raise MalformedResponseError(f"Intake decision failed validation: {exc}") from exc

        if not decision.meeting_required:
            logger.info("intake_no_meeting", reason=decision.reason)
            return IntakeResult(
                meeting_created=False,
                message=decision.reason or NO_MEETING_MESSAGE,
            )

        meeting = await self._repository.create(
            MeetingCreate(
                title=decision.title or DEFAULT_EMAIL_TITLE,
                description=decision.description or "",
                date=parse_recommended_date(decision.recommended_date_time, now),
                allow_ai=True,
                participants=decision.participants,
            )
        )
        logger.info("intake_meeting_created", meeting_id=meeting.id)
        return IntakeResult(
            meeting_created=True,
            message="Meeting generated successfully",
            meeting_id=meeting.id,
            details={
                "title": meeting.title,
                "description": meeting.description,
                "date": meeting.date.isoformat(),
                "participants": meeting.participants,
            },
        )
