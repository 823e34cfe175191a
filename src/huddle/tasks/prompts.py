"""Resolution prompt and response schema for task neutralization."""

from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError, field_validator

from src.huddle.meetings.schemas import Task
from src.huddle.services.llm import MalformedResponseError, parse_json_response, sanitize_text

RESOLUTION_SYSTEM_PROMPT = (
    'You are the "Neutral Intelligence Agent". Your mission is to autonomously '
    "resolve an action item from a meeting. Respond with JSON only."
)


class ResolutionPayload(BaseModel):
    """Structured answer expected from the agent."""

    summary: str = ""
    resolution: str = Field(min_length=1)
    confidence: int = 0
    next_steps: list[str] = Field(default_factory=list, alias="nextSteps")

    model_config = {"populate_by_name": True}

    @field_validator("resolution")
    @classmethod
    def _resolution_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("resolution must not be blank")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> int:
        try:
            score = int(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, score))

    @field_validator("next_steps", mode="before")
    @classmethod
    def _coerce_steps(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, (list, tuple)):
            raise ValueError("nextSteps must be a list of strings")
        return [str(step) for step in value]


def build_resolution_prompt(meeting_title: str, task: Task) -> str:
    """Deterministic resolution prompt for one task."""
    return f"""CONTEXT:
Meeting Title: {sanitize_text(meeting_title)}
Task: {sanitize_text(task.description)}
Assigned To: {sanitize_text(task.assignee)}

INSTRUCTIONS:
1. Solve the task or provide a high-quality draft/workflow to complete it.
2. Provide a "Confidence Score" (0-100) based on how complete your solution is.
3. Suggest "Next Steps" if any work remains.

FORMAT YOUR RESPONSE AS JSON:
{{
  "summary": "Clear executive summary of what you did",
  "resolution": "The actual draft/code/solution",
  "confidence": 85,
  "nextSteps": ["Step 1", "Step 2"]
}}"""


def parse_resolution(text: str) -> ResolutionPayload:
    """Validate the agent's answer.

    Raises:
        MalformedResponseError: If the answer is not the requested JSON shape.
    """
    data = parse_json_response(text)
    try:
        return ResolutionPayload.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"Resolution response failed validation: {exc}") from exc
