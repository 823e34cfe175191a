"""Meeting assistant -- answers questions grounded in a finished summary."""

from __future__ import annotations

from typing import Literal

import structlog
from pydantic import BaseModel, Field

from src.huddle.meetings.errors import InvalidStateError
from src.huddle.meetings.repository import MeetingStore
from src.huddle.services.llm import InferenceService, sanitize_text

logger = structlog.get_logger(__name__)

DEFAULT_MAX_SUMMARY_CHARS = 50_000
TRUNCATION_MARKER = "...[Truncated]"
SUMMARY_NOT_READY_MESSAGE = (
    "Meeting summary is not ready yet. Please wait for the summary to be generated."
)
ASSISTANT_ACK = "Understood. I am ready to answer questions about the meeting summary."


class ChatTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    history: list[ChatTurn] = Field(default_factory=list)


def truncate_summary(summary: str, max_chars: int) -> str:
    if len(summary) <= max_chars:
        return summary
    return summary[:max_chars] + TRUNCATION_MARKER


def build_assistant_system_prompt(summary: str) -> str:
    return f"""You are a helpful and intelligent AI Meeting Assistant defined by the meeting summary below.

CONTEXT (MEETING SUMMARY):
{summary}

INSTRUCTIONS:
1. Answer the user's questions clearly based ONLY on the meeting summary provided above.
2. If the answer is not in the summary, politely say you don't have that information from this meeting.
3. Be professional, concise, and friendly.
4. You are chatting with a participant of the meeting.

Keep your answers direct. Use bullet points for lists if needed."""


class MeetingAssistant:
    """Chat over a meeting's summary.

    Args:
        repository: Meeting store used to read the summary.
        inference: Inference capability.
        max_summary_chars: Summary is cut to this length before prompting.
    """

    def __init__(
        self,
        repository: MeetingStore,
        inference: InferenceService,
        max_summary_chars: int = DEFAULT_MAX_SUMMARY_CHARS,
    ) -> None:
        self._repository = repository
        self._inference = inference
        self._max_summary_chars = max_summary_chars

    async def chat(self, meeting_id: str, request: ChatRequest) -> str:
        """Answer one message.

        Raises:
            NotFoundError: Unknown meeting.
            InvalidStateError: The meeting has no usable summary yet.
            InferenceError: The inference call failed.
        """
        meeting = await self._repository.get(meeting_id)
        if not meeting.has_summary:
            raise InvalidStateError(SUMMARY_NOT_READY_MESSAGE)

        summary = truncate_summary(meeting.summary, self._max_summary_chars)
        history = [
            {"role": "assistant", "content": ASSISTANT_ACK},
            *(
                {
                    "role": "assistant" if turn.role == "model" else "user",
                    "content": sanitize_text(turn.text),
                }
                for turn in request.history
            ),
        ]
        reply = await self._inference.generate(
            sanitize_text(request.message),
            system=build_assistant_system_prompt(summary),
            history=history,
            max_tokens=1000,
            temperature=0.4,
        )
        logger.info(
            "assistant_replied",
            meeting_id=meeting_id,
            history_turns=len(request.history),
            truncated=len(meeting.summary) > self._max_summary_chars,
        )
        return reply
