"""Meeting status transition rules.

Maps each status to the set of statuses it can move TO. A transition to
the same status is always allowed (no-op).
"""

from __future__ import annotations

from src.huddle.meetings.errors import InvalidTransitionError
from src.huddle.meetings.schemas import MeetingStatus

VALID_TRANSITIONS: dict[MeetingStatus, set[MeetingStatus]] = {
    MeetingStatus.SCHEDULED: {MeetingStatus.LIVE, MeetingStatus.ENDED},
    MeetingStatus.LIVE: {MeetingStatus.ENDED},
    MeetingStatus.ENDED: {MeetingStatus.SUMMARIZED, MeetingStatus.FAILED},
    # Failed is recoverable: re-trigger the pipeline or re-attach audio
    MeetingStatus.FAILED: {MeetingStatus.SUMMARIZED, MeetingStatus.ENDED},
    # Re-attaching audio restarts summarization
    MeetingStatus.SUMMARIZED: {MeetingStatus.ENDED},
}


def can_transition(from_status: MeetingStatus, to_status: MeetingStatus) -> bool:
    return from_status == to_status or to_status in VALID_TRANSITIONS.get(from_status, set())


def validate_transition(from_status: MeetingStatus, to_status: MeetingStatus) -> None:
    """Validate that a meeting status transition is allowed.

    Raises:
        InvalidTransitionError: If transition is not allowed.
    """
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(
            from_status.value,
            to_status.value,
            {s.value for s in VALID_TRANSITIONS.get(from_status, set())},
        )
