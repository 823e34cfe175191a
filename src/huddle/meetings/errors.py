"""Domain errors for meetings, summaries, and task neutralization.

The HTTP layer maps each class to a status code; the core only raises.
"""

from __future__ import annotations


class MeetingError(Exception):
    """Base class for all meeting domain errors."""


class NotFoundError(MeetingError):
    """Raised when a meeting or a task within a meeting does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class InvalidStateError(MeetingError):
    """Raised when an operation is not valid for the entity's current state."""


class InvalidTransitionError(InvalidStateError):
    """Raised when a meeting status transition violates the transition table."""

    def __init__(self, from_status: str, to_status: str, allowed: set[str]) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid meeting transition: {from_status} -> {to_status}. "
            f"Allowed transitions from {from_status}: "
            f"{', '.join(sorted(allowed)) or 'none'}"
        )


class ConflictError(MeetingError):
    """Raised when a concurrent writer changed the record first."""


class QuotaExceededError(MeetingError):
    """Raised when an actor has used up their neutralization quota."""

    def __init__(self, actor_id: str, limit: int) -> None:
        self.actor_id = actor_id
        self.limit = limit
        super().__init__("Neutralization quota exceeded for this cycle.")


class NeutralizationFailedError(MeetingError):
    """Terminal neutralization failure surfaced to callers.

    ``str(exc)`` is the generic caller-facing message; ``reason`` keeps the
    internal detail that was persisted on the task.
    """

    PUBLIC_MESSAGE = (
        "Intelligence synthesis encountered a terminal error. Please try again."
    )

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(self.PUBLIC_MESSAGE)
