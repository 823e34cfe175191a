"""Side-channel records for meeting and task outcomes.

Exports:
    ActivityLogRepository: Append-only neutralization audit store.
    record_activity: Tolerant audit append (logs instead of raising).
    NotificationRepository: Inbox storage.
    Notifier: Fire-and-forget notification emitter.
"""

from __future__ import annotations

from src.huddle.events.activity import ActivityLogRepository, record_activity
from src.huddle.events.notifications import NotificationRepository, Notifier

__all__ = [
    "ActivityLogRepository",
    "NotificationRepository",
    "Notifier",
    "record_activity",
]
