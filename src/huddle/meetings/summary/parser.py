"""Action item extraction from a generated meeting summary.

The summary is Markdown with numbered ``##`` headings. Only the Action
Items section is parsed: everything after its heading up to the next
heading (or end of text). Each non-empty line is matched against the
contract ``- <description> • Assigned To: <name> • Deadline: <date|None>``;
lines that miss the contract become bare tasks unless they are
parenthetical instructions echoed back by the model.
"""

from __future__ import annotations

import re

import structlog

from src.huddle.meetings.schemas import UNASSIGNED, Task, TaskStatus
from src.huddle.meetings.summary.prompts import ACTION_ITEMS_TITLE
from src.huddle.services.llm import MalformedResponseError

logger = structlog.get_logger(__name__)

NO_DEADLINE = "None"

_HEADING_RE = re.compile(r"^\s*#{1,6}\s*(?P<title>.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_ACTION_ITEM_RE = re.compile(
    r"^\s*(?:[-*•]|\d+[.)])?\s*"
    r"(?P<description>.*?)\s*•\s*"
    r"Assigned To:\s*(?P<assignee>.*?)\s*•\s*"
    r"Deadline:\s*(?P<deadline>.*?)\s*$",
    re.IGNORECASE,
)


def extract_section(text: str, title: str) -> str | None:
    """Return the body of the first heading containing ``title``.

    Args:
        text: Markdown document.
        title: Case-insensitive heading text to look for.

    Returns:
        The lines between that heading and the next one, or None when no
        heading matches.
    """
    lines = text.splitlines()
    needle = title.lower()
    start: int | None = None
    for i, line in enumerate(lines):
        match = _HEADING_RE.match(line)
        if match and needle in match.group("title").lower():
            start = i + 1
            break
    if start is None:
        return None

    body: list[str] = []
    for line in lines[start:]:
        if _HEADING_RE.match(line):
            break
        body.append(line)
    return "\n".join(body)


def parse_action_item(line: str) -> Task | None:
    """Parse one Action Items line into a pending Task.

    Returns:
        A Task, or None when the line carries no task.
    """
    cleaned = line.replace("**", "").strip()
    if not cleaned:
        return None

    match = _ACTION_ITEM_RE.match(cleaned)
    if match:
        description = match.group("description").strip()
        if not description:
            return None
        assignee = match.group("assignee").strip() or UNASSIGNED
        deadline = match.group("deadline").strip()
        return Task(
            description=description,
            assignee=assignee,
            due_date=None if deadline.lower() in ("", NO_DEADLINE.lower()) else deadline,
            status=TaskStatus.PENDING,
        )

    bare = _BULLET_RE.sub("", cleaned).strip()
    if not bare or bare.startswith("("):
        return None
    logger.info("action_item_fallback", line_preview=bare[:80])
    return Task(description=bare, assignee=UNASSIGNED, status=TaskStatus.PENDING)


def parse_action_items(summary_text: str) -> list[Task]:
    """Extract the ordered task list from a generated summary.

    Raises:
        MalformedResponseError: If the summary is empty or has no Action
            Items section.
    """
    if not summary_text or not summary_text.strip():
        raise MalformedResponseError("Summary response was empty")

    section = extract_section(summary_text, ACTION_ITEMS_TITLE)
    if section is None:
        raise MalformedResponseError("Summary response has no Action Items section")

    tasks: list[Task] = []
    for line in section.splitlines():
        task = parse_action_item(line)
        if task is not None:
            tasks.append(task)
    return tasks
