"""Prompt for audio-to-summary generation.

The six sections are numbered Markdown headings in a fixed order; the
Action Items section carries a literal per-line contract that the parser
relies on.
"""

from __future__ import annotations

from src.huddle.meetings.schemas import Meeting
from src.huddle.services.llm import sanitize_text

SECTION_TITLES: tuple[str, ...] = (
    "Meeting Overview",
    "Key Discussion Points",
    "Decisions Taken",
    "Action Items",
    "Deadlines / Timeline",
    "Conclusion",
)
ACTION_ITEMS_TITLE = "Action Items"
ACTION_ITEM_LINE_FORMAT = "- Task Description • Assigned To: Name • Deadline: Date/Time"

_SECTION_GUIDANCE: dict[str, str] = {
    "Meeting Overview": (
        "(Include strictly: Title, Date, Participants (if mentioned in audio), "
        "and Purpose of the meeting)"
    ),
    "Key Discussion Points": (
        "(Provide a concise summary of the main topics discussed. "
        "Use bullet points and short paragraphs.)"
    ),
    "Decisions Taken": "(List the final conclusions and decisions made during the meeting.)",
    "Action Items": (
        f"(List the tasks clearly. Format each line exactly as: {ACTION_ITEM_LINE_FORMAT})\n"
        '(If no assignee or deadline is mentioned, write "Unassigned" or "None" respectively)'
    ),
    "Deadlines / Timeline": "(Highlight important dates and milestones mentioned)",
    "Conclusion": "(A brief wrapping up of the meeting outcomes)",
}


def section_heading(index: int, title: str) -> str:
    return f"## {index}. {title}"


def build_summary_prompt(meeting: Meeting) -> str:
    """Build the summarization prompt for a meeting.

    Same meeting fields always produce the same prompt.
    """
    meeting_date = meeting.date.strftime("%a %b %d %Y") if meeting.date else "Not specified"
    meeting_time = meeting.date.strftime("%I:%M %p %Z").strip() if meeting.date else "Not specified"
    description = sanitize_text(meeting.description) or "No description provided"

    sections = "\n\n".join(
        f"{section_heading(i, title)}\n{_SECTION_GUIDANCE[title]}"
        for i, title in enumerate(SECTION_TITLES, start=1)
    )

    return (
        "You are an AI meeting assistant. Your goal is to provide a modern, clear, "
        "and professional summary of the attached meeting recording.\n"
        "Use simple English, clean formatting, and bold headings. "
        "Keep it easy to read and focus on clarity.\n\n"
        f"Meeting Title: {sanitize_text(meeting.title)}\n"
        f"Meeting Description: {description}\n"
        f"Date: {meeting_date}\n"
        f"Time: {meeting_time}\n\n"
        "Please structure your response exactly with these sections "
        "(using Markdown), in this order, with these exact headings:\n\n"
        f"{sections}\n\n"
        "Ensure the tone is professional but friendly. "
        "Avoid clutter and unnecessary text.\n"
        "Use proper spacing between sections."
    )
