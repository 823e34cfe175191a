"""Tests for summary prompt construction and Action Items parsing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.huddle.meetings.schemas import UNASSIGNED, Meeting, TaskStatus
from src.huddle.meetings.summary.parser import (
    extract_section,
    parse_action_item,
    parse_action_items,
)
from src.huddle.meetings.summary.prompts import (
    ACTION_ITEM_LINE_FORMAT,
    SECTION_TITLES,
    build_summary_prompt,
)
from src.huddle.services.llm import MalformedResponseError


class TestParseActionItem:
    """Single-line parsing against the action item contract."""

    def test_full_line(self):
        task = parse_action_item("- Draft budget • Assigned To: Ana • Deadline: Friday")
        assert task is not None
        assert task.description == "Draft budget"
        assert task.assignee == "Ana"
        assert task.due_date == "Friday"
        assert task.status == TaskStatus.PENDING

    def test_unassigned_and_no_deadline(self):
        task = parse_action_item("- Call vendor • Assigned To: Unassigned • Deadline: None")
        assert task is not None
        assert task.assignee == UNASSIGNED
        assert task.due_date is None

    def test_empty_assignee_defaults_to_unassigned(self):
        task = parse_action_item("- Call vendor • Assigned To:  • Deadline: 2026-11-01")
        assert task is not None
        assert task.assignee == UNASSIGNED
        assert task.due_date == "2026-11-01"

    def test_bold_markers_are_stripped(self):
        task = parse_action_item("- **Ship release** • Assigned To: **Ben** • Deadline: Monday")
        assert task is not None
        assert task.description == "Ship release"
        assert task.assignee == "Ben"

    def test_numbered_bullet(self):
        task = parse_action_item("2. Review contract • Assigned To: Cy • Deadline: None")
        assert task is not None
        assert task.description == "Review contract"

    def test_case_insensitive_labels(self):
        task = parse_action_item("- Review • assigned to: Dee • deadline: none")
        assert task is not None
        assert task.assignee == "Dee"

    def test_bare_line_fallback(self):
        task = parse_action_item("Follow up with legal")
        assert task is not None
        assert task.description == "Follow up with legal"
        assert task.assignee == UNASSIGNED
        assert task.due_date is None

    def test_bare_bullet_is_stripped(self):
        task = parse_action_item("* Book the offsite venue")
        assert task is not None
        assert task.description == "Book the offsite venue"

    def test_parenthetical_instruction_skipped(self):
        assert parse_action_item('(If no assignee is mentioned, write "Unassigned")') is None

    def test_blank_line_skipped(self):
        assert parse_action_item("   ") is None

    def test_each_task_gets_a_fresh_id(self):
        a = parse_action_item("- A • Assigned To: X • Deadline: None")
        b = parse_action_item("- A • Assigned To: X • Deadline: None")
        assert a.id != b.id


class TestParseActionItems:
    """Section location and whole-summary parsing."""

    def test_sample_summary_in_order(self, sample_summary):
        tasks = parse_action_items(sample_summary)
        assert [t.description for t in tasks] == [
            "Draft the Q3 budget",
            "Call the vendor",
            "Book the offsite venue",
        ]
        assert tasks[0].assignee == "Ana"
        assert tasks[1].assignee == UNASSIGNED
        assert tasks[1].due_date is None

    def test_section_stops_at_next_heading(self, sample_summary):
        tasks = parse_action_items(sample_summary)
        assert all("Budget due Friday" not in t.description for t in tasks)

    def test_section_at_end_of_text(self):
        text = "## 4. Action Items\n- Last one • Assigned To: Eve • Deadline: None"
        tasks = parse_action_items(text)
        assert len(tasks) == 1
        assert tasks[0].assignee == "Eve"

    def test_empty_section_yields_no_tasks(self):
        text = "## 4. Action Items\n\n## 5. Deadlines / Timeline\n- none"
        assert parse_action_items(text) == []

    def test_missing_section_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_action_items("## 1. Meeting Overview\nNothing else here")

    def test_empty_response_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_action_items("   ")

    def test_extract_section_returns_none_when_absent(self):
        assert extract_section("no headings at all", "Action Items") is None


class TestBuildSummaryPrompt:
    """Prompt determinism and contents."""

    def _meeting(self) -> Meeting:
        return Meeting(
            id="m-1",
            title="Q3 Planning",
            description="Quarterly roadmap",
            date=datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc),
        )

    def test_prompt_is_deterministic(self):
        meeting = self._meeting()
        assert build_summary_prompt(meeting) == build_summary_prompt(meeting)

    def test_prompt_contains_context_and_contract(self):
        prompt = build_summary_prompt(self._meeting())
        assert "Q3 Planning" in prompt
        assert "Quarterly roadmap" in prompt
        assert ACTION_ITEM_LINE_FORMAT in prompt

    def test_sections_in_order(self):
        prompt = build_summary_prompt(self._meeting())
        positions = [prompt.index(title) for title in SECTION_TITLES]
        assert positions == sorted(positions)
