"""Tests for the action keyword classifier, one bucket at a time."""

from datetime import date

import pytest

from crm_insights.models import ActionCategory, Priority
from crm_insights.scoring.classifier import (
    categorize_action,
    due_date_for_priority,
    estimate_effort,
    parse_priority,
)


class TestEstimateEffort:
    @pytest.mark.parametrize(
        "action",
        ["Research the buying committee", "Prepare ROI model", "Update documentation for security review"],
    )
    def test_heavy_bucket(self, action: str) -> None:
        assert estimate_effort(action) == 3

    @pytest.mark.parametrize("action", ["Book a meeting with IT", "Run product demo", "Deliver presentation"])
    def test_medium_bucket(self, action: str) -> None:
        assert estimate_effort(action) == 2

    @pytest.mark.parametrize("action", ["Send recap email", "Call the champion", "Follow-up on pricing"])
    def test_light_bucket(self, action: str) -> None:
        assert estimate_effort(action) == 1

    def test_unmatched_defaults_to_two(self) -> None:
        assert estimate_effort("Align sales and legal on terms") == 2
        assert estimate_effort("") == 2

    def test_first_bucket_wins(self) -> None:
        """'prepare' (3) is checked before 'demo' (2)."""
        assert estimate_effort("Prepare demo environment") == 3


class TestCategorizeAction:
    @pytest.mark.parametrize(
        "action,category",
        [
            ("Identify the economic buyer", ActionCategory.RESEARCH),
            ("Research competitor pricing", ActionCategory.RESEARCH),
            ("Send intro email to CTO", ActionCategory.OUTREACH),
            ("Connect with procurement on LinkedIn", ActionCategory.OUTREACH),
            ("Book demo for the operations team", ActionCategory.MEETING),
            ("Schedule a call with the champion", ActionCategory.MEETING),
            ("Send revised quote", ActionCategory.PROPOSAL),
            ("Draft pricing proposal", ActionCategory.PROPOSAL),
            ("Check in on legal review status", ActionCategory.FOLLOW_UP),
            ("Follow up after workshop", ActionCategory.FOLLOW_UP),
            ("Review contract redlines", ActionCategory.DOCUMENTATION),
            ("Align internally on deal strategy", ActionCategory.INTERNAL),
        ],
    )
    def test_buckets(self, action: str, category: ActionCategory) -> None:
        assert categorize_action(action) == category

    def test_case_insensitive(self) -> None:
        assert categorize_action("SEND PROPOSAL") == ActionCategory.PROPOSAL


class TestPriorityAndDueDate:
    def test_parse_priority(self) -> None:
        assert parse_priority("HIGH") == Priority.HIGH
        assert parse_priority(" low ") == Priority.LOW
        assert parse_priority("urgent") == Priority.MEDIUM
        assert parse_priority(None) == Priority.MEDIUM

    def test_due_dates(self) -> None:
        today = date(2026, 6, 1)
        assert due_date_for_priority(Priority.HIGH, today) == date(2026, 6, 2)
        assert due_date_for_priority(Priority.MEDIUM, today) == date(2026, 6, 4)
        assert due_date_for_priority(Priority.LOW, today) == date(2026, 6, 8)
