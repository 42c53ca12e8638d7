"""
Keyword-bucket classifiers for AI-produced action text.

The AI returns free-text actions without effort or category. These functions
infer both from keywords. Buckets are checked in order and the first hit wins;
anything unmatched falls back to effort 2 / category internal.
"""

from datetime import date, timedelta
from typing import Optional

from crm_insights.matching import contains_any
from crm_insights.models.insight import ActionCategory, Priority

EFFORT_BUCKETS: list[tuple[tuple[str, ...], int]] = [
    (("research", "prepare", "documentation"), 3),
    (("meeting", "presentation", "demo"), 2),
    (("email", "call", "follow"), 1),
]
DEFAULT_EFFORT = 2

CATEGORY_BUCKETS: list[tuple[tuple[str, ...], ActionCategory]] = [
    (("research", "identify", "map"), ActionCategory.RESEARCH),
    (("email", "outreach", "connect"), ActionCategory.OUTREACH),
    (("meeting", "call", "demo", "presentation"), ActionCategory.MEETING),
    (("proposal", "quote", "pricing"), ActionCategory.PROPOSAL),
    (("follow", "check", "update"), ActionCategory.FOLLOW_UP),
    (("document", "contract", "legal"), ActionCategory.DOCUMENTATION),
]
DEFAULT_CATEGORY = ActionCategory.INTERNAL

DUE_DAYS_BY_PRIORITY: dict[Priority, int] = {
    Priority.HIGH: 1,
    Priority.MEDIUM: 3,
    Priority.LOW: 7,
}


def estimate_effort(action: str) -> int:
    """Effort on a 1-3 scale from action keywords."""
    for keywords, effort in EFFORT_BUCKETS:
        if contains_any(action, keywords):
            return effort
    return DEFAULT_EFFORT


def categorize_action(action: str) -> ActionCategory:
    """Category from action keywords; internal when nothing matches."""
    for keywords, category in CATEGORY_BUCKETS:
        if contains_any(action, keywords):
            return category
    return DEFAULT_CATEGORY


def parse_priority(value: object) -> Priority:
    """Lenient priority parse; anything unrecognized is medium."""
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        return Priority.MEDIUM


def due_date_for_priority(priority: Priority, today: Optional[date] = None) -> date:
    """High: tomorrow, medium: +3 days, low: +7 days."""
    today = today or date.today()
    return today + timedelta(days=DUE_DAYS_BY_PRIORITY[priority])
