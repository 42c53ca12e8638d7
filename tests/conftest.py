"""Pytest fixtures for crm-insights tests."""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

from crm_insights.models import InsightContext
from crm_insights.scoring.llm import SYSTEM_PROMPTS, BaseInsightClient


class FakeInsightClient(BaseInsightClient):
    """
    In-memory AI client. Replies are keyed by insight kind
    ("deal_risk", "next_action", "lead_scoring"); raising `error` simulates an outage.
    """

    model_version = "fake:test-model"

    def __init__(
        self,
        replies: Optional[dict[str, Any]] = None,
        error: Optional[Exception] = None,
    ):
        self.replies = replies or {}
        self.error = error
        self.calls: list[str] = []

    async def _complete(self, system_prompt: str, prompt: str) -> str:
        kind = next(k for k, v in SYSTEM_PROMPTS.items() if v == system_prompt)
        self.calls.append(kind)
        if self.error is not None:
            raise self.error
        reply = self.replies.get(kind, "")
        return reply if isinstance(reply, str) else json.dumps(reply)


@pytest.fixture
def fake_client_cls() -> type[FakeInsightClient]:
    """The FakeInsightClient class, for tests that build their own instances."""
    return FakeInsightClient


@pytest.fixture
def now() -> datetime:
    """Fixed clock for time-dependent rules."""
    return datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context() -> InsightContext:
    return InsightContext(organization_id="org-1", user_id="user-1")


@pytest.fixture
def temp_db() -> Path:
    """Temporary database path for isolated tests."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)
