"""Tests for rule-based next-action generation."""

from datetime import datetime, timedelta

import pytest

from crm_insights.config import ScoringConfig
from crm_insights.models import NextActionRecommendation, OpportunitySnapshot, Priority, Stage
from crm_insights.models.insight import PRIORITY_RANK
from crm_insights.scoring.actions import NextActionEngine, get_stage_recommendations, prioritize_actions


def _make_opp(**kwargs) -> OpportunitySnapshot:
    defaults = {"id": "opp-1", "stage": "engaging"}
    defaults.update(kwargs)
    return OpportunitySnapshot(**defaults)


def _qualified(**kwargs) -> OpportunitySnapshot:
    """Snapshot with no MEDDPICC gaps, so only stage and urgency rules fire."""
    data = {
        "qualification_score": 85,
        "economic_buyer": "CFO",
        "champion": "Head of Ops",
        "decision_process": "Procurement review",
    }
    data.update(kwargs)
    return _make_opp(**data)


def _assert_ordered(actions: list[NextActionRecommendation]) -> None:
    keys = [(PRIORITY_RANK[a.priority], a.estimated_impact) for a in actions]
    for earlier, later in zip(keys, keys[1:]):
        assert earlier[0] >= later[0]
        if earlier[0] == later[0]:
            assert earlier[1] >= later[1]


class TestNextActionEngine:
    """Tests for NextActionEngine.generate."""

    @pytest.mark.parametrize("stage", list(Stage))
    def test_at_most_five_and_sorted(self, stage: Stage, now: datetime) -> None:
        """Worst case: every contextual and urgency rule fires."""
        snap = _make_opp(
            stage=stage,
            qualification_score=10,
            competition="high",
            close_date=now + timedelta(days=3),
            last_activity_at=now - timedelta(days=30),
        )
        actions = NextActionEngine().generate(snap, now)
        assert len(actions) <= 5
        _assert_ordered(actions)

    def test_stage_templates_only(self, now: datetime) -> None:
        actions = NextActionEngine().generate(_qualified(stage="advancing"), now)
        assert [a.action for a in actions] == [
            "Engage with economic buyer",
            "Schedule demo or presentation",
            "Prepare formal proposal",
        ]

    def test_stage_without_templates(self, now: datetime) -> None:
        assert NextActionEngine().generate(_qualified(stage="negotiation"), now) == []

    def test_contextual_gaps(self, now: datetime) -> None:
        """Missing economic buyer and known competition add actions."""
        snap = _qualified(stage="negotiation", economic_buyer=None, competition="medium")
        actions = [a.action for a in NextActionEngine().generate(snap, now)]
        assert actions == [
            "Identify and engage with economic buyer",
            "Prepare competitive differentiation strategy",
        ]

    def test_close_within_a_week(self, now: datetime) -> None:
        snap = _qualified(stage="negotiation", close_date=now + timedelta(days=4))
        actions = NextActionEngine().generate(snap, now)
        assert actions[0].action == "Accelerate decision process and follow up daily"
        assert actions[0].priority == Priority.HIGH

    def test_close_within_a_month(self, now: datetime) -> None:
        snap = _qualified(stage="negotiation", close_date=now + timedelta(days=20))
        actions = NextActionEngine().generate(snap, now)
        assert [a.action for a in actions] == ["Increase activity frequency and stakeholder engagement"]

    def test_no_close_date_no_urgency(self, now: datetime) -> None:
        assert NextActionEngine().generate(_qualified(stage="negotiation"), now) == []

    def test_inactive_opportunity(self, now: datetime) -> None:
        snap = _qualified(stage="negotiation", last_activity_at=now - timedelta(days=15))
        actions = NextActionEngine().generate(snap, now)
        assert [a.action for a in actions] == ["Re-engage with immediate follow-up call or email"]

    def test_max_actions_from_config(self, now: datetime) -> None:
        engine = NextActionEngine(ScoringConfig(max_actions=2))
        snap = _make_opp(stage="prospecting", qualification_score=10)
        assert len(engine.generate(snap, now)) == 2


class TestPrioritizeActions:
    def test_priority_then_impact(self) -> None:
        actions = [
            NextActionRecommendation(action="low", priority=Priority.LOW, estimated_impact=99),
            NextActionRecommendation(action="med", priority=Priority.MEDIUM, estimated_impact=10),
            NextActionRecommendation(action="high-a", priority=Priority.HIGH, estimated_impact=60),
            NextActionRecommendation(action="high-b", priority=Priority.HIGH, estimated_impact=90),
        ]
        assert [a.action for a in prioritize_actions(actions)] == ["high-b", "high-a", "med", "low"]

    def test_truncates(self) -> None:
        actions = [NextActionRecommendation(action=str(i), estimated_impact=i) for i in range(8)]
        result = prioritize_actions(actions, limit=5)
        assert [a.action for a in result] == ["7", "6", "5", "4", "3"]

    def test_stable_for_ties(self) -> None:
        actions = [NextActionRecommendation(action=name) for name in ("first", "second", "third")]
        assert [a.action for a in prioritize_actions(actions)] == ["first", "second", "third"]


class TestStageRecommendations:
    def test_known_stage(self) -> None:
        recs = get_stage_recommendations("prospecting")
        assert "Focus on building initial relationships" in recs

    def test_unknown_stage(self) -> None:
        assert get_stage_recommendations("nowhere") == []
        assert get_stage_recommendations(Stage.CLOSED_WON) == []
