"""Unit tests for snapshot and result models."""

import pytest
from pydantic import ValidationError

from crm_insights.models import (
    LeadSnapshot,
    NextActionRecommendation,
    OpportunitySnapshot,
    RiskAssessmentResult,
    RiskFactors,
    RiskLevel,
    Stage,
)
from crm_insights.models.insight import AssessmentStatus, InsightType, risk_level_for


def _factors(value: int = 50) -> RiskFactors:
    return RiskFactors(
        stage=value,
        qualification=value,
        timeline=value,
        value=value,
        competition=value,
        engagement=value,
        decision_maker=value,
        budget=value,
    )


class TestOpportunitySnapshot:
    """Tests for OpportunitySnapshot."""

    def test_stage_is_case_insensitive(self) -> None:
        """Stage labels are normalized to lowercase enum values."""
        snap = OpportunitySnapshot(id="o1", stage="Key_Decision")
        assert snap.stage == Stage.KEY_DECISION

    def test_unknown_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OpportunitySnapshot(id="o1", stage="lost_in_space")

    def test_qualification_score_bounds(self) -> None:
        """Qualification score must be within 0-100."""
        with pytest.raises(ValidationError):
            OpportunitySnapshot(id="o1", stage="prospecting", qualification_score=120)

    def test_snapshot_is_frozen(self) -> None:
        snap = OpportunitySnapshot(id="o1", stage="prospecting")
        with pytest.raises(ValidationError):
            snap.name = "changed"

    def test_defaults(self) -> None:
        snap = OpportunitySnapshot(id="o1", stage="engaging")
        assert snap.activities == []
        assert snap.contacts == []
        assert snap.close_date is None
        assert snap.qualification_score == 0


class TestRiskResult:
    """Tests for RiskAssessmentResult and risk levels."""

    @pytest.mark.parametrize(
        "score,level",
        [(0, RiskLevel.LOW), (39, RiskLevel.LOW), (40, RiskLevel.MEDIUM), (60, RiskLevel.HIGH), (80, RiskLevel.CRITICAL)],
    )
    def test_risk_level_buckets(self, score: int, level: RiskLevel) -> None:
        assert risk_level_for(score) == level

    def test_risk_level_in_serialized_form(self) -> None:
        """risk_level is derived and included when dumping."""
        result = RiskAssessmentResult(risk_score=76, factors=_factors(), confidence=0.5)
        data = result.model_dump(mode="json")
        assert data["risk_level"] == "high"
        assert data["status"] == "scored"
        assert data["degradation_reason"] is None

    def test_factor_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _factors(101)

    def test_default_status_is_scored(self) -> None:
        result = RiskAssessmentResult(risk_score=10, factors=_factors(10), confidence=1.0)
        assert result.status == AssessmentStatus.SCORED


class TestNextActionRecommendation:
    """Tests for NextActionRecommendation."""

    def test_effort_bounds(self) -> None:
        with pytest.raises(ValidationError):
            NextActionRecommendation(action="Call", estimated_effort=0)
        with pytest.raises(ValidationError):
            NextActionRecommendation(action="Call", estimated_effort=6)

    def test_defaults(self) -> None:
        rec = NextActionRecommendation(action="Call champion")
        assert rec.priority.value == "medium"
        assert rec.estimated_impact == 50
        assert rec.estimated_effort == 2
        assert rec.category.value == "internal"
        assert rec.due_date is None


class TestLeadSnapshot:
    """Tests for LeadSnapshot."""

    def test_minimal_lead(self) -> None:
        lead = LeadSnapshot(id="l1")
        assert lead.source == "unknown"
        assert lead.engagement == []

    def test_round_trip_through_json(self) -> None:
        lead = LeadSnapshot(
            id="l1",
            first_name="Ada",
            email="ada@example.com",
            engagement=[{"type": "email_open"}],
        )
        restored = LeadSnapshot.model_validate(lead.model_dump(mode="json"))
        assert restored == lead


class TestInsightType:
    def test_only_produced_types(self) -> None:
        assert {t.value for t in InsightType} == {"lead_scoring", "deal_risk", "next_action"}
        with pytest.raises(ValueError):
            InsightType("forecasting")
