"""Rule-based deal-risk aggregator with confidence and mitigation strategies."""

import math
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from crm_insights.config import DEFAULT_CONFIG, RiskWeights, ScoringConfig
from crm_insights.models.insight import RiskAssessmentResult, RiskFactors, RiskLevel, risk_level_for
from crm_insights.models.opportunity import OpportunitySnapshot, Stage

from .factors import calculate_risk_factors

# Factor -> (threshold override, templated mitigation). None uses config.mitigation_threshold.
_FACTOR_MITIGATIONS: list[tuple[str, Optional[int], str]] = [
    ("stage", None, "Focus on advancing to next stage with specific action plan"),
    ("qualification", None, "Improve MEDDPICC score by addressing missing criteria"),
    ("timeline", 70, "Accelerate timeline or adjust close date expectations"),
    ("value", None, "Break down large deal into smaller phases or reduce scope"),
    ("competition", None, "Strengthen competitive differentiation and value proposition"),
    ("engagement", None, "Increase stakeholder engagement and activity frequency"),
    ("decision_maker", None, "Identify and engage with economic buyer and decision makers"),
    ("budget", None, "Verify budget availability and adjust pricing if needed"),
]

_RISK_LEVEL_DESCRIPTIONS: dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "Critical risk - immediate attention required",
    RiskLevel.HIGH: "High risk - needs focused attention",
    RiskLevel.MEDIUM: "Medium risk - monitor closely",
    RiskLevel.LOW: "Low risk - good progress",
}


class RiskLevelInfo(BaseModel):
    """Risk bucket with a short description for display."""

    level: RiskLevel
    description: str


def get_risk_level(risk_score: int) -> RiskLevelInfo:
    level = risk_level_for(risk_score)
    return RiskLevelInfo(level=level, description=_RISK_LEVEL_DESCRIPTIONS[level])


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def score_from_factors(factors: RiskFactors, weights: RiskWeights) -> int:
    """Weighted sum of the factors, rounded and clamped to [0, 100]."""
    weight_map = weights.model_dump()
    total = math.fsum(getattr(factors, name) * weight for name, weight in weight_map.items())
    return max(0, min(100, round_half_up(total)))


def calculate_confidence(snapshot: OpportunitySnapshot) -> float:
    """Fraction of the ten tracked informational fields that are populated."""
    present = [
        bool(snapshot.name),
        snapshot.stage is not None,
        snapshot.qualification_score > 0,
        bool(snapshot.deal_value and snapshot.deal_value > 0),
        snapshot.close_date is not None,
        bool(snapshot.economic_buyer),
        bool(snapshot.champion),
        bool(snapshot.decision_process),
        bool(snapshot.competition),
        bool(snapshot.budget),
    ]
    return sum(present) / len(present)


class DealRiskEngine:
    """
    Combines the eight factor calculators with fixed weights into one risk score.
    Pure: the same snapshot and clock always give the same result.
    """

    def __init__(self, config: ScoringConfig = DEFAULT_CONFIG):
        self.config = config

    def assess(self, snapshot: OpportunitySnapshot, now: Optional[datetime] = None) -> RiskAssessmentResult:
        """Compute factors, aggregate score, confidence and mitigation strategies."""
        now = now or datetime.now(timezone.utc)
        factors = calculate_risk_factors(snapshot, self.config, now)
        return RiskAssessmentResult(
            risk_score=score_from_factors(factors, self.config.risk_weights),
            factors=factors,
            confidence=calculate_confidence(snapshot),
            mitigation_strategies=self.mitigation_strategies(factors, snapshot),
        )

    def mitigation_strategies(self, factors: RiskFactors, snapshot: OpportunitySnapshot) -> list[str]:
        """Templated strategies for factors over threshold, then situational rules."""
        strategies = factor_mitigations(factors, self.config.mitigation_threshold)

        if snapshot.stage == Stage.PROSPECTING and factors.qualification > 50:
            strategies.append("Move to engaging stage and schedule discovery meeting")

        if (snapshot.deal_value or 0) > 500_000 and factors.engagement < 40:
            strategies.append("Increase executive involvement for high-value opportunity")

        if not snapshot.champion and factors.decision_maker > 70:
            strategies.append("Identify and develop internal champion")

        return strategies


def factor_mitigations(factors: RiskFactors, threshold: int = 60) -> list[str]:
    """One templated sentence per factor above its threshold, in factor order."""
    strategies: list[str] = []
    for name, override, text in _FACTOR_MITIGATIONS:
        limit = override if override is not None else threshold
        if getattr(factors, name) > limit:
            strategies.append(text)
    return strategies
