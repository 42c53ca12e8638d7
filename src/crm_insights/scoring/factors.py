"""Deal-risk factor calculators: each maps one attribute to a 0-100 risk (higher = riskier)."""

import math
from datetime import datetime, timezone
from typing import Optional

from crm_insights.config import DEFAULT_CONFIG, ScoringConfig
from crm_insights.models.insight import RiskFactors
from crm_insights.models.opportunity import OpportunitySnapshot, Stage

_SECONDS_PER_DAY = 86400


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from earlier to later, rounded up (negative when later < earlier)."""
    delta = as_utc(later) - as_utc(earlier)
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def stage_risk(stage: Stage | str | None, config: ScoringConfig = DEFAULT_CONFIG) -> int:
    """Fixed lookup per funnel stage; unknown stage -> config.unknown_stage_risk."""
    if stage is None:
        return config.unknown_stage_risk
    key = stage.value if isinstance(stage, Stage) else str(stage).strip().lower()
    return config.stage_risk.get(key, config.unknown_stage_risk)


def qualification_risk(qualification_score: float) -> int:
    """Inverse step function of the MEDDPICC score."""
    if qualification_score >= 80:
        return 10
    if qualification_score >= 60:
        return 30
    if qualification_score >= 40:
        return 50
    if qualification_score >= 20:
        return 70
    return 90


def timeline_risk(snapshot: OpportunitySnapshot, now: Optional[datetime] = None) -> int:
    """Days-to-close band plus a staleness increment for long-open opportunities."""
    now = now or datetime.now(timezone.utc)

    risk = 60
    if snapshot.close_date is not None:
        days_to_close = days_between(snapshot.close_date, now)
        if days_to_close < 0:
            risk = 100
        elif days_to_close < 7:
            risk = 80
        elif days_to_close < 30:
            risk = 60
        elif days_to_close < 90:
            risk = 40
        else:
            risk = 60  # too far out to be credible

    if snapshot.created_at is not None:
        days_in_pipeline = days_between(now, snapshot.created_at)
        if days_in_pipeline > 180:
            risk += 20
        elif days_in_pipeline > 90:
            risk += 10

    return min(risk, 100)


def value_risk(deal_value: Optional[float]) -> int:
    """Unknown value is risky; very large deals carry approval friction."""
    if not deal_value:
        return 80
    if deal_value > 1_000_000:
        return 70
    if deal_value > 500_000:
        return 50
    if deal_value > 100_000:
        return 30
    if deal_value > 50_000:
        return 20
    if deal_value > 10_000:
        return 15
    return 10


def competition_risk(competition: Optional[str], config: ScoringConfig = DEFAULT_CONFIG) -> int:
    """Lookup by competitive-intensity label."""
    if not competition:
        return config.missing_competition_risk
    return config.competition_risk.get(competition.strip().lower(), config.unknown_competition_risk)


def engagement_risk(snapshot: OpportunitySnapshot, now: Optional[datetime] = None) -> int:
    """Activity volume, contact coverage and recency."""
    now = now or datetime.now(timezone.utc)
    risk = 50

    n_activities = len(snapshot.activities)
    if n_activities < 3:
        risk += 20
    elif n_activities < 5:
        risk += 10

    n_contacts = len(snapshot.contacts)
    if n_contacts < 2:
        risk += 15
    elif n_contacts < 4:
        risk += 5

    if snapshot.last_activity_at is not None:
        days_since = days_between(now, snapshot.last_activity_at)
        if days_since > 30:
            risk += 30
        elif days_since > 14:
            risk += 20
        elif days_since > 7:
            risk += 10
    else:
        risk += 25

    return min(risk, 100)


def decision_maker_risk(snapshot: OpportunitySnapshot) -> int:
    """High by default; each identified role or process lowers it."""
    risk = 80
    if snapshot.economic_buyer:
        risk -= 30
    if snapshot.champion:
        risk -= 20
    if snapshot.decision_maker:
        risk -= 15
    if snapshot.decision_process:
        risk -= 10
    if snapshot.decision_criteria:
        risk -= 10
    return max(risk, 0)


def budget_risk(budget: Optional[float], deal_value: Optional[float]) -> int:
    """Deal value relative to the allocated budget."""
    if not budget or not deal_value:
        return 70
    ratio = deal_value / budget
    if ratio > 1.2:
        return 80
    if ratio > 1.0:
        return 60
    if ratio > 0.8:
        return 30
    if ratio > 0.5:
        return 20
    return 10


def calculate_risk_factors(
    snapshot: OpportunitySnapshot,
    config: ScoringConfig = DEFAULT_CONFIG,
    now: Optional[datetime] = None,
) -> RiskFactors:
    """Compute all eight factors for one snapshot."""
    now = now or datetime.now(timezone.utc)
    return RiskFactors(
        stage=_clamp(stage_risk(snapshot.stage, config)),
        qualification=qualification_risk(snapshot.qualification_score),
        timeline=timeline_risk(snapshot, now),
        value=value_risk(snapshot.deal_value),
        competition=_clamp(competition_risk(snapshot.competition, config)),
        engagement=engagement_risk(snapshot, now),
        decision_maker=decision_maker_risk(snapshot),
        budget=budget_risk(snapshot.budget, snapshot.deal_value),
    )
