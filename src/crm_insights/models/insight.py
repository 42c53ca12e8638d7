"""Scoring results, insight records and batch outcomes."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from crm_insights.models.outcome import DegradationReason


class AssessmentStatus(str, Enum):
    """Whether a result came from the primary path or a fallback."""

    SCORED = "scored"
    DEGRADED = "degraded"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def risk_level_for(risk_score: int) -> RiskLevel:
    """Bucket a 0-100 risk score."""
    if risk_score >= 80:
        return RiskLevel.CRITICAL
    if risk_score >= 60:
        return RiskLevel.HIGH
    if risk_score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RiskFactors(BaseModel):
    """Per-dimension deal risk, each 0-100 (higher = riskier)."""

    model_config = ConfigDict(frozen=True)

    stage: int = Field(..., ge=0, le=100)
    qualification: int = Field(..., ge=0, le=100)
    timeline: int = Field(..., ge=0, le=100)
    value: int = Field(..., ge=0, le=100)
    competition: int = Field(..., ge=0, le=100)
    engagement: int = Field(..., ge=0, le=100)
    decision_maker: int = Field(..., ge=0, le=100)
    budget: int = Field(..., ge=0, le=100)


class RiskAssessmentResult(BaseModel):
    """Aggregate deal risk for one opportunity."""

    model_config = ConfigDict(frozen=True)

    risk_score: int = Field(..., ge=0, le=100)
    factors: RiskFactors
    confidence: float = Field(..., ge=0, le=1)
    mitigation_strategies: list[str] = Field(default_factory=list)
    status: AssessmentStatus = AssessmentStatus.SCORED
    degradation_reason: Optional[DegradationReason] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for(self.risk_score)


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK: dict[Priority, int] = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


class ActionCategory(str, Enum):
    RESEARCH = "research"
    OUTREACH = "outreach"
    MEETING = "meeting"
    PROPOSAL = "proposal"
    FOLLOW_UP = "follow_up"
    DOCUMENTATION = "documentation"
    INTERNAL = "internal"


class NextActionRecommendation(BaseModel):
    """One suggested next step on an opportunity."""

    model_config = ConfigDict(frozen=True)

    action: str
    priority: Priority = Priority.MEDIUM
    reasoning: str = ""
    estimated_impact: int = Field(default=50, ge=0, le=100)
    estimated_effort: int = Field(default=2, ge=1, le=5)
    category: ActionCategory = ActionCategory.INTERNAL
    due_date: Optional[date] = None
    assignee: Optional[str] = None


class LeadScoringFactors(BaseModel):
    """Per-dimension lead fit, each 0-100 (higher = better fit)."""

    model_config = ConfigDict(frozen=True)

    source: int = Field(..., ge=0, le=100)
    company_size: int = Field(..., ge=0, le=100)
    industry: int = Field(..., ge=0, le=100)
    engagement: int = Field(..., ge=0, le=100)
    demographics: int = Field(..., ge=0, le=100)
    behavior: int = Field(..., ge=0, le=100)
    timing: int = Field(..., ge=0, le=100)


class LeadScoreResult(BaseModel):
    """Aggregate lead score."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0, le=100)
    factors: LeadScoringFactors
    confidence: float = Field(..., ge=0, le=1)
    recommendations: list[str] = Field(default_factory=list)
    status: AssessmentStatus = AssessmentStatus.SCORED
    degradation_reason: Optional[DegradationReason] = None


class InsightContext(BaseModel):
    """Caller context passed to AI-augmented operations."""

    organization_id: str
    user_id: str
    historical_data: list[dict[str, Any]] = Field(default_factory=list)
    benchmarks: dict[str, float] = Field(default_factory=dict)


class InsightType(str, Enum):
    LEAD_SCORING = "lead_scoring"
    DEAL_RISK = "deal_risk"
    NEXT_ACTION = "next_action"


class EntityType(str, Enum):
    LEAD = "lead"
    OPPORTUNITY = "opportunity"
    CONTACT = "contact"
    USER = "user"
    ORGANIZATION = "organization"


class InsightRecord(BaseModel):
    """Stored insight row."""

    id: int
    type: InsightType
    entity_type: EntityType
    entity_id: str
    payload: dict[str, Any]
    confidence_score: Optional[float] = None
    model_version: Optional[str] = None
    organization_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


BatchResult = Union[RiskAssessmentResult, LeadScoreResult, list[NextActionRecommendation]]


class BatchAssessmentOutcome(BaseModel):
    """Per-entity result of a batch call."""

    entity_id: str
    result: BatchResult
    degraded: bool = False
    degradation_reason: Optional[DegradationReason] = None
