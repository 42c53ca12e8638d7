"""Data models for snapshots, scoring results and stored insights."""

from crm_insights.models.insight import (
    ActionCategory,
    AssessmentStatus,
    BatchAssessmentOutcome,
    EntityType,
    InsightContext,
    InsightRecord,
    InsightType,
    LeadScoreResult,
    LeadScoringFactors,
    NextActionRecommendation,
    Priority,
    RiskAssessmentResult,
    RiskFactors,
    RiskLevel,
)
from crm_insights.models.lead import EngagementEvent, LeadSnapshot
from crm_insights.models.opportunity import Activity, Contact, OpportunitySnapshot, Stage
from crm_insights.models.outcome import Degraded, DegradationReason, Outcome, Scored

__all__ = [
    "ActionCategory",
    "Activity",
    "AssessmentStatus",
    "BatchAssessmentOutcome",
    "Contact",
    "Degraded",
    "DegradationReason",
    "EngagementEvent",
    "EntityType",
    "InsightContext",
    "InsightRecord",
    "InsightType",
    "LeadScoreResult",
    "LeadScoringFactors",
    "LeadSnapshot",
    "NextActionRecommendation",
    "OpportunitySnapshot",
    "Outcome",
    "Priority",
    "RiskAssessmentResult",
    "RiskFactors",
    "RiskLevel",
    "Scored",
    "Stage",
]
