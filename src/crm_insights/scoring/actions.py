"""Rule-based next-best-action generator."""

from datetime import datetime, timezone
from typing import Optional

from crm_insights.config import DEFAULT_CONFIG, ScoringConfig
from crm_insights.models.insight import PRIORITY_RANK, ActionCategory, NextActionRecommendation, Priority
from crm_insights.models.opportunity import OpportunitySnapshot, Stage

from .factors import days_between


def _action(
    action: str,
    priority: Priority,
    reasoning: str,
    impact: int,
    effort: int,
    category: ActionCategory,
) -> NextActionRecommendation:
    return NextActionRecommendation(
        action=action,
        priority=priority,
        reasoning=reasoning,
        estimated_impact=impact,
        estimated_effort=effort,
        category=category,
    )


H, M = Priority.HIGH, Priority.MEDIUM

STAGE_TEMPLATES: dict[Stage, tuple[NextActionRecommendation, ...]] = {
    Stage.PROSPECTING: (
        _action(
            "Research company and key stakeholders", H,
            "Understanding the company and decision makers is crucial for prospecting",
            80, 2, ActionCategory.RESEARCH,
        ),
        _action(
            "Send personalized cold outreach email", H,
            "Initial contact to establish relationship and gauge interest",
            70, 1, ActionCategory.OUTREACH,
        ),
        _action(
            "Connect on LinkedIn with key contacts", M,
            "Build professional network and increase visibility",
            50, 1, ActionCategory.OUTREACH,
        ),
    ),
    Stage.ENGAGING: (
        _action(
            "Schedule discovery call with champion", H,
            "Discovery call is essential to understand pain points and requirements",
            90, 1, ActionCategory.MEETING,
        ),
        _action(
            "Send relevant case study or whitepaper", M,
            "Provide value and demonstrate expertise",
            60, 1, ActionCategory.OUTREACH,
        ),
        _action(
            "Identify economic buyer and decision criteria", H,
            "Critical for MEDDPICC scoring and deal progression",
            85, 2, ActionCategory.RESEARCH,
        ),
    ),
    Stage.ADVANCING: (
        _action(
            "Schedule demo or presentation", H,
            "Demonstrate solution capabilities and value proposition",
            85, 2, ActionCategory.MEETING,
        ),
        _action(
            "Prepare formal proposal", H,
            "Formal proposal moves deal closer to decision",
            80, 4, ActionCategory.PROPOSAL,
        ),
        _action(
            "Engage with economic buyer", H,
            "Economic buyer approval is critical for deal closure",
            90, 2, ActionCategory.MEETING,
        ),
    ),
    Stage.KEY_DECISION: (
        _action(
            "Schedule final presentation to decision committee", H,
            "Final presentation to secure decision and close deal",
            95, 3, ActionCategory.MEETING,
        ),
        _action(
            "Address any remaining objections", H,
            "Resolve final concerns before decision",
            85, 2, ActionCategory.FOLLOW_UP,
        ),
        _action(
            "Prepare contract and legal documentation", M,
            "Ensure smooth transition to contract phase",
            70, 3, ActionCategory.DOCUMENTATION,
        ),
    ),
}

STAGE_RECOMMENDATIONS: dict[Stage, tuple[str, ...]] = {
    Stage.PROSPECTING: (
        "Focus on building initial relationships",
        "Research company and key stakeholders thoroughly",
        "Send personalized, value-driven outreach",
    ),
    Stage.ENGAGING: (
        "Schedule discovery meetings to understand pain points",
        "Identify decision makers and economic buyers",
        "Provide relevant content and case studies",
    ),
    Stage.ADVANCING: (
        "Demonstrate solution capabilities through demos",
        "Engage with economic buyers and decision makers",
        "Prepare formal proposals and pricing",
    ),
    Stage.KEY_DECISION: (
        "Schedule final presentations to decision committees",
        "Address any remaining objections",
        "Prepare for contract and legal discussions",
    ),
}


def get_stage_recommendations(stage: Stage | str) -> list[str]:
    """General coaching lines for a stage; empty for stages without guidance."""
    try:
        key = stage if isinstance(stage, Stage) else Stage(str(stage).strip().lower())
    except ValueError:
        return []
    return list(STAGE_RECOMMENDATIONS.get(key, ()))


def prioritize_actions(actions: list[NextActionRecommendation], limit: int = 5) -> list[NextActionRecommendation]:
    """Sort by priority (high first) then impact descending; keep the top `limit`."""
    ordered = sorted(
        actions,
        key=lambda a: (-PRIORITY_RANK[a.priority], -a.estimated_impact),
    )
    return ordered[:limit]


class NextActionEngine:
    """Stage templates + gaps in MEDDPICC data + time pressure -> ranked actions."""

    def __init__(self, config: ScoringConfig = DEFAULT_CONFIG):
        self.config = config

    def generate(
        self, snapshot: OpportunitySnapshot, now: Optional[datetime] = None
    ) -> list[NextActionRecommendation]:
        """Return at most config.max_actions recommendations, highest priority first."""
        now = now or datetime.now(timezone.utc)
        actions: list[NextActionRecommendation] = list(STAGE_TEMPLATES.get(snapshot.stage, ()))
        actions.extend(self.contextual_actions(snapshot))
        actions.extend(self.urgency_actions(snapshot, now))
        return prioritize_actions(actions, self.config.max_actions)

    def contextual_actions(self, snapshot: OpportunitySnapshot) -> list[NextActionRecommendation]:
        """Actions triggered by missing qualification data or known competition."""
        actions: list[NextActionRecommendation] = []

        if snapshot.qualification_score < 50:
            actions.append(_action(
                "Improve MEDDPICC score by addressing missing criteria", H,
                "Low MEDDPICC score indicates missing critical information",
                80, 3, ActionCategory.RESEARCH,
            ))

        if not snapshot.economic_buyer:
            actions.append(_action(
                "Identify and engage with economic buyer", H,
                "Economic buyer approval is required for deal closure",
                90, 2, ActionCategory.RESEARCH,
            ))

        if not snapshot.champion:
            actions.append(_action(
                "Develop internal champion within organization", M,
                "Internal champion helps navigate decision process",
                70, 3, ActionCategory.OUTREACH,
            ))

        if not snapshot.decision_process:
            actions.append(_action(
                "Map out decision process and timeline", M,
                "Understanding decision process helps manage expectations",
                60, 2, ActionCategory.RESEARCH,
            ))

        if snapshot.competition:
            actions.append(_action(
                "Prepare competitive differentiation strategy", M,
                "Competition requires strong differentiation",
                65, 2, ActionCategory.INTERNAL,
            ))

        return actions

    def urgency_actions(self, snapshot: OpportunitySnapshot, now: datetime) -> list[NextActionRecommendation]:
        """Actions driven by days to close and days since last activity."""
        actions: list[NextActionRecommendation] = []

        if snapshot.close_date is not None:
            days_to_close = days_between(snapshot.close_date, now)
            if days_to_close < 7:
                actions.append(_action(
                    "Accelerate decision process and follow up daily", H,
                    "Close date is approaching rapidly",
                    90, 1, ActionCategory.FOLLOW_UP,
                ))
            elif days_to_close < 30:
                actions.append(_action(
                    "Increase activity frequency and stakeholder engagement", M,
                    "Close date is approaching, need to maintain momentum",
                    70, 1, ActionCategory.FOLLOW_UP,
                ))

        if snapshot.last_activity_at is not None and days_between(now, snapshot.last_activity_at) > 14:
            actions.append(_action(
                "Re-engage with immediate follow-up call or email", H,
                "Opportunity has been inactive for too long",
                75, 1, ActionCategory.FOLLOW_UP,
            ))

        return actions
