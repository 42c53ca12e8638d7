"""
AI-augmented scoring with deterministic fallback.

Every operation has two forms:
- try_*: returns Scored(value) when the AI path succeeded, Degraded(value, reason)
  when the rule-based engine had to stand in.
- *_with_ai: returns the value only. Degraded values also carry status=degraded
  and a note in their free-text list for consumers that only read the record.
Neither form raises for AI failures.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from crm_insights.config import DEFAULT_CONFIG, ScoringConfig
from crm_insights.errors import MalformedResponseError
from crm_insights.models.insight import (
    AssessmentStatus,
    InsightContext,
    LeadScoreResult,
    LeadScoringFactors,
    NextActionRecommendation,
    RiskAssessmentResult,
    RiskFactors,
)
from crm_insights.models.lead import LeadSnapshot
from crm_insights.models.opportunity import OpportunitySnapshot
from crm_insights.models.outcome import Degraded, DegradationReason, Outcome, recover

from .actions import NextActionEngine, prioritize_actions
from .classifier import categorize_action, due_date_for_priority, estimate_effort, parse_priority
from .lead import LeadScoringEngine
from .llm import BaseInsightClient
from .risk import DealRiskEngine
from .similarity import merge_actions

logger = logging.getLogger(__name__)

AI_RISK_FALLBACK_NOTE = "AI assessment unavailable, using rule-based calculation"
AI_LEAD_FALLBACK_NOTE = "AI scoring unavailable, using rule-based calculation"

RULE_MODEL_VERSION = "rule-based-v1"

NEUTRAL_SCORE = 50
NEUTRAL_CONFIDENCE = 0.5

# Canonical factor name -> keys the provider may use for it
RISK_FACTOR_KEYS: dict[str, tuple[str, ...]] = {
    "stage": ("stage",),
    "qualification": ("qualification", "meddpicc", "meddpiccScore", "meddpicc_score"),
    "timeline": ("timeline",),
    "value": ("value",),
    "competition": ("competition",),
    "engagement": ("engagement",),
    "decision_maker": ("decision_maker", "decisionMaker"),
    "budget": ("budget",),
}
LEAD_FACTOR_KEYS: dict[str, tuple[str, ...]] = {
    "source": ("source",),
    "company_size": ("company_size", "companySize"),
    "industry": ("industry",),
    "engagement": ("engagement",),
    "demographics": ("demographics",),
    "behavior": ("behavior", "behaviour"),
    "timing": ("timing",),
}


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def bounded_int(value: Any, default: int = NEUTRAL_SCORE, low: int = 0, high: int = 100) -> int:
    """Coerce a provider number to an int in [low, high]; default when missing or not numeric."""
    number = _as_number(value)
    if number is None:
        return default
    return max(low, min(high, int(round(number))))


def bounded_confidence(value: Any, default: float = NEUTRAL_CONFIDENCE) -> float:
    number = _as_number(value)
    if number is None:
        return default
    return max(0.0, min(1.0, number))


def _first_present(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v]


def _require_dict(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise MalformedResponseError("AI payload is not an object")
    return data


def map_risk_payload(data: dict[str, Any]) -> RiskAssessmentResult:
    """Map the provider's deal-risk JSON; missing sub-fields get neutral values."""
    data = _require_dict(data)
    raw_factors = data.get("riskFactors") or data.get("risk_factors") or data.get("factors") or {}
    if not isinstance(raw_factors, dict):
        raw_factors = {}
    factors = RiskFactors(**{
        name: bounded_int(_first_present(raw_factors, keys)) for name, keys in RISK_FACTOR_KEYS.items()
    })
    return RiskAssessmentResult(
        risk_score=bounded_int(_first_present(data, ("riskScore", "risk_score"))),
        factors=factors,
        confidence=bounded_confidence(data.get("confidence")),
        mitigation_strategies=_string_list(
            _first_present(data, ("mitigationStrategies", "mitigation_strategies"))
        ),
    )


def map_lead_payload(data: dict[str, Any]) -> LeadScoreResult:
    """Map the provider's lead-scoring JSON; missing sub-fields get neutral values."""
    data = _require_dict(data)
    raw_factors = data.get("factors") or {}
    if not isinstance(raw_factors, dict):
        raw_factors = {}
    factors = LeadScoringFactors(**{
        name: bounded_int(_first_present(raw_factors, keys)) for name, keys in LEAD_FACTOR_KEYS.items()
    })
    return LeadScoreResult(
        score=bounded_int(data.get("score")),
        factors=factors,
        confidence=bounded_confidence(data.get("confidence")),
        recommendations=_string_list(data.get("recommendations")),
    )


def map_action_payload(data: dict[str, Any], now: datetime) -> list[NextActionRecommendation]:
    """Map the provider's action list, inferring effort, category and due date."""
    data = _require_dict(data)
    raw_actions = data.get("actions") or []
    if not isinstance(raw_actions, list):
        raise MalformedResponseError("AI 'actions' is not a list")
    today = now.date()
    actions: list[NextActionRecommendation] = []
    for item in raw_actions:
        text = str(item.get("action") or "").strip() if isinstance(item, dict) else ""
        if not text:
            logger.debug("Skipping AI action without text: %r", item)
            continue
        priority = parse_priority(item.get("priority", "medium"))
        actions.append(
            NextActionRecommendation(
                action=text,
                priority=priority,
                reasoning=str(item.get("reasoning") or ""),
                estimated_impact=bounded_int(
                    _first_present(item, ("estimatedImpact", "estimated_impact"))
                ),
                estimated_effort=estimate_effort(text),
                category=categorize_action(text),
                due_date=due_date_for_priority(priority, today),
            )
        )
    return actions


class AIInsightsEngine:
    """Wraps the rule-based engines with an optional AI client."""

    def __init__(
        self,
        client: Optional[BaseInsightClient] = None,
        config: ScoringConfig = DEFAULT_CONFIG,
    ):
        self.client = client
        self.config = config
        self.risk_engine = DealRiskEngine(config)
        self.action_engine = NextActionEngine(config)
        self.lead_engine = LeadScoringEngine(config)

    @property
    def model_version(self) -> str:
        return self.client.model_version if self.client is not None else RULE_MODEL_VERSION

    # Deal risk

    def _degraded_risk(
        self, snapshot: OpportunitySnapshot, now: datetime, reason: DegradationReason
    ) -> RiskAssessmentResult:
        base = self.risk_engine.assess(snapshot, now)
        return base.model_copy(
            update={
                "mitigation_strategies": [*base.mitigation_strategies, AI_RISK_FALLBACK_NOTE],
                "status": AssessmentStatus.DEGRADED,
                "degradation_reason": reason,
            }
        )

    async def try_assess_risk(
        self,
        snapshot: OpportunitySnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> Outcome[RiskAssessmentResult]:
        now = now or datetime.now(timezone.utc)
        if self.client is None:
            reason = DegradationReason.AI_NOT_CONFIGURED
            return Degraded(self._degraded_risk(snapshot, now, reason), reason, "no AI client configured")

        client = self.client

        async def attempt() -> RiskAssessmentResult:
            payload = _opportunity_payload(snapshot, context)
            return map_risk_payload(await client.assess_deal_risk(payload))

        return await recover(attempt(), lambda reason: self._degraded_risk(snapshot, now, reason))

    async def assess_risk_with_ai(
        self,
        snapshot: OpportunitySnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> RiskAssessmentResult:
        return (await self.try_assess_risk(snapshot, context, now)).value

    # Next actions

    async def try_generate_actions(
        self,
        snapshot: OpportunitySnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> Outcome[list[NextActionRecommendation]]:
        now = now or datetime.now(timezone.utc)
        if self.client is None:
            reason = DegradationReason.AI_NOT_CONFIGURED
            return Degraded(self.action_engine.generate(snapshot, now), reason, "no AI client configured")

        client = self.client

        async def attempt() -> list[NextActionRecommendation]:
            payload = _opportunity_payload(snapshot, context)
            ai_actions = map_action_payload(await client.recommend_next_actions(payload), now)
            rule_actions = self.action_engine.generate(snapshot, now)
            merged = merge_actions(rule_actions, ai_actions)
            return prioritize_actions(merged, self.config.max_actions)

        return await recover(attempt(), lambda _reason: self.action_engine.generate(snapshot, now))

    async def generate_actions_with_ai(
        self,
        snapshot: OpportunitySnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> list[NextActionRecommendation]:
        return (await self.try_generate_actions(snapshot, context, now)).value

    # Lead scoring

    def _degraded_lead(self, lead: LeadSnapshot, now: datetime, reason: DegradationReason) -> LeadScoreResult:
        base = self.lead_engine.score(lead, now)
        return base.model_copy(
            update={
                "recommendations": [*base.recommendations, AI_LEAD_FALLBACK_NOTE],
                "status": AssessmentStatus.DEGRADED,
                "degradation_reason": reason,
            }
        )

    async def try_score_lead(
        self,
        lead: LeadSnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> Outcome[LeadScoreResult]:
        now = now or datetime.now(timezone.utc)
        if self.client is None:
            reason = DegradationReason.AI_NOT_CONFIGURED
            return Degraded(self._degraded_lead(lead, now, reason), reason, "no AI client configured")

        client = self.client

        async def attempt() -> LeadScoreResult:
            payload = {"lead": lead.model_dump(mode="json"), "context": context.model_dump(mode="json")}
            return map_lead_payload(await client.score_lead(payload))

        return await recover(attempt(), lambda reason: self._degraded_lead(lead, now, reason))

    async def score_lead_with_ai(
        self,
        lead: LeadSnapshot,
        context: InsightContext,
        now: Optional[datetime] = None,
    ) -> LeadScoreResult:
        return (await self.try_score_lead(lead, context, now)).value


def _opportunity_payload(snapshot: OpportunitySnapshot, context: InsightContext) -> dict[str, Any]:
    return {"opportunity": snapshot.model_dump(mode="json"), "context": context.model_dump(mode="json")}
