"""Rule-based lead scoring (higher = better fit)."""

import math
from datetime import datetime, timezone
from typing import Optional

from crm_insights.config import DEFAULT_CONFIG, ScoringConfig
from crm_insights.models.insight import LeadScoreResult, LeadScoringFactors
from crm_insights.models.lead import EngagementEvent, LeadSnapshot

from .factors import as_utc
from .risk import round_half_up

HIGH_VALUE_INDUSTRIES = (
    "technology", "software", "saas", "fintech", "healthcare",
    "pharmaceuticals", "consulting", "legal", "finance", "insurance",
)
MEDIUM_VALUE_INDUSTRIES = (
    "manufacturing", "retail", "education", "real_estate",
    "construction", "automotive", "energy", "telecommunications",
)
_FREEMAIL_MARKERS = ("gmail", "yahoo")

# (event type, points per event, cap)
_ENGAGEMENT_POINTS: list[tuple[str, int, int]] = [
    ("email_open", 5, 20),
    ("website_visit", 3, 15),
    ("download", 10, 20),
    ("demo_request", 15, 25),
]


def source_score(source: Optional[str], config: ScoringConfig = DEFAULT_CONFIG) -> int:
    if not source:
        return config.unknown_lead_source_score
    return config.lead_source_scores.get(source.strip().lower(), config.unknown_lead_source_score)


def company_size_score(company_size: Optional[str], config: ScoringConfig = DEFAULT_CONFIG) -> int:
    if not company_size:
        return 50
    return config.company_size_scores.get(company_size.strip().lower(), 50)


def industry_score(industry: Optional[str]) -> int:
    if not industry:
        return 50
    lowered = industry.lower()
    if any(ind in lowered for ind in HIGH_VALUE_INDUSTRIES):
        return 85
    if any(ind in lowered for ind in MEDIUM_VALUE_INDUSTRIES):
        return 70
    return 60


def engagement_score(engagement: list[EngagementEvent]) -> int:
    """Base 20 plus capped points per engagement type."""
    if not engagement:
        return 20
    score = 20
    for event_type, points, cap in _ENGAGEMENT_POINTS:
        count = sum(1 for e in engagement if e.type == event_type)
        score += min(count * points, cap)
    return min(score, 100)


def demographics_score(lead: LeadSnapshot) -> int:
    """Business email, seniority of title, and presence of a website."""
    score = 50
    if lead.email and "@" in lead.email:
        domain = lead.email.split("@", 1)[1].lower()
        if domain and not any(m in domain for m in _FREEMAIL_MARKERS):
            score += 10

    if lead.title:
        title = lead.title.lower()
        if any(t in title for t in ("ceo", "president", "founder")):
            score += 15
        elif any(t in title for t in ("vp", "director", "manager")):
            score += 10
        elif any(t in title for t in ("decision", "purchasing")):
            score += 12

    if lead.website:
        score += 5
    return min(score, 100)


def behavior_score(lead: LeadSnapshot) -> int:
    """Speed of first response and number of touchpoints."""
    score = 50
    if lead.activities:
        first = lead.activities[0]
        if lead.created_at is not None and first.created_at is not None:
            hours = (as_utc(first.created_at) - as_utc(lead.created_at)).total_seconds() / 3600
            if hours < 24:
                score += 20
            elif hours < 72:
                score += 10
    if len(lead.activities) > 3:
        score += 15
    return min(score, 100)


def timing_score(lead: LeadSnapshot, now: Optional[datetime] = None) -> int:
    """Fresh leads score higher."""
    if lead.created_at is None:
        return 50
    now = now or datetime.now(timezone.utc)
    days = math.floor((as_utc(now) - as_utc(lead.created_at)).total_seconds() / 86400)
    if days <= 1:
        return 90
    if days <= 7:
        return 80
    if days <= 30:
        return 70
    if days <= 90:
        return 50
    return 30


def lead_confidence(lead: LeadSnapshot) -> float:
    """Fraction of eight contact/firmographic fields populated."""
    present = [
        lead.first_name,
        lead.last_name,
        lead.email,
        lead.company,
        lead.phone,
        lead.industry,
        lead.company_size,
        lead.title,
    ]
    return sum(1 for p in present if p) / len(present)


def get_scoring_recommendations(factors: LeadScoringFactors) -> list[str]:
    """Suggestions for factors that score low."""
    recommendations: list[str] = []
    if factors.source < 60:
        recommendations.append("Focus on higher-quality lead sources like referrals and trade shows")
    if factors.company_size < 60:
        recommendations.append("Target larger companies or adjust scoring for smaller companies")
    if factors.industry < 60:
        recommendations.append("Consider if this industry aligns with your ideal customer profile")
    if factors.engagement < 40:
        recommendations.append("Increase engagement through targeted content and follow-up")
    if factors.demographics < 60:
        recommendations.append("Gather more demographic information to improve scoring accuracy")
    if factors.behavior < 50:
        recommendations.append("Encourage faster response times and multiple touchpoints")
    if factors.timing < 50:
        recommendations.append("Focus on fresher leads or adjust timing expectations")
    return recommendations


class LeadScoringEngine:
    """Seven weighted fit factors -> 0-100 lead score."""

    def __init__(self, config: ScoringConfig = DEFAULT_CONFIG):
        self.config = config

    def calculate_factors(self, lead: LeadSnapshot, now: Optional[datetime] = None) -> LeadScoringFactors:
        return LeadScoringFactors(
            source=source_score(lead.source, self.config),
            company_size=company_size_score(lead.company_size, self.config),
            industry=industry_score(lead.industry),
            engagement=engagement_score(lead.engagement),
            demographics=demographics_score(lead),
            behavior=behavior_score(lead),
            timing=timing_score(lead, now),
        )

    def score(self, lead: LeadSnapshot, now: Optional[datetime] = None) -> LeadScoreResult:
        factors = self.calculate_factors(lead, now)
        weights = self.config.lead_weights.model_dump()
        total = math.fsum(getattr(factors, name) * w for name, w in weights.items())
        return LeadScoreResult(
            score=max(0, min(100, round_half_up(total))),
            factors=factors,
            confidence=lead_confidence(lead),
            recommendations=get_scoring_recommendations(factors),
        )
