"""Deal-risk, next-action and lead scoring, rule-based and AI-augmented."""

from .actions import NextActionEngine, get_stage_recommendations, prioritize_actions
from .ai import AIInsightsEngine
from .lead import LeadScoringEngine, get_scoring_recommendations
from .llm import BaseInsightClient, OllamaInsightClient, OpenAIInsightClient, get_insight_client
from .risk import DealRiskEngine, get_risk_level
from .similarity import actions_are_similar, merge_actions

__all__ = [
    "AIInsightsEngine",
    "BaseInsightClient",
    "DealRiskEngine",
    "LeadScoringEngine",
    "NextActionEngine",
    "OllamaInsightClient",
    "OpenAIInsightClient",
    "actions_are_similar",
    "get_insight_client",
    "get_risk_level",
    "get_scoring_recommendations",
    "get_stage_recommendations",
    "merge_actions",
    "prioritize_actions",
]
