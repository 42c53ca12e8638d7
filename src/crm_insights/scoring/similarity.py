"""Near-duplicate detection for action text. Uses word overlap (no heavy deps)."""

from crm_insights.matching import split_words
from crm_insights.models.insight import NextActionRecommendation

SIMILARITY_THRESHOLD = 0.6


def word_overlap(a: str, b: str) -> int:
    """Number of words in a that also occur in b (case-insensitive)."""
    b_words = set(split_words(b))
    return sum(1 for w in split_words(a) if w in b_words)


def actions_are_similar(a: str, b: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """
    True when the shared words reach threshold x the shorter action's word count.
    "Schedule discovery call" vs "Schedule a discovery call with champion" -> 3 >= 0.6 * 3.
    """
    words_a = split_words(a)
    words_b = split_words(b)
    if not words_a or not words_b:
        return False
    return word_overlap(a, b) >= min(len(words_a), len(words_b)) * threshold


def merge_actions(
    rule_actions: list[NextActionRecommendation],
    ai_actions: list[NextActionRecommendation],
    threshold: float = SIMILARITY_THRESHOLD,
) -> list[NextActionRecommendation]:
    """Keep every rule action; add AI actions not similar to anything already kept."""
    merged = list(rule_actions)
    for candidate in ai_actions:
        if any(actions_are_similar(candidate.action, kept.action, threshold) for kept in merged):
            continue
        merged.append(candidate)
    return merged
