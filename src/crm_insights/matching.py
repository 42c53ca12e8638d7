"""Shared text matching utilities for action classification and deduplication."""


def normalize(text: str | None) -> str:
    """Lowercase and strip; empty string if None."""
    return (text or "").lower().strip()


def split_words(text: str | None) -> list[str]:
    """Lowercased whitespace tokens. Punctuation stays attached to its word."""
    return normalize(text).split()


def contains_any(text: str | None, keywords: tuple[str, ...]) -> bool:
    """
    Substring match of any keyword in text (case-insensitive).
    "follow" matches "follow-up", "document" matches "documentation".
    """
    lowered = normalize(text)
    if not lowered:
        return False
    return any(kw in lowered for kw in keywords)
