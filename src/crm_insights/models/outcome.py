"""Explicit recovery state for AI-augmented results.

An AI-augmented call either produces a value from the provider (``Scored``)
or falls back to the deterministic path (``Degraded``). Callers branch on the
type instead of inspecting free-text notes.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar, Union

from crm_insights.errors import (
    AITimeoutError,
    InsightStoreError,
    MalformedResponseError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DegradationReason(str, Enum):
    """Why a result came from the deterministic fallback."""

    AI_NOT_CONFIGURED = "ai_not_configured"
    AI_UNAVAILABLE = "ai_unavailable"
    AI_TIMEOUT = "ai_timeout"
    MALFORMED_RESPONSE = "malformed_response"
    PROCESSING_ERROR = "processing_error"


@dataclass(frozen=True)
class Scored(Generic[T]):
    """Value produced by the AI path."""

    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Value produced by the fallback path after the AI path failed."""

    value: T
    reason: DegradationReason
    detail: str = ""

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Scored[T], Degraded[T]]


def classify_failure(exc: BaseException) -> DegradationReason:
    """Map an exception from the AI path to a degradation reason."""
    if isinstance(exc, (AITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return DegradationReason.AI_TIMEOUT
    if isinstance(exc, (MalformedResponseError, ValueError, TypeError, KeyError)):
        return DegradationReason.MALFORMED_RESPONSE
    return DegradationReason.AI_UNAVAILABLE


async def recover(
    attempt: Awaitable[T],
    fallback: Callable[[DegradationReason], T],
) -> Outcome[T]:
    """
    Await ``attempt``; on failure build the fallback value instead.
    InsightStoreError is re-raised.
    """
    try:
        value = await attempt
    except InsightStoreError:
        raise
    except Exception as e:
        reason = classify_failure(e)
        logger.warning("AI path failed (%s), using rule-based fallback: %s", reason.value, e)
        return Degraded(value=fallback(reason), reason=reason, detail=str(e))
    return Scored(value=value)
