"""Batch orchestration: fan entity pipelines out in fixed-size concurrent chunks."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterator, Optional, Sequence, TypeVar

from crm_insights.errors import InsightStoreError
from crm_insights.models.insight import (
    AssessmentStatus,
    BatchAssessmentOutcome,
    InsightContext,
)
from crm_insights.models.lead import LeadSnapshot
from crm_insights.models.opportunity import OpportunitySnapshot
from crm_insights.models.outcome import DegradationReason, Outcome
from crm_insights.scoring.ai import AIInsightsEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

RISK_PROCESSING_NOTE = "Risk assessment may be less accurate due to processing error"
LEAD_PROCESSING_NOTE = "Scoring may be less accurate due to processing error"

OutcomeSink = Callable[[T, BatchAssessmentOutcome], Awaitable[None]]


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _from_outcome(entity_id: str, outcome: Outcome) -> BatchAssessmentOutcome:
    return BatchAssessmentOutcome(
        entity_id=entity_id,
        result=outcome.value,
        degraded=outcome.degraded,
        degradation_reason=getattr(outcome, "reason", None),
    )


class BatchOrchestrator:
    """
    Runs one independent pipeline per entity, at most `chunk_size` at a time.
    Chunks run strictly one after another; entities within a chunk run concurrently.
    Output order always matches input order. A failing entity gets a penalized
    rule-based result and never aborts the batch; only persistence failures
    (InsightStoreError from the sink) propagate.
    """

    def __init__(
        self,
        ai_engine: AIInsightsEngine,
        chunk_size: Optional[int] = None,
        confidence_penalty: Optional[float] = None,
    ):
        self.ai_engine = ai_engine
        config = ai_engine.config
        self.chunk_size = chunk_size if chunk_size is not None else config.batch_chunk_size
        self.confidence_penalty = (
            confidence_penalty if confidence_penalty is not None else config.fallback_confidence_penalty
        )

    async def _run(
        self,
        items: Sequence[T],
        run_one: Callable[[T], Awaitable[BatchAssessmentOutcome]],
        fallback_one: Callable[[T], BatchAssessmentOutcome],
        entity_id: Callable[[T], str],
        sink: Optional[OutcomeSink] = None,
    ) -> list[BatchAssessmentOutcome]:
        async def guarded(item: T) -> BatchAssessmentOutcome:
            try:
                outcome = await run_one(item)
            except InsightStoreError:
                raise
            except Exception as e:
                logger.warning("Batch entity %s failed, using fallback: %s", entity_id(item), e)
                outcome = fallback_one(item)
            if sink is not None:
                await sink(item, outcome)
            return outcome

        results: list[BatchAssessmentOutcome] = []
        n_degraded = 0
        for chunk in chunked(items, self.chunk_size):
            chunk_results = await asyncio.gather(*(guarded(item) for item in chunk))
            results.extend(chunk_results)
            n_degraded += sum(1 for r in chunk_results if r.degraded)

        if n_degraded:
            logger.info("Batch of %d completed with %d degraded results", len(items), n_degraded)
        return results

    async def assess_many(
        self,
        opportunities: Sequence[OpportunitySnapshot],
        context: InsightContext,
        use_ai: bool = True,
        *,
        now: Optional[datetime] = None,
        sink: Optional[OutcomeSink] = None,
    ) -> list[BatchAssessmentOutcome]:
        """Deal risk for every opportunity."""
        now = now or datetime.now(timezone.utc)
        engine = self.ai_engine

        async def run_one(snapshot: OpportunitySnapshot) -> BatchAssessmentOutcome:
            if use_ai:
                return _from_outcome(snapshot.id, await engine.try_assess_risk(snapshot, context, now))
            return BatchAssessmentOutcome(entity_id=snapshot.id, result=engine.risk_engine.assess(snapshot, now))

        def fallback_one(snapshot: OpportunitySnapshot) -> BatchAssessmentOutcome:
            base = engine.risk_engine.assess(snapshot, now)
            result = base.model_copy(
                update={
                    "confidence": base.confidence * self.confidence_penalty,
                    "mitigation_strategies": [*base.mitigation_strategies, RISK_PROCESSING_NOTE],
                    "status": AssessmentStatus.DEGRADED,
                    "degradation_reason": DegradationReason.PROCESSING_ERROR,
                }
            )
            return BatchAssessmentOutcome(
                entity_id=snapshot.id,
                result=result,
                degraded=True,
                degradation_reason=DegradationReason.PROCESSING_ERROR,
            )

        return await self._run(opportunities, run_one, fallback_one, lambda s: s.id, sink)

    async def generate_actions_many(
        self,
        opportunities: Sequence[OpportunitySnapshot],
        context: InsightContext,
        use_ai: bool = True,
        *,
        now: Optional[datetime] = None,
        sink: Optional[OutcomeSink] = None,
    ) -> list[BatchAssessmentOutcome]:
        """Next actions for every opportunity."""
        now = now or datetime.now(timezone.utc)
        engine = self.ai_engine

        async def run_one(snapshot: OpportunitySnapshot) -> BatchAssessmentOutcome:
            if use_ai:
                return _from_outcome(snapshot.id, await engine.try_generate_actions(snapshot, context, now))
            return BatchAssessmentOutcome(entity_id=snapshot.id, result=engine.action_engine.generate(snapshot, now))

        def fallback_one(snapshot: OpportunitySnapshot) -> BatchAssessmentOutcome:
            return BatchAssessmentOutcome(
                entity_id=snapshot.id,
                result=engine.action_engine.generate(snapshot, now),
                degraded=True,
                degradation_reason=DegradationReason.PROCESSING_ERROR,
            )

        return await self._run(opportunities, run_one, fallback_one, lambda s: s.id, sink)

    async def score_leads_many(
        self,
        leads: Sequence[LeadSnapshot],
        context: InsightContext,
        use_ai: bool = True,
        *,
        now: Optional[datetime] = None,
        sink: Optional[OutcomeSink] = None,
    ) -> list[BatchAssessmentOutcome]:
        """Lead score for every lead."""
        now = now or datetime.now(timezone.utc)
        engine = self.ai_engine

        async def run_one(lead: LeadSnapshot) -> BatchAssessmentOutcome:
            if use_ai:
                return _from_outcome(lead.id, await engine.try_score_lead(lead, context, now))
            return BatchAssessmentOutcome(entity_id=lead.id, result=engine.lead_engine.score(lead, now))

        def fallback_one(lead: LeadSnapshot) -> BatchAssessmentOutcome:
            base = engine.lead_engine.score(lead, now)
            result = base.model_copy(
                update={
                    "confidence": base.confidence * self.confidence_penalty,
                    "recommendations": [*base.recommendations, LEAD_PROCESSING_NOTE],
                    "status": AssessmentStatus.DEGRADED,
                    "degradation_reason": DegradationReason.PROCESSING_ERROR,
                }
            )
            return BatchAssessmentOutcome(
                entity_id=lead.id,
                result=result,
                degraded=True,
                degradation_reason=DegradationReason.PROCESSING_ERROR,
            )

        return await self._run(leads, run_one, fallback_one, lambda lead: lead.id, sink)
