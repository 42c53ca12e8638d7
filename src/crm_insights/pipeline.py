"""Pipeline orchestration: load snapshots → score (AI or rules) → persist insights."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from crm_insights.batch import BatchOrchestrator
from crm_insights.config import DEFAULT_CONFIG, ScoringConfig
from crm_insights.errors import EntityNotFoundError
from crm_insights.models.insight import (
    BatchAssessmentOutcome,
    EntityType,
    InsightContext,
    InsightRecord,
    InsightType,
    LeadScoreResult,
    NextActionRecommendation,
    RiskAssessmentResult,
)
from crm_insights.models.lead import LeadSnapshot
from crm_insights.models.opportunity import OpportunitySnapshot, Stage
from crm_insights.models.outcome import DegradationReason
from crm_insights.scoring.ai import RULE_MODEL_VERSION, AIInsightsEngine
from crm_insights.scoring.llm import BaseInsightClient, get_insight_client
from crm_insights.scoring.risk import calculate_confidence
from crm_insights.store import InsightStore, SnapshotStore

logger = logging.getLogger(__name__)


def _actions_payload(
    actions: list[NextActionRecommendation],
    degraded: bool = False,
    reason: Optional[DegradationReason] = None,
) -> dict[str, Any]:
    return {
        "actions": [a.model_dump(mode="json") for a in actions],
        "status": "degraded" if degraded else "scored",
        "degradation_reason": reason.value if reason else None,
    }


class InsightsService:
    """
    Computes insights for stored entities and appends one InsightRecord per result.
    Store access runs in worker threads; InsightStoreError is never caught here.
    """

    def __init__(
        self,
        ai_engine: AIInsightsEngine,
        insight_store: InsightStore,
        snapshot_store: SnapshotStore,
    ):
        self.ai_engine = ai_engine
        self.insight_store = insight_store
        self.snapshot_store = snapshot_store
        self.orchestrator = BatchOrchestrator(ai_engine)

    def _model_version(self, use_ai: bool, degraded: bool) -> str:
        if not use_ai or degraded:
            return RULE_MODEL_VERSION
        return self.ai_engine.model_version

    async def _load_opportunity(self, opportunity_id: str) -> OpportunitySnapshot:
        snapshot = await asyncio.to_thread(self.snapshot_store.get_opportunity, opportunity_id)
        if snapshot is None:
            raise EntityNotFoundError(f"Opportunity not found: {opportunity_id}")
        return snapshot

    async def _load_lead(self, lead_id: str) -> LeadSnapshot:
        lead = await asyncio.to_thread(self.snapshot_store.get_lead, lead_id)
        if lead is None:
            raise EntityNotFoundError(f"Lead not found: {lead_id}")
        return lead

    async def _persist(
        self,
        type: InsightType,
        entity_type: EntityType,
        entity_id: str,
        payload: dict[str, Any],
        context: InsightContext,
        confidence: Optional[float],
        model_version: str,
    ) -> InsightRecord:
        return await asyncio.to_thread(
            self.insight_store.create,
            type,
            entity_type,
            entity_id,
            payload,
            organization_id=context.organization_id,
            confidence_score=confidence,
            model_version=model_version,
        )

    async def _persist_risk(
        self, entity_id: str, result: RiskAssessmentResult, context: InsightContext, model_version: str
    ) -> InsightRecord:
        return await self._persist(
            InsightType.DEAL_RISK,
            EntityType.OPPORTUNITY,
            entity_id,
            result.model_dump(mode="json"),
            context,
            result.confidence,
            model_version,
        )

    async def _persist_actions(
        self,
        snapshot: OpportunitySnapshot,
        actions: list[NextActionRecommendation],
        context: InsightContext,
        model_version: str,
        degraded: bool = False,
        reason: Optional[DegradationReason] = None,
    ) -> InsightRecord:
        return await self._persist(
            InsightType.NEXT_ACTION,
            EntityType.OPPORTUNITY,
            snapshot.id,
            _actions_payload(actions, degraded, reason),
            context,
            calculate_confidence(snapshot),
            model_version,
        )

    async def _persist_lead(
        self, entity_id: str, result: LeadScoreResult, context: InsightContext, model_version: str
    ) -> InsightRecord:
        return await self._persist(
            InsightType.LEAD_SCORING,
            EntityType.LEAD,
            entity_id,
            result.model_dump(mode="json"),
            context,
            result.confidence,
            model_version,
        )

    async def assess_deal_risk(
        self,
        opportunity_id: str,
        context: InsightContext,
        use_ai: bool = True,
        now: Optional[datetime] = None,
    ) -> InsightRecord:
        snapshot = await self._load_opportunity(opportunity_id)
        if use_ai:
            outcome = await self.ai_engine.try_assess_risk(snapshot, context, now)
            result, degraded = outcome.value, outcome.degraded
        else:
            result, degraded = self.ai_engine.risk_engine.assess(snapshot, now), False
        return await self._persist_risk(snapshot.id, result, context, self._model_version(use_ai, degraded))

    async def generate_next_actions(
        self,
        opportunity_id: str,
        context: InsightContext,
        use_ai: bool = True,
        now: Optional[datetime] = None,
    ) -> InsightRecord:
        snapshot = await self._load_opportunity(opportunity_id)
        if use_ai:
            outcome = await self.ai_engine.try_generate_actions(snapshot, context, now)
            actions, degraded = outcome.value, outcome.degraded
            reason = getattr(outcome, "reason", None)
        else:
            actions, degraded, reason = self.ai_engine.action_engine.generate(snapshot, now), False, None
        return await self._persist_actions(
            snapshot, actions, context, self._model_version(use_ai, degraded), degraded, reason
        )

    async def score_lead(
        self,
        lead_id: str,
        context: InsightContext,
        use_ai: bool = True,
        now: Optional[datetime] = None,
    ) -> InsightRecord:
        lead = await self._load_lead(lead_id)
        if use_ai:
            outcome = await self.ai_engine.try_score_lead(lead, context, now)
            result, degraded = outcome.value, outcome.degraded
        else:
            result, degraded = self.ai_engine.lead_engine.score(lead, now), False
        return await self._persist_lead(lead.id, result, context, self._model_version(use_ai, degraded))

    async def refresh_entity_insights(
        self,
        entity_type: EntityType,
        entity_id: str,
        context: InsightContext,
        use_ai: bool = True,
        now: Optional[datetime] = None,
    ) -> list[InsightRecord]:
        """
        Recompute every insight kind that applies to the entity:
        opportunities get deal risk and next actions, leads get a lead score.
        """
        entity_type = EntityType(entity_type)
        if entity_type == EntityType.OPPORTUNITY:
            risk, actions = await asyncio.gather(
                self.assess_deal_risk(entity_id, context, use_ai, now),
                self.generate_next_actions(entity_id, context, use_ai, now),
            )
            return [risk, actions]
        if entity_type == EntityType.LEAD:
            return [await self.score_lead(entity_id, context, use_ai, now)]
        raise ValueError(f"No insights are generated for entity type {entity_type.value!r}")

    async def run_batch(
        self,
        type: InsightType,
        context: InsightContext,
        use_ai: bool = True,
        *,
        stage: Optional[Stage | str] = None,
        now: Optional[datetime] = None,
    ) -> list[BatchAssessmentOutcome]:
        """Score every stored entity of the matching kind and persist each result."""
        type = InsightType(type)
        now = now or datetime.now(timezone.utc)

        if type == InsightType.LEAD_SCORING:
            leads = await asyncio.to_thread(self.snapshot_store.list_leads)

            async def lead_sink(lead: LeadSnapshot, outcome: BatchAssessmentOutcome) -> None:
                await self._persist_lead(
                    lead.id, outcome.result, context, self._model_version(use_ai, outcome.degraded)
                )

            return await self.orchestrator.score_leads_many(leads, context, use_ai, now=now, sink=lead_sink)

        opportunities = await asyncio.to_thread(self.snapshot_store.list_opportunities, stage)

        if type == InsightType.DEAL_RISK:

            async def risk_sink(snapshot: OpportunitySnapshot, outcome: BatchAssessmentOutcome) -> None:
                await self._persist_risk(
                    snapshot.id, outcome.result, context, self._model_version(use_ai, outcome.degraded)
                )

            return await self.orchestrator.assess_many(opportunities, context, use_ai, now=now, sink=risk_sink)

        if type == InsightType.NEXT_ACTION:

            async def actions_sink(snapshot: OpportunitySnapshot, outcome: BatchAssessmentOutcome) -> None:
                await self._persist_actions(
                    snapshot,
                    outcome.result,
                    context,
                    self._model_version(use_ai, outcome.degraded),
                    outcome.degraded,
                    outcome.degradation_reason,
                )

            return await self.orchestrator.generate_actions_many(
                opportunities, context, use_ai, now=now, sink=actions_sink
            )

        raise ValueError(f"Batch generation is not supported for {type.value!r}")


def build_service(
    db_path: Path,
    *,
    use_ai: bool = True,
    config: ScoringConfig = DEFAULT_CONFIG,
    client: Optional[BaseInsightClient] = None,
) -> InsightsService:
    """Wire stores and engines against one SQLite file. The AI client comes from the environment unless given."""
    if client is None and use_ai:
        client = get_insight_client()
    engine = AIInsightsEngine(client, config)
    return InsightsService(engine, InsightStore(db_path), SnapshotStore(db_path))


def run_pipeline(
    context: InsightContext,
    *,
    db_path: Path,
    use_ai: bool = True,
    stage: Optional[Stage | str] = None,
    config: ScoringConfig = DEFAULT_CONFIG,
    client: Optional[BaseInsightClient] = None,
    now: Optional[datetime] = None,
) -> dict[str, list[BatchAssessmentOutcome]]:
    """
    Run the full opportunity pipeline: deal risk then next actions for every stored
    opportunity (optionally one stage), persisting each insight.
    Returns {"deal_risk": [...], "next_action": [...]} in store order.
    """
    service = build_service(db_path, use_ai=use_ai, config=config, client=client)

    async def _run() -> dict[str, list[BatchAssessmentOutcome]]:
        risk = await service.run_batch(InsightType.DEAL_RISK, context, use_ai, stage=stage, now=now)
        actions = await service.run_batch(InsightType.NEXT_ACTION, context, use_ai, stage=stage, now=now)
        return {InsightType.DEAL_RISK.value: risk, InsightType.NEXT_ACTION.value: actions}

    results = asyncio.run(_run())
    n_degraded = sum(1 for outcomes in results.values() for o in outcomes if o.degraded)
    logger.info(
        "Pipeline scored %d opportunities (%d degraded results)",
        len(results[InsightType.DEAL_RISK.value]),
        n_degraded,
    )
    return results
