"""Integration tests for InsightsService and run_pipeline."""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from crm_insights.errors import AIUnavailableError, EntityNotFoundError, InsightStoreError
from crm_insights.models import EntityType, InsightContext, InsightType, LeadSnapshot, OpportunitySnapshot
from crm_insights.pipeline import InsightsService, build_service, run_pipeline
from crm_insights.scoring.ai import AI_RISK_FALLBACK_NOTE, RULE_MODEL_VERSION
from crm_insights.store import InsightStore, SnapshotStore


def _make_opp(opp_id: str = "opp-1", **kwargs) -> OpportunitySnapshot:
    defaults = {"id": opp_id, "name": "Acme renewal", "stage": "engaging", "qualification_score": 55}
    defaults.update(kwargs)
    return OpportunitySnapshot(**defaults)


@pytest.fixture
def seeded_db(temp_db: Path, now: datetime) -> Path:
    """Database with three opportunities and two leads."""
    snapshots = SnapshotStore(temp_db)
    snapshots.upsert_opportunity(_make_opp("opp-1", close_date=now + timedelta(days=10)))
    snapshots.upsert_opportunity(_make_opp("opp-2", stage="prospecting", competition="high"))
    snapshots.upsert_opportunity(_make_opp("opp-3", stage="prospecting"))
    snapshots.upsert_lead(LeadSnapshot(id="lead-1", first_name="Ada", source="referral"))
    snapshots.upsert_lead(LeadSnapshot(id="lead-2", source="cold_call"))
    return temp_db


class TestInsightsService:
    """Single-entity operations."""

    @pytest.mark.asyncio
    async def test_assess_deal_risk_persists(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        record = await service.assess_deal_risk("opp-1", context, use_ai=False, now=now)
        assert record.type == InsightType.DEAL_RISK
        assert record.model_version == RULE_MODEL_VERSION
        assert record.organization_id == "org-1"
        assert record.payload["status"] == "scored"

        latest = InsightStore(seeded_db).get_latest(EntityType.OPPORTUNITY, "opp-1", InsightType.DEAL_RISK)
        assert latest is not None
        assert latest.id == record.id
        assert latest.payload["risk_score"] == record.payload["risk_score"]

    @pytest.mark.asyncio
    async def test_ai_record_uses_client_model_version(
        self, seeded_db: Path, fake_client_cls, context: InsightContext, now: datetime
    ) -> None:
        client = fake_client_cls(replies={"deal_risk": {"riskScore": 20, "confidence": 0.9, "riskFactors": {}}})
        service = build_service(seeded_db, client=client)
        record = await service.assess_deal_risk("opp-2", context, now=now)
        assert record.model_version == "fake:test-model"
        assert record.payload["risk_score"] == 20
        assert record.confidence_score == 0.9

    @pytest.mark.asyncio
    async def test_degraded_record_marked(
        self, seeded_db: Path, fake_client_cls, context: InsightContext, now: datetime
    ) -> None:
        service = build_service(seeded_db, client=fake_client_cls(error=AIUnavailableError("down")))
        record = await service.assess_deal_risk("opp-2", context, now=now)
        assert record.model_version == RULE_MODEL_VERSION
        assert record.payload["status"] == "degraded"
        assert record.payload["degradation_reason"] == "ai_unavailable"
        assert record.payload["mitigation_strategies"][-1] == AI_RISK_FALLBACK_NOTE

    @pytest.mark.asyncio
    async def test_missing_entity(self, seeded_db: Path, context: InsightContext) -> None:
        service = build_service(seeded_db, use_ai=False)
        with pytest.raises(EntityNotFoundError):
            await service.assess_deal_risk("opp-404", context, use_ai=False)
        with pytest.raises(EntityNotFoundError):
            await service.score_lead("lead-404", context, use_ai=False)

    @pytest.mark.asyncio
    async def test_next_actions_payload(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        record = await service.generate_next_actions("opp-3", context, use_ai=False, now=now)
        assert record.type == InsightType.NEXT_ACTION
        assert 0 < len(record.payload["actions"]) <= 5
        assert record.payload["status"] == "scored"

    @pytest.mark.asyncio
    async def test_refresh_opportunity(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        records = await service.refresh_entity_insights(EntityType.OPPORTUNITY, "opp-1", context, False, now)
        assert [r.type for r in records] == [InsightType.DEAL_RISK, InsightType.NEXT_ACTION]

    @pytest.mark.asyncio
    async def test_refresh_lead(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        records = await service.refresh_entity_insights("lead", "lead-1", context, False, now)
        assert len(records) == 1
        assert records[0].type == InsightType.LEAD_SCORING

    @pytest.mark.asyncio
    async def test_refresh_unsupported_entity(self, seeded_db: Path, context: InsightContext) -> None:
        service = build_service(seeded_db, use_ai=False)
        for entity_type in (EntityType.CONTACT, EntityType.USER, EntityType.ORGANIZATION):
            with pytest.raises(ValueError):
                await service.refresh_entity_insights(entity_type, "x1", context, False)


class TestRunBatch:
    """Batch runs persist every outcome."""

    @pytest.mark.asyncio
    async def test_lead_batch(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        outcomes = await service.run_batch(InsightType.LEAD_SCORING, context, use_ai=False, now=now)
        assert [o.entity_id for o in outcomes] == ["lead-1", "lead-2"]
        stored = InsightStore(seeded_db).list_by_organization("org-1", InsightType.LEAD_SCORING)
        assert len(stored) == 2

    @pytest.mark.asyncio
    async def test_stage_filter(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        service = build_service(seeded_db, use_ai=False)
        outcomes = await service.run_batch(InsightType.DEAL_RISK, context, False, stage="prospecting", now=now)
        assert [o.entity_id for o in outcomes] == ["opp-2", "opp-3"]

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(
        self, seeded_db: Path, context: InsightContext, now: datetime
    ) -> None:
        class BrokenStore(InsightStore):
            def create(self, *args, **kwargs):
                raise InsightStoreError("disk full")

        base = build_service(seeded_db, use_ai=False)
        service = InsightsService(base.ai_engine, BrokenStore(seeded_db), base.snapshot_store)
        with pytest.raises(InsightStoreError):
            await service.run_batch(InsightType.DEAL_RISK, context, use_ai=False, now=now)

    @pytest.mark.asyncio
    async def test_unsupported_type(self, seeded_db: Path, context: InsightContext) -> None:
        service = build_service(seeded_db, use_ai=False)
        with pytest.raises(ValueError):
            await service.run_batch("forecasting", context)


class TestRunPipeline:
    def test_rule_based_run(self, seeded_db: Path, context: InsightContext, now: datetime) -> None:
        results = run_pipeline(context, db_path=seeded_db, use_ai=False, now=now)
        assert [o.entity_id for o in results["deal_risk"]] == ["opp-1", "opp-2", "opp-3"]
        assert len(results["next_action"]) == 3
        assert not any(o.degraded for o in results["deal_risk"])

        store = InsightStore(seeded_db)
        assert len(store.list_by_organization("org-1", InsightType.DEAL_RISK)) == 3
        assert len(store.list_by_organization("org-1", InsightType.NEXT_ACTION)) == 3

    def test_ai_without_provider_degrades(
        self, seeded_db: Path, context: InsightContext, now: datetime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("CRM_INSIGHTS_LLM_PROVIDER", raising=False)
        results = run_pipeline(context, db_path=seeded_db, use_ai=True, now=now)
        assert all(o.degraded for o in results["deal_risk"])
        assert all(o.degradation_reason.value == "ai_not_configured" for o in results["next_action"])

    def test_empty_store(self, temp_db: Path, context: InsightContext) -> None:
        results = run_pipeline(context, db_path=temp_db, use_ai=False)
        assert results == {"deal_risk": [], "next_action": []}
