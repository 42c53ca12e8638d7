"""Unit tests for InsightStore."""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from crm_insights.errors import InsightStoreError
from crm_insights.models import EntityType, InsightType
from crm_insights.store import InsightStore


@pytest.fixture
def store(temp_db: Path) -> InsightStore:
    """InsightStore with temporary database."""
    return InsightStore(temp_db)


def _create(store: InsightStore, entity_id: str = "opp-1", **kwargs):
    params = {
        "type": InsightType.DEAL_RISK,
        "entity_type": EntityType.OPPORTUNITY,
        "entity_id": entity_id,
        "payload": {"risk_score": 40},
        "organization_id": "org-1",
        "confidence_score": 0.6,
        "model_version": "rule-based-v1",
    }
    params.update(kwargs)
    return store.create(**params)


class TestInsightStoreCreate:
    """Tests for create and get."""

    def test_create_returns_record(self, store: InsightStore) -> None:
        record = _create(store)
        assert record.id > 0
        assert record.payload == {"risk_score": 40}
        assert record.created_at.tzinfo is not None

    def test_get_round_trip(self, store: InsightStore) -> None:
        record = _create(store, payload={"actions": [{"action": "Call CFO"}]})
        fetched = store.get(record.id)
        assert fetched is not None
        assert fetched.payload == {"actions": [{"action": "Call CFO"}]}
        assert fetched.type == InsightType.DEAL_RISK
        assert fetched.confidence_score == 0.6

    def test_get_missing(self, store: InsightStore) -> None:
        assert store.get(999) is None


class TestInsightStoreQueries:
    """Tests for latest/list/high-confidence queries."""

    def test_get_latest_returns_newest(self, store: InsightStore) -> None:
        _create(store, payload={"risk_score": 10})
        _create(store, payload={"risk_score": 20})
        newest = _create(store, payload={"risk_score": 30})
        latest = store.get_latest(EntityType.OPPORTUNITY, "opp-1", InsightType.DEAL_RISK)
        assert latest is not None
        assert latest.id == newest.id
        assert latest.payload == {"risk_score": 30}

    def test_get_latest_filters_type(self, store: InsightStore) -> None:
        _create(store, type=InsightType.NEXT_ACTION, payload={"actions": []})
        assert store.get_latest(EntityType.OPPORTUNITY, "opp-1", InsightType.DEAL_RISK) is None

    def test_list_for_entity(self, store: InsightStore) -> None:
        first = _create(store)
        second = _create(store, type=InsightType.NEXT_ACTION)
        _create(store, entity_id="opp-2")
        records = store.list_for_entity(EntityType.OPPORTUNITY, "opp-1")
        assert [r.id for r in records] == [second.id, first.id]
        only_risk = store.list_for_entity(EntityType.OPPORTUNITY, "opp-1", InsightType.DEAL_RISK)
        assert [r.id for r in only_risk] == [first.id]

    def test_list_by_organization(self, store: InsightStore) -> None:
        _create(store)
        _create(store, organization_id="org-2")
        assert len(store.list_by_organization("org-1")) == 1
        assert store.list_by_organization("org-3") == []

    def test_high_confidence(self, store: InsightStore) -> None:
        _create(store, confidence_score=0.9)
        _create(store, confidence_score=0.7)
        _create(store, confidence_score=0.3)
        _create(store, confidence_score=None)
        scores = [r.confidence_score for r in store.get_high_confidence("org-1")]
        assert scores == [0.9, 0.7]


class TestInsightStoreCleanup:
    """Tests for delete and cleanup_old."""

    def test_delete(self, store: InsightStore) -> None:
        record = _create(store)
        assert store.delete(record.id) is True
        assert store.delete(record.id) is False
        assert store.get(record.id) is None

    def test_cleanup_removes_only_old_records_in_org(self, store: InsightStore) -> None:
        _create(store)
        _create(store, organization_id="org-2")
        later = datetime.now(timezone.utc) + timedelta(days=31)
        assert store.cleanup_old("org-1", max_age_days=30, now=later) == 1
        assert store.list_by_organization("org-1") == []
        assert len(store.list_by_organization("org-2")) == 1

    def test_cleanup_keeps_recent(self, store: InsightStore) -> None:
        _create(store)
        assert store.cleanup_old("org-1") == 0
        assert len(store.list_by_organization("org-1")) == 1


class TestInsightStoreErrors:
    def test_sqlite_failure_wrapped(self, store: InsightStore, temp_db: Path) -> None:
        with sqlite3.connect(temp_db) as conn:
            conn.execute("DROP TABLE insights")
        with pytest.raises(InsightStoreError):
            _create(store)

    def test_unusable_path(self, tmp_path: Path) -> None:
        with pytest.raises(InsightStoreError):
            InsightStore(tmp_path / "missing-dir" / "insights.db")
