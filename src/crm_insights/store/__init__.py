"""Local storage for snapshots and generated insights."""

from crm_insights.store.insight_store import InsightStore
from crm_insights.store.snapshot_store import SnapshotStore

__all__ = ["InsightStore", "SnapshotStore"]
