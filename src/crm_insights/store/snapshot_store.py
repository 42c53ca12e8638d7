"""SQLite-backed source of opportunity and lead snapshots."""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from crm_insights.models.lead import LeadSnapshot
from crm_insights.models.opportunity import OpportunitySnapshot, Stage


def _stage_value(stage: Stage | str) -> str:
    return stage.value if isinstance(stage, Stage) else Stage(stage.strip().lower()).value


class SnapshotStore:
    """
    Opportunities and leads keyed by id, stored as JSON documents with their
    activities and contacts embedded.
    """

    def __init__(self, db_path: str | Path = "crm_insights.db"):
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        with self._connection() as conn:
            conn.executescript(schema_path.read_text())

    def upsert_opportunity(self, snapshot: OpportunitySnapshot) -> bool:
        """Insert or replace. Returns True if the opportunity was new."""
        now = datetime.now(timezone.utc).isoformat()
        data = json.dumps(snapshot.model_dump(mode="json"), default=str)
        with self._connection() as conn:
            existing = conn.execute(
                "SELECT id FROM opportunities WHERE id = ?", (snapshot.id,)
            ).fetchone()
            conn.execute(
                """
                INSERT INTO opportunities (id, stage, data, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    stage = excluded.stage,
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (snapshot.id, snapshot.stage.value, data, now),
            )
            conn.commit()
        return existing is None

    def get_opportunity(self, opportunity_id: str) -> Optional[OpportunitySnapshot]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT data FROM opportunities WHERE id = ?", (opportunity_id,)
            ).fetchone()
        return OpportunitySnapshot.model_validate(json.loads(row["data"])) if row else None

    def list_opportunities(self, stage: Optional[Stage | str] = None) -> list[OpportunitySnapshot]:
        """All opportunities, optionally only those in `stage`. Ordered by id."""
        with self._connection() as conn:
            if stage is not None:
                rows = conn.execute(
                    "SELECT data FROM opportunities WHERE stage = ? ORDER BY id",
                    (_stage_value(stage),),
                ).fetchall()
            else:
                rows = conn.execute("SELECT data FROM opportunities ORDER BY id").fetchall()
        return [OpportunitySnapshot.model_validate(json.loads(r["data"])) for r in rows]

    def upsert_lead(self, lead: LeadSnapshot) -> bool:
        """Insert or replace. Returns True if the lead was new."""
        now = datetime.now(timezone.utc).isoformat()
        data = json.dumps(lead.model_dump(mode="json"), default=str)
        with self._connection() as conn:
            existing = conn.execute("SELECT id FROM leads WHERE id = ?", (lead.id,)).fetchone()
            conn.execute(
                """
                INSERT INTO leads (id, data, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (lead.id, data, now),
            )
            conn.commit()
        return existing is None

    def get_lead(self, lead_id: str) -> Optional[LeadSnapshot]:
        with self._connection() as conn:
            row = conn.execute("SELECT data FROM leads WHERE id = ?", (lead_id,)).fetchone()
        return LeadSnapshot.model_validate(json.loads(row["data"])) if row else None

    def list_leads(self) -> list[LeadSnapshot]:
        with self._connection() as conn:
            rows = conn.execute("SELECT data FROM leads ORDER BY id").fetchall()
        return [LeadSnapshot.model_validate(json.loads(r["data"])) for r in rows]
