"""SQLite store for generated insights."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from crm_insights.errors import InsightStoreError
from crm_insights.models.insight import EntityType, InsightRecord, InsightType


class InsightStore:
    """
    Append-only record of insights per entity. Every refresh inserts a new row;
    readers take the newest. Any sqlite3 failure surfaces as InsightStoreError.
    """

    def __init__(self, db_path: str | Path = "crm_insights.db"):
        self._db_path = Path(db_path)
        self._ensure_schema()

    def _connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connection() as conn:
                yield conn
        except sqlite3.Error as e:
            raise InsightStoreError(f"Insight store failure ({self._db_path}): {e}") from e

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        with self._transaction() as conn:
            conn.executescript(schema_path.read_text())

    def create(
        self,
        type: InsightType,
        entity_type: EntityType,
        entity_id: str,
        payload: dict[str, Any],
        *,
        organization_id: str,
        confidence_score: Optional[float] = None,
        model_version: Optional[str] = None,
    ) -> InsightRecord:
        """Insert a new insight row and return it."""
        now = datetime.now(timezone.utc)
        stamp = now.isoformat()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO insights
                (type, entity_type, entity_id, payload, confidence_score, model_version,
                 organization_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    InsightType(type).value,
                    EntityType(entity_type).value,
                    entity_id,
                    json.dumps(payload, default=str),
                    confidence_score,
                    model_version,
                    organization_id,
                    stamp,
                    stamp,
                ),
            )
            conn.commit()
            row_id = cursor.lastrowid or 0
        return InsightRecord(
            id=row_id,
            type=type,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload,
            confidence_score=confidence_score,
            model_version=model_version,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )

    def get(self, insight_id: int) -> Optional[InsightRecord]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM insights WHERE id = ?", (insight_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def get_latest(
        self, entity_type: EntityType, entity_id: str, type: InsightType
    ) -> Optional[InsightRecord]:
        """Newest insight of `type` for one entity."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM insights
                WHERE entity_type = ? AND entity_id = ? AND type = ?
                ORDER BY created_at DESC, id DESC LIMIT 1
                """,
                (EntityType(entity_type).value, entity_id, InsightType(type).value),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_for_entity(
        self, entity_type: EntityType, entity_id: str, type: Optional[InsightType] = None
    ) -> list[InsightRecord]:
        """All insights for one entity, newest first."""
        query = "SELECT * FROM insights WHERE entity_type = ? AND entity_id = ?"
        params: list[Any] = [EntityType(entity_type).value, entity_id]
        if type is not None:
            query += " AND type = ?"
            params.append(InsightType(type).value)
        query += " ORDER BY created_at DESC, id DESC"
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def list_by_organization(
        self, organization_id: str, type: Optional[InsightType] = None
    ) -> list[InsightRecord]:
        query = "SELECT * FROM insights WHERE organization_id = ?"
        params: list[Any] = [organization_id]
        if type is not None:
            query += " AND type = ?"
            params.append(InsightType(type).value)
        query += " ORDER BY created_at DESC, id DESC"
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def get_high_confidence(self, organization_id: str, threshold: float = 0.7) -> list[InsightRecord]:
        """Insights whose confidence is at or above `threshold`, most confident first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM insights
                WHERE organization_id = ? AND confidence_score >= ?
                ORDER BY confidence_score DESC, created_at DESC
                """,
                (organization_id, threshold),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def delete(self, insight_id: int) -> bool:
        """Delete one insight. Returns whether a row was removed."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM insights WHERE id = ?", (insight_id,))
            conn.commit()
            return cursor.rowcount > 0

    def cleanup_old(
        self, organization_id: str, max_age_days: int = 30, *, now: Optional[datetime] = None
    ) -> int:
        """Delete this organization's insights created before now - max_age_days. Returns count."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(days=max_age_days)).isoformat()
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM insights WHERE organization_id = ? AND created_at < ?",
                (organization_id, cutoff),
            )
            conn.commit()
            return cursor.rowcount

    def _row_to_record(self, row: sqlite3.Row) -> InsightRecord:
        return InsightRecord(
            id=row["id"],
            type=row["type"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            payload=json.loads(row["payload"]),
            confidence_score=row["confidence_score"],
            model_version=row["model_version"],
            organization_id=row["organization_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
