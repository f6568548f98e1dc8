"""Repository for the OCR attempt audit trail."""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from receiptflow.db.database import Database
from receiptflow.models.ocr_attempt import EntityRef, EntityType, OcrAttempt, OcrAttemptStatus

logger = logging.getLogger(__name__)


class OcrAttemptRepository:
    """Append-only store of OCR attempts keyed by a polymorphic entity reference.

    Rows are only ever inserted. The two exceptions are ``repoint``, which
    moves history to the bill/receipt a document became (and back on revert),
    and ``purge_for_entity``, used when an entity is permanently deleted.
    """

    def __init__(self, db: Database):
        self.db = db

    async def record(self, attempt: OcrAttempt) -> OcrAttempt:
        """Store a single attempt."""
        await self.db.insert("ocr_attempts", {
            "id": str(attempt.id),
            "entity_type": attempt.entity_type.value,
            "entity_id": str(attempt.entity_id),
            "timestamp": attempt.timestamp.isoformat(),
            "engine_used": attempt.engine_used,
            "status": attempt.status.value,
            "extracted_data_json": attempt.extracted_data_json,
            "error_message": attempt.error_message,
            "raw_response": attempt.raw_response,
            "processing_duration_ms": attempt.processing_duration_ms,
        })
        logger.debug(
            f"Recorded {attempt.status.value} attempt by {attempt.engine_used} for {attempt.entity_ref}"
        )
        return attempt

    async def find_by_entity(self, ref: EntityRef, limit: int | None = None) -> list[OcrAttempt]:
        """Attempts for an entity, newest first."""
        query = """
            SELECT * FROM ocr_attempts
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY timestamp DESC, rowid DESC
        """
        params: tuple = (ref.kind.value, str(ref.id))
        if limit is not None:
            query += " LIMIT ?"
            params += (limit,)

        rows = await self.db.fetch_all(query, params)
        return [self._row_to_attempt(row) for row in rows]

    async def latest_for_entity(self, ref: EntityRef) -> OcrAttempt | None:
        attempts = await self.find_by_entity(ref, limit=1)
        return attempts[0] if attempts else None

    async def count_for_entity(self, ref: EntityRef) -> int:
        row = await self.db.fetch_one(
            "SELECT COUNT(*) as count FROM ocr_attempts WHERE entity_type = ? AND entity_id = ?",
            (ref.kind.value, str(ref.id))
        )
        return row["count"] if row else 0

    async def repoint(self, source: EntityRef, target: EntityRef) -> int:
        """Move all attempts of ``source`` onto ``target``; returns the row count."""
        count = await self.db.update(
            "ocr_attempts",
            {"entity_type": target.kind.value, "entity_id": str(target.id)},
            "entity_type = ? AND entity_id = ?",
            (source.kind.value, str(source.id)),
        )
        if count:
            logger.info(f"Moved {count} OCR attempt(s) from {source} to {target}")
        return count

    async def purge_for_entity(self, ref: EntityRef) -> int:
        """Delete the history of a permanently removed entity."""
        count = await self.db.delete(
            "ocr_attempts",
            "entity_type = ? AND entity_id = ?",
            (ref.kind.value, str(ref.id)),
        )
        if count:
            logger.info(f"Purged {count} OCR attempt(s) for {ref}")
        return count

    async def statistics(self) -> dict[str, Any]:
        """Totals per status and per engine."""
        status_rows = await self.db.fetch_all(
            "SELECT status, COUNT(*) as count FROM ocr_attempts GROUP BY status"
        )
        engine_rows = await self.db.fetch_all(
            """
            SELECT engine_used, status, COUNT(*) as count,
                   AVG(processing_duration_ms) as avg_duration_ms
            FROM ocr_attempts
            GROUP BY engine_used, status
            """
        )

        by_status = {status.value: 0 for status in OcrAttemptStatus}
        by_status.update({row["status"]: row["count"] for row in status_rows})

        by_engine: dict[str, dict[str, Any]] = {}
        for row in engine_rows:
            engine = by_engine.setdefault(row["engine_used"], {"total": 0})
            engine[row["status"]] = row["count"]
            engine["total"] += row["count"]
            if row["status"] == OcrAttemptStatus.SUCCESS.value:
                engine["avg_success_duration_ms"] = round(row["avg_duration_ms"] or 0)

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_engine": by_engine,
        }

    def _row_to_attempt(self, row: dict[str, Any]) -> OcrAttempt:
        return OcrAttempt(
            id=UUID(row["id"]),
            entity_type=EntityType(row["entity_type"]),
            entity_id=UUID(row["entity_id"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            engine_used=row["engine_used"],
            status=OcrAttemptStatus(row["status"]),
            extracted_data_json=row.get("extracted_data_json"),
            error_message=row.get("error_message"),
            raw_response=row.get("raw_response"),
            processing_duration_ms=row.get("processing_duration_ms") or 0,
        )
