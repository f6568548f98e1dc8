"""OCR attempt history routes."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from receiptflow.api.deps import RuntimeDep
from receiptflow.api.schemas import AttemptResponse
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.ocr_attempt import EntityRef, EntityType

router = APIRouter()


@router.get("/statistics")
async def attempt_statistics(runtime: RuntimeDep) -> dict[str, Any]:
    """Attempt totals per status and per engine."""
    return await OcrAttemptRepository(runtime.db).statistics()


@router.get("/{entity_type}/{entity_id}", response_model=list[AttemptResponse])
async def entity_attempts(
    entity_type: str,
    entity_id: UUID,
    runtime: RuntimeDep,
    limit: int | None = Query(None, ge=1, le=1000),
):
    """OCR history for any document, bill or receipt, newest first."""
    try:
        kind = EntityType(entity_type.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid entity type: {entity_type}",
        )
    attempts = await OcrAttemptRepository(runtime.db).find_by_entity(
        EntityRef(kind=kind, id=entity_id), limit=limit
    )
    return [AttemptResponse.from_attempt(attempt) for attempt in attempts]
