"""Internal callback routes used by the external generation service.

The generator writes its results back through these routes. They are not
exposed through the public frontend and require the X-Mystery-Internal
header in staging and prod.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from mystery.api.deps import get_db, require_internal_caller
from mystery.responses import success_response
from mystery.schemas.generation import GenerationProgressUpdate
from mystery.schemas.package import PackageContentIn
from mystery.services import packages as packages_service

router = APIRouter(prefix="/internal", dependencies=[Depends(require_internal_caller)])


@router.put("/conversations/{conversation_id}/package")
def save_package(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    body: Annotated[PackageContentIn | None, Body()] = None,
) -> dict:
    """Store a generated package (camelCase or snake_case keys).

    Marks the package completed and the conversation purchased.

    Errors:
        E_INVALID_REQUEST (400): No package data.
        E_CONVERSATION_NOT_FOUND (404): Conversation does not exist.
    """
    result = packages_service.save_structured_package(db, conversation_id, body)
    return success_response(result.model_dump(mode="json"))


@router.patch("/conversations/{conversation_id}/package/status")
def update_package_status(
    conversation_id: UUID,
    body: GenerationProgressUpdate,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Record a progress report; returns the stored status document.

    A completed status is never moved backwards by a later report.
    """
    result = packages_service.update_generation_progress(db, conversation_id, body)
    return success_response(result.to_document())
