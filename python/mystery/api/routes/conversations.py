"""Conversation (mystery request) routes.

Routes are transport-only: each calls exactly one service function.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mystery.api.deps import get_db
from mystery.responses import success_response
from mystery.schemas.conversation import ConversationCreate
from mystery.services import conversations as conversations_service

router = APIRouter()


@router.post("/conversations", status_code=201)
def create_conversation(
    body: ConversationCreate,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a mystery request from the party configuration form.

    Errors:
        E_INVALID_REQUEST (400): A form field is out of range.
    """
    result = conversations_service.create_conversation(db, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}")
def get_conversation(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Fetch a mystery request.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation does not exist.
    """
    result = conversations_service.get_conversation(db, conversation_id)
    return success_response(result.model_dump(mode="json"))
