"""Conversation (mystery request) service layer.

A conversation holds the party configuration chosen on the mystery form
and the flags the dashboard reads (needs_package_generation,
has_complete_package, is_paid, display_status).

Service functions correspond 1:1 with route handlers.
Routes are transport-only and call exactly one service function.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from mystery.db.models import Conversation
from mystery.db.session import transaction
from mystery.errors import ApiErrorCode, NotFoundError
from mystery.logging import get_logger
from mystery.schemas.conversation import ConversationCreate, ConversationOut

logger = get_logger(__name__)


def get_conversation_or_404(db: Session, conversation_id: UUID) -> Conversation:
    """Load a conversation.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): If the conversation doesn't exist.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def create_conversation(db: Session, request: ConversationCreate) -> ConversationOut:
    """Create a mystery request from the form.

    The new conversation is flagged as needing package generation.
    """
    with transaction(db):
        conversation = Conversation(
            **request.model_dump(),
            needs_package_generation=True,
        )
        db.add(conversation)
        db.flush()

    logger.info(
        "conversation_created",
        conversation_id=str(conversation.id),
        player_count=conversation.player_count,
        script_type=conversation.script_type,
    )
    return ConversationOut.model_validate(conversation)


def get_conversation(db: Session, conversation_id: UUID) -> ConversationOut:
    """Fetch a conversation by id."""
    return ConversationOut.model_validate(get_conversation_or_404(db, conversation_id))
