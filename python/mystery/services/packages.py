"""Package content service layer.

Content is written by the external generator through the internal
callback routes and read by the owner, by the host (host access token)
and by guests (character access tokens).

save_structured_package() is the one place generator payloads enter the
store. The key-spelling normalization has already happened in
PackageContentIn; this module only deals with canonical field names.
"""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from mystery.db.models import (
    Conversation,
    DisplayStatus,
    MysteryCharacter,
    MysteryPackage,
    utcnow,
)
from mystery.db.session import transaction
from mystery.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from mystery.logging import get_logger
from mystery.schemas.generation import (
    STEP_COMPLETED,
    GenerationProgressUpdate,
    GenerationStatus,
)
from mystery.schemas.package import (
    CharacterAccessOut,
    CharacterAssignment,
    CharacterIn,
    CharacterOut,
    HostPackageOut,
    PackageContentIn,
    PackageContentOut,
)
from mystery.services.documents import (
    build_character_guide,
    build_detective_kit,
    build_host_guide,
)
from mystery.services.notifier import notify_status_changed
from mystery.services.reconciler import parse_stored_status
from mystery.services.status_store import get_latest_package, get_or_create_package, write_status

logger = get_logger(__name__)

PACKAGE_TEXT_FIELDS: tuple[str, ...] = (
    "title",
    "game_overview",
    "host_guide",
    "materials",
    "preparation_instructions",
    "timeline",
    "hosting_tips",
    "evidence_cards",
    "relationship_matrix",
    "detective_script",
)

CHARACTER_TEXT_FIELDS: tuple[str, ...] = tuple(
    name for name in CharacterIn.model_fields if name != "name"
)


# =============================================================================
# Helper Functions
# =============================================================================


def _require_conversation(db: Session, conversation_id: UUID) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def _require_package(db: Session, conversation_id: UUID) -> MysteryPackage:
    _require_conversation(db, conversation_id)
    package = get_latest_package(db, conversation_id)
    if package is None:
        raise NotFoundError(ApiErrorCode.E_PACKAGE_NOT_FOUND, "Package not found")
    return package


def _require_character(
    db: Session, conversation_id: UUID, character_id: UUID
) -> tuple[MysteryPackage, MysteryCharacter]:
    package = _require_package(db, conversation_id)
    character = db.get(MysteryCharacter, character_id)
    if character is None or character.package_id != package.id:
        raise NotFoundError(ApiErrorCode.E_CHARACTER_NOT_FOUND, "Character not found")
    return package, character


def character_to_out(character: MysteryCharacter) -> CharacterOut:
    """Convert ORM character to response schema."""
    return CharacterOut(
        id=character.id,
        name=character.character_name,
        guest_name=character.guest_name,
        guest_email=character.guest_email,
        **{name: getattr(character, name) for name in CHARACTER_TEXT_FIELDS},
    )


def package_to_out(package: MysteryPackage) -> PackageContentOut:
    """Convert ORM package (with characters loaded) to response schema."""
    return PackageContentOut(
        id=package.id,
        conversation_id=package.conversation_id,
        characters=[character_to_out(c) for c in package.characters],
        generation_completed_at=package.generation_completed_at,
        updated_at=package.updated_at,
        **{name: getattr(package, name) for name in PACKAGE_TEXT_FIELDS},
    )


def _new_character(package_id: UUID, position: int, data: CharacterIn) -> MysteryCharacter:
    return MysteryCharacter(
        package_id=package_id,
        position=position,
        character_name=data.name or f"Character {position + 1}",
        **{name: getattr(data, name) for name in CHARACTER_TEXT_FIELDS},
    )


# =============================================================================
# Content writes
# =============================================================================


def save_structured_package(
    db: Session,
    conversation_id: UUID,
    payload: PackageContentIn | None,
) -> PackageContentOut:
    """Store a generated package and mark the conversation purchased.

    Writes the content onto the latest package row (creating one if none
    exists) and marks it completed. Characters are replaced wholesale when
    the payload carries any; an empty list leaves existing characters in
    place. Missing title, overview or host guide are logged, not rejected.

    Raises:
        InvalidRequestError: If no payload was supplied.
        NotFoundError: If the conversation does not exist.
    """
    if payload is None:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "No package data provided")

    conversation = _require_conversation(db, conversation_id)

    missing = [
        name
        for name, value in (
            ("title", payload.title),
            ("game_overview", payload.game_overview),
            ("host_guide", payload.host_guide),
        )
        if not value
    ]
    if missing:
        logger.warning(
            "package_payload_incomplete",
            conversation_id=str(conversation_id),
            missing=missing,
        )

    now = utcnow()
    with transaction(db):
        package = get_or_create_package(db, conversation_id)
        for name in PACKAGE_TEXT_FIELDS:
            setattr(package, name, getattr(payload, name))
        package.generation_status = GenerationStatus.completed().to_document()
        package.generation_completed_at = now
        package.updated_at = now

        if payload.characters:
            db.execute(delete(MysteryCharacter).where(MysteryCharacter.package_id == package.id))
            db.add_all(
                _new_character(package.id, position, character)
                for position, character in enumerate(payload.characters)
            )

        if not conversation.title and payload.title:
            conversation.title = payload.title
        conversation.needs_package_generation = False
        conversation.has_complete_package = True
        conversation.is_paid = True
        conversation.display_status = DisplayStatus.purchased.value
        conversation.updated_at = now

    db.expire(package, ["characters"])
    logger.info(
        "package_saved",
        conversation_id=str(conversation_id),
        package_id=str(package.id),
        character_count=len(payload.characters),
    )
    notify_status_changed(conversation_id)
    return package_to_out(package)


def update_generation_progress(
    db: Session,
    conversation_id: UUID,
    update: GenerationProgressUpdate,
) -> GenerationStatus:
    """Apply a progress report from the generator.

    Fields present in the update override the stored document; sections are
    merged. A stored completed status is final: later reports that would
    move it backwards are ignored.

    Raises:
        NotFoundError: If the conversation does not exist.
    """
    _require_conversation(db, conversation_id)

    package = get_or_create_package(db, conversation_id)
    stored = parse_stored_status(package.generation_status)

    if stored is not None and stored.status == "completed" and update.status != "completed":
        logger.info(
            "generation_progress_ignored",
            conversation_id=str(conversation_id),
            reported_status=update.status,
        )
        return stored

    base = stored or GenerationStatus.not_started()
    status = update.status or base.status
    if update.progress is not None:
        progress = update.progress
    elif status == "completed":
        progress = 100
    else:
        progress = base.progress
    if update.current_step:
        current_step = update.current_step
    elif status == "completed":
        current_step = STEP_COMPLETED
    else:
        current_step = base.current_step

    merged = GenerationStatus(
        status=status,
        progress=progress,
        current_step=current_step,
        resumable=update.resumable if update.resumable is not None else base.resumable,
        error=(update.error or base.error) if status == "failed" else None,
        sections={**base.sections, **(update.sections or {})},
    )
    now = utcnow()
    write_status(
        db,
        conversation_id,
        package.id,
        merged,
        started_at=(
            now
            if merged.status == "in_progress" and package.generation_started_at is None
            else None
        ),
        completed_at=now if merged.status == "completed" else None,
    )
    logger.info(
        "generation_progress_updated",
        conversation_id=str(conversation_id),
        status=merged.status,
        progress=merged.progress,
    )
    return merged


def mark_package_delivered(db: Session, conversation_id: UUID) -> None:
    """Flag the conversation as holding a complete, purchased package."""
    conversation = _require_conversation(db, conversation_id)
    if (
        conversation.has_complete_package
        and conversation.is_paid
        and conversation.display_status == DisplayStatus.purchased.value
    ):
        return

    with transaction(db):
        conversation.has_complete_package = True
        conversation.is_paid = True
        conversation.display_status = DisplayStatus.purchased.value
        conversation.updated_at = utcnow()
    logger.info("conversation_marked_purchased", conversation_id=str(conversation_id))


def assign_character(
    db: Session,
    conversation_id: UUID,
    character_id: UUID,
    assignment: CharacterAssignment,
) -> CharacterOut:
    """Assign a character to a guest."""
    _, character = _require_character(db, conversation_id, character_id)
    with transaction(db):
        character.guest_name = assignment.guest_name
        character.guest_email = assignment.guest_email
        character.updated_at = utcnow()
    logger.info(
        "character_assigned",
        conversation_id=str(conversation_id),
        character_id=str(character_id),
    )
    return character_to_out(character)


# =============================================================================
# Content reads
# =============================================================================


def get_package_content(db: Session, conversation_id: UUID) -> PackageContentOut:
    """Full content of the latest package with ordered characters.

    Raises:
        NotFoundError: If the conversation or its package does not exist.
    """
    return package_to_out(_require_package(db, conversation_id))


def get_character_guide(db: Session, conversation_id: UUID, character_id: UUID) -> str:
    """Assembled markdown guide for one character of the latest package."""
    _, character = _require_character(db, conversation_id, character_id)
    return build_character_guide(character)


def get_character(
    db: Session, conversation_id: UUID, character_id: UUID
) -> tuple[MysteryPackage, MysteryCharacter]:
    """Latest package and one of its characters.

    Raises:
        NotFoundError: If the conversation, package or character does not exist.
    """
    return _require_character(db, conversation_id, character_id)


def get_package_with_conversation(
    db: Session, conversation_id: UUID
) -> tuple[Conversation, MysteryPackage]:
    """Conversation and its latest package (for email delivery)."""
    package = _require_package(db, conversation_id)
    return package.conversation, package


def get_host_package_by_token(db: Session, token: str) -> HostPackageOut:
    """Host-role view of a package, keyed by its host access token.

    Raises:
        NotFoundError: If the token matches no package.
    """
    package = db.scalars(
        select(MysteryPackage).where(MysteryPackage.host_access_token == token)
    ).first()
    if package is None:
        raise NotFoundError(ApiErrorCode.E_ACCESS_TOKEN_INVALID, "Invalid access token")

    return HostPackageOut(
        title=package.title,
        game_overview=package.game_overview,
        host_guide=package.host_guide,
        materials=package.materials,
        preparation_instructions=package.preparation_instructions,
        timeline=package.timeline,
        hosting_tips=package.hosting_tips,
        detective_script=package.detective_script,
        evidence_cards=package.evidence_cards,
        host_guide_markdown=build_host_guide(package),
        detective_kit_markdown=build_detective_kit(package),
    )


def get_character_by_token(db: Session, token: str) -> CharacterAccessOut:
    """Character-role view, keyed by the character's access token.

    Raises:
        NotFoundError: If the token matches no character.
    """
    character = db.scalars(
        select(MysteryCharacter)
        .where(MysteryCharacter.access_token == token)
        .options(selectinload(MysteryCharacter.package))
    ).first()
    if character is None:
        raise NotFoundError(ApiErrorCode.E_ACCESS_TOKEN_INVALID, "Invalid access token")

    return CharacterAccessOut(
        mystery_title=character.package.title,
        character=character_to_out(character),
        guide_markdown=build_character_guide(character),
    )
