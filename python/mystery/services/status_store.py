"""Generation job status store.

Reads and writes the generation status columns of mystery_packages. A
conversation may own several package rows; the one with the most recent
updated_at is authoritative for both status and content.

Every write commits and then publishes on the change channel so that
status watch sessions re-run the reconciler.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from mystery.db.models import Conversation, MysteryCharacter, MysteryPackage, utcnow
from mystery.db.session import transaction
from mystery.logging import get_logger
from mystery.schemas.generation import GenerationStatus
from mystery.services.notifier import notify_status_changed

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContentPresence:
    """Which content signals the latest package carries."""

    has_title: bool
    has_host_guide: bool
    character_count: int

    @property
    def is_complete(self) -> bool:
        """Title, host guide and at least one character are present."""
        return self.has_title and self.has_host_guide and self.character_count > 0


NO_CONTENT = ContentPresence(has_title=False, has_host_guide=False, character_count=0)


@dataclass(frozen=True)
class StatusSnapshot:
    """Everything the reconciler looks at, read in one go."""

    package_id: UUID | None
    status_document: dict | None
    started_at: datetime | None
    completed_at: datetime | None
    content: ContentPresence
    has_complete_package: bool
    is_paid: bool

    @property
    def has_job(self) -> bool:
        return self.package_id is not None


def _has_text(value: str | None) -> bool:
    return value is not None and value.strip() != ""


def get_latest_package(db: Session, conversation_id: UUID) -> MysteryPackage | None:
    """Return the authoritative package row for a conversation, if any."""
    return db.scalars(
        select(MysteryPackage)
        .where(MysteryPackage.conversation_id == conversation_id)
        .order_by(MysteryPackage.updated_at.desc(), MysteryPackage.created_at.desc())
        .limit(1)
    ).first()


def read_status_snapshot(db: Session, conversation_id: UUID) -> StatusSnapshot:
    """Read the latest job row, its content-presence signals and parent flags."""
    conversation_flags = db.execute(
        select(Conversation.has_complete_package, Conversation.is_paid).where(
            Conversation.id == conversation_id
        )
    ).first()
    has_complete_package = bool(conversation_flags and conversation_flags.has_complete_package)
    is_paid = bool(conversation_flags and conversation_flags.is_paid)

    package = get_latest_package(db, conversation_id)
    if package is None:
        return StatusSnapshot(
            package_id=None,
            status_document=None,
            started_at=None,
            completed_at=None,
            content=NO_CONTENT,
            has_complete_package=has_complete_package,
            is_paid=is_paid,
        )

    character_count = db.scalar(
        select(func.count())
        .select_from(MysteryCharacter)
        .where(MysteryCharacter.package_id == package.id)
    )
    return StatusSnapshot(
        package_id=package.id,
        status_document=package.generation_status,
        started_at=package.generation_started_at,
        completed_at=package.generation_completed_at,
        content=ContentPresence(
            has_title=_has_text(package.title),
            has_host_guide=_has_text(package.host_guide),
            character_count=character_count or 0,
        ),
        has_complete_package=has_complete_package,
        is_paid=is_paid,
    )


def get_or_create_package(db: Session, conversation_id: UUID) -> MysteryPackage:
    """Return the latest package row, adding a fresh one if none exists.

    The new row is flushed, not committed.
    """
    package = get_latest_package(db, conversation_id)
    if package is None:
        package = MysteryPackage(conversation_id=conversation_id)
        db.add(package)
        db.flush()
    return package


def write_status(
    db: Session,
    conversation_id: UUID,
    package_id: UUID,
    status: GenerationStatus,
    *,
    started_at: datetime | None = None,
    completed_at: datetime | None = None,
) -> None:
    """Persist a status document on a package row and publish the change.

    Args:
        db: Database session.
        conversation_id: Owning conversation (used for the change channel).
        package_id: Package row to update.
        status: New status document.
        started_at: Set generation_started_at when given.
        completed_at: Set generation_completed_at when given.
    """
    values: dict = {"generation_status": status.to_document(), "updated_at": utcnow()}
    if started_at is not None:
        values["generation_started_at"] = started_at
    if completed_at is not None:
        values["generation_completed_at"] = completed_at

    with transaction(db):
        db.execute(update(MysteryPackage).where(MysteryPackage.id == package_id).values(**values))

    logger.debug(
        "generation_status_written",
        conversation_id=str(conversation_id),
        package_id=str(package_id),
        status=status.status,
        progress=status.progress,
    )
    notify_status_changed(conversation_id)
