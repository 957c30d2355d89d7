"""Generation status reconciler.

Computes the authoritative GenerationStatus of a conversation's package
from three partially-trusted sources:

- the stored status document on the latest package row
- the presence of generated content on that row (title, host guide, characters)
- the parent conversation's has_complete_package / is_paid flags

The external generator writes content and status out of band and has been
seen to save content while leaving the status at in_progress. Content
existence therefore outranks the stored status whenever the two disagree
in the "should be complete" direction, and the stored row is corrected.
A stored completed status is never downgraded here.

Priority order:
1. No package row: not_started.
2. Content complete but stored status is not completed: drift. Write
   completed back and return it.
3. Stored status missing or unrecognized: infer from completion
   timestamp / content / parent flags, then start timestamp.
4. Otherwise: stored status with defaults for missing optional fields.

reconcile() is a read path for presentation and never raises.
"""

from dataclasses import dataclass
from typing import Any, get_args
from uuid import UUID

from sqlalchemy.orm import Session

from mystery.db.models import utcnow
from mystery.logging import get_logger
from mystery.schemas.generation import (
    GENERATION_STATES,
    STEP_IN_PROGRESS,
    STEP_STATUS_ERROR,
    STEP_UNKNOWN,
    GenerationStatus,
)
from mystery.services.status_store import StatusSnapshot, read_status_snapshot, write_status

logger = get_logger(__name__)

KNOWN_STATES: frozenset[str] = frozenset(get_args(GENERATION_STATES))

# Progress reported when a job is inferred to be running from its start timestamp
INFERRED_IN_PROGRESS_PROGRESS = 50


@dataclass(frozen=True)
class Derivation:
    """Outcome of deriving a status from a snapshot.

    Attributes:
        status: The status to report.
        drift: True when the stored row disagrees with content and must be
            overwritten with ``status``.
        fallback: Status to report if the corrective write fails.
    """

    status: GenerationStatus
    drift: bool = False
    fallback: GenerationStatus | None = None


def parse_stored_status(document: Any) -> GenerationStatus | None:
    """Leniently read a stored status document.

    Returns None when the document is absent or carries no recognized
    status value. Missing or malformed optional fields are defaulted:
    progress to 0 (clamped to 0-100), currentStep to a placeholder,
    sections to an empty mapping.
    """
    if not isinstance(document, dict):
        return None
    state = document.get("status")
    if state not in KNOWN_STATES:
        return None

    progress = document.get("progress")
    if isinstance(progress, bool) or not isinstance(progress, int | float):
        progress = 0
    progress = min(max(int(progress), 0), 100)

    step = document.get("currentStep", document.get("current_step"))
    if not isinstance(step, str) or not step:
        step = STEP_UNKNOWN

    resumable = document.get("resumable")
    error = document.get("error")
    sections = document.get("sections")

    return GenerationStatus(
        status=state,
        progress=progress,
        current_step=step,
        resumable=resumable if isinstance(resumable, bool) else None,
        error=error if isinstance(error, str) else None,
        sections=(
            {name: flag for name, flag in sections.items() if isinstance(flag, bool)}
            if isinstance(sections, dict)
            else {}
        ),
    )


def infer_status(snapshot: StatusSnapshot) -> GenerationStatus:
    """Infer a status from timestamps and flags when none is stored.

    Note: is_paid alone counts as completion here, matching how the
    dashboard has always treated paid conversations.
    """
    if (
        snapshot.completed_at is not None
        or snapshot.content.is_complete
        or snapshot.has_complete_package
        or snapshot.is_paid
    ):
        return GenerationStatus.completed()
    if snapshot.started_at is not None:
        return GenerationStatus(
            status="in_progress",
            progress=INFERRED_IN_PROGRESS_PROGRESS,
            current_step=STEP_IN_PROGRESS,
        )
    return GenerationStatus.not_started()


def derive_status(snapshot: StatusSnapshot) -> Derivation:
    """Pure status derivation from a snapshot (no I/O)."""
    if not snapshot.has_job:
        return Derivation(status=GenerationStatus.not_started())

    stored = parse_stored_status(snapshot.status_document)

    if snapshot.content.is_complete and (stored is None or stored.status != "completed"):
        return Derivation(
            status=GenerationStatus.completed(),
            drift=True,
            fallback=stored if stored is not None else infer_status(snapshot),
        )

    if stored is None:
        return Derivation(status=infer_status(snapshot))

    return Derivation(status=stored)


def reconcile(db: Session, conversation_id: UUID) -> GenerationStatus:
    """Return the authoritative generation status for a conversation.

    Performs at most one corrective write (drift). Store failures are
    logged and converted into a safe default; a failed corrective write
    leaves the stale status in place for the next reconcile to retry.
    """
    try:
        snapshot = read_status_snapshot(db, conversation_id)
    except Exception as e:
        db.rollback()
        logger.error(
            "status_read_failed",
            conversation_id=str(conversation_id),
            error=str(e),
            error_type=type(e).__name__,
        )
        return GenerationStatus.not_started(current_step=STEP_STATUS_ERROR)

    derivation = derive_status(snapshot)
    if not derivation.drift:
        return derivation.status

    document = snapshot.status_document
    stored_state = document.get("status") if isinstance(document, dict) else None
    try:
        write_status(
            db,
            conversation_id,
            snapshot.package_id,
            derivation.status,
            completed_at=utcnow(),
        )
    except Exception as e:
        logger.warning(
            "status_drift_correction_failed",
            conversation_id=str(conversation_id),
            package_id=str(snapshot.package_id),
            error=str(e),
        )
        return derivation.fallback or derivation.status

    logger.info(
        "status_drift_corrected",
        conversation_id=str(conversation_id),
        package_id=str(snapshot.package_id),
        stored_status=stored_state,
        character_count=snapshot.content.character_count,
    )
    return derivation.status
