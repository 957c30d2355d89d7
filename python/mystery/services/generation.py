"""Job trigger: start or resume package generation.

start_or_resume_generation() is guarded against duplicate invocation by
re-reading the latest stored status:

- completed: nothing to do, no writes, no outbound call
- in_progress: a generator run is already underway, no outbound call
- anything else (no row, not_started, failed, unreadable): arm the job
  (in_progress / 10), call the generator once, then in_progress / 20

Resume is the same operation as start. The generator owns its own
partial progress; this service only re-arms the trigger.

The guard is a read-then-write check, not a lock: two simultaneous starts
can both pass it. That double invocation is accepted.

On any trigger failure the row is set to failed / resumable before the
error propagates, so viewers see a consistent state even when the caller
is a fire-and-forget task.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from mystery.config import Environment, get_settings
from mystery.db.models import Conversation, utcnow
from mystery.errors import ApiErrorCode, GenerationTriggerError, NotFoundError
from mystery.logging import get_logger
from mystery.schemas.generation import (
    PACKAGE_SECTIONS,
    STEP_PROCESSING,
    STEP_SENDING,
    STEP_TRIGGER_FAILED,
    GenerationOutcome,
    GenerationStatus,
)
from mystery.services.generation_client import GenerationClientBase
from mystery.services.reconciler import parse_stored_status
from mystery.services.status_store import get_latest_package, get_or_create_package, write_status

logger = get_logger(__name__)

TRIGGER_START_PROGRESS = 10
TRIGGER_SENT_PROGRESS = 20


def start_or_resume_generation(
    db: Session,
    conversation_id: UUID,
    client: GenerationClientBase,
    *,
    test_mode: bool,
) -> GenerationOutcome:
    """Trigger package generation unless it is already done or running.

    Args:
        db: Database session.
        conversation_id: Conversation to generate a package for.
        client: Generation service client.
        test_mode: Forwarded to the generator.

    Returns:
        The guard outcome.

    Raises:
        NotFoundError: If the conversation does not exist.
        GenerationTriggerError: If the generator call failed (status already
            recorded as failed / resumable).
    """
    if db.get(Conversation, conversation_id) is None:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")

    existing = get_latest_package(db, conversation_id)
    stored = parse_stored_status(existing.generation_status) if existing is not None else None

    if stored is not None and stored.status == "completed":
        logger.info("generation_skipped", conversation_id=str(conversation_id), reason="completed")
        return GenerationOutcome.already_completed
    if stored is not None and stored.status == "in_progress":
        logger.warning(
            "generation_skipped", conversation_id=str(conversation_id), reason="in_progress"
        )
        return GenerationOutcome.already_in_progress

    package = get_or_create_package(db, conversation_id)
    package_id = package.id

    write_status(
        db,
        conversation_id,
        package_id,
        GenerationStatus(
            status="in_progress",
            progress=TRIGGER_START_PROGRESS,
            current_step=STEP_SENDING,
            sections={section: False for section in PACKAGE_SECTIONS},
        ),
        started_at=utcnow(),
    )

    try:
        client.trigger(conversation_id, test_mode=test_mode)
    except Exception as e:
        message = e.message if isinstance(e, GenerationTriggerError) else str(e)
        logger.error(
            "generation_trigger_failed",
            conversation_id=str(conversation_id),
            package_id=str(package_id),
            error=message,
            error_type=type(e).__name__,
        )
        _record_trigger_failure(db, conversation_id, package_id, message)
        if isinstance(e, GenerationTriggerError):
            raise
        raise GenerationTriggerError(message) from e

    write_status(
        db,
        conversation_id,
        package_id,
        GenerationStatus(
            status="in_progress",
            progress=TRIGGER_SENT_PROGRESS,
            current_step=STEP_PROCESSING,
        ),
    )
    logger.info(
        "generation_started",
        conversation_id=str(conversation_id),
        package_id=str(package_id),
        test_mode=test_mode,
    )
    return GenerationOutcome.started


def _record_trigger_failure(
    db: Session, conversation_id: UUID, package_id: UUID, message: str
) -> None:
    try:
        write_status(
            db,
            conversation_id,
            package_id,
            GenerationStatus(
                status="failed",
                progress=0,
                current_step=STEP_TRIGGER_FAILED,
                error=message,
                resumable=True,
            ),
        )
    except Exception as e:
        logger.error(
            "generation_failure_write_failed",
            conversation_id=str(conversation_id),
            package_id=str(package_id),
            error=str(e),
        )


def enqueue_generation(
    conversation_id: UUID,
    test_mode: bool,
    request_id: str | None,
) -> bool:
    """Enqueue the trigger_package_generation Celery task.

    Returns:
        True if the task was enqueued, False otherwise (test environment or
        broker unavailable).
    """
    settings = get_settings()

    # In test environment, don't enqueue - let tests call the task directly
    if settings.mystery_env == Environment.TEST:
        logger.debug("skipping_task_enqueue", reason="test_environment")
        return False

    try:
        from mystery.tasks import trigger_package_generation

        trigger_package_generation.apply_async(
            args=[str(conversation_id)],
            kwargs={"test_mode": test_mode, "request_id": request_id},
            queue="generation",
        )
        logger.info(
            "generation_task_enqueued",
            conversation_id=str(conversation_id),
            request_id=request_id,
        )
        return True
    except Exception as e:
        logger.warning(
            "generation_task_enqueue_failed",
            conversation_id=str(conversation_id),
            error=str(e),
        )
        return False
