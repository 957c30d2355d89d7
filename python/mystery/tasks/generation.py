"""Celery task for fire-and-forget package generation.

No caller observes the outcome of this task, so the failed / resumable
status written by the job trigger is the only record of a failed call.
max_retries=0: retrying is the viewer's explicit resume action.
"""

from uuid import UUID

from mystery.celery import celery_app
from mystery.config import get_settings
from mystery.db.session import get_session_factory
from mystery.errors import GenerationTriggerError
from mystery.logging import clear_task_context, configure_task_logging, get_logger
from mystery.services.generation import start_or_resume_generation
from mystery.services.generation_client import get_generation_client

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="trigger_package_generation")
def trigger_package_generation(
    self,
    conversation_id: str,
    test_mode: bool | None = None,
    request_id: str | None = None,
) -> dict:
    """Start or resume generation for a conversation.

    Args:
        conversation_id: UUID of the conversation.
        test_mode: Forwarded to the generator (defaults to GENERATION_TEST_MODE).
        request_id: Optional request ID for log correlation.

    Returns:
        Dict with the guard outcome, or the failure message.
    """
    configure_task_logging(
        request_id=request_id, task_name="trigger_package_generation", task_id=self.request.id
    )
    try:
        return run_trigger_sync(UUID(conversation_id), test_mode)
    finally:
        clear_task_context()


def run_trigger_sync(conversation_id: UUID, test_mode: bool | None = None) -> dict:
    """Run the job trigger with a worker-owned session (also used by tests)."""
    if test_mode is None:
        test_mode = get_settings().generation_test_mode

    db = get_session_factory()()
    try:
        outcome = start_or_resume_generation(
            db, conversation_id, get_generation_client(), test_mode=test_mode
        )
    except GenerationTriggerError as e:
        # Status is already recorded as failed / resumable
        logger.warning(
            "trigger_package_generation_failed",
            conversation_id=str(conversation_id),
            error=e.message,
        )
        return {"status": "failed", "error": e.message}
    finally:
        db.close()

    logger.info(
        "trigger_package_generation_completed",
        conversation_id=str(conversation_id),
        outcome=outcome.value,
    )
    return {"status": "ok", "outcome": outcome.value}
