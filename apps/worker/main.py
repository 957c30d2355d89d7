"""Celery worker entrypoint.

Run with: celery -A apps.worker.main:celery_app worker -Q generation,email,default --loglevel=info

This module imports the Celery app and explicitly registers all tasks.
Task definitions are in mystery.tasks package - no autodiscovery.

Logging Convention:
- All task log entries include request_id, task_name, task_id when available
- Tasks accept `request_id: str | None = None` parameter for correlation
- Use configure_task_logging() at the start of each task to set up context

Queue Configuration:
- generation: fire-and-forget generator triggers
- email: transactional email delivery
- default: General background tasks

Status writes made by workers publish on the Redis change channel so that
API processes streaming status to viewers pick them up.
"""

from celery.signals import worker_process_init

from mystery.celery import celery_app
from mystery.config import get_settings
from mystery.logging import configure_logging, get_logger
from mystery.services.notifier import RedisStatusNotifier, set_status_notifier

# =============================================================================
# Task Registration (explicit imports - no autodiscovery)
# =============================================================================

# Import tasks to register them with Celery
# Each import registers the task with the celery_app
from mystery.tasks import (  # noqa: F401
    send_character_email_task,
    send_host_emails_task,
    trigger_package_generation,
)

# =============================================================================
# Worker Lifecycle
# =============================================================================


@worker_process_init.connect
def setup_worker_process(**kwargs):
    """Configure structlog and the change channel when a worker process starts."""
    configure_logging()
    logger = get_logger(__name__)

    settings = get_settings()
    if settings.redis_url:
        set_status_notifier(RedisStatusNotifier(settings.redis_url))
    else:
        logger.warning("status_notifier_unavailable", reason="redis_url_unset")

    logger.info("celery_worker_started", queues=["generation", "email", "default"])


# Export celery_app for Celery to find
# Command: celery -A apps.worker.main:celery_app worker ...
__all__ = ["celery_app"]
