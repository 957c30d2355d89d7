"""Celery application configuration.

Central configuration for Celery used by both API (for enqueuing)
and worker (for executing tasks).

Usage:
    from mystery.celery import celery_app

    # Enqueue task:
    celery_app.send_task("trigger_package_generation", args=[conversation_id])

    # Or import task directly:
    from mystery.tasks import trigger_package_generation
    trigger_package_generation.apply_async(args=[conversation_id], queue="generation")
"""

from celery import Celery

from mystery.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery("mystery")

# Configure from settings
celery_app.conf.broker_url = settings.effective_celery_broker_url
celery_app.conf.result_backend = settings.effective_celery_result_backend

# Task configuration
celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True

# Queue routing: generator triggers and outbound email are kept apart
celery_app.conf.task_routes = {
    "trigger_package_generation": {"queue": "generation"},
    "send_host_emails": {"queue": "email"},
    "send_character_email": {"queue": "email"},
}

# Default queue
celery_app.conf.task_default_queue = "default"

# For testing: allow eager mode (synchronous execution)
celery_app.conf.task_always_eager = False
