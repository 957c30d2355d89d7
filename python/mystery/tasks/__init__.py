"""Celery tasks for the mystery package generator.

Tasks are explicitly imported here to register them with Celery.
No autodiscovery - all tasks must be imported in this module.

Usage in API (enqueue):
    from mystery.tasks import trigger_package_generation
    trigger_package_generation.apply_async(
        args=[conversation_id],
        kwargs={"test_mode": False, "request_id": request_id},
        queue="generation",
    )
"""

from mystery.tasks.generation import trigger_package_generation
from mystery.tasks.notifications import send_character_email_task, send_host_emails_task

__all__ = [
    "trigger_package_generation",
    "send_host_emails_task",
    "send_character_email_task",
]
