"""Celery tasks for transactional email delivery.

Recipients and access tokens are looked up from the latest package at
run time. Email failures are returned, not raised: a failed send is
retried by the host from the dashboard.
"""

import asyncio
from uuid import UUID

from mystery.celery import celery_app
from mystery.config import get_settings
from mystery.db.session import get_session_factory
from mystery.logging import clear_task_context, configure_task_logging, get_logger
from mystery.services.email import (
    get_email_client,
    prepare_character_email,
    prepare_host_email,
    send_character_email,
    send_host_emails,
)

logger = get_logger(__name__)


@celery_app.task(bind=True, max_retries=0, name="send_host_emails")
def send_host_emails_task(self, conversation_id: str, request_id: str | None = None) -> dict:
    """Email the host their guide and detective kit links."""
    configure_task_logging(request_id=request_id, task_name="send_host_emails", task_id=self.request.id)
    try:
        return run_host_emails_sync(UUID(conversation_id))
    finally:
        clear_task_context()


@celery_app.task(bind=True, max_retries=0, name="send_character_email")
def send_character_email_task(
    self,
    conversation_id: str,
    character_id: str,
    request_id: str | None = None,
) -> dict:
    """Email a guest the link to their character guide."""
    configure_task_logging(
        request_id=request_id, task_name="send_character_email", task_id=self.request.id
    )
    try:
        return run_character_email_sync(UUID(conversation_id), UUID(character_id))
    finally:
        clear_task_context()


def run_host_emails_sync(conversation_id: UUID) -> dict:
    db = get_session_factory()()
    try:
        request = prepare_host_email(db, conversation_id)
    finally:
        db.close()

    result = asyncio.run(
        send_host_emails(get_email_client(), request, base_url=get_settings().public_base_url)
    )
    logger.info(
        "send_host_emails_finished",
        conversation_id=str(conversation_id),
        success=result.success,
    )
    return result.to_dict()


def run_character_email_sync(conversation_id: UUID, character_id: UUID) -> dict:
    db = get_session_factory()()
    try:
        request = prepare_character_email(db, conversation_id, character_id)
    finally:
        db.close()

    result = asyncio.run(
        send_character_email(
            get_email_client(), request, base_url=get_settings().public_base_url
        )
    )
    logger.info(
        "send_character_email_finished",
        conversation_id=str(conversation_id),
        character_id=str(character_id),
        success=result.success,
    )
    return result.to_dict()
