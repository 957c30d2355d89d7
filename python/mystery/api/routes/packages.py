"""Package generation, status, content and email routes.

Routes are transport-only: each calls exactly one service function.

Generation:
- POST /conversations/{id}/package/generate
- POST /conversations/{id}/package/resume (same operation as generate)
- GET  /conversations/{id}/package/status (reconciled GenerationStatus)

Content:
- GET /conversations/{id}/package
- GET /conversations/{id}/package/characters/{character_id}/guide
- PUT /conversations/{id}/package/characters/{character_id}/assignment

Email:
- POST /conversations/{id}/package/emails/host
- POST /conversations/{id}/package/characters/{character_id}/email

Response envelope: {"data": ...}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from mystery.api.deps import get_db, get_email_client_dep, get_generation_client_dep
from mystery.config import get_settings
from mystery.errors import ApiError, ApiErrorCode, GenerationTriggerError
from mystery.logging import get_request_id, set_conversation_context
from mystery.responses import success_response
from mystery.schemas.generation import GenerateRequest, GenerateResponse
from mystery.schemas.package import CharacterAssignment
from mystery.services import email as email_service
from mystery.services import packages as packages_service
from mystery.services.conversations import get_conversation_or_404
from mystery.services.email import EmailClient, EmailSendResult
from mystery.services.generation import enqueue_generation, start_or_resume_generation
from mystery.services.generation_client import GenerationClientBase
from mystery.services.reconciler import reconcile

router = APIRouter()


# =============================================================================
# Generation
# =============================================================================


def _generate(
    conversation_id: UUID,
    body: GenerateRequest | None,
    db: Session,
    client: GenerationClientBase,
):
    set_conversation_context(str(conversation_id))
    body = body or GenerateRequest()
    test_mode = (
        body.test_mode if body.test_mode is not None else get_settings().generation_test_mode
    )

    if body.background:
        get_conversation_or_404(db, conversation_id)
        queued = enqueue_generation(conversation_id, test_mode, get_request_id())
        return JSONResponse(
            status_code=202,
            content=success_response(GenerateResponse(queued=queued).model_dump(mode="json")),
        )

    try:
        outcome = start_or_resume_generation(db, conversation_id, client, test_mode=test_mode)
    except GenerationTriggerError as e:
        raise ApiError(ApiErrorCode.E_GENERATION_TRIGGER_FAILED, e.message) from e

    return success_response(GenerateResponse(outcome=outcome).model_dump(mode="json"))


@router.post("/conversations/{conversation_id}/package/generate")
def generate_package(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[GenerationClientBase, Depends(get_generation_client_dep)],
    body: Annotated[GenerateRequest | None, Body()] = None,
):
    """Start package generation.

    Returns {"outcome": "started" | "already_in_progress" | "already_completed"},
    or 202 {"queued": bool} when background=true.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation does not exist.
        E_GENERATION_TRIGGER_FAILED (502): Generator call failed; status is
            recorded as failed and resumable.
    """
    return _generate(conversation_id, body, db, client)


@router.post("/conversations/{conversation_id}/package/resume")
def resume_package(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[GenerationClientBase, Depends(get_generation_client_dep)],
    body: Annotated[GenerateRequest | None, Body()] = None,
):
    """Resume package generation (identical to generate)."""
    return _generate(conversation_id, body, db, client)


@router.get("/conversations/{conversation_id}/package/status")
def get_package_status(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Reconciled generation status.

    Never fails: store errors are reported as not_started with an error step.
    """
    status = reconcile(db, conversation_id)
    return success_response(status.to_document())


# =============================================================================
# Content
# =============================================================================


@router.get("/conversations/{conversation_id}/package")
def get_package(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Full content of the latest package.

    Errors:
        E_CONVERSATION_NOT_FOUND (404), E_PACKAGE_NOT_FOUND (404)
    """
    result = packages_service.get_package_content(db, conversation_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}/package/characters/{character_id}/guide")
def get_character_guide(
    conversation_id: UUID,
    character_id: UUID,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Assembled markdown guide for one character.

    Errors:
        E_CHARACTER_NOT_FOUND (404): Character is not part of the latest package.
    """
    markdown = packages_service.get_character_guide(db, conversation_id, character_id)
    return success_response({"markdown": markdown})


@router.put("/conversations/{conversation_id}/package/characters/{character_id}/assignment")
def assign_character(
    conversation_id: UUID,
    character_id: UUID,
    body: CharacterAssignment,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Assign a character to a guest, optionally emailing them in the background."""
    result = packages_service.assign_character(db, conversation_id, character_id, body)
    data = result.model_dump(mode="json")
    if body.notify:
        data["email_queued"] = email_service.enqueue_character_email(
            conversation_id, character_id, get_request_id()
        )
    return success_response(data)


# =============================================================================
# Email
# =============================================================================


def _email_response(result: EmailSendResult) -> dict:
    if not result.success:
        raise ApiError(result.error_code or ApiErrorCode.E_EMAIL_SEND_FAILED, result.message)
    return success_response(result.to_dict())


@router.post("/conversations/{conversation_id}/package/emails/host")
async def send_host_emails(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[EmailClient | None, Depends(get_email_client_dep)],
    background: bool = Query(default=False, description="Send from a worker"),
):
    """Email the host their host-guide and detective-kit links.

    Errors:
        E_EMAIL_RECIPIENT_MISSING (400): Conversation has no host email.
        E_EMAIL_NOT_CONFIGURED (503): RESEND_API_KEY is not set.
        E_EMAIL_SEND_FAILED (502): One or both emails were rejected.
    """
    request = await run_in_threadpool(email_service.prepare_host_email, db, conversation_id)
    if background:
        queued = email_service.enqueue_host_emails(conversation_id, get_request_id())
        return JSONResponse(status_code=202, content=success_response({"queued": queued}))

    result = await email_service.send_host_emails(
        client, request, base_url=get_settings().public_base_url
    )
    return _email_response(result)


@router.post("/conversations/{conversation_id}/package/characters/{character_id}/email")
async def send_character_email(
    conversation_id: UUID,
    character_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[EmailClient | None, Depends(get_email_client_dep)],
) -> dict:
    """Email the assigned guest a link to their character guide.

    Errors:
        E_EMAIL_RECIPIENT_MISSING (400): Character is not assigned to a guest.
        E_EMAIL_NOT_CONFIGURED (503), E_EMAIL_SEND_FAILED (502)
    """
    request = await run_in_threadpool(
        email_service.prepare_character_email, db, conversation_id, character_id
    )
    result = await email_service.send_character_email(
        client, request, base_url=get_settings().public_base_url
    )
    return _email_response(result)
