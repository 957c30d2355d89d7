"""Transactional email side channel.

Emails are sent through the Resend HTTP API with HTML rendered from the
Jinja2 templates in mystery/templates/email. Each send reports success or
failure on its own as an EmailSendResult; delivery problems never raise
out of the send_* functions.

Access links have the form <base-url>/<role>/<access-token>[#section].

Emails:
- character_ready: one email to the guest assigned to a character
- host ready: two emails to the host (host guide, detective kit), sent
  concurrently; the result is successful only if both were accepted
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

import httpx
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from mystery.config import Environment, get_settings
from mystery.errors import ApiErrorCode, EmailSendError, InvalidRequestError
from mystery.logging import get_logger
from mystery.services.packages import get_character, get_package_with_conversation

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

templates = Jinja2Templates(directory=TEMPLATE_DIR)

DEFAULT_MYSTERY_TITLE = "Your Murder Mystery"


def build_access_link(base_url: str, role: str, token: str, section: str | None = None) -> str:
    """Public access link for a role-scoped token."""
    link = f"{base_url.rstrip('/')}/{role}/{token}"
    if section:
        link += f"#{section}"
    return link


def render_email(template_name: str, **context) -> str:
    """Render an email template to HTML."""
    return templates.get_template(template_name).render(**context)


@dataclass
class EmailSendResult:
    """Outcome of one email operation (one or more messages)."""

    success: bool
    message: str
    error_code: ApiErrorCode | None = None
    email_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"success": self.success, "message": self.message, "email_ids": self.email_ids}


@dataclass(frozen=True)
class HostEmailRequest:
    host_email: str
    mystery_title: str
    access_token: str


@dataclass(frozen=True)
class CharacterEmailRequest:
    guest_email: str
    guest_name: str
    character_name: str
    character_details: str
    access_token: str
    mystery_title: str


# =============================================================================
# Resend client
# =============================================================================


class EmailClient:
    """Resend API client.

    Uses a shared httpx.AsyncClient when one is passed in (the app's
    pooled client); otherwise opens a client per send.
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 15.0,
    ):
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._http_client = http_client
        self._timeout_s = timeout_s

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one email.

        Returns:
            The provider's email id ("" when the response carries none).

        Raises:
            EmailSendError: If the API is unreachable or rejects the email.
        """
        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._api_url, json=payload, headers=headers, timeout=self._timeout_s
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self._api_url, json=payload, headers=headers, timeout=self._timeout_s
                    )
        except httpx.HTTPError as e:
            raise EmailSendError(f"Email API unreachable: {type(e).__name__}") from e

        if response.status_code >= 400:
            raise EmailSendError(
                f"Failed to send email: {response.status_code} - {response.text[:200]}"
            )

        try:
            return str(response.json().get("id", ""))
        except ValueError:
            return ""


def get_email_client(http_client: httpx.AsyncClient | None = None) -> EmailClient | None:
    """Get the configured email client, or None if RESEND_API_KEY is unset."""
    settings = get_settings()
    if not settings.resend_api_key:
        return None
    return EmailClient(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        api_url=settings.resend_api_url,
        http_client=http_client,
    )


def _not_configured() -> EmailSendResult:
    logger.warning("email_not_configured")
    return EmailSendResult(
        success=False,
        message="RESEND_API_KEY not configured",
        error_code=ApiErrorCode.E_EMAIL_NOT_CONFIGURED,
    )


# =============================================================================
# Sends
# =============================================================================


async def send_character_email(
    client: EmailClient | None,
    request: CharacterEmailRequest,
    *,
    base_url: str,
) -> EmailSendResult:
    """Send a guest the link to their character guide."""
    if client is None:
        return _not_configured()

    html = render_email(
        "character_ready.html",
        guest_name=request.guest_name,
        mystery_title=request.mystery_title,
        character_name=request.character_name,
        character_details=request.character_details,
        link=build_access_link(base_url, "character", request.access_token),
    )
    subject = f"Your Character: {request.character_name} for {request.mystery_title}"

    try:
        email_id = await client.send(request.guest_email, subject, html)
    except EmailSendError as e:
        logger.error("character_email_failed", character_name=request.character_name, error=e.message)
        return EmailSendResult(success=False, message=e.message, error_code=e.code)

    logger.info("character_email_sent", character_name=request.character_name, email_id=email_id)
    return EmailSendResult(success=True, message="Email sent successfully", email_ids=[email_id])


async def send_host_emails(
    client: EmailClient | None,
    request: HostEmailRequest,
    *,
    base_url: str,
) -> EmailSendResult:
    """Send the host the host-guide and detective-kit links."""
    if client is None:
        return _not_configured()

    context = {"mystery_title": request.mystery_title}
    guide_html = render_email(
        "host_guide_ready.html",
        link=build_access_link(base_url, "host", request.access_token, "guide"),
        **context,
    )
    detective_html = render_email(
        "detective_kit_ready.html",
        link=build_access_link(base_url, "host", request.access_token, "detective"),
        **context,
    )

    results = await asyncio.gather(
        client.send(request.host_email, f"Host Guide: {request.mystery_title}", guide_html),
        client.send(request.host_email, f"Detective Kit: {request.mystery_title}", detective_html),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        for failure in failures:
            if not isinstance(failure, EmailSendError):
                raise failure
        message = "; ".join(f.message for f in failures)
        logger.error("host_emails_failed", failed=len(failures), error=message)
        return EmailSendResult(
            success=False,
            message=message,
            error_code=ApiErrorCode.E_EMAIL_SEND_FAILED,
            email_ids=[r for r in results if isinstance(r, str)],
        )

    logger.info("host_emails_sent", email_ids=list(results))
    return EmailSendResult(
        success=True, message="Host emails sent successfully", email_ids=list(results)
    )


# =============================================================================
# Recipient lookup
# =============================================================================


def prepare_host_email(db: Session, conversation_id: UUID) -> HostEmailRequest:
    """Resolve the host recipient and access token for a conversation's package.

    Raises:
        NotFoundError: If the conversation or package does not exist.
        InvalidRequestError: If the conversation has no host email.
    """
    conversation, package = get_package_with_conversation(db, conversation_id)
    if not conversation.host_email:
        raise InvalidRequestError(
            ApiErrorCode.E_EMAIL_RECIPIENT_MISSING, "Conversation has no host email"
        )
    return HostEmailRequest(
        host_email=conversation.host_email,
        mystery_title=package.title or conversation.title or DEFAULT_MYSTERY_TITLE,
        access_token=package.host_access_token,
    )


def prepare_character_email(
    db: Session, conversation_id: UUID, character_id: UUID
) -> CharacterEmailRequest:
    """Resolve the guest recipient and access token for a character.

    Raises:
        NotFoundError: If the conversation, package or character does not exist.
        InvalidRequestError: If the character has not been assigned to a guest.
    """
    package, character = get_character(db, conversation_id, character_id)
    if not character.guest_email:
        raise InvalidRequestError(
            ApiErrorCode.E_EMAIL_RECIPIENT_MISSING, "Character has no guest email"
        )
    return CharacterEmailRequest(
        guest_email=character.guest_email,
        guest_name=character.guest_name or "there",
        character_name=character.character_name,
        character_details=character.description or "",
        access_token=character.access_token,
        mystery_title=package.title or DEFAULT_MYSTERY_TITLE,
    )


# =============================================================================
# Background delivery
# =============================================================================


def _enqueue_email_task(task_name: str, args: list[str], request_id: str | None) -> bool:
    settings = get_settings()

    # In test environment, don't enqueue - let tests call tasks directly
    if settings.mystery_env == Environment.TEST:
        logger.debug("skipping_task_enqueue", reason="test_environment", task=task_name)
        return False

    try:
        from mystery.celery import celery_app

        celery_app.send_task(task_name, args=args, kwargs={"request_id": request_id}, queue="email")
        logger.info("email_task_enqueued", task=task_name, request_id=request_id)
        return True
    except Exception as e:
        # Log but don't fail - the host can resend from the dashboard
        logger.warning("email_task_enqueue_failed", task=task_name, error=str(e))
        return False


def enqueue_host_emails(conversation_id: UUID, request_id: str | None) -> bool:
    """Enqueue the send_host_emails Celery task.

    Returns:
        True if the task was enqueued, False otherwise.
    """
    return _enqueue_email_task("send_host_emails", [str(conversation_id)], request_id)


def enqueue_character_email(
    conversation_id: UUID, character_id: UUID, request_id: str | None
) -> bool:
    """Enqueue the send_character_email Celery task.

    Returns:
        True if the task was enqueued, False otherwise.
    """
    return _enqueue_email_task(
        "send_character_email", [str(conversation_id), str(character_id)], request_id
    )
