"""Streaming API routes under /stream/*.

GET /stream/conversations/{id}/package/status opens one status watch
session per connection and streams it as SSE:

- event: status     (GenerationStatus document, on every change)
- event: completed  (full package, once, on the first completion)
- ": keepalive" comments while nothing changes

The stream closes once generation has failed, once the package is
completed and signalled, or when the client disconnects.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from mystery.api.deps import get_db, get_notifier, get_session_factory
from mystery.config import get_settings
from mystery.services.conversations import get_conversation_or_404
from mystery.services.notifier import StatusNotifierBase
from mystery.services.status_watch import StatusWatchSession, stream_status_events

router = APIRouter(prefix="/stream")


@router.get("/conversations/{conversation_id}/package/status")
async def stream_package_status(
    conversation_id: UUID,
    db: Annotated[Session, Depends(get_db)],
    notifier: Annotated[StatusNotifierBase, Depends(get_notifier)],
) -> StreamingResponse:
    """Watch a conversation's generation status.

    Errors:
        E_CONVERSATION_NOT_FOUND (404): Conversation does not exist.
    """
    await run_in_threadpool(get_conversation_or_404, db, conversation_id)

    settings = get_settings()
    session = StatusWatchSession(
        conversation_id,
        session_factory=get_session_factory(),
        notifier=notifier,
        min_recheck_interval_s=settings.status_recheck_min_interval_s,
        poll_interval_s=settings.status_poll_interval_s,
    )

    return StreamingResponse(
        stream_status_events(session, keepalive_s=settings.status_keepalive_s),
        media_type="text/event-stream; charset=utf-8",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
        },
    )
