"""Per-view status watch sessions.

A StatusWatchSession follows one conversation's generation status for as
long as one viewer is watching it (one SSE connection). It owns all
per-view state:

- the last status it observed
- the already_notified flag for the one-time completion signal, reset
  only by reset_after_resume()
- the debounce clock that keeps rechecks at least
  STATUS_RECHECK_MIN_INTERVAL_S apart

Updates are driven by the change channel. When no notification arrives
within STATUS_POLL_INTERVAL_S the session falls back to a poll with the
same reconcile call. Duplicate notifications are harmless: each one just
re-runs the reconciler.

The first time the observed status moves into completed from an earlier
non-completed observation, the session loads the full package, writes
the purchased flags on the conversation and attaches the package to the
update as the success signal.

DB work is sync and runs in the threadpool.
"""

import asyncio
import json
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from mystery.logging import get_logger
from mystery.schemas.generation import GenerationStatus
from mystery.schemas.package import PackageContentOut
from mystery.services.notifier import StatusNotifierBase
from mystery.services.packages import get_package_content, mark_package_delivered
from mystery.services.reconciler import reconcile

logger = get_logger(__name__)


@dataclass(frozen=True)
class WatchUpdate:
    """One observation made by a watch session.

    Attributes:
        status: Reconciled status.
        changed: True if the status differs from the previous observation.
        completed_package: Full package, set only on the first completion.
    """

    status: GenerationStatus
    changed: bool
    completed_package: PackageContentOut | None = None


class StatusWatchSession:
    """Watches one conversation's generation status for one viewer."""

    def __init__(
        self,
        conversation_id: UUID,
        *,
        session_factory: Callable[[], Session],
        notifier: StatusNotifierBase,
        min_recheck_interval_s: float,
        poll_interval_s: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.conversation_id = conversation_id
        self.already_notified = False
        self.last_status: GenerationStatus | None = None
        self._session_factory = session_factory
        self._notifier = notifier
        self._min_recheck_interval_s = min_recheck_interval_s
        self._poll_interval_s = poll_interval_s
        self._clock = clock
        self._last_refresh_at: float | None = None
        self._saw_incomplete = False

    @property
    def completion_pending(self) -> bool:
        """Completed has been observed after an earlier non-completed value,
        but the success signal has not fired yet."""
        return (
            self.last_status is not None
            and self.last_status.status == "completed"
            and self._saw_incomplete
            and not self.already_notified
        )

    @property
    def settled(self) -> bool:
        """Failed, or completed with nothing left to signal."""
        if self.last_status is None:
            return False
        if self.last_status.status == "failed":
            return True
        return self.last_status.status == "completed" and not self.completion_pending

    def seconds_until_recheck(self) -> float:
        """Remaining debounce time before a non-forced refresh may run."""
        if self._last_refresh_at is None:
            return 0.0
        elapsed = self._clock() - self._last_refresh_at
        return max(0.0, self._min_recheck_interval_s - elapsed)

    def reset_after_resume(self) -> None:
        """Re-arm the completion signal after the viewer resumed generation."""
        self.already_notified = False
        self._saw_incomplete = False

    async def refresh(self, *, force: bool = False) -> WatchUpdate | None:
        """Re-run the reconciler.

        Args:
            force: Skip the debounce check.

        Returns:
            The new observation, or None if the call was debounced.
        """
        if not force and self.seconds_until_recheck() > 0:
            return None
        self._last_refresh_at = self._clock()

        status = await run_in_threadpool(self._reconcile)
        previous = self.last_status
        changed = previous is None or previous.to_document() != status.to_document()
        self.last_status = status

        if status.status != "completed":
            self._saw_incomplete = True
            return WatchUpdate(status=status, changed=changed)

        completed_package = None
        if self.completion_pending:
            completed_package = await run_in_threadpool(self._on_first_completion)
            if completed_package is not None:
                self.already_notified = True

        return WatchUpdate(status=status, changed=changed, completed_package=completed_package)

    async def events(self, keepalive_s: float | None = None) -> AsyncIterator[WatchUpdate | None]:
        """Yield observations as the status changes.

        The first observation is always yielded. After that only changes
        and the completion signal are yielded. When keepalive_s is set, None
        is yielded after that many quiet seconds so transports can keep the
        connection open.

        The change channel subscription is closed when the consumer stops.
        """
        async with self._notifier.subscribe(self.conversation_id) as subscription:
            update = await self.refresh(force=True)
            yield update
            last_yield_at = self._clock()

            while True:
                notified = await subscription.wait(self._poll_interval_s)
                if notified:
                    delay = self.seconds_until_recheck()
                    if delay > 0:
                        await asyncio.sleep(delay)
                update = await self.refresh(force=True)

                if update.changed or update.completed_package is not None:
                    yield update
                    last_yield_at = self._clock()
                elif keepalive_s is not None and self._clock() - last_yield_at >= keepalive_s:
                    yield None
                    last_yield_at = self._clock()

    def _reconcile(self) -> GenerationStatus:
        db = self._session_factory()
        try:
            return reconcile(db, self.conversation_id)
        finally:
            db.close()

    def _on_first_completion(self) -> PackageContentOut | None:
        db = self._session_factory()
        try:
            package = get_package_content(db, self.conversation_id)
            mark_package_delivered(db, self.conversation_id)
        except Exception as e:
            logger.error(
                "completion_handler_failed",
                conversation_id=str(self.conversation_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        finally:
            db.close()

        logger.info(
            "package_completion_signalled",
            conversation_id=str(self.conversation_id),
            package_id=str(package.id),
        )
        return package


# =============================================================================
# SSE transport
# =============================================================================


def format_sse_event(event: str, data: dict) -> str:
    """Format data as an SSE event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def stream_status_events(
    session: StatusWatchSession, keepalive_s: float
) -> AsyncIterator[str]:
    """SSE event stream for a watch session.

    Emits ``status`` for every observed change and ``completed`` once with
    the full package. The stream ends once the status is failed, or
    completed with nothing left to signal.
    """
    logger.info("status_stream_opened", conversation_id=str(session.conversation_id))
    try:
        async with aclosing(session.events(keepalive_s=keepalive_s)) as events:
            async for update in events:
                if update is None:
                    yield ": keepalive\n\n"
                    continue

                yield format_sse_event("status", update.status.to_document())
                if update.completed_package is not None:
                    yield format_sse_event(
                        "completed", update.completed_package.model_dump(mode="json")
                    )
                if session.settled:
                    break
    finally:
        logger.info("status_stream_closed", conversation_id=str(session.conversation_id))
