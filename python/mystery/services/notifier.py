"""Package status change channel.

Every write this service makes to a package row (status or content)
publishes a notification on the conversation's channel. Status watch
sessions subscribe to that channel and re-run the reconciler when a
notification arrives. Notifications carry no payload: receivers always
re-derive the status from the store, so duplicate or coalesced events are
harmless.

Backends:
- RedisStatusNotifier: Redis pub/sub, channel package_status:{conversation_id}
- InMemoryStatusNotifier: per-subscriber asyncio queues (local dev, tests)

Publishing is best-effort: a failed publish is logged and swallowed, the
watchers' fallback poll picks the change up.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from uuid import UUID

from mystery.logging import get_logger

logger = get_logger(__name__)

CHANNEL_PREFIX = "package_status"


def channel_for(conversation_id: UUID) -> str:
    """Redis channel name for a conversation's status changes."""
    return f"{CHANNEL_PREFIX}:{conversation_id}"


class StatusSubscription(ABC):
    """A live subscription to one conversation's change channel."""

    @abstractmethod
    async def wait(self, timeout: float) -> bool:
        """Wait for the next change notification.

        Args:
            timeout: Maximum seconds to wait.

        Returns:
            True if a notification arrived, False on timeout.
        """
        ...


class StatusNotifierBase(ABC):
    """Abstract change channel."""

    @abstractmethod
    def publish(self, conversation_id: UUID) -> None:
        """Signal that the conversation's package row changed (sync, thread-safe)."""
        ...

    @abstractmethod
    def subscribe(
        self, conversation_id: UUID
    ) -> AbstractAsyncContextManager[StatusSubscription]:
        """Open a subscription; it is closed when the context exits."""
        ...


# =============================================================================
# In-memory backend
# =============================================================================


class _QueueSubscription(StatusSubscription):
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.queue: asyncio.Queue[None] = asyncio.Queue()

    def notify(self) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, None)

    async def wait(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except TimeoutError:
            return False
        # Collapse a burst into one wake-up
        while not self.queue.empty():
            self.queue.get_nowait()
        return True


class InMemoryStatusNotifier(StatusNotifierBase):
    """Process-local change channel.

    Publishers may run on worker threads (sync services in the threadpool);
    delivery hops onto each subscriber's event loop.
    """

    def __init__(self):
        self._subscribers: dict[UUID, set[_QueueSubscription]] = {}

    def publish(self, conversation_id: UUID) -> None:
        for subscription in list(self._subscribers.get(conversation_id, ())):
            try:
                subscription.notify()
            except RuntimeError:
                # Subscriber's loop already closed
                logger.debug("status_notify_loop_closed", conversation_id=str(conversation_id))

    @asynccontextmanager
    async def subscribe(self, conversation_id: UUID) -> AsyncIterator[StatusSubscription]:
        subscription = _QueueSubscription(asyncio.get_running_loop())
        self._subscribers.setdefault(conversation_id, set()).add(subscription)
        try:
            yield subscription
        finally:
            subscribers = self._subscribers.get(conversation_id)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscribers[conversation_id]

    def subscriber_count(self, conversation_id: UUID) -> int:
        """Number of open subscriptions for a conversation (test helper)."""
        return len(self._subscribers.get(conversation_id, ()))


# =============================================================================
# Redis backend
# =============================================================================


class _RedisSubscription(StatusSubscription):
    def __init__(self, pubsub):
        self._pubsub = pubsub

    async def wait(self, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=remaining
            )
            if message is not None and message.get("type") == "message":
                return True


class RedisStatusNotifier(StatusNotifierBase):
    """Change channel backed by Redis pub/sub.

    Works across API processes and Celery workers sharing the same Redis.
    """

    def __init__(self, redis_url: str, redis_client=None):
        """Initialize the notifier.

        Args:
            redis_url: Redis connection string used for subscriptions.
            redis_client: Sync Redis client for publishing (created from redis_url if None).
        """
        import redis

        self._redis_url = redis_url
        self._redis = redis_client or redis.Redis.from_url(
            redis_url, decode_responses=True, socket_timeout=5
        )

    def publish(self, conversation_id: UUID) -> None:
        try:
            self._redis.publish(channel_for(conversation_id), "changed")
        except Exception as e:
            logger.warning(
                "status_publish_failed",
                conversation_id=str(conversation_id),
                error=str(e),
            )

    @asynccontextmanager
    async def subscribe(self, conversation_id: UUID) -> AsyncIterator[StatusSubscription]:
        import redis.asyncio as aioredis

        client = aioredis.Redis.from_url(self._redis_url, decode_responses=True)
        pubsub = client.pubsub()
        channel = channel_for(conversation_id)
        await pubsub.subscribe(channel)
        try:
            yield _RedisSubscription(pubsub)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
                await client.aclose()
            except Exception as e:
                logger.warning(
                    "status_unsubscribe_failed",
                    conversation_id=str(conversation_id),
                    error=str(e),
                )


# =============================================================================
# Global instance
# =============================================================================

_notifier: StatusNotifierBase | None = None


def get_status_notifier() -> StatusNotifierBase:
    """Get the global change channel.

    Falls back to an in-memory channel when none was configured at startup.
    """
    global _notifier
    if _notifier is None:
        _notifier = InMemoryStatusNotifier()
    return _notifier


def set_status_notifier(notifier: StatusNotifierBase | None) -> None:
    """Set the global change channel (app/worker startup, tests)."""
    global _notifier
    _notifier = notifier


def notify_status_changed(conversation_id: UUID) -> None:
    """Publish a change for a conversation on the global channel."""
    get_status_notifier().publish(conversation_id)
