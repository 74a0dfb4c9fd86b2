"""
Live fan-out of conversation changes to dashboard subscribers.

One ConversationBroadcaster is created per process and shared by
reference with request handlers. It keeps, per tenant, the set of open
subscriptions; each subscription owns a bounded queue of pending events
and a heartbeat task. Delivery is best-effort: a subscriber whose queue
is full or closed is dropped, and clients are expected to re-fetch.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional, Set, AsyncIterator
import asyncio
import itertools
import json
import logging
import threading

logger = logging.getLogger(__name__)

# Event types pushed to subscribers
CONNECTED = "connected"
HEARTBEAT = "heartbeat"
NEW_MESSAGE = "new_message"
REACTION_UPDATE = "reaction_update"
NEW_THREAD_REPLY = "new_thread_reply"
APP_UNINSTALLED = "app_uninstalled"
USER_TOKENS_REVOKED = "user_tokens_revoked"

_CLOSE = object()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sse(event: Dict[str, Any]) -> str:
    """Render one event as a server-sent events frame."""
    return f"data: {json.dumps(event, default=str)}\n\n"


class Subscription:
    """An open subscriber channel for one tenant."""

    _ids = itertools.count(1)

    def __init__(self, tenant_id: str, queue_size: int):
        self.id = next(self._ids)
        self.tenant_id = tenant_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.heartbeat_task: Optional[asyncio.Task] = None
        self.closed = False

    def send(self, event: Dict[str, Any]) -> None:
        """Queue an event; raises when the subscriber can no longer accept it."""
        if self.closed:
            raise ConnectionError(f"Subscription {self.id} is closed")
        self.queue.put_nowait(event)

    def __repr__(self):
        return f"<Subscription(id={self.id}, tenant_id='{self.tenant_id}', closed={self.closed})>"


class ConversationBroadcaster:
    """Process-local registry of subscribers keyed by tenant id."""

    def __init__(self, heartbeat_interval: float = 30.0, queue_size: int = 100):
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self._subscriptions: Dict[str, Set[Subscription]] = {}
        self._lock = threading.Lock()

    async def subscribe(self, tenant_id: str) -> Subscription:
        """Register a subscriber, greet it and start its heartbeat."""
        subscription = Subscription(tenant_id, self.queue_size)
        with self._lock:
            self._subscriptions.setdefault(tenant_id, set()).add(subscription)

        subscription.send({"type": CONNECTED, "tenantId": tenant_id, "timestamp": _utc_now_iso()})
        subscription.heartbeat_task = asyncio.create_task(self._heartbeat(subscription))

        logger.info(f"Subscriber {subscription.id} connected for tenant {tenant_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber and cancel its heartbeat; safe to call twice."""
        with self._lock:
            subscribers = self._subscriptions.get(subscription.tenant_id)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscriptions[subscription.tenant_id]

        if subscription.closed:
            return
        subscription.closed = True

        task = subscription.heartbeat_task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        # Wake a reader blocked on the queue so its stream can finish
        try:
            subscription.queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            subscription.queue.get_nowait()
            subscription.queue.put_nowait(_CLOSE)

        logger.info(f"Subscriber {subscription.id} disconnected for tenant {subscription.tenant_id}")

    def publish(self, tenant_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        """Push an event to every subscriber of a tenant; returns deliveries."""
        with self._lock:
            subscribers = list(self._subscriptions.get(tenant_id, ()))

        if not subscribers:
            return 0

        event = {"type": event_type, "data": payload or {}, "timestamp": _utc_now_iso()}
        delivered = 0
        for subscription in subscribers:
            try:
                subscription.send(event)
                delivered += 1
            except (asyncio.QueueFull, ConnectionError) as e:
                logger.warning(f"Dropping subscriber {subscription.id} for tenant {tenant_id}: {e!r}")
                self.unsubscribe(subscription)

        logger.debug(f"Published {event_type} to {delivered} subscriber(s) of tenant {tenant_id}")
        return delivered

    async def stream(self, subscription: Subscription) -> AsyncIterator[str]:
        """Yield SSE frames for a subscription until it is closed."""
        try:
            while True:
                event = await subscription.queue.get()
                if event is _CLOSE or subscription.closed:
                    break
                yield format_sse(event)
        finally:
            self.unsubscribe(subscription)

    def subscriber_count(self, tenant_id: Optional[str] = None) -> int:
        with self._lock:
            if tenant_id is not None:
                return len(self._subscriptions.get(tenant_id, ()))
            return sum(len(subscribers) for subscribers in self._subscriptions.values())

    def tenant_ids(self) -> Set[str]:
        with self._lock:
            return set(self._subscriptions)

    async def close(self) -> None:
        """Disconnect every subscriber; used on application shutdown."""
        with self._lock:
            subscriptions = [s for subscribers in self._subscriptions.values() for s in subscribers]
        tasks = [s.heartbeat_task for s in subscriptions if s.heartbeat_task is not None]
        for subscription in subscriptions:
            self.unsubscribe(subscription)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _heartbeat(self, subscription: Subscription) -> None:
        while not subscription.closed:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                subscription.send({"type": HEARTBEAT, "timestamp": _utc_now_iso()})
            except (asyncio.QueueFull, ConnectionError):
                logger.info(f"Heartbeat failed for subscriber {subscription.id}, removing it")
                self.unsubscribe(subscription)
                return


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
