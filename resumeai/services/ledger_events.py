"""
Realtime feed of quota ledger changes.

Ledger writes happen in sync request handlers (threadpool); websocket
listeners live on the event loop. publish() hands events over with
call_soon_threadsafe so it is safe to call from either side.

Observation only: nothing here coordinates concurrent writers.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, Set, Tuple

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


def build_ledger_event(event: str, subscription: Any) -> Dict[str, Any]:
    return {
        "event": event,
        "subscription_id": subscription.id,
        "plan_name": subscription.plan_name,
        "status": subscription.status,
        "resumes_remaining": subscription.resumes_remaining,
    }


def _offer(queue: asyncio.Queue, event: Dict[str, Any]) -> None:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        # Slow listener: drop the oldest event, the newest one carries current state
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        queue.put_nowait(event)


class LedgerBroadcaster:
    """Per-user fan-out of ledger events to websocket listeners."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[int, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = {}

    def subscribe(self, user_id: int) -> asyncio.Queue:
        """Register a listener. Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        with self._lock:
            self._listeners.setdefault(user_id, set()).add((loop, queue))
        logger.debug(f"Ledger listener subscribed: user_id={user_id}")
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue) -> None:
        with self._lock:
            listeners = self._listeners.get(user_id, set())
            for entry in [entry for entry in listeners if entry[1] is queue]:
                listeners.discard(entry)
            if not listeners:
                self._listeners.pop(user_id, None)
        logger.debug(f"Ledger listener unsubscribed: user_id={user_id}")

    def listener_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._listeners.get(user_id, ()))

    def publish(self, user_id: int, event: Dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(user_id, ()))

        for loop, queue in listeners:
            try:
                loop.call_soon_threadsafe(_offer, queue, event)
            except RuntimeError:
                # Loop closed underneath us
                self.unsubscribe(user_id, queue)


ledger_broadcaster = LedgerBroadcaster()


def publish_ledger_change(event: str, subscription: Any) -> None:
    ledger_broadcaster.publish(subscription.user_id, build_ledger_event(event, subscription))
