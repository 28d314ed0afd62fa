"""Live push port used by the notification dispatcher."""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class LivePush(Protocol):
    def publish(self, recipient_id: str, event: dict[str, Any]) -> bool: ...


class NullLivePush:
    """Used when no live channel is configured; recipients see notifications on next poll."""

    def publish(self, recipient_id: str, event: dict[str, Any]) -> bool:
        return False


class NotificationHub:
    """
    In-process fan-out to connected sessions.

    Each subscriber gets an ``asyncio.Queue`` bound to the loop it
    subscribed from. ``publish`` may be called from worker threads (sync
    route handlers run in a threadpool), so delivery goes through
    ``loop.call_soon_threadsafe``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]]] = defaultdict(list)

    def subscribe(self, recipient_id: str) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers[recipient_id].append((loop, queue))
        return queue

    def unsubscribe(self, recipient_id: str, queue: asyncio.Queue) -> None:
        with self._lock:
            entries = self._subscribers.get(recipient_id, [])
            self._subscribers[recipient_id] = [e for e in entries if e[1] is not queue]
            if not self._subscribers[recipient_id]:
                del self._subscribers[recipient_id]

    def connected(self, recipient_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(recipient_id, []))

    def publish(self, recipient_id: str, event: dict[str, Any]) -> bool:
        with self._lock:
            entries = list(self._subscribers.get(recipient_id, []))

        delivered = False
        for loop, queue in entries:
            if loop.is_closed():
                self.unsubscribe(recipient_id, queue)
                continue
            loop.call_soon_threadsafe(queue.put_nowait, event)
            delivered = True
        return delivered
