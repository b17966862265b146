from __future__ import annotations

import asyncio
import itertools
import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class Subscription:
    """One listener on the inventory feed with its own bounded buffer."""

    def __init__(self, subscription_id: int, maxsize: int, *, name: str = ""):
        self.id = subscription_id
        self.name = name or "subscriber-{}".format(subscription_id)
        self._queue: queue.Queue[Message] = queue.Queue(maxsize=max(1, int(maxsize)))
        self.dropped = 0

    def offer(self, message: Message) -> bool:
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def get_nowait(self) -> Message:
        return self._queue.get_nowait()

    def drain(self) -> list[Message]:
        items = []
        while True:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                return items


class AsyncSubscription(Subscription):
    """Subscription consumed from an event loop (WebSocket connections)."""

    def __init__(self, subscription_id: int, maxsize: int, loop: asyncio.AbstractEventLoop, *, name: str = ""):
        super().__init__(subscription_id, maxsize, name=name)
        self._loop = loop
        self._ready = asyncio.Event()

    def offer(self, message: Message) -> bool:
        accepted = super().offer(message)
        if accepted:
            try:
                self._loop.call_soon_threadsafe(self._ready.set)
            except RuntimeError:
                # Loop already closed; the connection is going away.
                return False
        return accepted

    async def next_message(self) -> Message:
        while True:
            try:
                return self.get_nowait()
            except queue.Empty:
                self._ready.clear()
                await self._ready.wait()


class InventoryBroadcaster:
    """Fans stock updates out to every live subscriber.

    ``publish`` never blocks the caller: each subscriber has a bounded buffer,
    and a full buffer drops the message for that subscriber only. Listeners
    registered with ``add_listener`` are called inline and any error they raise
    is logged and swallowed.
    """

    def __init__(self, *, queue_size: int = 100):
        self._queue_size = max(1, int(queue_size))
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, Subscription] = {}
        self._listeners: list[Callable[[str, Message], None]] = []

    def subscribe(self, *, name: str = "") -> Subscription:
        subscription = Subscription(next(self._ids), self._queue_size, name=name)
        return self._register(subscription)

    def subscribe_async(self, loop: asyncio.AbstractEventLoop, *, name: str = "") -> AsyncSubscription:
        subscription = AsyncSubscription(next(self._ids), self._queue_size, loop, name=name)
        return self._register(subscription)

    def _register(self, subscription):
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        logger.info("Inventory feed subscriber connected: %s", subscription.name)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscriptions.pop(subscription.id, None)
        if removed is not None:
            logger.info(
                "Inventory feed subscriber disconnected: %s (dropped %s)",
                subscription.name,
                subscription.dropped,
            )

    def add_listener(self, listener: Callable[[str, Message], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, event: str, payload: dict) -> int:
        """Deliver ``{"event": event, "data": payload}``; returns how many accepted it."""
        message = {"event": event, "data": payload}
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            listeners = list(self._listeners)

        delivered = 0
        for subscription in subscriptions:
            if subscription.offer(message):
                delivered += 1
            else:
                logger.warning(
                    "Inventory feed buffer full for %s, dropped %s",
                    subscription.name,
                    event,
                )

        for listener in listeners:
            try:
                listener(event, payload)
                delivered += 1
            except Exception:
                logger.exception("Inventory feed listener failed for %s", event)
        return delivered


__all__ = ["AsyncSubscription", "InventoryBroadcaster", "Subscription"]
