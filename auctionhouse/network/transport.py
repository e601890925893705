"""
Transport - in-process publish/subscribe for change events.

Stands in for the real-time push service: publish() fans an event out
to every subscription on a channel, subscribers consume from an
asyncio queue. Events travel as bytes, so subscribers decode (and may
reject) exactly what a networked transport would hand them.

Publishing is fire-and-forget and safe from any thread. A subscription
belongs to the event loop it was created on and ends when closed or
when the consuming task is cancelled.
"""

import asyncio
import threading
from collections import defaultdict
from typing import Dict, List, Optional

from pydantic import ValidationError

from auctionhouse.core.errors import TransportError
from auctionhouse.network.events import AuctionEvent, EventType, create_event
from auctionhouse.utils.logger import get_logger

logger = get_logger("transport")

_CLOSED = object()


class Subscription:
    """A subscriber's queue on one channel."""

    def __init__(self, transport: "InMemoryTransport", channel: str, loop: asyncio.AbstractEventLoop):
        self.transport = transport
        self.channel = channel
        self.closed = False
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, data: bytes) -> None:
        """Enqueue raw event bytes. Callable from any thread."""
        if self.closed:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, data)

    async def get(self, timeout: Optional[float] = None) -> Optional[AuctionEvent]:
        """
        Wait for the next decodable event.

        Returns None if timeout elapses first. Raises StopAsyncIteration
        once the subscription is closed.
        """
        while True:
            try:
                if timeout is None:
                    data = await self._queue.get()
                else:
                    data = await asyncio.wait_for(self._queue.get(), timeout)
            except asyncio.TimeoutError:
                return None

            if data is _CLOSED:
                raise StopAsyncIteration

            try:
                return AuctionEvent.from_bytes(data)
            except ValidationError as e:
                logger.warning(f"Dropping malformed event on {self.channel}: {e.error_count()} errors")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.transport._unsubscribe(self)
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        except RuntimeError:
            logger.debug(f"Loop for {self.channel} subscription already closed")

    def __aiter__(self):
        return self

    async def __anext__(self) -> AuctionEvent:
        event = None
        while event is None:
            event = await self.get()
        return event


class InMemoryTransport:
    """
    Channel-based fan-out.

    Delivery semantics match the external push service the core is
    written against: at-least-once, no cross-item ordering, duplicates
    possible (tests use redeliver() to inject them).
    """

    def __init__(self):
        self._subscriptions: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, channel: str) -> Subscription:
        """Subscribe on the running event loop."""
        if self._closed:
            raise TransportError("Transport is closed")
        sub = Subscription(self, channel, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions[channel].append(sub)
        logger.debug(f"Subscribed to {channel}")
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(sub.channel, [])
            if sub in subs:
                subs.remove(sub)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(channel, []))

    def publish(self, channel: str, event: AuctionEvent) -> int:
        """
        Deliver an event to every current subscriber of channel.

        Returns:
            Number of subscriptions it was handed to
        """
        return self._send(channel, event.to_bytes())

    def redeliver(self, channel: str, event: AuctionEvent, times: int = 1) -> int:
        """Deliver the same event again, as an at-least-once transport may."""
        data = event.to_bytes()
        return sum(self._send(channel, data) for _ in range(times))

    def _send(self, channel: str, data: bytes) -> int:
        if self._closed:
            raise TransportError("Transport is closed")

        with self._lock:
            subs = list(self._subscriptions.get(channel, []))

        count = 0
        for sub in subs:
            try:
                sub.deliver(data)
                count += 1
            except RuntimeError:
                # Subscriber's loop is gone
                logger.debug(f"Dropping dead subscription on {channel}")
                self._unsubscribe(sub)
        return count

    def close(self) -> None:
        self._closed = True
        with self._lock:
            subs = [s for channel_subs in self._subscriptions.values() for s in channel_subs]
        for sub in subs:
            sub.close()


class EventPublisher:
    """
    Publishes confirmed state changes.

    Notification is best effort: a failed publish is logged and
    swallowed, because ledger and cache are already committed and the
    reconcile/refetch paths recover full correctness without it.
    """

    def __init__(self, transport: InMemoryTransport, channel: str = "auction-updates"):
        self.transport = transport
        self.channel = channel

    def publish(self, kind: EventType, item_id: Optional[int] = None) -> Optional[AuctionEvent]:
        event = create_event(kind, item_id)
        try:
            count = self.transport.publish(self.channel, event)
        except TransportError as e:
            logger.warning(f"Publish {kind.value} for item {item_id} failed: {e}")
            return None

        logger.debug(f"Published {kind.value} for item {item_id} to {count} subscribers")
        return event
