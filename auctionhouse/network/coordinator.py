"""
Update Coordinator - keeps a listing view current from change events.

Routing:
- Item-scoped events (bid placed/deleted, cache repaired) patch that one
  item in place. The list is not reordered, so open views do not jump.
- Item added/removed refetches the whole list and recomputes its order.
- Events for items the view does not show are ignored.

Deduplication:
- Exact redeliveries (same event_id) are dropped via a TTL'd seen-cache.
- Repeats of the same (kind, item_id) inside dedup_window seconds are
  parked and applied once when the window closes, so a burst costs one
  read and the last change still lands.

A patch always re-reads the item's current state, so replays and
out-of-order delivery converge on the same view. After every patch or
refetch the committed total is recomputed from the refreshed items.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from auctionhouse.core.auction.allocation import allocated_value
from auctionhouse.core.auction.clock import sort_listing
from auctionhouse.core.errors import AuctionError
from auctionhouse.network.events import AuctionEvent
from auctionhouse.network.transport import Subscription
from auctionhouse.utils.logger import get_logger

logger = get_logger("coordinator")


DEFAULT_DEDUP_WINDOW = 1.0   # seconds
SEEN_CACHE_TTL = 300         # seconds


class UpdateAction(IntEnum):
    """What handling an event did to the view."""
    PATCHED = 0     # one item re-read in place
    REFETCHED = 1   # whole list reloaded and re-sorted
    DEFERRED = 2    # collapsed into a pending update
    DUPLICATE = 3   # event_id already handled
    IGNORED = 4     # item not displayed


class ItemSource(Protocol):
    """Read side the coordinator refreshes from (StorageManager fits)."""

    def get_item(self, item_id: int): ...

    def list_items(self) -> list: ...

    def iter_bids(self, item_id: int) -> Iterable: ...

    def server_now(self) -> datetime: ...


@dataclass
class ListingView:
    """A subscriber's local copy of the listing."""
    items: list = field(default_factory=list)
    total_bid_amount: int = 0

    def get(self, item_id: int):
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def shows(self, item_id: int) -> bool:
        return self.get(item_id) is not None

    def replace_item(self, item) -> bool:
        """Swap in a fresh copy of an item, keeping its position."""
        for index, current in enumerate(self.items):
            if current.id == item.id:
                self.items[index] = item
                return True
        return False


class UpdateCoordinator:
    """
    Applies change events to a ListingView.

    Attributes:
        source: Where items and bids are re-read from
        view: The listing being kept current
        dedup_window: Seconds during which repeats of a change collapse
    """

    def __init__(
        self,
        source: ItemSource,
        view: Optional[ListingView] = None,
        dedup_window: float = DEFAULT_DEDUP_WINDOW,
        seen_cache_ttl: float = SEEN_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        on_update: Optional[Callable[[UpdateAction, ListingView], None]] = None,
    ):
        self.source = source
        self.view = view or ListingView()
        self.dedup_window = dedup_window
        self.seen_cache_ttl = seen_cache_ttl
        self._clock = clock
        self._on_update = on_update

        self._seen_events: Dict[str, float] = {}                # event_id -> time seen
        self._last_applied: Dict[Tuple, float] = {}             # change_key -> time applied
        self._pending: Dict[Tuple, AuctionEvent] = {}           # change_key -> latest parked event

    @classmethod
    def from_config(cls, source: ItemSource, config, **kwargs) -> "UpdateCoordinator":
        return cls(
            source,
            dedup_window=config.dedup_window,
            seen_cache_ttl=config.seen_cache_ttl,
            **kwargs,
        )

    # =========================================================================
    # Event Handling
    # =========================================================================

    def handle(self, event: AuctionEvent, now: Optional[float] = None) -> UpdateAction:
        """Route one event; now is monotonic seconds (defaults to the clock)."""
        now = self._clock() if now is None else now

        if event.event_id in self._seen_events:
            logger.debug(f"Ignoring duplicate event {event.event_id[:8]}")
            return UpdateAction.DUPLICATE
        self._seen_events[event.event_id] = now

        if event.kind.is_item_scoped and not self.view.shows(event.item_id):
            logger.debug(f"Ignoring {event.kind.value} for undisplayed item {event.item_id}")
            return UpdateAction.IGNORED

        key = event.change_key
        last = self._last_applied.get(key)
        if last is not None and now - last < self.dedup_window:
            self._pending[key] = event
            logger.debug(f"Deferred {event.kind.value} for item {event.item_id}")
            return UpdateAction.DEFERRED

        self._pending.pop(key, None)
        return self._apply(event, now)

    def flush_pending(self, now: Optional[float] = None) -> List[UpdateAction]:
        """Apply parked updates whose dedup window has closed."""
        now = self._clock() if now is None else now
        actions = []
        for key, event in list(self._pending.items()):
            if now - self._last_applied.get(key, now) >= self.dedup_window:
                del self._pending[key]
                if event.kind.is_item_scoped and not self.view.shows(event.item_id):
                    continue
                actions.append(self._apply(event, now))
        return actions

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def next_flush_delay(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds until the earliest parked update may be applied."""
        if not self._pending:
            return None
        now = self._clock() if now is None else now
        due = min(self._last_applied.get(key, now) + self.dedup_window for key in self._pending)
        return max(0.0, due - now)

    def _apply(self, event: AuctionEvent, now: float) -> UpdateAction:
        self._last_applied[event.change_key] = now
        if event.kind.is_item_scoped:
            action = self.patch_item(event.item_id)
        else:
            action = self.refetch()
        if self._on_update is not None:
            self._on_update(action, self.view)
        return action

    # =========================================================================
    # View Refresh
    # =========================================================================

    def patch_item(self, item_id: int) -> UpdateAction:
        """
        Re-read one item into the view.

        Falls back to a full refetch when the item can no longer be read,
        since the list itself must have changed.
        """
        try:
            item = self.source.get_item(item_id)
        except AuctionError as e:
            logger.warning(f"Patch of item {item_id} failed ({e}), refetching list")
            return self.refetch()

        if item is None or not self.view.replace_item(item):
            return self.refetch()

        self.recompute_total()
        logger.debug(f"Patched item {item_id}: {item.current_bid}/{item.last_bidder_nickname}")
        return UpdateAction.PATCHED

    def refetch(self) -> UpdateAction:
        """Reload the whole list in listing order."""
        items = self.source.list_items()
        self.view.items = sort_listing(items, self.source.server_now())
        self.recompute_total()
        logger.debug(f"Refetched {len(items)} items")
        return UpdateAction.REFETCHED

    def recompute_total(self) -> int:
        """Sum of each displayed item's allocation value against its current ledger."""
        self.view.total_bid_amount = sum(
            allocated_value(item.quantity, self.source.iter_bids(item.id))
            for item in self.view.items
        )
        return self.view.total_bid_amount

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup_seen_cache(self, now: Optional[float] = None) -> int:
        """
        Forget event ids older than the TTL.

        Also drops apply times whose dedup window has closed and that have
        no parked update, since they can no longer defer anything.

        Returns:
            Number of event ids removed
        """
        now = self._clock() if now is None else now
        old_count = len(self._seen_events)

        self._seen_events = {
            eid: ts for eid, ts in self._seen_events.items()
            if now - ts < self.seen_cache_ttl
        }
        self._last_applied = {
            key: ts for key, ts in self._last_applied.items()
            if key in self._pending or now - ts < self.dedup_window
        }

        removed = old_count - len(self._seen_events)
        if removed:
            logger.debug(f"Cleaned {removed} old entries from seen cache")
        return removed

    # =========================================================================
    # Subscription Loop
    # =========================================================================

    async def run(self, subscription: Subscription) -> None:
        """
        Consume events until the subscription closes or the task is cancelled.

        Parked updates are flushed when their window closes even if no
        further event arrives. The subscription is closed on exit.
        """
        logger.info(f"Coordinator listening on {subscription.channel}")
        try:
            while True:
                try:
                    event = await subscription.get(timeout=self.next_flush_delay())
                except StopAsyncIteration:
                    break

                try:
                    if event is not None:
                        self.handle(event)
                    self.flush_pending()
                    self.cleanup_seen_cache()
                except AuctionError as e:
                    # View stays as it was; the next event or refetch recovers
                    logger.error(f"Failed to apply update: {e}")
        except asyncio.CancelledError:
            logger.info("Coordinator cancelled")
            raise
        finally:
            subscription.close()
