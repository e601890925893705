"""
Auction Clock - temporal state of items.

State is a pure function of an item's end_time and an explicit "now".
Callers take "now" from one shared source (the storage server clock,
or a ServerClock offset on remote observers) so every observer
classifies an item the same way.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Iterable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from auctionhouse.core.ledger.models import Item

ENDED_LABEL = "ended"


class AuctionState(IntEnum):
    """Temporal state of an item."""
    OPEN = 0          # end_time in the future
    ENDED = 1         # end_time reached; ledger frozen, ready to settle
    NEVER_CLOSES = 2  # no end_time


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def classify(item: "Item", now: datetime) -> AuctionState:
    if item.end_time is None:
        return AuctionState.NEVER_CLOSES
    if as_utc(now) >= as_utc(item.end_time):
        return AuctionState.ENDED
    return AuctionState.OPEN


def time_remaining(item: "Item", now: datetime) -> Optional[timedelta]:
    """Time until close for OPEN items; None otherwise."""
    if classify(item, now) != AuctionState.OPEN:
        return None
    return as_utc(item.end_time) - as_utc(now)


def format_time_left(remaining: Optional[timedelta]) -> str:
    """
    Compact countdown text.

    Shows the two most significant units: "2d 3h", "3h 5m", "5m 10s",
    or "42s". A missing or non-positive duration reads "ended".
    """
    if remaining is None or remaining.total_seconds() <= 0:
        return ENDED_LABEL

    total = int(remaining.total_seconds())
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def describe(item: "Item", now: datetime) -> str:
    """Countdown text for a listing row ("" for items that never close)."""
    state = classify(item, now)
    if state == AuctionState.NEVER_CLOSES:
        return ""
    return format_time_left(time_remaining(item, now))


def sort_listing(items: Iterable["Item"], now: datetime) -> List["Item"]:
    """Listing order: unfinished items first, ended items last, newest first within each."""
    newest_first = sorted(items, key=lambda i: (i.created_at, i.id), reverse=True)
    return sorted(newest_first, key=lambda i: classify(i, now) == AuctionState.ENDED)


def server_time_payload(now: datetime) -> dict:
    """Body of the time endpoint: ISO string plus epoch milliseconds."""
    return {
        "serverTime": now.astimezone(timezone.utc).isoformat(timespec="milliseconds"),
        "timestamp": int(now.timestamp() * 1000),
    }


# =============================================================================
# Client-side clock
# =============================================================================


@dataclass
class ServerClock:
    """
    Observer-side view of the server clock.

    Records offset = server_now - client_now once per sync and applies
    it to local readings, so a skewed local clock still classifies
    items like the server does. Before the first sync the local clock
    is used as-is.
    """
    sync_interval: float = 300.0
    offset: timedelta = timedelta(0)
    last_sync: Optional[float] = None   # local monotonic seconds

    @property
    def is_synced(self) -> bool:
        return self.last_sync is not None

    def sync(self, server_now: datetime, client_now: Optional[datetime] = None,
             monotonic: Optional[float] = None) -> timedelta:
        client_now = client_now or datetime.now(timezone.utc)
        self.offset = server_now - client_now
        self.last_sync = time.monotonic() if monotonic is None else monotonic
        return self.offset

    def needs_sync(self, monotonic: Optional[float] = None) -> bool:
        if self.last_sync is None:
            return True
        current = time.monotonic() if monotonic is None else monotonic
        return current - self.last_sync > self.sync_interval

    def now(self, client_now: Optional[datetime] = None) -> datetime:
        client_now = client_now or datetime.now(timezone.utc)
        return client_now + self.offset
