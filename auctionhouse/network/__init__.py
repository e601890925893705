"""
Network Module - change notification for live listing views.

Provides the event wire format, an in-process publish/subscribe
transport and the coordinator that turns events into view updates.
"""

from auctionhouse.network.events import AuctionEvent, EventType, create_event
from auctionhouse.network.transport import EventPublisher, InMemoryTransport, Subscription
from auctionhouse.network.coordinator import (
    ItemSource,
    ListingView,
    UpdateAction,
    UpdateCoordinator,
    DEFAULT_DEDUP_WINDOW,
)

__all__ = [
    # Events
    "AuctionEvent",
    "EventType",
    "create_event",
    # Transport
    "EventPublisher",
    "InMemoryTransport",
    "Subscription",
    # Coordinator
    "ItemSource",
    "ListingView",
    "UpdateAction",
    "UpdateCoordinator",
    "DEFAULT_DEDUP_WINDOW",
]
