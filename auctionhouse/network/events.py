"""
Events - change notifications exchanged over the transport.

Wire format is JSON:
    {"event_id": "...", "kind": "bid_placed", "item_id": 7, "timestamp": 1760000000.0}

Delivery is at-least-once, so event_id lets receivers drop exact
redeliveries.
"""

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class EventType(str, Enum):
    """Kinds of change an event announces."""
    BID_PLACED = "bid_placed"
    BID_DELETED = "bid_deleted"
    CACHE_REPAIRED = "cache_repaired"
    ITEM_ADDED = "item_added"
    ITEM_REMOVED = "item_removed"

    @property
    def is_item_scoped(self) -> bool:
        """Changes one item's cached fields; list membership is unchanged."""
        return self in ITEM_SCOPED


ITEM_SCOPED = frozenset({EventType.BID_PLACED, EventType.BID_DELETED, EventType.CACHE_REPAIRED})


class AuctionEvent(BaseModel):
    """A change announcement."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: EventType
    item_id: Optional[int] = None
    timestamp: float = Field(default_factory=time.time)

    @model_validator(mode="after")
    def check_item_id(self):
        if self.kind.is_item_scoped and self.item_id is None:
            raise ValueError(f"{self.kind.value} event requires item_id")
        return self

    @property
    def change_key(self) -> tuple:
        """Identity of the logical change, used to collapse bursts."""
        return (self.kind, self.item_id)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "AuctionEvent":
        return cls.model_validate_json(data)


def create_event(kind: EventType, item_id: Optional[int] = None) -> AuctionEvent:
    return AuctionEvent(kind=kind, item_id=item_id)
