"""
Ledger records - items, bids and the identities that act on them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Item:
    """
    One auctioned lot.

    current_bid and last_bidder_nickname are the cached running max;
    the bids table stays the source of truth.
    """
    id: int
    name: str
    starting_price: int
    quantity: int
    current_bid: int
    last_bidder_nickname: Optional[str]
    end_time: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class Bid:
    """One immutable ledger entry: a per-unit price for some quantity."""
    id: int
    item_id: int
    bid_amount: int
    bid_quantity: int
    bidder_nickname: str
    bidder_discord_id: Optional[str]
    bidder_discord_name: Optional[str]
    created_at: datetime

    @property
    def total(self) -> int:
        """Amount committed if the full quantity is filled."""
        return self.bid_amount * self.bid_quantity


@dataclass(frozen=True)
class Bidder:
    """Identity a bid is submitted under."""
    nickname: str
    discord_id: Optional[str] = None
    discord_name: Optional[str] = None


@dataclass(frozen=True)
class Capability:
    """Per-request authorization flags, resolved by the auth layer."""
    is_admin: bool = False
    is_member: bool = False


ANONYMOUS = Capability()
ADMIN = Capability(is_admin=True, is_member=True)
