"""
Current-Bid Cache - rules for the per-item running max.

Each item row caches (current_bid, last_bidder_nickname): the highest
single per-unit bid and who placed it. It drives listing display and
sorting only; settlement never reads it.

The functions here decide what the cache should become. BidLedger
applies the result in the same transaction as the ledger change.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from auctionhouse.core.auction.allocation import rank_key, top_bid
from auctionhouse.core.ledger.models import Bid, Item


@dataclass(frozen=True)
class CacheState:
    current_bid: int
    last_bidder_nickname: Optional[str]

    @classmethod
    def of(cls, item: Item) -> "CacheState":
        return cls(item.current_bid, item.last_bidder_nickname)


def initial_state(item: Item) -> CacheState:
    """Cache of an item without bids."""
    return CacheState(item.starting_price, None)


def expected_state(item: Item, bids: Iterable[Bid]) -> CacheState:
    """What the cache must hold for this ledger: the top-ranked bid, or the reset state."""
    top = top_bid(bids)
    if top is None:
        return initial_state(item)
    return CacheState(top.bid_amount, top.bidder_nickname)


def after_append(item: Item, bid: Bid, prior_bids: Iterable[Bid]) -> Optional[CacheState]:
    """
    New cache after bid was appended, or None to leave it unchanged.

    A strictly higher amount takes the lead; a lower one never displaces
    the shown leader, though it may still win units at settlement. An
    equal amount takes the lead only if it ranks ahead of the current top
    bid under the allocation ranking (earlier created_at, then lower id),
    so the first bid on an item at the starting price leads.

    prior_bids is only read on a tie.
    """
    if bid.bid_amount > item.current_bid:
        return CacheState(bid.bid_amount, bid.bidder_nickname)
    if bid.bid_amount < item.current_bid:
        return None

    leader = top_bid(prior_bids)
    if leader is None or rank_key(bid) < rank_key(leader):
        return CacheState(bid.bid_amount, bid.bidder_nickname)
    return None


def after_delete(item: Item, deleted: Bid, remaining: Iterable[Bid]) -> Optional[CacheState]:
    """
    New cache after deleted was removed, or None to leave it unchanged.

    Only a deletion at the cached amount can invalidate the cache; it is
    then recomputed from the remaining bids.
    """
    if deleted.bid_amount != item.current_bid:
        return None
    return expected_state(item, remaining)
