"""
Allocation - Multi-unit winner allocation for closed items.

An item offers a fixed quantity. Bids ask for a quantity at a
per-unit price. At close, units go to the highest prices first:

1. Rank bids by bid_amount descending. Equal amounts are ranked by
   earliest created_at, then lowest id, so the result never depends
   on storage order.
2. Walk the ranking with remaining = quantity. Each bid takes
   min(remaining, bid_quantity) units.
3. Stop once remaining hits zero or bids run out.

A bid that takes fewer units than it asked for is a partial winner.
The same ranking picks the single top bid for the current-bid cache,
so display, reconciliation and settlement all agree on ties.

Everything here is pure: no storage access, no clock reads.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

from auctionhouse.core.auction.clock import AuctionState, classify
from auctionhouse.core.errors import AuctionNotEnded
from auctionhouse.utils.logger import get_logger

if TYPE_CHECKING:
    from auctionhouse.core.ledger.models import Bid, Item

logger = get_logger("allocation")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class WinningAllocation:
    """
    One winning bid and the units it receives.

    Derived at settlement, never persisted.
    """
    bid_id: int
    bidder_nickname: str
    bidder_discord_name: Optional[str]
    bid_amount: int
    bid_quantity: int
    quantity_used: int

    @property
    def is_partial(self) -> bool:
        """True when higher bids exhausted supply before this one was filled."""
        return self.quantity_used < self.bid_quantity

    @property
    def value(self) -> int:
        return self.bid_amount * self.quantity_used


# =============================================================================
# Ranking
# =============================================================================


def rank_key(bid: "Bid") -> Tuple[int, object, int]:
    """Sort key: highest amount, then earliest submission, then lowest id."""
    return (-bid.bid_amount, bid.created_at, bid.id)


def rank_bids(bids: Iterable["Bid"]) -> List["Bid"]:
    """Return bids in allocation order."""
    return sorted(bids, key=rank_key)


def top_bid(bids: Iterable["Bid"]) -> Optional["Bid"]:
    """The bid that ranks first, or None for an empty ledger."""
    return min(bids, key=rank_key, default=None)


# =============================================================================
# Allocation
# =============================================================================


def allocate(quantity: int, bids: Iterable["Bid"]) -> List[WinningAllocation]:
    """
    Distribute quantity across bids by descending price.

    Args:
        quantity: Units the item offers (>= 1)
        bids: Every bid on the item, in any order

    Returns:
        Allocations in non-increasing bid_amount order. Their
        quantity_used values sum to min(quantity, total requested).
    """
    if quantity < 1:
        raise ValueError(f"quantity must be >= 1, got {quantity}")

    allocations: List[WinningAllocation] = []
    remaining = quantity

    for bid in rank_bids(bids):
        if remaining == 0:
            break

        used = min(remaining, bid.bid_quantity)
        if used > 0:
            allocations.append(
                WinningAllocation(
                    bid_id=bid.id,
                    bidder_nickname=bid.bidder_nickname,
                    bidder_discord_name=bid.bidder_discord_name,
                    bid_amount=bid.bid_amount,
                    bid_quantity=bid.bid_quantity,
                    quantity_used=used,
                )
            )
            remaining -= used

    return allocations


def allocated_value(quantity: int, bids: Iterable["Bid"]) -> int:
    """Total committed value: sum of bid_amount * quantity_used."""
    return sum(a.value for a in allocate(quantity, bids))


def settle_item(item: "Item", bids: Iterable["Bid"], now: datetime) -> List[WinningAllocation]:
    """
    Allocate a closed item.

    Raises:
        AuctionNotEnded: the item is still open or never closes, so its
            ledger may still change
    """
    state = classify(item, now)
    if state != AuctionState.ENDED:
        raise AuctionNotEnded(f"Item {item.id} is {state.name}, cannot settle")

    allocations = allocate(item.quantity, bids)
    filled = sum(a.quantity_used for a in allocations)
    logger.info(
        f"Settled item {item.id}: {len(allocations)} winners, "
        f"{filled}/{item.quantity} units filled"
    )
    return allocations
